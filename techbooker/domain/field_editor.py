"""
Edit-then-commit state tracking for staff-editable booking fields.

A field moves CLEAN -> DIRTY on edit. On commit the pending text is parsed:
unparseable input moves to REVERTED without touching the store, parseable
input goes through COMMITTING and back to CLEAN once written.
"""

import logging
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

import pendulum
from pendulum import DateTime

from .exceptions import InvalidFieldValue

logger = logging.getLogger(__name__)

T = TypeVar("T")

DAY_MONTH_YEAR = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")
ISO_DATE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")
DAY_MONTH_YEAR_TIME = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{1,2})\s*$")

MIN_YEAR = 1900
MAX_YEAR = 2100


class FieldState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    COMMITTING = "committing"
    REVERTED = "reverted"


class EditableField(Generic[T]):
    """
    One editable value of one entity.

    ``value`` is what the editor should display: the pending input while
    DIRTY, otherwise the last committed value.
    """

    def __init__(self, name: str, committed: T):
        self.name = name
        self.committed = committed
        self.state = FieldState.CLEAN
        self.pending: Optional[Any] = None

    @property
    def value(self) -> Any:
        if self.state is FieldState.DIRTY:
            return self.pending
        return self.committed

    def edit(self, raw: Any) -> None:
        self.pending = raw
        self.state = FieldState.DIRTY

    def revert(self) -> None:
        self.pending = None
        self.state = FieldState.REVERTED

    def commit(
        self,
        parse: Callable[[Any], T],
        write: Callable[[T], None],
    ) -> bool:
        """
        Parse and persist the pending value.

        Returns:
            True if a value was written, False if there was nothing to commit
            or the input was reverted

        Raises:
            Whatever ``write`` raises; the field is reverted first
        """
        if self.state is not FieldState.DIRTY:
            return False

        try:
            parsed = parse(self.pending)
        except InvalidFieldValue as exc:
            logger.info("Reverting %s: %s", self.name, exc)
            self.revert()
            return False

        self.state = FieldState.COMMITTING
        try:
            write(parsed)
        except Exception:
            self.revert()
            raise

        self.committed = parsed
        self.pending = None
        self.state = FieldState.CLEAN
        return True


def parse_day_month_year(text: str) -> date:
    """
    Parse ``dd/mm/yyyy`` (single-digit day and month allowed) into a date.

    ISO ``YYYY-MM-DD`` is accepted as well.

    Raises:
        InvalidFieldValue: If the text is not a real calendar date
    """
    raw = (text or "").strip()
    match = DAY_MONTH_YEAR.match(raw)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        iso_match = ISO_DATE.match(raw)
        if not iso_match:
            raise InvalidFieldValue(f"Expected a date as dd/mm/yyyy, got '{text}'")
        year, month, day = (int(part) for part in iso_match.groups())

    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidFieldValue(f"Year must be between {MIN_YEAR} and {MAX_YEAR}, got {year}")

    try:
        return pendulum.date(year, month, day)
    except ValueError as exc:
        raise InvalidFieldValue(f"Invalid date '{text}': {exc}") from exc


def parse_appointment_input(text: str, timezone: str) -> DateTime:
    """
    Parse ``dd/mm/yyyy HH:mm`` in ``timezone`` into an aware DateTime.

    Falls back to ISO-8601 parsing for anything else.

    Raises:
        InvalidFieldValue: If the text is empty or not a valid instant
    """
    raw = (text or "").strip()
    if not raw:
        raise InvalidFieldValue("Appointment date must not be empty")

    match = DAY_MONTH_YEAR_TIME.match(raw)
    if match:
        day, month, year, hour, minute = (int(part) for part in match.groups())
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise InvalidFieldValue(f"Invalid time in '{text}'")
        try:
            return pendulum.datetime(year, month, day, hour, minute, tz=timezone)
        except ValueError as exc:
            raise InvalidFieldValue(f"Invalid date '{text}': {exc}") from exc

    try:
        parsed = pendulum.parse(raw, tz=timezone)
    except ValueError as exc:
        raise InvalidFieldValue(f"Could not parse appointment date '{text}'") from exc

    if not isinstance(parsed, DateTime):
        raise InvalidFieldValue(f"Could not parse appointment date '{text}'")
    return parsed


def format_day_month_year(value: date) -> str:
    return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"


def format_appointment(value: datetime, timezone: str) -> str:
    return pendulum.instance(value).in_timezone(timezone).format("DD/MM/YYYY HH:mm")
