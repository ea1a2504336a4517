"""
Core business logic for deciding which dates and time slots can be booked.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O). Every call works on the snapshot of booked instants it is
handed and never mutates it.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence

import pendulum
from pendulum import DateTime

MINUTES_PER_SLOT = 60


class DisabledReason(str, Enum):
    """Why a calendar date cannot be selected."""
    PAST = "past"
    WEEKDAY = "weekday"
    DATE = "date"
    CAPACITY = "capacity"
    FULLY_BOOKED = "fully_booked"


def weekday_ordinal(day: date) -> int:
    """Weekday ordinal with 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def generate_time_slots(work_start: time, work_end: time) -> List[time]:
    """
    Generate hourly slots from ``work_start`` up to and including ``work_end``.

    The last slot is the largest ``work_start + n hours`` that does not pass
    ``work_end``. Returns an empty list when ``work_start > work_end``.

    Example:
    09:00 - 11:30 -> [09:00, 10:00, 11:00]
    """
    start_minutes = work_start.hour * 60 + work_start.minute
    end_minutes = work_end.hour * 60 + work_end.minute

    return [
        time(hour=minutes // 60, minute=minutes % 60)
        for minutes in range(start_minutes, end_minutes + 1, MINUTES_PER_SLOT)
    ]


def _as_date(value: date) -> date:
    return date(value.year, value.month, value.day)


@dataclass(frozen=True)
class SchedulingRules:
    """
    The subset of booking settings the availability filter consumes.

    Invariant: min_interval_hours is positive.
    """
    work_start: time
    work_end: time
    min_interval_hours: int
    disabled_weekdays: FrozenSet[int] = frozenset()
    disabled_dates: FrozenSet[date] = frozenset()
    max_bookings_per_day: Optional[int] = None
    timezone: str = "Asia/Jerusalem"

    def __post_init__(self):
        if self.min_interval_hours <= 0:
            raise ValueError(
                f"min_interval_hours must be positive, got {self.min_interval_hours}"
            )
        object.__setattr__(
            self,
            "disabled_dates",
            frozenset(_as_date(d) for d in self.disabled_dates),
        )

    def is_disabled_weekday(self, day: date) -> bool:
        return weekday_ordinal(day) in self.disabled_weekdays

    def is_disabled_date(self, day: date) -> bool:
        return _as_date(day) in self.disabled_dates


class SlotCalculator:
    """
    Decides slot and date availability from scheduling rules and bookings.

    Algorithm for a date:
    1. Reject past dates
    2. Reject disabled weekdays and explicitly disabled dates
    3. Reject dates that reached the per-day booking cap
    4. Reject dates where every generated slot is too close to a booking
    """

    def __init__(self, rules: SchedulingRules):
        self.rules = rules

    def generate_time_slots(self) -> List[time]:
        """Hourly slots within the configured work hours."""
        return generate_time_slots(self.rules.work_start, self.rules.work_end)

    def slot_instant(self, day: date, slot: time) -> DateTime:
        """Combine a calendar date and a slot into an aware instant."""
        return pendulum.datetime(
            day.year,
            day.month,
            day.day,
            slot.hour,
            slot.minute,
            tz=self.rules.timezone,
        )

    def is_slot_available(
        self,
        candidate: datetime,
        booked: Sequence[datetime],
    ) -> bool:
        """
        Check the minimum spacing between ``candidate`` and every booking.

        Bookings exactly ``min_interval_hours`` away do not block the slot.
        """
        min_interval_seconds = self.rules.min_interval_hours * 3600
        candidate_ts = candidate.timestamp()

        return all(
            abs(candidate_ts - booked_instant.timestamp()) >= min_interval_seconds
            for booked_instant in booked
        )

    def available_slots(self, day: date, booked: Sequence[datetime]) -> List[time]:
        """Return the slots on ``day`` that keep the minimum spacing."""
        return [
            slot for slot in self.generate_time_slots()
            if self.is_slot_available(self.slot_instant(day, slot), booked)
        ]

    def bookings_on_day(self, day: date, booked: Sequence[datetime]) -> int:
        """Count bookings whose local calendar date is ``day``."""
        target = _as_date(day)
        return sum(
            1 for booked_instant in booked
            if self._local_date(booked_instant) == target
        )

    def disabled_reason(
        self,
        day: date,
        booked: Sequence[datetime],
        today: Optional[date] = None,
    ) -> Optional[DisabledReason]:
        """
        Return why ``day`` cannot be selected, or None when it can.

        The slot scan runs last since it touches every generated slot.
        """
        if today is None:
            today = pendulum.today(self.rules.timezone).date()

        if _as_date(day) < _as_date(today):
            return DisabledReason.PAST

        if self.rules.is_disabled_weekday(day):
            return DisabledReason.WEEKDAY

        if self.rules.is_disabled_date(day):
            return DisabledReason.DATE

        cap = self.rules.max_bookings_per_day
        if cap is not None and self.bookings_on_day(day, booked) >= cap:
            return DisabledReason.CAPACITY

        has_free_slot = any(
            self.is_slot_available(self.slot_instant(day, slot), booked)
            for slot in self.generate_time_slots()
        )
        if not has_free_slot:
            return DisabledReason.FULLY_BOOKED

        return None

    def is_date_disabled(
        self,
        day: date,
        booked: Sequence[datetime],
        today: Optional[date] = None,
    ) -> bool:
        return self.disabled_reason(day, booked, today=today) is not None

    def disabled_days(
        self,
        start: date,
        end: date,
        booked: Sequence[datetime],
        today: Optional[date] = None,
    ) -> List[date]:
        """Return every disabled date in the inclusive range ``start`` .. ``end``."""
        if today is None:
            today = pendulum.today(self.rules.timezone).date()

        disabled: List[date] = []
        current = pendulum.date(start.year, start.month, start.day)
        last = _as_date(end)

        while current <= last:
            if self.is_date_disabled(current, booked, today=today):
                disabled.append(_as_date(current))
            current = current.add(days=1)

        return disabled

    def _local_date(self, instant: datetime) -> date:
        local = pendulum.instance(instant).in_timezone(self.rules.timezone)
        return date(local.year, local.month, local.day)
