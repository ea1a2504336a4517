"""
Staff-side operations on bookings: listing, sorting, editing and removal.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from ..config import DEFAULT_TIMEZONE
from ..domain.exceptions import AuthenticationError, InvalidFieldValue
from ..domain.field_editor import EditableField, format_appointment, parse_appointment_input
from ..domain.models import OPERATING_SYSTEMS, Booking
from ..adapters.supabase_auth import SupabaseAuthenticator
from .booking_service import BookingStoreProtocol

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "appointment_date",
    "first_name",
    "last_name",
    "phone",
    "city",
    "address",
    "operating_system",
    "comments",
    "technician_notes",
)

SORTABLE_COLUMNS = (
    "booking_number",
    "completed",
    "appointment_date",
    "created_at",
    "updated_at",
    "first_name",
    "last_name",
    "phone",
    "city",
    "address",
    "operating_system",
    "comments",
    "technician_notes",
)

TIMESTAMP_COLUMNS = ("appointment_date", "created_at", "updated_at")


def _sort_key(booking: Booking, column: str) -> Any:
    value = getattr(booking, column)
    if column in TIMESTAMP_COLUMNS:
        return value.timestamp() if value is not None else 0.0
    if column == "completed":
        return 1 if value else 0
    return str(value or "").lower()


def sort_bookings(
    bookings: List[Booking],
    column: str = "appointment_date",
    descending: bool = False,
) -> List[Booking]:
    """
    Sort bookings for the staff table.

    Bookings without a city always go last, whichever the direction.

    Raises:
        ValueError: If ``column`` is not sortable
    """
    if column not in SORTABLE_COLUMNS:
        raise ValueError(
            f"Cannot sort by '{column}'. Choose one of: {', '.join(SORTABLE_COLUMNS)}"
        )

    if column == "city":
        with_city = [b for b in bookings if b.city is not None]
        without_city = [b for b in bookings if b.city is None]
        return sorted(with_city, key=lambda b: _sort_key(b, column), reverse=descending) + without_city

    return sorted(bookings, key=lambda b: _sort_key(b, column), reverse=descending)


class AdminService:
    """Staff operations. Read/write permissions are enforced by the backend."""

    def __init__(
        self,
        store: BookingStoreProtocol,
        timezone: str = DEFAULT_TIMEZONE,
        authenticator: Optional[SupabaseAuthenticator] = None,
    ) -> None:
        self._store = store
        self._timezone = timezone
        self._authenticator = authenticator

    def sign_in(self, email: str, password: str) -> str:
        if self._authenticator is None:
            raise AuthenticationError("No authenticator configured")
        return self._authenticator.sign_in(email, password)

    def sign_out(self) -> None:
        if self._authenticator is not None:
            self._authenticator.sign_out()

    def list_bookings(self, sort_by: str = "appointment_date", descending: bool = False) -> List[Booking]:
        return sort_bookings(self._store.list_bookings(), sort_by, descending)

    def find_booking(self, booking_ref: str) -> Booking:
        """
        Find a booking by id, id prefix or booking number.

        Raises:
            ValueError: If the reference is blank, or no booking or more than
                one booking matches
        """
        booking_ref = (booking_ref or "").strip()
        if not booking_ref:
            raise ValueError("A booking number or id is required")

        matches = [
            booking for booking in self._store.list_bookings()
            if booking.id == booking_ref
            or booking.booking_number == booking_ref
            or booking.id.startswith(booking_ref)
        ]
        if not matches:
            raise ValueError(f"No booking matches '{booking_ref}'")
        if len(matches) > 1:
            raise ValueError(f"'{booking_ref}' matches {len(matches)} bookings; be more specific")
        return matches[0]

    def set_completed(self, booking_id: str, completed: bool) -> Booking:
        booking = self._store.update_booking(booking_id, {"completed": completed})
        logger.info("Booking %s marked %s", booking.display_number, "completed" if completed else "open")
        return booking

    def soft_delete(self, booking_id: str) -> None:
        self._store.soft_delete_booking(booking_id)
        logger.info("Booking %s soft-deleted", booking_id)

    def editor_for(self, booking: Booking, field: str) -> EditableField:
        """Create an edit tracker for one field, showing it the way staff type it."""
        self._check_editable(field)
        committed = getattr(booking, field)
        if field == "appointment_date":
            committed = format_appointment(committed, self._timezone)
        return EditableField(field, committed)

    def edit_field(self, booking: Booking, field: str, raw: str) -> Optional[Booking]:
        """
        Edit one field and commit it.

        Returns:
            The updated booking, or None if the input was invalid and reverted

        Raises:
            BookingStoreError: If the store rejects the update
        """
        editor = self.editor_for(booking, field)
        editor.edit(raw)

        updated: List[Booking] = []

        def write(value: Any) -> None:
            updated.append(self._store.update_booking(booking.id, {field: value}))

        if not editor.commit(self._parser_for(field), write):
            logger.info("Edit of %s on booking %s reverted", field, booking.display_number)
            return None
        return updated[0]

    def _parser_for(self, field: str) -> Callable[[Any], Any]:
        if field == "appointment_date":
            return lambda raw: (
                parse_appointment_input(raw, self._timezone)
                .in_timezone("UTC")
                .to_iso8601_string()
            )
        if field == "city":
            return lambda raw: (str(raw).strip() or None) if raw is not None else None
        if field == "operating_system":
            return _parse_operating_system
        return lambda raw: "" if raw is None else str(raw)

    @staticmethod
    def _check_editable(field: str) -> None:
        if field not in EDITABLE_FIELDS:
            raise ValueError(
                f"Field '{field}' is not editable. Choose one of: {', '.join(EDITABLE_FIELDS)}"
            )


def _parse_operating_system(raw: Any) -> str:
    value = str(raw or "").strip().lower()
    if value not in OPERATING_SYSTEMS:
        raise InvalidFieldValue(
            f"Unknown operating system '{raw}'. Expected one of: {', '.join(OPERATING_SYSTEMS)}"
        )
    return value
