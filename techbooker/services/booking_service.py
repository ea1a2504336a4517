"""
Application services for the customer booking flow.

The service takes a fresh snapshot of booked instants from the store on
every query and delegates the availability decisions to the domain-level
``SlotCalculator``. Creating a booking and notifying the customer are two
independent steps: a failed SMS never undoes the booking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Callable, Dict, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..config import DEFAULT_SMS_TEMPLATE, DEFAULT_TIMEZONE, BookingSettings
from ..domain.exceptions import SlotUnavailableError
from ..domain.field_editor import format_appointment
from ..domain.models import Booking, BookingRequest, normalize_phone
from ..domain.slot_calculator import DisabledReason, SlotCalculator
from ..adapters.sms_sender import SmsSenderProtocol
from ..settings_store import JsonSettingsStore

logger = logging.getLogger(__name__)


class BookingStoreProtocol(Protocol):
    """Protocol describing the booking store behaviour needed by the services."""

    def list_booked_instants(self) -> List[DateTime]:
        """Return appointment instants of non-deleted bookings."""

    def list_bookings(self) -> List[Booking]:
        """Return non-deleted bookings."""

    def insert_booking(self, record: Dict[str, Any]) -> Booking:
        """Insert a booking and return it as stored."""

    def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        """Update a booking and return it as stored."""

    def soft_delete_booking(self, booking_id: str) -> None:
        """Mark a booking as deleted."""


@dataclass
class BookingOutcome:
    """Result of a booking submission."""
    booking: Booking
    sms_sent: bool = False
    sms_warning: Optional[str] = None


class BookingService:
    """
    Orchestrates availability queries and booking creation.

    Settings are pushed in via ``apply_settings``; ``follow`` wires that to a
    settings store so changes made elsewhere take effect immediately.
    """

    def __init__(
        self,
        store: BookingStoreProtocol,
        sms_sender: SmsSenderProtocol,
        settings: Optional[BookingSettings] = None,
        timezone: str = DEFAULT_TIMEZONE,
        sms_template: str = DEFAULT_SMS_TEMPLATE,
    ) -> None:
        self._store = store
        self._sms_sender = sms_sender
        self._timezone = timezone
        self._sms_template = sms_template
        self.apply_settings(settings or BookingSettings())

    @property
    def settings(self) -> BookingSettings:
        return self._settings

    @property
    def calculator(self) -> SlotCalculator:
        return self._calculator

    def apply_settings(self, settings: BookingSettings) -> None:
        self._settings = settings
        self._calculator = SlotCalculator(settings.to_rules(self._timezone))

    def follow(self, settings_store: JsonSettingsStore) -> Callable[[], None]:
        """Load current settings from ``settings_store`` and track its changes."""
        self.apply_settings(settings_store.load())
        return settings_store.subscribe(self.apply_settings)

    def booked_instants(self) -> List[DateTime]:
        """Fetch a fresh snapshot of booked appointment instants."""
        return self._store.list_booked_instants()

    def available_slots(self, day: date) -> List[time]:
        return self._calculator.available_slots(day, self.booked_instants())

    def disabled_reason(self, day: date, today: Optional[date] = None) -> Optional[DisabledReason]:
        return self._calculator.disabled_reason(day, self.booked_instants(), today=today)

    def is_date_disabled(self, day: date, today: Optional[date] = None) -> bool:
        return self.disabled_reason(day, today=today) is not None

    def disabled_days(self, start: date, end: date, today: Optional[date] = None) -> List[date]:
        return self._calculator.disabled_days(start, end, self.booked_instants(), today=today)

    def create_booking(
        self,
        request: BookingRequest,
        today: Optional[date] = None,
    ) -> BookingOutcome:
        """
        Persist a booking and, if enabled, notify the customer by SMS.

        Raises:
            SlotUnavailableError: If the requested slot is not offered any more
            BookingStoreError: If the store rejects the insert
        """
        self._ensure_slot_offered(request.appointment_date, today=today)

        booking = self._store.insert_booking(request.to_record())
        logger.info("Created booking %s for %s", booking.display_number, booking.appointment_date)

        outcome = BookingOutcome(booking=booking)
        if not self._settings.send_sms:
            return outcome

        message = self.format_sms(booking)
        try:
            result = self._sms_sender.send(normalize_phone(booking.phone or request.phone), message)
        except Exception as exc:
            logger.warning("SMS sending raised for booking %s: %s", booking.display_number, exc)
            outcome.sms_warning = str(exc) or "Unknown error"
            return outcome

        if result.success:
            outcome.sms_sent = True
        else:
            logger.warning("SMS sending failed for booking %s: %s", booking.display_number, result.error)
            outcome.sms_warning = result.error or "Unknown error"
        return outcome

    def format_sms(self, booking: Booking) -> str:
        return self._sms_template.format(
            first_name=booking.first_name,
            booking_number=booking.display_number,
            appointment=format_appointment(booking.appointment_date, self._timezone),
        )

    def _ensure_slot_offered(self, appointment: DateTime, today: Optional[date] = None) -> None:
        local = pendulum.instance(appointment).in_timezone(self._timezone)
        day = local.date()
        booked = self.booked_instants()

        reason = self._calculator.disabled_reason(day, booked, today=today)
        if reason is not None:
            raise SlotUnavailableError(
                f"{day.format('DD/MM/YYYY')} cannot be booked ({reason.value})"
            )

        offered = {
            (slot.hour, slot.minute)
            for slot in self._calculator.available_slots(day, booked)
        }
        if (local.hour, local.minute) not in offered:
            raise SlotUnavailableError(
                f"{local.format('DD/MM/YYYY HH:mm')} is no longer available"
            )
