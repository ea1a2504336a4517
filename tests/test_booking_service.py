"""
Tests for the booking service.
"""

from datetime import date, time

import pendulum
import pytest

from techbooker.adapters.mock_store import InMemoryBookingStore, RecordingSmsSender
from techbooker.adapters.sms_sender import SmsResult
from techbooker.config import BookingSettings
from techbooker.domain.exceptions import SlotUnavailableError
from techbooker.domain.models import BookingRequest
from techbooker.domain.slot_calculator import DisabledReason
from techbooker.services.booking_service import BookingService
from techbooker.settings_store import JsonSettingsStore

TZ = "Asia/Jerusalem"
TODAY = date(2025, 3, 3)


def make_request(when: str = "2025-03-04 10:00", **overrides) -> BookingRequest:
    values = dict(
        first_name="Dana",
        last_name="Levi",
        phone="+972 (50) 123-4567",
        address="Herzl 1",
        operating_system="linux",
        appointment_date=pendulum.parse(when, tz=TZ),
    )
    values.update(overrides)
    return BookingRequest(**values)


def seeded_store(*local_times: str) -> InMemoryBookingStore:
    return InMemoryBookingStore(
        rows=[
            {"appointment_date": pendulum.parse(value, tz=TZ).to_iso8601_string(), "first_name": "Seed"}
            for value in local_times
        ],
        timezone=TZ,
    )


class ExplodingSmsSender:
    def send(self, phone, message):
        raise RuntimeError("gateway exploded")


class TestAvailability:
    """Tests for availability queries."""

    def test_available_slots_use_store_snapshot(self):
        service = BookingService(seeded_store("2025-03-04 12:00"), RecordingSmsSender(), timezone=TZ)

        slots = service.available_slots(date(2025, 3, 4))

        assert time(9, 0) in slots
        assert time(12, 0) not in slots
        assert time(15, 0) in slots

    def test_disabled_reason_capacity(self):
        settings = BookingSettings(max_bookings_per_day=1)
        service = BookingService(seeded_store("2025-03-04 09:00"), RecordingSmsSender(), settings=settings, timezone=TZ)

        assert service.disabled_reason(date(2025, 3, 4), today=TODAY) is DisabledReason.CAPACITY
        assert service.is_date_disabled(date(2025, 3, 5), today=TODAY) is False

    def test_soft_deleted_bookings_do_not_block(self):
        store = seeded_store("2025-03-04 12:00")
        service = BookingService(store, RecordingSmsSender(), timezone=TZ)
        store.soft_delete_booking(store.list_bookings()[0].id)

        assert time(12, 0) in service.available_slots(date(2025, 3, 4))

    def test_follow_applies_settings_changes(self, tmp_path):
        settings_store = JsonSettingsStore(tmp_path / "settings.json")
        service = BookingService(seeded_store(), RecordingSmsSender(), timezone=TZ)

        unsubscribe = service.follow(settings_store)
        settings_store.update(disabled_weekdays=[2])

        assert service.disabled_reason(date(2025, 3, 4), today=TODAY) is DisabledReason.WEEKDAY

        unsubscribe()
        settings_store.update(disabled_weekdays=[])
        assert service.settings.disabled_weekdays == [2]


class TestCreateBooking:
    """Tests for booking creation and SMS confirmation."""

    def test_creates_booking_and_sends_sms(self):
        store = seeded_store()
        sms = RecordingSmsSender()
        service = BookingService(store, sms, timezone=TZ)

        outcome = service.create_booking(make_request(), today=TODAY)

        assert outcome.sms_sent is True
        assert outcome.sms_warning is None
        assert outcome.booking.booking_number.startswith("BK-")
        assert len(store.list_bookings()) == 1
        assert sms.sent[0]["phone"] == "+972501234567"
        message = sms.sent[0]["message"]
        assert "Dana" in message
        assert outcome.booking.display_number in message
        assert "04/03/2025 10:00" in message

    def test_sms_disabled(self):
        sms = RecordingSmsSender()
        service = BookingService(seeded_store(), sms, settings=BookingSettings(send_sms=False), timezone=TZ)

        outcome = service.create_booking(make_request(), today=TODAY)

        assert outcome.sms_sent is False
        assert outcome.sms_warning is None
        assert sms.sent == []

    def test_failed_sms_keeps_booking(self):
        store = seeded_store()
        sms = RecordingSmsSender(result=SmsResult.failed("Twilio rejected the number"))
        service = BookingService(store, sms, timezone=TZ)

        outcome = service.create_booking(make_request(), today=TODAY)

        assert outcome.sms_sent is False
        assert outcome.sms_warning == "Twilio rejected the number"
        assert len(store.list_bookings()) == 1

    def test_raising_sender_becomes_warning(self):
        store = seeded_store()
        service = BookingService(store, ExplodingSmsSender(), timezone=TZ)

        outcome = service.create_booking(make_request(), today=TODAY)

        assert outcome.sms_warning == "gateway exploded"
        assert len(store.list_bookings()) == 1

    def test_rejects_slot_too_close_to_booking(self):
        store = seeded_store("2025-03-04 11:00")
        service = BookingService(store, RecordingSmsSender(), timezone=TZ)

        with pytest.raises(SlotUnavailableError):
            service.create_booking(make_request("2025-03-04 10:00"), today=TODAY)
        assert len(store.list_bookings()) == 1

    def test_rejects_time_outside_generated_slots(self):
        service = BookingService(seeded_store(), RecordingSmsSender(), timezone=TZ)

        with pytest.raises(SlotUnavailableError):
            service.create_booking(make_request("2025-03-04 10:30"), today=TODAY)

    def test_rejects_disabled_date(self):
        service = BookingService(
            seeded_store(),
            RecordingSmsSender(),
            settings=BookingSettings(disabled_dates=[date(2025, 3, 4)]),
            timezone=TZ,
        )

        with pytest.raises(SlotUnavailableError, match="cannot be booked"):
            service.create_booking(make_request(), today=TODAY)

    def test_custom_template(self):
        sms = RecordingSmsSender()
        service = BookingService(seeded_store(), sms, timezone=TZ, sms_template="#{booking_number} for {first_name}")

        outcome = service.create_booking(make_request(), today=TODAY)

        assert sms.sent[0]["message"] == f"#{outcome.booking.display_number} for Dana"
