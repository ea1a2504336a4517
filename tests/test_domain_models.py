"""
Tests for domain models.
"""

import pendulum
import pytest

from techbooker.domain.models import Booking, BookingRequest, normalize_phone


def make_request(**overrides) -> BookingRequest:
    values = dict(
        first_name="Dana",
        last_name="Levi",
        phone="050-123-4567",
        address="Herzl 1",
        operating_system="Windows",
        appointment_date=pendulum.parse("2025-03-04 10:00", tz="Asia/Jerusalem"),
    )
    values.update(overrides)
    return BookingRequest(**values)


class TestNormalizePhone:
    """Tests for phone normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("+972 (50) 123-4567", "+972501234567"),
        ("050-123-4567", "+0501234567"),
        ("972501234567", "+972501234567"),
        ("", "+"),
    ])
    def test_strips_everything_but_digits(self, raw, expected):
        assert normalize_phone(raw) == expected


class TestBooking:
    """Tests for Booking."""

    def test_from_record(self):
        booking = Booking.from_record({
            "id": "0f1e2d3c-aaaa-bbbb-cccc-111122223333",
            "appointment_date": "2025-03-04T08:00:00+00:00",
            "first_name": "Dana",
            "last_name": "Levi",
            "phone": "+972501234567",
            "address": "Herzl 1",
            "city": None,
            "operating_system": "linux",
            "comments": None,
            "booking_number": "BK-20250301-0011234",
            "completed": True,
            "technician_notes": None,
            "created_at": "2025-03-01T09:00:00+00:00",
        })

        assert booking.appointment_date == pendulum.parse("2025-03-04 10:00", tz="Asia/Jerusalem")
        assert booking.city is None
        assert booking.comments == ""
        assert booking.completed is True
        assert booking.full_name == "Dana Levi"
        assert booking.display_number == "BK-20250301-0011234"
        assert booking.deleted_at is None

    def test_display_number_falls_back_to_short_id(self):
        booking = Booking(
            id="0f1e2d3c-aaaa-bbbb-cccc-111122223333",
            appointment_date=pendulum.now("UTC"),
        )

        assert booking.display_number == "0f1e2d3c"

    def test_from_record_requires_id_and_date(self):
        with pytest.raises(ValueError):
            Booking.from_record({"appointment_date": "2025-03-04T08:00:00+00:00"})
        with pytest.raises(ValueError):
            Booking.from_record({"id": "abc"})


class TestBookingRequest:
    """Tests for BookingRequest validation."""

    def test_normalizes_os_and_blank_city(self):
        request = make_request(operating_system=" MacOS ", city="   ")

        assert request.operating_system == "macos"
        assert request.city is None

    def test_missing_required_fields(self):
        with pytest.raises(ValueError, match="first_name, address"):
            make_request(first_name=" ", address="")

    def test_unknown_operating_system(self):
        with pytest.raises(ValueError, match="Unknown operating system"):
            make_request(operating_system="solaris")

    def test_naive_appointment_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            make_request(appointment_date=pendulum.naive(2025, 3, 4, 10))

    def test_to_record_uses_utc(self):
        record = make_request(city=" Haifa ", comments="Printer").to_record()

        assert record["appointment_date"] == "2025-03-04T08:00:00Z"
        assert record["city"] == "Haifa"
        assert record["operating_system"] == "windows"
        assert record["comments"] == "Printer"
