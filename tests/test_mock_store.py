"""
Tests for the in-memory booking store used by --mock runs.
"""

import json

import pendulum
import pytest

from techbooker.adapters.mock_store import InMemoryBookingStore
from techbooker.domain.exceptions import BookingStoreError

TZ = "Asia/Jerusalem"


class TestInMemoryBookingStore:
    """Tests for InMemoryBookingStore."""

    def test_seed_file_is_relative_to_today(self):
        store = InMemoryBookingStore.from_seed_file(timezone=TZ)

        bookings = store.list_bookings()
        today = pendulum.today(TZ)

        assert bookings
        for booking in bookings:
            assert booking.appointment_date.in_timezone(TZ).date() > today.date()
            assert booking.booking_number.startswith(f"BK-{today.format('YYYYMMDD')}-")

    def test_custom_seed_file_skips_invalid_entries(self, tmp_path):
        seed = tmp_path / "seed.json"
        seed.write_text(json.dumps([
            {"days_from_today": 3, "time": "11:00", "first_name": "Dana"},
            {"days_from_today": "soon", "time": "11:00"},
            {"first_name": "No time"},
        ]), encoding="utf-8")

        store = InMemoryBookingStore.from_seed_file(seed, timezone=TZ)

        assert [b.first_name for b in store.list_bookings()] == ["Dana"]

    def test_insert_assigns_unique_numbers(self):
        store = InMemoryBookingStore(timezone=TZ)
        when = pendulum.parse("2099-01-05 10:00", tz=TZ).to_iso8601_string()

        numbers = {store.insert_booking({"appointment_date": when}).booking_number for _ in range(5)}

        assert len(numbers) == 5

    def test_soft_delete_hides_row(self):
        store = InMemoryBookingStore(timezone=TZ)
        booking = store.insert_booking({"appointment_date": "2099-01-05T08:00:00Z"})

        store.soft_delete_booking(booking.id)

        assert store.list_bookings() == []
        assert store.list_booked_instants() == []
        assert len(store.rows) == 1

    def test_update_unknown_id(self):
        with pytest.raises(BookingStoreError):
            InMemoryBookingStore().update_booking("missing", {"completed": True})
