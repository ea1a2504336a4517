"""
In-memory Booking Store and SMS sender for tests and ``--mock`` runs.
"""

import copy
import json
import logging
import random
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import BookingStoreError
from ..domain.models import Booking
from .sms_sender import SmsResult

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 10


class InMemoryBookingStore:
    """
    Mock store that behaves like the hosted ``bookings`` table.

    It assigns ids, timestamps and booking numbers the way the backend
    triggers do, and hides soft-deleted rows from reads.
    """

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, timezone: str = "UTC"):
        self.timezone = timezone
        self.rows: List[Dict[str, Any]] = []
        for row in rows or []:
            self._append(dict(row))

    @classmethod
    def from_seed_file(cls, path: Optional[Path] = None, timezone: str = "UTC") -> "InMemoryBookingStore":
        """
        Load mock bookings from JSON.

        Seed entries give ``days_from_today`` and ``time`` (HH:MM) instead of
        absolute dates so the demo data never goes stale.
        """
        data_file = path or Path(__file__).parent / "mock_bookings.json"
        store = cls(timezone=timezone)

        if not data_file.exists():
            return store

        with open(data_file, "r", encoding="utf-8") as f:
            entries = json.load(f)

        today = pendulum.today(timezone)
        for entry in entries:
            try:
                hour, minute = (int(part) for part in entry.pop("time").split(":"))
                day = today.add(days=int(entry.pop("days_from_today")))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid mock booking %s: %s", entry, exc)
                continue
            entry["appointment_date"] = day.set(hour=hour, minute=minute).to_iso8601_string()
            store.insert_booking(entry)

        return store

    def list_booked_instants(self) -> List[DateTime]:
        return [booking.appointment_date for booking in self.list_bookings()]

    def list_bookings(self) -> List[Booking]:
        return [
            Booking.from_record(row) for row in self.rows
            if row.get("deleted_at") is None
        ]

    def insert_booking(self, record: Dict[str, Any]) -> Booking:
        row = dict(record)
        row.setdefault("completed", False)
        row.setdefault("technician_notes", "")
        return Booking.from_record(self._append(row))

    def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        row = self._find(booking_id)
        row.update(copy.deepcopy(changes))
        row["updated_at"] = pendulum.now("UTC").to_iso8601_string()
        return Booking.from_record(row)

    def soft_delete_booking(self, booking_id: str) -> None:
        self.update_booking(booking_id, {"deleted_at": pendulum.now("UTC").to_iso8601_string()})

    def _find(self, booking_id: str) -> Dict[str, Any]:
        for row in self.rows:
            if row["id"] == booking_id:
                return row
        raise BookingStoreError(f"Booking {booking_id} not found")

    def _append(self, row: Dict[str, Any]) -> Dict[str, Any]:
        now = pendulum.now("UTC").to_iso8601_string()
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        row.setdefault("deleted_at", None)
        if not row.get("booking_number"):
            row["booking_number"] = self._generate_booking_number(row["id"])
        self.rows.append(row)
        return row

    def _generate_booking_number(self, booking_id: str) -> str:
        """
        Build ``BK-YYYYMMDD-NNNrrrr`` from today's count and a random suffix.

        Falls back to the first 8 characters of the id if no unique number
        turns up.
        """
        today = pendulum.today(self.timezone)
        base_number = f"BK-{today.format('YYYYMMDD')}"
        created_today = sum(
            1 for row in self.rows
            if pendulum.parse(row["created_at"]).in_timezone(self.timezone).date() == today.date()
        )
        existing = {row.get("booking_number") for row in self.rows}

        for attempt in range(MAX_NUMBER_ATTEMPTS):
            suffix = f"{random.randint(0, 9999):04d}"
            candidate = f"{base_number}-{created_today + 1 + attempt:03d}{suffix}"
            if candidate not in existing:
                return candidate

        return f"{base_number}-{booking_id[:8]}"


class RecordingSmsSender:
    """SMS sender that records messages and returns a fixed result."""

    def __init__(self, result: Optional[SmsResult] = None):
        self.result = result or SmsResult.ok(message_id="SM-mock")
        self.sent: List[Dict[str, str]] = []

    def send(self, phone: str, message: str) -> SmsResult:
        self.sent.append({"phone": phone, "message": message})
        return self.result
