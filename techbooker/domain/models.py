"""
Domain models for bookings and booking requests.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pendulum
from pendulum import DateTime


OPERATING_SYSTEMS = ("windows", "linux", "macos")


def normalize_phone(raw: str) -> str:
    """
    Normalize a phone number to a leading ``+`` followed by digits only.

    Example: "+972 (50) 123-4567" -> "+972501234567"
    """
    digits = re.sub(r"\D", "", raw or "")
    return f"+{digits}"


def parse_timestamp(value: Any) -> Optional[DateTime]:
    """Parse a backend timestamp into an aware pendulum DateTime."""
    if value is None or value == "":
        return None
    if isinstance(value, DateTime):
        return value
    parsed = pendulum.parse(str(value))
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse timestamp: {value}")
    return parsed


@dataclass
class Booking:
    """
    A booking row as stored by the backend.

    ``deleted_at`` is the soft-delete marker; rows carrying it are never
    returned by the store reads.
    """
    id: str
    appointment_date: DateTime
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    address: str = ""
    city: Optional[str] = None
    operating_system: str = ""
    comments: str = ""
    booking_number: Optional[str] = None
    completed: bool = False
    technician_notes: str = ""
    created_at: Optional[DateTime] = None
    updated_at: Optional[DateTime] = None
    deleted_at: Optional[DateTime] = None

    @property
    def display_number(self) -> str:
        """Booking number shown to customers, falling back to a short id."""
        return self.booking_number or self.id[:8]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Booking":
        """
        Build a Booking from a backend row.

        Raises:
            ValueError: If the row has no id or no parseable appointment date
        """
        if not record.get("id"):
            raise ValueError("Booking record is missing an id")

        appointment = parse_timestamp(record.get("appointment_date"))
        if appointment is None:
            raise ValueError(f"Booking {record['id']} has no appointment_date")

        return cls(
            id=str(record["id"]),
            appointment_date=appointment,
            first_name=record.get("first_name") or "",
            last_name=record.get("last_name") or "",
            phone=record.get("phone") or "",
            address=record.get("address") or "",
            city=record.get("city"),
            operating_system=record.get("operating_system") or "",
            comments=record.get("comments") or "",
            booking_number=record.get("booking_number"),
            completed=bool(record.get("completed", False)),
            technician_notes=record.get("technician_notes") or "",
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
            deleted_at=parse_timestamp(record.get("deleted_at")),
        )


@dataclass
class BookingRequest:
    """
    A customer's booking form submission.

    Invariant: required contact fields are non-blank and the operating
    system is one of OPERATING_SYSTEMS.
    """
    first_name: str
    last_name: str
    phone: str
    address: str
    operating_system: str
    appointment_date: DateTime
    city: Optional[str] = None
    comments: str = ""

    def __post_init__(self):
        missing = [
            name for name in ("first_name", "last_name", "phone", "address", "operating_system")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        self.operating_system = self.operating_system.strip().lower()
        if self.operating_system not in OPERATING_SYSTEMS:
            raise ValueError(
                f"Unknown operating system '{self.operating_system}'. "
                f"Expected one of: {', '.join(OPERATING_SYSTEMS)}"
            )

        if self.city is not None and not self.city.strip():
            self.city = None

        if self.appointment_date.tzinfo is None:
            raise ValueError("appointment_date must be timezone-aware")

    def to_record(self) -> Dict[str, Any]:
        """Build the insert payload for the backend."""
        return {
            "first_name": self.first_name.strip(),
            "last_name": self.last_name.strip(),
            "phone": self.phone.strip(),
            "address": self.address.strip(),
            "city": self.city.strip() if self.city else None,
            "operating_system": self.operating_system,
            "comments": self.comments or "",
            "appointment_date": self.appointment_date.in_timezone("UTC").to_iso8601_string(),
        }
