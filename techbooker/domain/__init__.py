"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import Booking, BookingRequest, normalize_phone
from .slot_calculator import DisabledReason, SchedulingRules, SlotCalculator, generate_time_slots

__all__ = [
    "Booking",
    "BookingRequest",
    "normalize_phone",
    "DisabledReason",
    "SchedulingRules",
    "SlotCalculator",
    "generate_time_slots",
]
