"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .admin_service import AdminService, sort_bookings
from .booking_service import BookingOutcome, BookingService, BookingStoreProtocol

__all__ = ["AdminService", "sort_bookings", "BookingOutcome", "BookingService", "BookingStoreProtocol"]
