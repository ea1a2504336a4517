"""
Domain-specific exception hierarchy for the booking application.
"""


class TechbookerError(Exception):
    """Base class for all application-level errors."""


class BookingStoreError(TechbookerError):
    """Raised when bookings cannot be read from or written to the backend."""


class AuthenticationError(TechbookerError):
    """Raised when staff sign-in or session handling fails."""


class NotificationError(TechbookerError):
    """Raised inside SMS senders; never escapes a sender's ``send``."""


class SlotUnavailableError(TechbookerError):
    """Raised when the requested appointment slot is no longer offered."""


class InvalidFieldValue(TechbookerError, ValueError):
    """Raised when user input for an editable field cannot be parsed."""
