"""
Adapters layer - External integrations (hosted backend, SMS vendors).
"""

from .mock_store import InMemoryBookingStore, RecordingSmsSender
from .sms_sender import EdgeFunctionSmsSender, SmsResult, SmsSenderProtocol
from .supabase_auth import SupabaseAuthenticator
from .supabase_store import SupabaseBookingStore
from .twilio_sender import TwilioSmsSender

__all__ = [
    "InMemoryBookingStore",
    "RecordingSmsSender",
    "EdgeFunctionSmsSender",
    "SmsResult",
    "SmsSenderProtocol",
    "SupabaseAuthenticator",
    "SupabaseBookingStore",
    "TwilioSmsSender",
]
