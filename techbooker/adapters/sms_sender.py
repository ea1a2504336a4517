"""
SMS delivery through the hosted ``send-sms`` edge function.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

DEPLOYMENT_HINT = "Failed to invoke SMS function. Make sure the Edge Function is deployed."


@dataclass(frozen=True)
class SmsResult:
    """Outcome of one send attempt. ``error`` is human-readable."""
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def ok(cls, message_id: Optional[str] = None) -> "SmsResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> "SmsResult":
        return cls(success=False, error=error)


class SmsSenderProtocol(Protocol):
    """Anything that can deliver a text message. Must never raise."""

    def send(self, phone: str, message: str) -> SmsResult:
        """Send ``message`` to the already-normalized ``phone``."""


class EdgeFunctionSmsSender:
    """
    Invokes the serverless function that talks to the SMS vendor.

    Response format on success:
    {"success": true, "messageId": "SM...", "status": "queued"}

    On failure:
    {"error": "...", "details": "...", "hint": "..."}
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        function_name: str = "send-sms",
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = f"{url.rstrip('/')}/functions/v1/{function_name}"
        self.anon_key = anon_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, phone: str, message: str) -> SmsResult:
        try:
            response = self.session.post(
                self.endpoint,
                json={"phone": phone, "message": message},
                headers={
                    "apikey": self.anon_key,
                    "Authorization": f"Bearer {self.anon_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning("SMS function request failed: %s", e)
            return SmsResult.failed(str(e) or DEPLOYMENT_HINT)

        data = self._json_body(response)

        if not response.ok:
            error = data.get("details") or data.get("error") or DEPLOYMENT_HINT
            logger.warning("SMS function returned HTTP %s: %s", response.status_code, error)
            return SmsResult.failed(str(error))

        if data.get("error"):
            error = data.get("details") or data.get("error")
            logger.warning("SMS API error: %s", data)
            return SmsResult.failed(str(error))

        if data.get("success") or data.get("messageId"):
            return SmsResult.ok(message_id=data.get("messageId"))

        logger.warning("Unexpected response format from SMS function: %s", data)
        return SmsResult.failed("Unexpected response from SMS service")

    @staticmethod
    def _json_body(response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
