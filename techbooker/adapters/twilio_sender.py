"""
SMS delivery straight to the Twilio Messages API.

Mirrors what the hosted edge function does, for deployments that send from
the application process instead.
"""

import logging
import os
from typing import List, Optional

import requests

from ..domain.exceptions import NotificationError
from .sms_sender import SmsResult

logger = logging.getLogger(__name__)

TWILIO_API_ENDPOINT = "https://api.twilio.com/2010-04-01"


class TwilioSmsSender:
    """
    Sends SMS with account SID/auth token basic auth.

    Empty constructor arguments fall back to the TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER environment variables.
    """

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        phone_number: str = "",
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ):
        self.account_sid = account_sid or os.getenv("TWILIO_ACCOUNT_SID", "")
        self.auth_token = auth_token or os.getenv("TWILIO_AUTH_TOKEN", "")
        self.phone_number = phone_number or os.getenv("TWILIO_PHONE_NUMBER", "")
        self.timeout = timeout
        self.session = session or requests.Session()

    def missing_credentials(self) -> List[str]:
        missing: List[str] = []
        if not self.account_sid:
            missing.append("TWILIO_ACCOUNT_SID")
        if not self.auth_token:
            missing.append("TWILIO_AUTH_TOKEN")
        if not self.phone_number:
            missing.append("TWILIO_PHONE_NUMBER")
        return missing

    @property
    def sender_number(self) -> str:
        """The configured sender number with a leading ``+``."""
        number = self.phone_number.strip()
        if not number.startswith("+"):
            number = "+" + "".join(number.split())
        return number

    def send(self, phone: str, message: str) -> SmsResult:
        missing = self.missing_credentials()
        if missing:
            logger.error("Missing Twilio credentials: %s", ", ".join(missing))
            return SmsResult.failed(
                f"The following environment variables are not set: {', '.join(missing)}"
            )

        if not phone or not message:
            return SmsResult.failed("Request is missing required fields")

        try:
            return SmsResult.ok(message_id=self._post_message(phone, message))
        except NotificationError as exc:
            logger.warning("Twilio send failed: %s", exc)
            return SmsResult.failed(str(exc))

    def _post_message(self, phone: str, message: str) -> Optional[str]:
        url = f"{TWILIO_API_ENDPOINT}/Accounts/{self.account_sid}/Messages.json"

        try:
            response = self.session.post(
                url,
                data={"From": self.sender_number, "To": phone, "Body": message},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Could not reach Twilio: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.ok:
            error_message = data.get("message") or "Error sending SMS via Twilio"
            if "not a Twilio phone number" in error_message:
                raise NotificationError(
                    f'The phone number "{self.sender_number}" is not a valid Twilio number. '
                    "Please check your Twilio account and update TWILIO_PHONE_NUMBER."
                )
            raise NotificationError(error_message)

        return data.get("sid")
