"""
Booking Store backed by the hosted Postgres REST API (PostgREST).
"""

import logging
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import BookingStoreError
from ..domain.models import Booking, parse_timestamp

logger = logging.getLogger(__name__)


class SupabaseBookingStore:
    """
    Client for the ``bookings`` table.

    Reads only ever return rows without a soft-delete marker. Writes are
    sent with ``Prefer: return=representation`` so the backend echoes the
    stored row, including trigger-generated columns like the booking number.
    """

    TABLE = "bookings"

    def __init__(
        self,
        url: str,
        anon_key: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the store client.

        Args:
            url: Project base URL, e.g. https://xyz.supabase.co
            anon_key: Public anon key, sent as ``apikey`` on every request
            access_token: Staff session token; the anon key is used when absent
            timeout: Per-request timeout in seconds
            session: Optional requests session (injected in tests)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1/{self.TABLE}"
        self.anon_key = anon_key
        self.access_token = access_token
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
            "Content-Type": "application/json",
        }

    def list_booked_instants(self) -> List[DateTime]:
        """Return the appointment instants of all non-deleted bookings."""
        rows = self._request(
            "GET",
            params={"select": "appointment_date", "deleted_at": "is.null"},
        )

        instants: List[DateTime] = []
        for row in rows:
            try:
                instant = parse_timestamp(row.get("appointment_date"))
            except ValueError as exc:
                logger.warning("Skipping booking with unparseable appointment_date: %s", exc)
                continue
            if instant is not None:
                instants.append(instant)
        return instants

    def list_bookings(self) -> List[Booking]:
        """Return all non-deleted bookings."""
        rows = self._request("GET", params={"select": "*", "deleted_at": "is.null"})
        return [self._to_booking(row) for row in rows]

    def insert_booking(self, record: Dict[str, Any]) -> Booking:
        """Insert a booking row and return it as stored."""
        rows = self._request(
            "POST",
            json=[record],
            extra_headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise BookingStoreError("Backend did not return the created booking")
        return self._to_booking(rows[0])

    def update_booking(self, booking_id: str, changes: Dict[str, Any]) -> Booking:
        """Update columns of one booking and return the stored row."""
        rows = self._request(
            "PATCH",
            params={"id": f"eq.{booking_id}"},
            json=changes,
            extra_headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise BookingStoreError(f"Booking {booking_id} not found")
        return self._to_booking(rows[0])

    def soft_delete_booking(self, booking_id: str) -> None:
        """Mark a booking as deleted without removing the row."""
        self.update_booking(
            booking_id,
            {"deleted_at": pendulum.now("UTC").to_iso8601_string()},
        )

    def _request(
        self,
        method: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        headers = dict(self.headers)
        if extra_headers:
            headers.update(extra_headers)

        try:
            response = self.session.request(
                method,
                self.base_url,
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Booking store %s request failed: %s", method, e)
            raise BookingStoreError(f"Could not reach the booking store: {e}") from e

        if not response.ok:
            message = self._error_message(response)
            logger.error("Booking store %s returned %s: %s", method, response.status_code, message)
            raise BookingStoreError(message)

        if not response.content:
            return []

        try:
            data = response.json()
        except ValueError as e:
            raise BookingStoreError(f"Booking store returned invalid JSON: {e}") from e

        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise BookingStoreError("Booking store returned an unexpected payload")
        return data

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            for key in ("message", "msg", "error_description", "error"):
                if body.get(key):
                    return str(body[key])
        return f"Booking store request failed with HTTP {response.status_code}"

    @staticmethod
    def _to_booking(row: Dict[str, Any]) -> Booking:
        try:
            return Booking.from_record(row)
        except ValueError as e:
            raise BookingStoreError(f"Malformed booking row: {e}") from e
