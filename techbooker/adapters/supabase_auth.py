"""
Staff authentication against the hosted auth API (email + password).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
import pendulum
import requests
from keyring.errors import KeyringError

from ..domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "techbooker"

INVALID_CREDENTIALS = "Invalid login credentials"


class SupabaseAuthenticator:
    """
    Signs staff in with the password grant and caches the session.

    The session is kept in the system keyring; if no keyring backend works,
    it falls back to an owner-only file and records a warning.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        session_file: Path,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.auth_url = f"{url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.session_file = Path(session_file)
        self.timeout = timeout
        self.http = session or requests.Session()
        self._key_identifier = url
        self._keyring_supported = True
        self._insecure_storage_warning: Optional[str] = None

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        """Provide a warning message when the session falls back to plaintext storage."""
        return self._insecure_storage_warning

    def sign_in(self, email: str, password: str) -> str:
        """
        Sign in and cache the session.

        Returns:
            Access token string

        Raises:
            AuthenticationError: If the credentials are rejected or the request fails
        """
        try:
            response = self.http.post(
                f"{self.auth_url}/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers={"apikey": self.anon_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"Could not reach the auth service: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok or "access_token" not in data:
            raise AuthenticationError(self._describe_failure(data))

        expires_in = int(data.get("expires_in") or 3600)
        session_data = {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
            "expires_at": pendulum.now("UTC").add(seconds=expires_in).to_iso8601_string(),
            "email": (data.get("user") or {}).get("email", email),
        }
        self._save_session(session_data)
        return data["access_token"]

    def get_access_token(self) -> Optional[str]:
        """Return the cached access token if it has not expired."""
        session_data = self._load_session()
        if not session_data:
            return None

        try:
            expires_at = pendulum.parse(session_data["expires_at"])
        except (KeyError, ValueError):
            return None

        if expires_at <= pendulum.now("UTC"):
            logger.info("Cached staff session expired")
            return None
        return session_data.get("access_token")

    def signed_in_email(self) -> Optional[str]:
        session_data = self._load_session()
        return session_data.get("email") if session_data else None

    def sign_out(self) -> None:
        """Revoke the session remotely (best effort) and clear the local cache."""
        token = self.get_access_token()
        if token:
            try:
                response = self.http.post(
                    f"{self.auth_url}/logout",
                    headers={"apikey": self.anon_key, "Authorization": f"Bearer {token}"},
                    timeout=self.timeout,
                )
                if not response.ok:
                    logger.warning("Remote sign-out returned HTTP %s", response.status_code)
            except requests.exceptions.RequestException as exc:
                logger.warning("Remote sign-out failed: %s", exc)
        self.clear_cache()

    def clear_cache(self) -> None:
        """Clear the cached session (force sign-in next time)."""
        if self.session_file.exists():
            self.session_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:
            logger.debug("Nothing removed from keyring: %s", exc)

    @staticmethod
    def _describe_failure(data: Dict[str, Any]) -> str:
        error = data.get("error")
        description = data.get("error_description") or data.get("msg") or data.get("message")
        if error == "invalid_grant" or description == INVALID_CREDENTIALS:
            return INVALID_CREDENTIALS
        return f"Sign-in failed: {description or error or 'Unknown error'}"

    def _load_session(self) -> Optional[Dict[str, Any]]:
        serialized = self._load_session_from_keyring()
        if serialized is None:
            serialized = self._load_session_from_file()
        if not serialized:
            return None

        try:
            data = json.loads(serialized)
        except ValueError as exc:
            logger.warning("Could not decode cached session: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    def _load_session_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_session_from_file(self) -> Optional[str]:
        if self.session_file.exists():
            try:
                with open(self.session_file, "r", encoding="utf-8") as file_handle:
                    return file_handle.read()
            except OSError as exc:
                logger.warning("Could not load session file %s: %s", self.session_file, exc)
        return None

    def _save_session(self, session_data: Dict[str, Any]) -> None:
        serialized = json.dumps(session_data)

        if self._keyring_supported and self._save_session_to_keyring(serialized):
            return

        self._save_session_to_file(serialized)

    def _save_session_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
            return True
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_session_to_file(self, serialized: str) -> None:
        try:
            self.session_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.session_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
            self.session_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save session to %s: %s", self.session_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache.",
                reason,
            )
        self._keyring_supported = False
        if not self._insecure_storage_warning:
            self._insecure_storage_warning = (
                f"Secure credential storage unavailable ({reason}). "
                f"Falling back to plaintext cache at {self.session_file}."
            )
