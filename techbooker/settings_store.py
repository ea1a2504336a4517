"""
Local key-value persistence for booking settings.

Settings live in a small JSON document under a single well-known key.
Consumers that need to react to changes subscribe to the store instead of
re-reading the file on a timer.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List

from .config import BookingSettings, to_setting_aliases

logger = logging.getLogger(__name__)

SETTINGS_KEY = "bookingSettings"

SettingsListener = Callable[[BookingSettings], None]


class JsonSettingsStore:
    """
    Persists ``BookingSettings`` in a JSON file.

    The file may hold other keys; only ``SETTINGS_KEY`` is read and written.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._listeners: List[SettingsListener] = []

    def load(self) -> BookingSettings:
        """
        Load settings, repairing missing or invalid fields from defaults.

        A missing or unreadable file yields the default settings.
        """
        document = self._read_document()
        return BookingSettings.from_stored(document.get(SETTINGS_KEY))

    def save(self, settings: BookingSettings) -> None:
        """Persist ``settings`` and notify subscribers."""
        document = self._read_document()
        document[SETTINGS_KEY] = settings.to_stored()
        self._write_document(document)
        logger.debug("Saved booking settings to %s", self.path)
        self._notify(settings)

    def update(self, **changes: Any) -> BookingSettings:
        """
        Apply ``changes`` (snake_case or camelCase names) and save.

        Raises:
            pydantic.ValidationError: If the result is not valid settings
        """
        current = self.load().to_stored()
        current.update(to_setting_aliases(dict(changes)))
        updated = BookingSettings.model_validate(current)
        self.save(updated)
        return updated

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """
        Register ``listener`` for settings changes.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, settings: BookingSettings) -> None:
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception:
                logger.exception("Settings listener %r failed", listener)

    def _read_document(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as file_handle:
                document = json.load(file_handle)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read settings file %s: %s", self.path, exc)
            return {}

        if not isinstance(document, dict):
            logger.warning("Settings file %s does not hold a JSON object; ignoring it", self.path)
            return {}
        return document

    def _write_document(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            delete=False,
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        ) as file_handle:
            temp_name = file_handle.name
            try:
                json.dump(document, file_handle, indent=2, ensure_ascii=False)
            except Exception:
                file_handle.close()
                os.unlink(temp_name)
                raise

        try:
            os.replace(temp_name, self.path)
        except OSError:
            os.unlink(temp_name)
            raise
