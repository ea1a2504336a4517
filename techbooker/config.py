"""
Configuration management using Pydantic.

Two layers live here: ``AppConfig`` is the deployment configuration loaded
from ``config.yaml``; ``BookingSettings`` is the business-tunable settings
blob staff edit at runtime (persisted by ``settings_store``).
"""

import logging
from datetime import date, time
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import pendulum
import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)

from .domain.slot_calculator import SchedulingRules

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Jerusalem"

DEFAULT_SMS_TEMPLATE = (
    "Hello, {first_name}! Your booking #{booking_number} has been created. "
    "Appointment: {appointment}. We will contact you if anything changes."
)


class BookingSettings(BaseModel):
    """
    Business settings that drive the booking form.

    Stored under camelCase keys; Python code uses the snake_case names.
    """
    model_config = ConfigDict(populate_by_name=True)

    first_day_of_week: int = Field(default=1, alias="firstDayOfWeek")  # 0=Sunday, 1=Monday
    disabled_weekdays: List[int] = Field(default_factory=list, alias="disabledWeekdays")  # 0=Sunday
    disabled_dates: List[date] = Field(default_factory=list, alias="disabledDates")
    min_interval_hours: int = Field(default=3, alias="minIntervalHours")
    work_start_time: time = Field(default=time(9, 0), alias="workStartTime")
    work_end_time: time = Field(default=time(20, 0), alias="workEndTime")
    max_bookings_per_day: Optional[int] = Field(default=None, alias="maxBookingsPerDay")
    send_sms: bool = Field(default=True, alias="sendSMS")

    @field_validator("first_day_of_week")
    @classmethod
    def validate_first_day(cls, value: int) -> int:
        if value not in (0, 1):
            raise ValueError(f"firstDayOfWeek must be 0 (Sunday) or 1 (Monday), got {value}")
        return value

    @field_validator("disabled_weekdays")
    @classmethod
    def validate_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"disabledWeekdays must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @field_validator("disabled_dates")
    @classmethod
    def validate_dates(cls, value: List[date]) -> List[date]:
        return list(dict.fromkeys(value))

    @field_validator("min_interval_hours")
    @classmethod
    def validate_interval(cls, value: int) -> int:
        if not 1 <= value <= 24:
            raise ValueError(f"minIntervalHours must be between 1 and 24, got {value}")
        return value

    @field_validator("work_start_time", "work_end_time")
    @classmethod
    def truncate_to_minutes(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator("max_bookings_per_day")
    @classmethod
    def validate_max_bookings(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError(f"maxBookingsPerDay must be at least 1, got {value}")
        return value

    @model_validator(mode="after")
    def validate_work_hours_order(self) -> "BookingSettings":
        """Ensure the working day opens before it closes."""
        if self.work_start_time >= self.work_end_time:
            raise ValueError("workStartTime must be earlier than workEndTime")
        return self

    @field_serializer("work_start_time", "work_end_time")
    def serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_stored(cls, raw: Optional[Mapping[str, Any]]) -> "BookingSettings":
        """
        Build settings from a stored blob, repairing it field by field.

        Missing, null and invalid fields fall back to their defaults; the rest
        of the blob is kept. Never raises for bad data.
        """
        if raw is None:
            raw = {}
        elif not isinstance(raw, Mapping):
            logger.warning("Ignoring stored settings that are not an object: %r", raw)
            raw = {}

        data = to_setting_aliases(dict(raw))
        data = {key: value for key, value in data.items() if value is not None}

        # Each pass drops at least one offending field, so this terminates.
        for _ in range(len(cls.model_fields) + 1):
            try:
                return cls.model_validate(data)
            except ValidationError as exc:
                bad_keys = {
                    error["loc"][0] for error in exc.errors()
                    if error.get("loc") and error["loc"][0] in data
                }
                if not bad_keys:
                    # Model-level failure: work hours out of order
                    bad_keys = {"workStartTime", "workEndTime"} & set(data)
                if not bad_keys:
                    break
                logger.warning(
                    "Resetting invalid stored settings to defaults: %s",
                    ", ".join(sorted(bad_keys)),
                )
                for key in bad_keys:
                    data.pop(key, None)

        return cls()

    def to_stored(self) -> Dict[str, Any]:
        """Serialize to the camelCase blob kept by the settings store."""
        return self.model_dump(mode="json", by_alias=True)

    def to_rules(self, timezone: str = DEFAULT_TIMEZONE) -> SchedulingRules:
        """Project the settings onto the availability filter's rules."""
        return SchedulingRules(
            work_start=self.work_start_time,
            work_end=self.work_end_time,
            min_interval_hours=self.min_interval_hours,
            disabled_weekdays=frozenset(self.disabled_weekdays),
            disabled_dates=frozenset(self.disabled_dates),
            max_bookings_per_day=self.max_bookings_per_day,
            timezone=timezone,
        )


def to_setting_aliases(data: Dict[str, Any]) -> Dict[str, Any]:
    for name, field_info in BookingSettings.model_fields.items():
        alias = field_info.alias or name
        if name in data and alias not in data:
            data[alias] = data.pop(name)
    return data


class SupabaseConfig(BaseModel):
    """Hosted backend connection."""
    url: str
    anon_key: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"supabase.url must start with http:// or https://, got {value}")
        return value.rstrip("/")


class TwilioConfig(BaseModel):
    """Credentials for sending SMS straight to Twilio; empty values fall back to env vars."""
    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""


class SmsConfig(BaseModel):
    """SMS notification settings."""
    provider: Literal["edge_function", "twilio"] = "edge_function"
    function_name: str = "send-sms"
    template: str = DEFAULT_SMS_TEMPLATE
    timeout_seconds: float = 20.0
    twilio: TwilioConfig = Field(default_factory=TwilioConfig)

    @field_validator("template")
    @classmethod
    def validate_template(cls, value: str) -> str:
        """Ensure the template only uses the supported placeholders."""
        try:
            value.format(first_name="", booking_number="", appointment="")
        except (KeyError, IndexError, ValueError) as exc:
            raise ValueError(f"Invalid SMS template placeholder: {exc}") from exc
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    supabase: SupabaseConfig
    timezone: str = DEFAULT_TIMEZONE
    settings_file: Path = Field(default_factory=lambda: Path.home() / ".techbooker" / "settings.json")
    session_file: Path = Field(default_factory=lambda: Path.home() / ".techbooker" / "session.json")
    request_timeout: float = 30.0
    sms: SmsConfig = Field(default_factory=SmsConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("settings_file", "session_file")
    @classmethod
    def expand_path(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def for_mock(cls, settings_file: Optional[Path] = None) -> "AppConfig":
        """Configuration used by ``--mock`` runs when no config file exists."""
        values: Dict[str, Any] = {
            "supabase": {"url": "http://localhost:54321", "anon_key": "mock-anon-key"},
        }
        if settings_file is not None:
            values["settings_file"] = settings_file
        return cls(**values)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
