"""Android-specific message schemas."""

import re
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from fcm_dispatch.schemas.base import WireModel

_DURATION_PATTERN = re.compile(r"^\d+(\.\d{1,9})?s$")


class AndroidMessagePriority(str, Enum):
    """Delivery priority of an Android message."""

    NORMAL = "NORMAL"
    HIGH = "HIGH"


class NotificationPriority(str, Enum):
    """Relative priority of an Android notification."""

    PRIORITY_UNSPECIFIED = "PRIORITY_UNSPECIFIED"
    PRIORITY_MIN = "PRIORITY_MIN"
    PRIORITY_LOW = "PRIORITY_LOW"
    PRIORITY_DEFAULT = "PRIORITY_DEFAULT"
    PRIORITY_HIGH = "PRIORITY_HIGH"
    PRIORITY_MAX = "PRIORITY_MAX"


class Visibility(str, Enum):
    """Lock screen visibility of an Android notification."""

    VISIBILITY_UNSPECIFIED = "VISIBILITY_UNSPECIFIED"
    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"
    SECRET = "SECRET"


def to_duration(value: Any) -> Any:
    """
    Convert seconds or a timedelta to a protobuf duration string.

    Args:
        value: timedelta, number of seconds, or an already formatted string like "3.5s"

    Returns:
        Duration string, or the value unchanged when it is None

    Raises:
        ValueError: If the value is negative or not a valid duration
    """
    if value is None:
        return None
    if isinstance(value, timedelta):
        value = value.total_seconds()
    if isinstance(value, bool):
        raise ValueError("Duration must be a number of seconds, not a boolean")
    if isinstance(value, int | float):
        if value < 0:
            raise ValueError("Duration must not be negative")
        if float(value).is_integer():
            return f"{int(value)}s"
        return f"{value:.9f}".rstrip("0").rstrip(".") + "s"
    if isinstance(value, str) and _DURATION_PATTERN.match(value):
        return value
    raise ValueError(f"Invalid duration: {value!r}")


class Color(WireModel):
    """RGBA color, each component in the interval [0, 1]."""

    red: float = Field(..., ge=0, le=1)
    green: float = Field(..., ge=0, le=1)
    blue: float = Field(..., ge=0, le=1)
    alpha: float | None = Field(default=None, ge=0, le=1)


class LightSettings(WireModel):
    """LED blinking rate and color."""

    color: Color
    light_on_duration: str
    light_off_duration: str

    @field_validator("light_on_duration", "light_off_duration", mode="before")
    @classmethod
    def validate_durations(cls, v: Any) -> Any:
        """Accept timedeltas and seconds for the blink durations."""
        return to_duration(v)


class AndroidNotification(WireModel):
    """Notification to send to Android devices."""

    title: str | None = None
    body: str | None = None
    icon: str | None = None
    # "#rrggbb"
    color: str | None = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    sound: str | None = None
    tag: str | None = None
    click_action: str | None = None
    body_loc_key: str | None = None
    body_loc_args: list[str] | None = None
    title_loc_key: str | None = None
    title_loc_args: list[str] | None = None
    channel_id: str | None = None
    ticker: str | None = None
    sticky: bool | None = None
    event_time: str | None = None
    local_only: bool | None = None
    notification_priority: NotificationPriority | None = None
    default_sound: bool | None = None
    default_vibrate_timings: bool | None = None
    default_light_settings: bool | None = None
    vibrate_timings: list[str] | None = None
    visibility: Visibility | None = None
    notification_count: int | None = Field(default=None, ge=0)
    light_settings: LightSettings | None = None
    image: str | None = None

    @field_validator("event_time", mode="before")
    @classmethod
    def validate_event_time(cls, v: Any) -> Any:
        """Render datetimes as RFC 3339 UTC timestamps."""
        if isinstance(v, datetime):
            if v.tzinfo is None:
                v = v.replace(tzinfo=UTC)
            return v.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        return v

    @field_validator("vibrate_timings", mode="before")
    @classmethod
    def validate_vibrate_timings(cls, v: Any) -> Any:
        """Convert each vibration step to a duration string."""
        if v is None:
            return None
        return [to_duration(step) for step in v]


class AndroidFcmOptions(WireModel):
    """Options for features provided by the FCM SDK for Android."""

    analytics_label: str | None = None


class AndroidConfig(WireModel):
    """Android specific options for messages sent through FCM."""

    collapse_key: str | None = None
    priority: AndroidMessagePriority | None = None
    ttl: str | None = Field(
        default=None,
        description="How long the message is kept in FCM storage while the device is offline",
    )
    restricted_package_name: str | None = None
    data: dict[str, Any] | None = None
    notification: AndroidNotification | None = None
    fcm_options: AndroidFcmOptions | None = None
    direct_boot_ok: bool | None = None

    @field_validator("ttl", mode="before")
    @classmethod
    def validate_ttl(cls, v: Any) -> Any:
        """Accept a timedelta or number of seconds for the time to live."""
        return to_duration(v)
