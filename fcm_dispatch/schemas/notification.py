"""Platform-agnostic notification schema."""

from pydantic import Field

from fcm_dispatch.schemas.base import WireModel


class Notification(WireModel):
    """Basic notification template used across all platforms."""

    title: str | None = Field(default=None, description="Notification title")
    body: str | None = Field(default=None, description="Notification body text")
    image: str | None = Field(
        default=None,
        description="URL of an image downloaded on the device and shown in the notification",
    )
