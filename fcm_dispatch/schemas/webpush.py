"""Webpush protocol schemas."""

from typing import Any

from pydantic import Field

from fcm_dispatch.schemas.base import WireModel


class WebpushFcmOptions(WireModel):
    """Options for features provided by the FCM SDK for Web."""

    link: str | None = Field(
        default=None, description="Link opened when the notification is clicked"
    )
    analytics_label: str | None = None


class WebpushConfig(WireModel):
    """Webpush protocol options."""

    headers: dict[str, str] | None = None
    data: dict[str, Any] | None = None
    notification: dict[str, Any] | None = Field(
        default=None, description="Web Notification options as a JSON object"
    )
    fcm_options: WebpushFcmOptions | None = None
