"""Apple Push Notification Service schemas."""

from typing import Any

from pydantic import Field

from fcm_dispatch.schemas.base import WireModel


class ApnsFcmOptions(WireModel):
    """Options for features provided by the FCM SDK for iOS."""

    analytics_label: str | None = None
    image: str | None = None


class ApnsConfig(WireModel):
    """Apple Push Notification Service specific options."""

    headers: dict[str, str] | None = Field(
        default=None, description="HTTP request headers defined by APNs"
    )
    payload: dict[str, Any] | None = Field(
        default=None, description="APNs payload, including the aps dictionary and custom keys"
    )
    fcm_options: ApnsFcmOptions | None = None
