"""Message schema and wire encoding."""

import json
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import Field, ValidationInfo, field_validator

from fcm_dispatch.schemas.android import AndroidConfig
from fcm_dispatch.schemas.apns import ApnsConfig
from fcm_dispatch.schemas.base import WireModel
from fcm_dispatch.schemas.notification import Notification
from fcm_dispatch.schemas.webpush import WebpushConfig

TOPIC_PREFIX = "/topics/"
_TOPIC_PATTERN = re.compile(r"^[a-zA-Z0-9\-_.~%]+$")


class TargetKind(str, Enum):
    """Recipient selector variants."""

    TOKEN = "token"
    TOPIC = "topic"
    CONDITION = "condition"


class Target(WireModel):
    """Recipient of a message: a device token, a topic, or a topic condition."""

    kind: TargetKind
    value: str = Field(..., min_length=1)

    @field_validator("value")
    @classmethod
    def validate_topic(cls, v: str, info: ValidationInfo) -> str:
        """Normalize and check topic names."""
        if info.data.get("kind") is TargetKind.TOPIC:
            v = v.removeprefix(TOPIC_PREFIX)
            if not _TOPIC_PATTERN.match(v):
                raise ValueError(f"Malformed topic name: {v!r}")
        return v

    @classmethod
    def token(cls, token: str) -> "Target":
        """Target a single device registration token."""
        return cls(kind=TargetKind.TOKEN, value=token)

    @classmethod
    def topic(cls, topic: str) -> "Target":
        """Target every device subscribed to a topic."""
        return cls(kind=TargetKind.TOPIC, value=topic)

    @classmethod
    def condition(cls, condition: str) -> "Target":
        """Target devices matching a boolean expression over topics."""
        return cls(kind=TargetKind.CONDITION, value=condition)

    def to_wire(self) -> dict[str, Any]:
        """Encode as a single key named after the variant."""
        return {self.kind.value: self.value}

    @classmethod
    def from_wire(cls, message: Mapping[str, Any]) -> "Target":
        """
        Read the target back out of an encoded message.

        Args:
            message: Encoded message object (the value under the "message" key)

        Returns:
            Target

        Raises:
            ValueError: If the object holds no target key or more than one
        """
        found = [kind for kind in TargetKind if kind.value in message]
        if len(found) != 1:
            raise ValueError(
                f"Expected exactly one target key, found {[kind.value for kind in found]}"
            )
        kind = found[0]
        return cls(kind=kind, value=message[kind.value])


class FcmOptions(WireModel):
    """FCM SDK feature options used across all platforms."""

    analytics_label: str


class Message(WireModel):
    """A push message addressed to a single target."""

    target: Target
    data: dict[str, Any] | None = Field(default=None, description="Arbitrary key/value payload")
    notification: Notification | None = None
    android: AndroidConfig | None = None
    webpush: WebpushConfig | None = None
    apns: ApnsConfig | None = None
    fcm_options: FcmOptions | None = None

    def to_wire(self) -> dict[str, Any]:
        """Encode the message body, with the target flattened into it."""
        encoded = self.model_dump(mode="json", exclude_none=True, exclude={"target"})
        encoded.update(self.target.to_wire())
        return encoded


def build_envelope(message: Message, validate_only: bool = False) -> dict[str, Any]:
    """
    Wrap an encoded message in the request envelope.

    Args:
        message: Message to encode
        validate_only: Ask the endpoint to validate without delivering

    Returns:
        Request body as a JSON-compatible dict
    """
    envelope: dict[str, Any] = {"message": message.to_wire()}
    if validate_only:
        envelope["validate_only"] = True
    return envelope


def encode_message(message: Message, validate_only: bool = False) -> bytes:
    """Encode a message into the request body bytes."""
    return json.dumps(build_envelope(message, validate_only), separators=(",", ":")).encode()
