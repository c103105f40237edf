"""Send response schemas."""

import re
from datetime import UTC, datetime, timedelta
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fcm_dispatch.core.exceptions import RetryAfterParseError

_SECONDS_PATTERN = re.compile(r"^\d+$")


class RetryAfterDelay(BaseModel):
    """Amount of time to wait until retrying is allowed."""

    model_config = ConfigDict(frozen=True)

    delay: timedelta

    def wait_time(self, now: datetime | None = None) -> timedelta:
        """Get the time to wait."""
        return self.delay


class RetryAfterDate(BaseModel):
    """Point in time until which retrying is not allowed."""

    model_config = ConfigDict(frozen=True)

    at: datetime

    def wait_time(self, now: datetime | None = None) -> timedelta:
        """
        Get the time left until the retry date.

        Args:
            now: Reference time, defaults to the current time

        Returns:
            Remaining time, zero if the date is not in the future
        """
        now = now or datetime.now(UTC)
        return max(self.at - now, timedelta(0))


RetryAfter = RetryAfterDelay | RetryAfterDate


def parse_retry_after(value: str) -> RetryAfter:
    """
    Parse a Retry-After header value.

    Integer seconds are tried first, then an RFC 2822 date.

    Args:
        value: Raw header value

    Returns:
        Parsed delay or date

    Raises:
        RetryAfterParseError: If the value is in neither form
    """
    stripped = value.strip()
    if _SECONDS_PATTERN.match(stripped):
        return RetryAfterDelay(delay=timedelta(seconds=int(stripped)))

    try:
        parsed = parsedate_to_datetime(stripped)
    except (TypeError, ValueError, IndexError) as e:
        raise RetryAfterParseError(value) from e
    if parsed is None:
        raise RetryAfterParseError(value)

    # "-0000" offsets come back naive; HTTP dates are always UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return RetryAfterDate(at=parsed)


class ErrorClassification(str, Enum):
    """Outcome of a send, derived from the HTTP status and response body."""

    OK = "OK"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    THIRD_PARTY_AUTH_ERROR = "THIRD_PARTY_AUTH_ERROR"
    SENDER_ID_MISMATCH = "SENDER_ID_MISMATCH"
    UNREGISTERED = "UNREGISTERED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    UNSPECIFIED = "UNSPECIFIED"
    UNKNOWN = "UNKNOWN"


class ActionKind(str, Enum):
    """Remediation recommended for a failed send."""

    REMOVE_REGISTRATION = "REMOVE_REGISTRATION"
    FIX_MESSAGE = "FIX_MESSAGE"
    CHECK_SENDER_ID = "CHECK_SENDER_ID"
    REDUCE_RATE_AND_RETRY = "REDUCE_RATE_AND_RETRY"
    RETRY = "RETRY"
    CHECK_THIRD_PARTY_CREDENTIALS = "CHECK_THIRD_PARTY_CREDENTIALS"


class RetryWait(BaseModel):
    """
    How long to wait before retrying.

    Either the floor for the caller's exponential backoff, or the
    Retry-After value the server sent.
    """

    model_config = ConfigDict(frozen=True)

    initial_backoff: timedelta | None = None
    retry_after: RetryAfter | None = None

    def wait_time(self, now: datetime | None = None) -> timedelta:
        """Get the time to wait, preferring the server's Retry-After."""
        if self.retry_after is not None:
            return self.retry_after.wait_time(now)
        return self.initial_backoff or timedelta(0)


class RecommendedAction(BaseModel):
    """Guidance for the caller; nothing is retried automatically."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    wait: RetryWait | None = None


class FcmResponse(BaseModel):
    """Raw outcome of a single send attempt."""

    model_config = ConfigDict(frozen=True)

    http_status_code: int
    json_body: dict[str, Any] = Field(default_factory=dict)
    retry_after: RetryAfter | None = None

    @property
    def message_name(self) -> str | None:
        """Resource name of the sent message, e.g. "projects/p/messages/1"."""
        name = self.json_body.get("name")
        return name if isinstance(name, str) else None

    @property
    def error_status(self) -> str | None:
        """Canonical error status from the body, e.g. "NOT_FOUND"."""
        status = _error_object(self.json_body).get("status")
        return status if isinstance(status, str) else None

    @property
    def error_message(self) -> str | None:
        """Human readable error message from the body."""
        message = _error_object(self.json_body).get("message")
        return message if isinstance(message, str) else None

    @property
    def fcm_error_code(self) -> str | None:
        """FCM specific error code from the error details, e.g. "UNREGISTERED"."""
        details = _error_object(self.json_body).get("details")
        if not isinstance(details, list):
            return None
        for detail in details:
            if isinstance(detail, dict) and isinstance(detail.get("errorCode"), str):
                return detail["errorCode"]
        return None


def _error_object(body: dict[str, Any]) -> dict[str, Any]:
    error = body.get("error")
    return error if isinstance(error, dict) else {}
