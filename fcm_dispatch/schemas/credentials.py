"""Service account credential schemas."""

import json
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from jose import jwk
from jose.exceptions import JOSEError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fcm_dispatch.core.exceptions import CredentialInvalidError

DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"

CredentialSource = str | bytes | Path | Mapping[str, Any]


class ServiceAccountCredential(BaseModel):
    """Service account key as downloaded from the Google Cloud console."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str | None = None
    project_id: str = Field(..., min_length=1)
    private_key_id: str | None = None
    private_key: str = Field(..., min_length=1)
    client_email: str = Field(..., min_length=1)
    client_id: str | None = None
    token_uri: str = DEFAULT_TOKEN_URI

    def __repr__(self) -> str:
        """Keep the private key out of reprs and logs."""
        return (
            f"ServiceAccountCredential(project_id={self.project_id!r}, "
            f"client_email={self.client_email!r})"
        )

    __str__ = __repr__

    @classmethod
    def load(cls, source: CredentialSource) -> "ServiceAccountCredential":
        """
        Load and validate a service account key.

        Args:
            source: Raw JSON text or bytes, an already parsed mapping,
                or a path to the key file

        Returns:
            Validated credential

        Raises:
            CredentialInvalidError: If the key cannot be read, is not valid JSON,
                lacks required fields, or holds an unusable private key
        """
        if isinstance(source, Mapping):
            info: Any = dict(source)
        elif _looks_like_json(source):
            info = _parse_json(_read_source(source))
        else:
            info = _parse_json(_read_file(source))

        if not isinstance(info, dict):
            raise CredentialInvalidError("Service account key JSON must be an object")
        if not info.get("project_id"):
            raise CredentialInvalidError("Service account key JSON does not contain project ID")

        try:
            credential = cls.model_validate(info)
        except ValidationError as e:
            missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise CredentialInvalidError(
                f"Service account key JSON is missing or has invalid fields: {missing}"
            ) from e

        try:
            jwk.construct(credential.private_key, algorithm="RS256")
        except (JOSEError, ValueError, TypeError) as e:
            raise CredentialInvalidError(f"Service account private key is unusable: {e}") from e

        return credential


class AccessToken(BaseModel):
    """Bearer token issued for a scope."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        """Keep the token value out of reprs and logs."""
        return f"AccessToken(expires_at={self.expires_at.isoformat()})"

    __str__ = __repr__

    @classmethod
    def from_expires_in(cls, access_token: str, expires_in: float) -> "AccessToken":
        """Build a token that expires the given number of seconds from now."""
        return cls(
            access_token=access_token,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        )

    def is_valid(self, margin: timedelta = timedelta(0), now: datetime | None = None) -> bool:
        """
        Check whether the token is still usable.

        Args:
            margin: Safety margin subtracted from the expiry time
            now: Reference time, defaults to the current time

        Returns:
            True if the token does not expire within the margin
        """
        now = now or datetime.now(UTC)
        return now + margin < self.expires_at


def _looks_like_json(source: str | bytes | Path) -> bool:
    if isinstance(source, Path):
        return False
    return source.lstrip()[:1] in ("{", b"{")


def _read_source(source: str | bytes | Path) -> str:
    if isinstance(source, bytes):
        try:
            return source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CredentialInvalidError("Service account key is not valid UTF-8") from e
    return str(source)


def _read_file(source: str | bytes | Path) -> str:
    path = Path(_read_source(source))
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise CredentialInvalidError(f"Service account key reading failed: {e}") from e


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise CredentialInvalidError(
            f"Service account key JSON deserialization failed: {e}"
        ) from e
