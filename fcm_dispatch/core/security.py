"""Security utilities for signing service account assertions."""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt

from fcm_dispatch.schemas.credentials import ServiceAccountCredential

FIREBASE_MESSAGING_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"

# Google caps assertion lifetime at one hour
ASSERTION_LIFETIME = timedelta(hours=1)


def create_jwt_assertion(
    credential: ServiceAccountCredential,
    scope: str = FIREBASE_MESSAGING_SCOPE,
    issued_at: datetime | None = None,
) -> str:
    """
    Create a signed JWT assertion for the JWT-bearer grant.

    Args:
        credential: Service account whose private key signs the assertion
        scope: Space separated OAuth scopes to request
        issued_at: Optional issue time, defaults to now

    Returns:
        Encoded RS256 JWT
    """
    issued_at = issued_at or datetime.now(UTC)

    claims: dict[str, Any] = {
        "iss": credential.client_email,
        "scope": scope,
        "aud": credential.token_uri,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ASSERTION_LIFETIME).timestamp()),
    }

    headers = {"kid": credential.private_key_id} if credential.private_key_id else None

    encoded_jwt = jwt.encode(
        claims,
        credential.private_key,
        algorithm="RS256",
        headers=headers,
    )

    return encoded_jwt
