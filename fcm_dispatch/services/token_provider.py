"""Access token providers for the messaging endpoint."""

import asyncio
from abc import ABC, abstractmethod
from datetime import UTC, timedelta
from typing import Any

import httpx
import structlog
from firebase_admin import credentials
from google.auth import exceptions as google_auth_exceptions

from fcm_dispatch.config import Settings, get_settings
from fcm_dispatch.core.exceptions import (
    CredentialInvalidError,
    TokenExchangeError,
    TokenMissingAfterExchangeError,
)
from fcm_dispatch.core.logging import event_hooks
from fcm_dispatch.core.security import (
    FIREBASE_MESSAGING_SCOPE,
    JWT_BEARER_GRANT_TYPE,
    create_jwt_assertion,
)
from fcm_dispatch.schemas.credentials import (
    AccessToken,
    CredentialSource,
    ServiceAccountCredential,
)
from fcm_dispatch.services.token_cache import MemoryTokenCache, TokenCache, build_token_cache

logger = structlog.get_logger(__name__)

# Tokens this close to expiry are refreshed before use
REFRESH_MARGIN = timedelta(seconds=60)
DEFAULT_TOKEN_LIFETIME = 3600


class TokenProvider(ABC):
    """Source of bearer tokens and the project they belong to."""

    @property
    @abstractmethod
    def project_id(self) -> str:
        """Project identifier used in the endpoint URL."""

    @abstractmethod
    async def get_token(self) -> str:
        """
        Get a bearer token valid for the current request.

        Raises:
            TokenProviderError: If no token could be obtained
        """

    async def aclose(self) -> None:
        """Release resources held by the provider."""


class CachingTokenProvider(TokenProvider):
    """
    Token provider that caches tokens per scope and coalesces refreshes.

    Cache hits return immediately. On a miss, the first caller starts an
    exchange task for the scope and every caller arriving before it finishes
    awaits that same task, so they share its token or its error. Waiters are
    shielded from each other: cancelling one caller never cancels the
    exchange the others are waiting on.
    """

    def __init__(
        self,
        credential: ServiceAccountCredential,
        cache: TokenCache | None = None,
        scope: str = FIREBASE_MESSAGING_SCOPE,
        refresh_margin: timedelta = REFRESH_MARGIN,
    ):
        """
        Initialize provider.

        Args:
            credential: Service account key
            cache: Token cache, defaults to a private in-memory cache
            scope: OAuth scope requested for tokens
            refresh_margin: Tokens expiring within this margin are refreshed
        """
        self.credential = credential
        self.cache = cache if cache is not None else MemoryTokenCache()
        self.scope = scope
        self.refresh_margin = refresh_margin
        self._exchanges: dict[str, asyncio.Task[AccessToken]] = {}

    @property
    def project_id(self) -> str:
        """Project identifier from the service account key."""
        return self.credential.project_id

    def _cached_token(self) -> AccessToken | None:
        token = self.cache.get(self.scope)
        if token is not None and token.is_valid(self.refresh_margin):
            return token
        return None

    async def get_token(self) -> str:
        """Get a cached token, exchanging for a new one when needed."""
        token = self._cached_token()
        if token is not None:
            return token.access_token

        task = self._exchanges.get(self.scope)
        if task is None:
            task = asyncio.create_task(self._refresh())
            self._exchanges[self.scope] = task
            task.add_done_callback(self._exchange_done)

        token = await asyncio.shield(task)
        return token.access_token

    async def _refresh(self) -> AccessToken:
        logger.debug(
            "access_token_exchange_started",
            client_email=self.credential.client_email,
            scope=self.scope,
        )
        token = await self._exchange()
        self.cache.set(self.scope, token)
        logger.info(
            "access_token_refreshed",
            client_email=self.credential.client_email,
            expires_at=token.expires_at.isoformat(),
        )
        return token

    def _exchange_done(self, task: asyncio.Task[AccessToken]) -> None:
        if self._exchanges.get(self.scope) is task:
            del self._exchanges[self.scope]
        # Retrieve the error so an exchange whose waiters were all cancelled is not reported
        if not task.cancelled():
            task.exception()

    @abstractmethod
    async def _exchange(self) -> AccessToken:
        """Obtain a fresh token from the issuer."""


class ServiceAccountTokenProvider(CachingTokenProvider):
    """Token provider performing the JWT-bearer grant against the key's token URI."""

    def __init__(
        self,
        credential: ServiceAccountCredential,
        cache: TokenCache | None = None,
        scope: str = FIREBASE_MESSAGING_SCOPE,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        """
        Initialize provider.

        Args:
            credential: Service account key
            cache: Token cache
            scope: OAuth scope requested for tokens
            http_client: Optional client used to reach the token endpoint
            timeout: Request timeout in seconds when no client is given
        """
        super().__init__(credential, cache=cache, scope=scope)
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout,
            event_hooks=event_hooks(),
        )

    @classmethod
    def create(
        cls,
        credential_source: CredentialSource,
        cache: TokenCache | None = None,
        **kwargs: Any,
    ) -> "ServiceAccountTokenProvider":
        """
        Create provider from raw key material or a key file path.

        Raises:
            CredentialInvalidError: If the key is malformed or lacks a project ID
        """
        return cls(ServiceAccountCredential.load(credential_source), cache=cache, **kwargs)

    async def _exchange(self) -> AccessToken:
        assertion = create_jwt_assertion(self.credential, self.scope)

        try:
            response = await self._http_client.post(
                self.credential.token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.warning("access_token_exchange_failed", error=str(e))
            raise TokenExchangeError(f"Token endpoint request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_error:
            oauth_error = body.get("error") if isinstance(body.get("error"), str) else None
            description = body.get("error_description") or oauth_error or response.reason_phrase
            logger.warning(
                "access_token_exchange_rejected",
                status_code=response.status_code,
                oauth_error=oauth_error,
            )
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}: {description}",
                status_code=response.status_code,
                oauth_error=oauth_error,
            )

        access_token = body.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenMissingAfterExchangeError()

        expires_in = body.get("expires_in", DEFAULT_TOKEN_LIFETIME)
        if not isinstance(expires_in, int | float) or isinstance(expires_in, bool):
            expires_in = DEFAULT_TOKEN_LIFETIME

        return AccessToken.from_expires_in(access_token, expires_in)

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_http_client:
            await self._http_client.aclose()


class FirebaseAdminTokenProvider(CachingTokenProvider):
    """Token provider backed by firebase_admin service account credentials."""

    def __init__(
        self,
        credential: ServiceAccountCredential,
        cache: TokenCache | None = None,
        scope: str = FIREBASE_MESSAGING_SCOPE,
    ):
        """Initialize provider and the underlying firebase_admin certificate."""
        super().__init__(credential, cache=cache, scope=scope)

        cert_info = credential.model_dump(exclude_none=True)
        cert_info.setdefault("type", "service_account")
        try:
            self._certificate = credentials.Certificate(cert_info)
        except ValueError as e:
            raise CredentialInvalidError(f"Failed to initialize Firebase credential: {e}") from e

    @classmethod
    def create(
        cls,
        credential_source: CredentialSource,
        cache: TokenCache | None = None,
        **kwargs: Any,
    ) -> "FirebaseAdminTokenProvider":
        """Create provider from raw key material or a key file path."""
        return cls(ServiceAccountCredential.load(credential_source), cache=cache, **kwargs)

    async def _exchange(self) -> AccessToken:
        try:
            token_info = await asyncio.to_thread(self._certificate.get_access_token)
        except google_auth_exceptions.RefreshError as e:
            logger.warning("access_token_exchange_rejected", error=str(e))
            raise TokenExchangeError(
                f"Token endpoint rejected the credential: {e}",
                oauth_error="refresh_error",
            ) from e
        except google_auth_exceptions.TransportError as e:
            logger.warning("access_token_exchange_failed", error=str(e))
            raise TokenExchangeError(f"Token endpoint request failed: {e}") from e

        if not token_info.access_token:
            raise TokenMissingAfterExchangeError()

        if token_info.expiry is None:
            return AccessToken.from_expires_in(token_info.access_token, DEFAULT_TOKEN_LIFETIME)

        # google-auth reports naive UTC expiry times
        expiry = token_info.expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        return AccessToken(access_token=token_info.access_token, expires_at=expiry)


def resolve_credential_source(settings: Settings) -> CredentialSource:
    """
    Pick the service account key from settings.

    Looks for the key in order:
    1. FCM_SERVICE_ACCOUNT_KEY_JSON (raw JSON)
    2. GOOGLE_APPLICATION_CREDENTIALS (file path, may come from .env)

    Raises:
        CredentialInvalidError: If neither is set
    """
    if settings.service_account_key_json:
        return settings.service_account_key_json
    if settings.google_application_credentials:
        return settings.google_application_credentials
    raise CredentialInvalidError(
        "No service account key configured. "
        "Set FCM_SERVICE_ACCOUNT_KEY_JSON or GOOGLE_APPLICATION_CREDENTIALS."
    )


def build_token_provider(
    settings: Settings | None = None,
    credential_source: CredentialSource | None = None,
    cache: TokenCache | None = None,
) -> CachingTokenProvider:
    """
    Build the token provider selected by FCM_TOKEN_BACKEND.

    Args:
        settings: Optional settings, defaults to the cached settings
        credential_source: Key material overriding the configured one
        cache: Token cache overriding the configured one

    Returns:
        Token provider
    """
    settings = settings or get_settings()
    source = credential_source
    if source is None:
        source = resolve_credential_source(settings)
    cache = cache if cache is not None else build_token_cache(settings)

    if settings.token_backend == "firebase_admin":
        return FirebaseAdminTokenProvider.create(source, cache=cache)
    return ServiceAccountTokenProvider.create(source, cache=cache, timeout=settings.request_timeout)
