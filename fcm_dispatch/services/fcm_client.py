"""Client for the FCM HTTP v1 send endpoint."""

from types import TracebackType
from typing import Any

import httpx
import structlog

from fcm_dispatch.config import Settings, get_settings
from fcm_dispatch.core.exceptions import (
    AuthError,
    RetryAfterMalformedError,
    RetryAfterParseError,
    TokenProviderError,
    TransportError,
)
from fcm_dispatch.core.logging import event_hooks
from fcm_dispatch.schemas.credentials import CredentialSource
from fcm_dispatch.schemas.message import Message, encode_message
from fcm_dispatch.schemas.response import FcmResponse, RetryAfter, parse_retry_after
from fcm_dispatch.services.token_cache import TokenCache
from fcm_dispatch.services.token_provider import TokenProvider, build_token_provider

logger = structlog.get_logger(__name__)

DEFAULT_HOST = "fcm.googleapis.com"
SEND_PATH = "/v1/projects/{project_id}/messages:send"


class FcmClient:
    """
    Sends messages to FCM, one attempt per call.

    The client never retries and never interprets the outcome; pass the
    returned FcmResponse to the response classifier for that.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        host: str = DEFAULT_HOST,
        request_timeout: float | None = None,
        dry_run: bool = False,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize client.

        Args:
            token_provider: Source of bearer tokens and the project ID
            host: Host of the messaging endpoint
            request_timeout: Timeout in seconds for each request, None for no timeout.
                FCM documents 10 seconds as the minimum sensible value.
            dry_run: Validate messages without delivering them
            http_client: Optional preconfigured client; request_timeout is ignored then
        """
        self.token_provider = token_provider
        self.host = host
        self.dry_run = dry_run
        self._owns_token_provider = False
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=request_timeout,
            event_hooks=event_hooks(),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        credential_source: CredentialSource | None = None,
        token_cache: TokenCache | None = None,
        **kwargs: Any,
    ) -> "FcmClient":
        """
        Build a client from configuration.

        Args:
            settings: Optional settings, defaults to the cached settings
            credential_source: Key material overriding the configured one
            token_cache: Token cache overriding the configured one
            **kwargs: Overrides for the client constructor

        Returns:
            Client owning its token provider

        Raises:
            CredentialInvalidError: If the service account key is missing or invalid
            ConfigurationError: If the token cache settings are incomplete
        """
        settings = settings or get_settings()
        token_provider = build_token_provider(
            settings,
            credential_source=credential_source,
            cache=token_cache,
        )

        options: dict[str, Any] = {
            "host": settings.fcm_host,
            "request_timeout": settings.request_timeout,
            "dry_run": settings.dry_run,
        }
        options.update(kwargs)

        client = cls(token_provider, **options)
        client._owns_token_provider = True
        return client

    @property
    def project_id(self) -> str:
        """Project the client sends messages for."""
        return self.token_provider.project_id

    @property
    def endpoint_url(self) -> str:
        """Send endpoint URL for the project."""
        return f"https://{self.host}{SEND_PATH.format(project_id=self.project_id)}"

    async def send(self, message: Message) -> FcmResponse:
        """
        Send a message in a single attempt.

        Args:
            message: Message to deliver

        Returns:
            Raw response; rejections by the server are returned, not raised

        Raises:
            AuthError: If no access token could be obtained
            TransportError: If no HTTP response was received (connect, TLS, timeout)
            RetryAfterMalformedError: If the Retry-After header could not be parsed
        """
        try:
            access_token = await self.token_provider.get_token()
        except TokenProviderError as e:
            logger.error("fcm_auth_failed", project_id=self.project_id, error=e.message)
            raise AuthError(e) from e

        try:
            response = await self._http_client.post(
                self.endpoint_url,
                content=encode_message(message, validate_only=self.dry_run),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json; charset=UTF-8",
                },
            )
        except httpx.RequestError as e:
            logger.error(
                "fcm_send_failed",
                project_id=self.project_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise TransportError(f"Error sending message: {e}") from e

        retry_after = self._parse_retry_after(response)

        try:
            json_body = response.json()
        except ValueError:
            json_body = {}
        # Error bodies vary between deployments; anything but an object counts as empty
        if not isinstance(json_body, dict):
            json_body = {}

        logger.info(
            "fcm_message_sent",
            project_id=self.project_id,
            target=message.target.kind.value,
            status_code=response.status_code,
            dry_run=self.dry_run,
        )

        return FcmResponse(
            http_status_code=response.status_code,
            json_body=json_body,
            retry_after=retry_after,
        )

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> RetryAfter | None:
        header_value = response.headers.get("Retry-After")
        if header_value is None:
            return None

        try:
            return parse_retry_after(header_value)
        except RetryAfterParseError as e:
            logger.warning(
                "fcm_retry_after_invalid",
                value=header_value,
                status_code=response.status_code,
            )
            raise RetryAfterMalformedError(header_value, response.status_code) from e

    async def aclose(self) -> None:
        """Close the HTTP client and token provider if this client created them."""
        if self._owns_http_client:
            await self._http_client.aclose()
        if self._owns_token_provider:
            await self.token_provider.aclose()

    async def __aenter__(self) -> "FcmClient":
        """Enter async context."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close owned resources."""
        await self.aclose()
