"""Custom client exceptions."""


class FcmException(Exception):
    """Base FCM client exception."""

    def __init__(self, message: str):
        """Initialize exception with message."""
        self.message = message
        super().__init__(self.message)


class CredentialInvalidError(FcmException):
    """Service account key is malformed or incomplete."""

    def __init__(self, message: str = "Service account key is invalid"):
        """Initialize with a description of the problem."""
        super().__init__(message)


class ConfigurationError(FcmException):
    """Settings select a feature without the values it needs."""


class TokenProviderError(FcmException):
    """Base exception for access token acquisition."""


class TokenExchangeError(TokenProviderError):
    """Token endpoint could not be reached or rejected the assertion."""

    def __init__(
        self,
        message: str = "Access token exchange failed",
        status_code: int | None = None,
        oauth_error: str | None = None,
    ):
        """Initialize with the issuer's HTTP status and OAuth error code, if any."""
        self.status_code = status_code
        self.oauth_error = oauth_error
        super().__init__(message)

    @property
    def issuer_rejected(self) -> bool:
        """Check whether the issuer answered with an OAuth error."""
        return self.oauth_error is not None or (
            self.status_code is not None and 400 <= self.status_code < 500
        )


class TokenMissingAfterExchangeError(TokenProviderError):
    """Token endpoint answered without a usable access token."""

    def __init__(self, message: str = "Access token is missing"):
        """Initialize exception."""
        super().__init__(message)


class FcmSendError(FcmException):
    """Base exception for a failed delivery attempt."""


class AuthError(FcmSendError):
    """Access token could not be obtained for the request."""

    def __init__(self, cause: TokenProviderError):
        """Wrap the token provider failure."""
        self.cause = cause
        super().__init__(f"OAuth error: {cause.message}")

    @property
    def credential_probably_invalid(self) -> bool:
        """
        Check whether the service account key itself is the likely culprit.

        True when the issuer was reached but returned no token or rejected the
        assertion, as opposed to a network fault on the way to the issuer.
        """
        if isinstance(self.cause, TokenMissingAfterExchangeError):
            return True
        return isinstance(self.cause, TokenExchangeError) and self.cause.issuer_rejected


class TransportError(FcmSendError):
    """Request never produced an HTTP response (connect, TLS, timeout)."""

    def __init__(self, message: str = "Error sending message"):
        """Initialize exception."""
        super().__init__(message)


class RetryAfterParseError(ValueError):
    """Retry-After value is neither integer seconds nor an RFC 2822 date."""

    def __init__(self, value: str):
        """Keep the raw value for diagnostics."""
        self.value = value
        super().__init__(f"Invalid Retry-After value: {value!r}")


class RetryAfterMalformedError(FcmSendError):
    """Response carried a Retry-After header that could not be parsed."""

    def __init__(self, value: str, status_code: int | None = None):
        """Initialize with the raw header value and the response status."""
        self.value = value
        self.status_code = status_code
        super().__init__(f"Retry-After HTTP header value is not valid: {value!r}")
