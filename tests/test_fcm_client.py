"""Tests for the FCM send client."""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from fcm_dispatch.core.exceptions import (
    AuthError,
    ConfigurationError,
    CredentialInvalidError,
    FcmException,
    RetryAfterMalformedError,
    TokenExchangeError,
    TokenMissingAfterExchangeError,
    TransportError,
)
from fcm_dispatch.schemas.message import Message, Target
from fcm_dispatch.schemas.notification import Notification
from fcm_dispatch.schemas.response import (
    ActionKind,
    ErrorClassification,
    RetryAfterDate,
    RetryAfterDelay,
)
from fcm_dispatch.services.fcm_client import FcmClient
from fcm_dispatch.services.response_classifier import classify, recommended_action
from fcm_dispatch.services.token_provider import ServiceAccountTokenProvider, TokenProvider

SEND_URL = "https://fcm.googleapis.com/v1/projects/test-project/messages:send"


class StubTokenProvider(TokenProvider):
    """Token provider returning a fixed token or raising a fixed error."""

    def __init__(self, token: str = "test-token", error: Exception | None = None):
        self.token = token
        self.error = error
        self.calls = 0

    @property
    def project_id(self) -> str:
        return "test-project"

    async def get_token(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token


class FcmEndpoint:
    """Fake send endpoint recording requests."""

    def __init__(self, response: httpx.Response | None = None):
        self.requests: list[httpx.Request] = []
        self.response = response or httpx.Response(
            200, json={"name": "projects/test-project/messages/0:1500415314455276%31bd1c96"}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


def make_client(handler, token_provider=None, **kwargs) -> FcmClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FcmClient(token_provider or StubTokenProvider(), http_client=http_client, **kwargs)


@pytest.fixture
def message() -> Message:
    """Notification for a single device."""
    return Message(
        target=Target.token("device-token"),
        notification=Notification(title="Appointment confirmed", body="See you at 10:00"),
        data={"appointment_id": "42"},
    )


@pytest.mark.asyncio
async def test_send_success(message):
    """Test a delivered message and the request sent for it."""
    endpoint = FcmEndpoint()

    async with make_client(endpoint) as client:
        response = await client.send(message)

    assert response.http_status_code == 200
    assert response.message_name.startswith("projects/test-project/messages/")
    assert response.retry_after is None
    assert classify(response) is ErrorClassification.OK
    assert recommended_action(response) is None

    request = endpoint.requests[0]
    assert request.method == "POST"
    assert str(request.url) == SEND_URL
    assert request.headers["authorization"] == "Bearer test-token"
    assert request.headers["content-type"] == "application/json; charset=UTF-8"
    assert json.loads(request.content) == {
        "message": {
            "token": "device-token",
            "notification": {"title": "Appointment confirmed", "body": "See you at 10:00"},
            "data": {"appointment_id": "42"},
        }
    }


@pytest.mark.asyncio
async def test_send_dry_run(message):
    """Test that dry run mode asks for validation only."""
    endpoint = FcmEndpoint()

    async with make_client(endpoint, dry_run=True) as client:
        await client.send(message)

    assert json.loads(endpoint.requests[0].content)["validate_only"] is True


@pytest.mark.asyncio
async def test_send_custom_host(message):
    """Test sending to a different endpoint host."""
    endpoint = FcmEndpoint()

    async with make_client(endpoint, host="fcm.example.test") as client:
        await client.send(message)

    assert (
        str(endpoint.requests[0].url)
        == "https://fcm.example.test/v1/projects/test-project/messages:send"
    )


@pytest.mark.asyncio
async def test_send_unregistered(message):
    """Test that rejections are returned, not raised."""
    endpoint = FcmEndpoint(
        httpx.Response(
            404,
            json={
                "error": {
                    "code": 404,
                    "message": "Requested entity was not found.",
                    "status": "NOT_FOUND",
                    "details": [
                        {
                            "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                            "errorCode": "UNREGISTERED",
                        }
                    ],
                }
            },
        )
    )

    async with make_client(endpoint) as client:
        response = await client.send(message)

    assert classify(response) is ErrorClassification.UNREGISTERED
    assert recommended_action(response).kind is ActionKind.REMOVE_REGISTRATION
    assert response.fcm_error_code == "UNREGISTERED"


@pytest.mark.asyncio
async def test_send_quota_exceeded_with_retry_after(message):
    """Test that the Retry-After header is captured."""
    endpoint = FcmEndpoint(httpx.Response(429, headers={"Retry-After": "30"}, json={}))

    async with make_client(endpoint) as client:
        response = await client.send(message)

    action = recommended_action(response)
    assert response.retry_after == RetryAfterDelay(delay=timedelta(seconds=30))
    assert action.kind is ActionKind.REDUCE_RATE_AND_RETRY
    assert action.wait.wait_time() == timedelta(seconds=30)


@pytest.mark.asyncio
async def test_send_quota_exceeded_without_retry_after(message):
    """Test the quota backoff floor."""
    async with make_client(FcmEndpoint(httpx.Response(429, json={}))) as client:
        response = await client.send(message)

    assert recommended_action(response).wait.wait_time() == timedelta(seconds=60)


@pytest.mark.asyncio
async def test_send_unavailable_with_retry_after_date(message):
    """Test HTTP date Retry-After values."""
    endpoint = FcmEndpoint(
        httpx.Response(503, headers={"Retry-After": "Wed, 21 Oct 2037 07:28:00 GMT"})
    )

    async with make_client(endpoint) as client:
        response = await client.send(message)

    assert response.retry_after == RetryAfterDate(at=datetime(2037, 10, 21, 7, 28, tzinfo=UTC))
    assert recommended_action(response).kind is ActionKind.RETRY


@pytest.mark.asyncio
async def test_send_internal_error_uses_floor(message):
    """Test that internal errors ignore a stray Retry-After."""
    endpoint = FcmEndpoint(httpx.Response(500, headers={"Retry-After": "120"}))

    async with make_client(endpoint) as client:
        response = await client.send(message)

    assert response.retry_after == RetryAfterDelay(delay=timedelta(seconds=120))
    assert recommended_action(response).wait.wait_time() == timedelta(seconds=10)


@pytest.mark.asyncio
async def test_send_malformed_retry_after(message):
    """Test that unparseable Retry-After headers are reported."""
    endpoint = FcmEndpoint(httpx.Response(503, headers={"Retry-After": "soon"}))

    async with make_client(endpoint) as client:
        with pytest.raises(RetryAfterMalformedError) as exc_info:
            await client.send(message)

    assert exc_info.value.value == "soon"
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="<html><body>Bad Gateway</body></html>"),
        httpx.Response(502, json=["unexpected"]),
        httpx.Response(502),
    ],
)
async def test_send_unparseable_body_is_empty(message, response):
    """Test that bodies other than JSON objects are read as empty."""
    async with make_client(FcmEndpoint(response)) as client:
        result = await client.send(message)

    assert result.json_body == {}
    assert classify(result) is ErrorClassification.UNKNOWN


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError],
)
async def test_send_transport_error(message, error):
    """Test that requests without a response raise TransportError."""

    def handler(request):
        raise error("Network failure", request=request)

    async with make_client(handler) as client:
        with pytest.raises(TransportError) as exc_info:
            await client.send(message)

    assert isinstance(exc_info.value.__cause__, error)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,credential_probably_invalid",
    [
        (TokenExchangeError("Rejected", status_code=400, oauth_error="invalid_grant"), True),
        (TokenExchangeError("Token endpoint request failed"), False),
        (TokenExchangeError("Token endpoint returned HTTP 503", status_code=503), False),
        (TokenMissingAfterExchangeError(), True),
    ],
)
async def test_send_auth_error(message, error, credential_probably_invalid):
    """Test that token failures surface as AuthError without sending."""
    endpoint = FcmEndpoint()

    async with make_client(endpoint, StubTokenProvider(error=error)) as client:
        with pytest.raises(AuthError) as exc_info:
            await client.send(message)

    assert exc_info.value.cause is error
    assert exc_info.value.__cause__ is error
    assert exc_info.value.credential_probably_invalid is credential_probably_invalid
    assert exc_info.value.message.startswith("OAuth error: ")
    assert endpoint.requests == []


@pytest.mark.asyncio
async def test_send_end_to_end_with_service_account(credential):
    """Test token exchange and delivery through one transport."""
    token_requests = []
    send_requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            token_requests.append(request)
            return httpx.Response(200, json={"access_token": "ya29.e2e", "expires_in": 3600})
        send_requests.append(request)
        return httpx.Response(200, json={"name": "projects/test-project/messages/1"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = ServiceAccountTokenProvider(credential, http_client=http_client)
    client = FcmClient(provider, http_client=http_client)

    for _ in range(3):
        response = await client.send(Message(target=Target.topic("news")))
        assert classify(response) is ErrorClassification.OK

    assert len(token_requests) == 1
    assert len(send_requests) == 3
    assert all(r.headers["authorization"] == "Bearer ya29.e2e" for r in send_requests)
    assert str(send_requests[0].url) == SEND_URL

    await http_client.aclose()


@pytest.mark.asyncio
async def test_from_settings(make_settings, service_account_json):
    """Test building a client from configuration."""
    settings = make_settings(
        FCM_SERVICE_ACCOUNT_KEY_JSON=service_account_json,
        FCM_HOST="fcm.example.test",
        FCM_DRY_RUN="true",
        FCM_REQUEST_TIMEOUT="15",
    )

    async with FcmClient.from_settings(settings) as client:
        assert client.project_id == "test-project"
        assert client.dry_run is True
        assert client.endpoint_url == (
            "https://fcm.example.test/v1/projects/test-project/messages:send"
        )
        assert client._http_client.timeout.read == 15


@pytest.mark.asyncio
async def test_from_settings_overrides(make_settings, service_account_file):
    """Test that explicit arguments win over configuration."""
    settings = make_settings(FCM_DRY_RUN="true")

    async with FcmClient.from_settings(
        settings,
        credential_source=service_account_file,
        dry_run=False,
    ) as client:
        assert client.dry_run is False
        assert client.project_id == "test-project"


def test_from_settings_without_credentials(make_settings):
    """Test that a missing key fails client construction."""
    with pytest.raises(CredentialInvalidError):
        FcmClient.from_settings(make_settings())


def test_from_settings_file_cache_without_path(make_settings, service_account_json):
    """Test that an incomplete cache configuration is reported as a client error."""
    settings = make_settings(
        FCM_SERVICE_ACCOUNT_KEY_JSON=service_account_json,
        FCM_TOKEN_CACHE="file",
    )

    with pytest.raises(FcmException) as exc_info:
        FcmClient.from_settings(settings)

    assert isinstance(exc_info.value, ConfigurationError)
