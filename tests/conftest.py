import json
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from fcm_dispatch.config import Settings, get_settings
from fcm_dispatch.schemas.credentials import ServiceAccountCredential

# Environment variables read by Settings; cleared so the host environment cannot leak in
SETTINGS_ENV_VARS = [
    "GOOGLE_APPLICATION_CREDENTIALS",
    "FCM_SERVICE_ACCOUNT_KEY_JSON",
    "FCM_HOST",
    "FCM_REQUEST_TIMEOUT",
    "FCM_DRY_RUN",
    "FCM_TOKEN_BACKEND",
    "FCM_TOKEN_CACHE",
    "FCM_TOKEN_CACHE_PATH",
    "REDIS_HOST",
    "REDIS_PORT",
    "REDIS_USERNAME",
    "REDIS_PASSWORD",
    "REDIS_TOKEN_PREFIX",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """Generate one RSA key for the whole test session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    """PEM encoded private key, as found in service account key files."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    """PEM encoded public key for verifying signed assertions."""
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode()
    )


@pytest.fixture
def service_account_info(private_key_pem) -> dict:
    """Sample service account key."""
    return {
        "type": "service_account",
        "project_id": "test-project",
        "private_key_id": "test-key-id",
        "private_key": private_key_pem,
        "client_email": "fcm-sender@test-project.iam.gserviceaccount.com",
        "client_id": "109876543210",
        "auth_uri": "https://accounts.google.com/o/oauth2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
    }


@pytest.fixture
def service_account_json(service_account_info) -> str:
    """Sample service account key as raw JSON."""
    return json.dumps(service_account_info)


@pytest.fixture
def service_account_file(tmp_path, service_account_json) -> Path:
    """Sample service account key written to a file."""
    path = tmp_path / "service-account.json"
    path.write_text(service_account_json, encoding="utf-8")
    return path


@pytest.fixture
def credential(service_account_info) -> ServiceAccountCredential:
    """Validated sample credential."""
    return ServiceAccountCredential.load(service_account_info)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate every test from the host environment and the settings cache."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_settings():
    """Build settings without reading a .env file."""

    def factory(**values) -> Settings:
        return Settings(_env_file=None, **values)

    return factory
