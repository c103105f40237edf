"""Access token caches."""

import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

import redis
import structlog
from pydantic import ValidationError

from fcm_dispatch.config import Settings, get_settings
from fcm_dispatch.core.exceptions import ConfigurationError
from fcm_dispatch.core.redis_client import create_redis_client
from fcm_dispatch.schemas.credentials import AccessToken

logger = structlog.get_logger(__name__)


class TokenCache(ABC):
    """Storage for access tokens, keyed by OAuth scope."""

    @abstractmethod
    def get(self, key: str) -> AccessToken | None:
        """Get a cached token, or None on a miss."""

    @abstractmethod
    def set(self, key: str, token: AccessToken) -> None:
        """Store a token."""


class MemoryTokenCache(TokenCache):
    """Per-instance in-memory cache."""

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._tokens: dict[str, AccessToken] = {}

    def get(self, key: str) -> AccessToken | None:
        """Get a cached token."""
        return self._tokens.get(key)

    def set(self, key: str, token: AccessToken) -> None:
        """Store a token."""
        self._tokens[key] = token


class FileTokenCache(TokenCache):
    """
    JSON file cache so restarted processes can reuse unexpired tokens.

    Best effort: read and write failures are logged and treated as misses.
    Tokens are also kept in memory, so a broken file never forces extra
    exchanges within one process.
    """

    def __init__(self, path: str | Path):
        """Initialize cache backed by the given file."""
        self.path = Path(path)
        self._memory = MemoryTokenCache()

    def get(self, key: str) -> AccessToken | None:
        """Get a token from memory, falling back to the file."""
        token = self._memory.get(key)
        if token is not None:
            return token

        entry = self._read().get(key)
        if entry is None:
            return None

        try:
            token = AccessToken.model_validate(entry)
        except ValidationError:
            logger.warning("token_cache_entry_invalid", path=str(self.path), key=key)
            return None

        self._memory.set(key, token)
        return token

    def set(self, key: str, token: AccessToken) -> None:
        """Store a token in memory and persist it to the file."""
        self._memory.set(key, token)

        entries = self._read()
        entries[key] = token.model_dump(mode="json")

        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(entries), encoding="utf-8")
            tmp_path.chmod(0o600)
            tmp_path.replace(self.path)
        except OSError as e:
            logger.warning("token_cache_write_failed", path=str(self.path), error=str(e))

    def _read(self) -> dict[str, Any]:
        try:
            content = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("token_cache_read_failed", path=str(self.path), error=str(e))
            return {}

        if not isinstance(content, dict):
            logger.warning("token_cache_read_failed", path=str(self.path), error="not an object")
            return {}
        return content


class RedisTokenCache(TokenCache):
    """
    Redis-backed cache shared between processes.

    Tokens are also kept in memory, so Redis is only asked when this process
    holds no unexpired token for the key.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "fcm:token"):
        """Initialize cache with Redis client and key prefix."""
        self.redis = redis_client
        self.prefix = prefix
        self._memory = MemoryTokenCache()

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> AccessToken | None:
        """
        Get token from Redis and deserialize.

        Args:
            key: Cache key

        Returns:
            Cached token or None
        """
        token = self._memory.get(key)
        if token is not None and token.is_valid():
            return token

        try:
            value = cast(str | None, self.redis.get(self._key(key)))
            if not value:
                return None
            token = AccessToken.model_validate_json(value)
        except (redis.RedisError, ValidationError) as e:
            logger.warning("token_cache_read_failed", key=key, error=str(e))
            return None

        self._memory.set(key, token)
        return token

    def set(self, key: str, token: AccessToken) -> None:
        """
        Serialize and store a token, expiring with the token itself.

        Args:
            key: Cache key
            token: Token to cache
        """
        self._memory.set(key, token)

        ttl = int((token.expires_at - datetime.now(UTC)).total_seconds())
        if ttl <= 0:
            return

        try:
            self.redis.setex(self._key(key), ttl, token.model_dump_json())
        except redis.RedisError as e:
            logger.warning("token_cache_write_failed", key=key, error=str(e))


def build_token_cache(settings: Settings | None = None) -> TokenCache:
    """
    Build the token cache selected by FCM_TOKEN_CACHE.

    Args:
        settings: Optional settings, defaults to the cached settings

    Returns:
        Token cache

    Raises:
        ConfigurationError: If the file cache is selected without FCM_TOKEN_CACHE_PATH
    """
    settings = settings or get_settings()

    if settings.token_cache == "file":
        if not settings.token_cache_path:
            raise ConfigurationError("FCM_TOKEN_CACHE_PATH is required for the file token cache")
        return FileTokenCache(settings.token_cache_path)
    if settings.token_cache == "redis":
        return RedisTokenCache(create_redis_client(settings), prefix=settings.redis_token_prefix)
    return MemoryTokenCache()
