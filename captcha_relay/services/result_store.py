"""Task result store backed by Redis.

The store holds one JSON object per task, keyed by the task id verbatim.
Every ``put`` is a full overwrite that resets the expiry, which is what the
task lifecycle relies on: the terminal write replaces the pending entry and
gets a fresh TTL window. Once the TTL elapses the key is gone and ``get``
reports not-found.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from redis.exceptions import RedisError

from captcha_relay.core.exceptions import ResultStoreError
from captcha_relay.core.logging import get_logger, sanitize_error
from captcha_relay.core.redis import RedisClient

logger = get_logger(__name__)


@runtime_checkable
class ResultStore(Protocol):
    """Key-value store with per-key time-to-live."""

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Upsert ``value`` under ``key`` and reset its expiry."""
        ...

    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the last value written, or None if missing or expired."""
        ...


class RedisResultStore:
    """ResultStore implementation using ``SET key value EX ttl`` / ``GET key``."""

    def __init__(self, redis_client: RedisClient) -> None:
        self._redis = redis_client

    async def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Write ``value`` as JSON with a fresh TTL.

        Raises:
            ResultStoreError: If Redis rejects or cannot perform the write
        """
        try:
            ok = await self._redis.set(key, value, expire=ttl_seconds)
        except (RedisError, RuntimeError) as e:
            logger.error(f"Result store write failed for key {key}: {sanitize_error(e)}")
            raise ResultStoreError(f"Result store write failed: {sanitize_error(e)}") from e
        if not ok:
            raise ResultStoreError("Result store write was not acknowledged")

    async def get(self, key: str) -> dict[str, Any] | None:
        """Read the task entry for ``key``.

        Raises:
            ResultStoreError: If Redis cannot be read
        """
        try:
            value = await self._redis.get(key)
        except (RedisError, RuntimeError) as e:
            logger.error(f"Result store read failed for key {key}: {sanitize_error(e)}")
            raise ResultStoreError(f"Result store read failed: {sanitize_error(e)}") from e
        if value is None:
            return None
        if not isinstance(value, dict):
            # Something other than this service wrote to the key
            logger.warning(f"Ignoring non-object value stored under key {key}")
            return None
        return value
