"""Redis connection used as the task result store.

Task entries are small JSON documents written with ``SET key value EX ttl``
and read back with ``GET``. Redis owns expiry; this module never deletes.

The process holds one client, connected during application startup by
``init_redis()`` and released by ``close_redis()``. Request handlers obtain
it through ``get_redis_client()``, which returns None when startup could
not connect.
"""

import asyncio
import json
import random
from typing import Any, cast

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError, TimeoutError

from captcha_relay.core.config import get_settings
from captcha_relay.core.logging import get_logger, sanitize_error

logger = get_logger(__name__)


class RedisClient:
    """Async Redis client for JSON task entries with per-key expiry."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter_factor: float = 0.25,
    ):
        """Create an unconnected client.

        Args:
            redis_url: Connection URL; defaults to the REDIS_URL setting
            max_attempts: Connection attempts made by ``connect()``
            base_delay: Backoff before the second attempt, doubled after each failure
            max_delay: Upper bound for the backoff before jitter
            jitter_factor: Up to this fraction of the delay is added at random
        """
        self._redis_url = redis_url or get_settings().redis_url
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter_factor = jitter_factor
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    def _calculate_backoff_delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-indexed): capped doubling plus jitter."""
        delay: float = min(self._base_delay * (2 ** (attempt - 1)), self._max_delay)
        # Not cryptographic, just spreads reconnect attempts
        jitter: float = delay * random.uniform(0, self._jitter_factor)  # noqa: S311
        return delay + jitter

    async def connect(self) -> None:
        """Open the pool and verify it with PING, retrying with backoff.

        Raises:
            RuntimeError: If no Redis URL is configured
            redis.exceptions.ConnectionError: If every attempt failed
            redis.exceptions.TimeoutError: If every attempt timed out
        """
        if not self._redis_url:
            raise RuntimeError("Redis URL is not configured")

        attempt = 0
        while True:
            attempt += 1
            pool = ConnectionPool.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
                max_connections=10,
            )
            client = Redis(connection_pool=pool)
            try:
                await client.ping()  # type: ignore
            except (ConnectionError, TimeoutError) as e:
                logger.warning(
                    f"Result store connection attempt {attempt}/{self._max_attempts} "
                    f"failed: {sanitize_error(e)}"
                )
                await client.aclose()
                await pool.disconnect()
                if attempt >= self._max_attempts:
                    logger.error(f"Giving up on the result store after {attempt} attempts")
                    raise
                await asyncio.sleep(self._calculate_backoff_delay(attempt))
                continue

            self._pool = pool
            self._client = client
            logger.info("Connected to result store")
            return

    async def disconnect(self) -> None:
        """Close the client and its pool. Safe to call when not connected."""
        client, pool = self._client, self._pool
        self._client = None
        self._pool = None
        try:
            if client is not None:
                await client.aclose()
            if pool is not None:
                await pool.disconnect()
        except (ConnectionError, TimeoutError, OSError) as e:
            logger.warning(f"Error while closing result store connection: {sanitize_error(e)}")
        logger.info("Result store connection closed")

    def _ensure_connected(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def health_check(self) -> dict[str, Any]:
        """Report whether the store answers PING, for the /health endpoint."""
        try:
            client = self._ensure_connected()
            await client.ping()  # type: ignore
            info = await client.info("server")  # type: ignore
        except Exception as e:
            return {"status": "unhealthy", "connected": False, "error": sanitize_error(e)}
        return {
            "status": "healthy",
            "connected": True,
            "redis_version": info.get("redis_version", "unknown"),
        }

    async def get(self, key: str) -> Any | None:
        """Return the decoded JSON stored at ``key``, or None if absent/expired.

        Values that are not JSON come back as the raw string.
        """
        value = await self._ensure_connected().get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, expire: int | None = None) -> bool:
        """Overwrite ``key`` with ``value`` and a fresh ``expire`` (seconds).

        Non-string values are stored as JSON. Returns Redis' acknowledgement.
        """
        serialized = value if isinstance(value, str) else json.dumps(value)
        return cast("bool", await self._ensure_connected().set(key, serialized, ex=expire))


_redis_client: RedisClient | None = None


def get_redis_client() -> RedisClient | None:
    """Return the process-wide client if startup connected one."""
    return _redis_client


async def init_redis() -> RedisClient:
    """Connect the process-wide client (idempotent).

    The client is only published once ``connect()`` succeeded, so a failed
    startup leaves ``get_redis_client()`` returning None.
    """
    global _redis_client  # noqa: PLW0603

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client
    return _redis_client


async def close_redis() -> None:
    """Disconnect the process-wide client on shutdown."""
    global _redis_client  # noqa: PLW0603

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
