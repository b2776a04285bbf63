"""Core infrastructure components."""

from captcha_relay.core.config import RelayConfig, Settings, get_settings
from captcha_relay.core.logging import (
    get_logger,
    get_request_id,
    sanitize_error,
    set_request_id,
    setup_logging,
)
from captcha_relay.core.redis import (
    RedisClient,
    close_redis,
    get_redis_client,
    init_redis,
)

__all__ = [
    "RedisClient",
    "RelayConfig",
    "Settings",
    "close_redis",
    "get_logger",
    "get_redis_client",
    "get_request_id",
    "get_settings",
    "init_redis",
    "sanitize_error",
    "set_request_id",
    "setup_logging",
]
