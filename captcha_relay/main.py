"""FastAPI application entry point for the captcha relay."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from captcha_relay.api.exception_handlers import register_exception_handlers
from captcha_relay.api.middleware import RequestIDMiddleware
from captcha_relay.api.routes import system, tasks
from captcha_relay.core import get_settings
from captcha_relay.core.config import RelayConfig
from captcha_relay.core.exceptions import ConfigurationError
from captcha_relay.core.logging import get_logger, sanitize_error, setup_logging
from captcha_relay.core.redis import close_redis, init_redis
from captcha_relay.services.gemini_client import get_gemini_client, reset_gemini_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle - startup and shutdown events.

    A missing setting or an unreachable Redis does not stop startup: the
    service keeps running and every task request answers 500 naming the
    missing setting until it is fixed.

    A complete configuration is kept on ``app.state.relay_config`` for the
    request dependencies; it is None when a setting is missing.
    """
    setup_logging()
    settings = get_settings()

    missing = settings.missing_required()
    if missing:
        logger.error(f"Service is not fully configured, missing: {', '.join(missing)}")

    if settings.redis_url:
        try:
            await init_redis()
        except Exception as e:
            logger.error(f"Result store unavailable, task endpoints disabled: {sanitize_error(e)}")

    try:
        config = RelayConfig.from_settings(settings)
    except ConfigurationError:
        config = None
    app.state.relay_config = config
    if config is not None:
        get_gemini_client(config)
        logger.info(f"Relay ready: model={config.gemini_model}, ttl={config.task_ttl_seconds}s")

    yield

    # Shutdown
    await reset_gemini_client()
    await close_redis()
    logger.info("Relay shut down")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Submit a captcha image, poll for the recognized answer",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)

    app.include_router(tasks.router)
    app.include_router(system.router)

    return app


app = create_app()


def main() -> None:
    """Run the API server (console script ``captcha-relay``)."""
    settings = get_settings()
    uvicorn.run(
        "captcha_relay.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
