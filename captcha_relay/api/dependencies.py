"""FastAPI dependencies for the task routes.

Resolution order matters and is encoded in the dependency graph:

    get_relay_config            -> 500 if any required setting is missing
      verify_submit_token       -> 401 on a bad Authorization header
        get_submit_payload      -> 400 on a malformed body
      verify_query_key          -> 401 on a bad apiKey query parameter
      get_result_store          -> 500 if the store handle is missing
        get_task_manager

Routes take these through ``Depends()``; tests swap them with
``app.dependency_overrides``.
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, Query, Request
from pydantic import ValidationError

from captcha_relay.api.schemas.tasks import SubmitRequest
from captcha_relay.core.config import RelayConfig, Settings, get_settings
from captcha_relay.core.exceptions import (
    ConfigurationError,
    InvalidApiKeyError,
    InvalidAuthTokenError,
    InvalidInputError,
)
from captcha_relay.core.redis import get_redis_client
from captcha_relay.services.gemini_client import get_gemini_client
from captcha_relay.services.result_store import RedisResultStore, ResultStore
from captcha_relay.services.task_lifecycle import InferenceClient, TaskLifecycleManager


def get_relay_config(
    request: Request, settings: Settings = Depends(get_settings)
) -> RelayConfig:
    """Return the configuration built at startup.

    Without one (startup found a setting missing, or the app runs without
    its lifespan) it is built from the settings, which raises
    ``ConfigurationError`` naming the first missing setting.
    """
    config: RelayConfig | None = getattr(request.app.state, "relay_config", None)
    if config is not None:
        return config
    return RelayConfig.from_settings(settings)


def _credential_matches(provided: str | None, expected: str) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def verify_submit_token(
    authorization: str | None = Header(None),
    config: RelayConfig = Depends(get_relay_config),
) -> None:
    """Require ``Authorization: Bearer <AUTH_TOKEN>``."""
    if not _credential_matches(authorization, f"Bearer {config.auth_token}"):
        raise InvalidAuthTokenError()


async def verify_query_key(
    api_key: str | None = Query(None, alias="apiKey"),
    config: RelayConfig = Depends(get_relay_config),
) -> None:
    """Require ``?apiKey=<API_KEY>``; checked before the task id is looked at."""
    if not _credential_matches(api_key, config.api_key):
        raise InvalidApiKeyError()


async def get_submit_payload(
    request: Request,
    _: None = Depends(verify_submit_token),
) -> SubmitRequest:
    """Parse and validate the submit body after the credential check.

    Declaring the model as a plain body parameter would make FastAPI parse
    the JSON before any dependency runs, so bad bodies would win over bad
    credentials.
    """
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidInputError("Invalid JSON body") from e

    if not isinstance(body, dict):
        raise InvalidInputError("Request body must be a JSON object")

    try:
        return SubmitRequest.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "body"
        if first.get("type") == "missing":
            raise InvalidInputError(f'Missing "{field}" field', field=field) from e
        raise InvalidInputError(f'Invalid "{field}" field: {first.get("msg")}', field=field) from e


def get_result_store(config: RelayConfig = Depends(get_relay_config)) -> ResultStore:
    """Wrap the process-wide Redis client; absent client is a configuration error."""
    redis_client = get_redis_client()
    if redis_client is None:
        raise ConfigurationError(
            'Result store for "redis_url" is not connected.', setting="redis_url"
        )
    return RedisResultStore(redis_client)


def get_inference_client(config: RelayConfig = Depends(get_relay_config)) -> InferenceClient:
    return get_gemini_client(config)


def get_task_manager(
    config: RelayConfig = Depends(get_relay_config),
    store: ResultStore = Depends(get_result_store),
    inference_client: InferenceClient = Depends(get_inference_client),
) -> TaskLifecycleManager:
    return TaskLifecycleManager(store, inference_client, ttl_seconds=config.task_ttl_seconds)
