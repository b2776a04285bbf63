"""Pytest configuration and shared fixtures.

This module provides shared test fixtures for all relay tests:
- clean_env: environment without relay settings and a fresh settings cache
- relay_config: a fully populated RelayConfig
- memory_store: in-memory ResultStore double with a controllable clock
- fake_inference: scripted inference client recording its calls
- manager: TaskLifecycleManager wired to the two doubles above

Route tests build the real application with ``create_app()`` and replace the
store/inference/config dependencies through ``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from captcha_relay.core.config import RelayConfig, get_settings
from captcha_relay.services.task_lifecycle import TaskLifecycleManager
from captcha_relay.tests.doubles import (
    API_KEY,
    AUTH_TOKEN,
    PNG_B64,
    FakeInferenceClient,
    MemoryResultStore,
)

RELAY_ENV_VARS = [
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_BASE_URL",
    "GEMINI_TIMEOUT_SECONDS",
    "GEMINI_TEMPERATURE",
    "GEMINI_MAX_OUTPUT_TOKENS",
    "AUTH_TOKEN",
    "API_KEY",
    "REDIS_URL",
    "TASK_TTL_SECONDS",
    "LOG_LEVEL",
    "LOG_JSON",
    "LOG_FILE_PATH",
]


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Settings are cached per process; tests must not see each other's env."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> pytest.MonkeyPatch:
    """Remove relay settings from the environment and run from an empty dir."""
    for var in RELAY_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # No stray .env file gets picked up
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(
        gemini_api_key="gemini-secret",
        gemini_model="gemini-test",
        auth_token=AUTH_TOKEN,
        api_key=API_KEY,
        redis_url="redis://localhost:6379/15",
        task_ttl_seconds=300,
    )


@pytest.fixture
def memory_store() -> MemoryResultStore:
    return MemoryResultStore()


@pytest.fixture
def fake_inference() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def manager(
    memory_store: MemoryResultStore, fake_inference: FakeInferenceClient
) -> TaskLifecycleManager:
    return TaskLifecycleManager(memory_store, fake_inference, ttl_seconds=300)


@pytest.fixture
def png_b64() -> str:
    return PNG_B64
