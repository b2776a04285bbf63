"""Unit tests for the Gemini HTTP client service.

The provider is simulated with ``httpx.MockTransport`` so each test sees the
exact request the client sends and controls the response it gets back.
"""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from captcha_relay.core.exceptions import InferenceError
from captcha_relay.services.gemini_client import (
    PARSE_ERROR_MESSAGE,
    GeminiClient,
    InferenceResult,
    get_gemini_client,
    reset_gemini_client,
)
from captcha_relay.services.prompts import CAPTCHA_PROMPT

pytestmark = pytest.mark.unit


def _answer(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def _client(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GeminiClient:
    return GeminiClient(
        api_key="gemini-secret",
        model="gemini-test",
        base_url="https://gemini.example/v1beta",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestBuildPayload:
    def test_payload_shape(self):
        client = _client(lambda request: httpx.Response(200, json=_answer("x")))

        payload = client.build_payload("aGVsbG8=", "image/jpeg")

        parts = payload["contents"][0]["parts"]
        assert parts[0] == {"text": CAPTCHA_PROMPT}
        assert parts[1] == {"inline_data": {"mime_type": "image/jpeg", "data": "aGVsbG8="}}
        assert payload["generationConfig"] == {"temperature": 0.1, "maxOutputTokens": 20}

    def test_generation_config_overrides(self):
        client = _client(
            lambda request: httpx.Response(200, json=_answer("x")),
            temperature=0.0,
            max_output_tokens=8,
        )
        payload = client.build_payload("aGVsbG8=", "image/png")
        assert payload["generationConfig"] == {"temperature": 0.0, "maxOutputTokens": 8}

    def test_prompt_asks_for_bare_answer(self):
        assert "only the numerical result" in CAPTCHA_PROMPT
        assert "Do not include any explanation" in CAPTCHA_PROMPT


class TestExtractSolution:
    def test_strips_whitespace(self):
        assert GeminiClient.extract_solution(_answer("  42\n")) == "42"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"candidates": []},
            {"candidates": [{"content": {"parts": []}}]},
            {"candidates": [{"finishReason": "SAFETY"}]},
            _answer("   "),
            {"candidates": [{"content": {"parts": [{"text": 42}]}}]},
            ["not", "an", "object"],
        ],
    )
    def test_unexpected_bodies_raise(self, body):
        with pytest.raises(InferenceError, match=PARSE_ERROR_MESSAGE):
            GeminiClient.extract_solution(body)


class TestSolve:
    @pytest.mark.asyncio
    async def test_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_answer("42\n"))

        client = _client(handler)
        try:
            result = await client.solve("aGVsbG8=", "image/png")
        finally:
            await client.close()

        assert result == InferenceResult(solution="42")
        assert result.ok

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1beta/models/gemini-test:generateContent"
        assert request.url.params["key"] == "gemini-secret"
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][1]["inline_data"]["mime_type"] == "image/png"

    @pytest.mark.asyncio
    async def test_alphanumeric_answer_kept_verbatim(self):
        client = _client(lambda request: httpx.Response(200, json=_answer("aB3xY")))
        result = await client.solve("aGVsbG8=", "image/png")
        assert result.solution == "aB3xY"

    @pytest.mark.asyncio
    async def test_server_error_carries_provider_detail(self):
        client = _client(
            lambda request: httpx.Response(500, text='{"error": {"message": "Internal error"}}')
        )

        result = await client.solve("aGVsbG8=", "image/png")

        assert not result.ok
        assert result.solution is None
        assert result.error is not None
        assert result.error.startswith("Gemini API error:")
        assert "Internal error" in result.error

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="API key not valid")

        result = await _client(handler).solve("aGVsbG8=", "image/png")

        assert len(calls) == 1
        assert result.error == "Gemini API error: API key not valid"

    @pytest.mark.asyncio
    async def test_error_body_relayed_verbatim(self):
        body = json.dumps(
            {
                "error": {
                    "message": "models/gemini-x is not found for "
                    "/v1beta/models/gemini-x:generateContent (token: abc)",
                    "status": "NOT_FOUND",
                }
            }
        )
        client = _client(lambda request: httpx.Response(404, text=body))

        result = await client.solve("aGVsbG8=", "image/png")

        assert result.error == f"Gemini API error: {body}"

    @pytest.mark.asyncio
    async def test_long_error_body_truncated(self):
        client = _client(lambda request: httpx.Response(500, text="x" * 1500))

        result = await client.solve("aGVsbG8=", "image/png")

        assert result.error == "Gemini API error: " + "x" * 1000 + "...[truncated]"

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
        result = await client.solve("aGVsbG8=", "image/png")
        assert result == InferenceResult(error=PARSE_ERROR_MESSAGE)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        result = await client.solve("aGVsbG8=", "image/png")
        assert result.error == PARSE_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_transport_error_does_not_raise_or_leak_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError(f"Connection refused for {request.url}", request=request)

        result = await _client(handler).solve("aGVsbG8=", "image/png")

        assert result.error is not None
        assert result.error.startswith("Gemini request failed:")
        assert "gemini-secret" not in result.error

    @pytest.mark.asyncio
    async def test_timeout_does_not_raise(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _client(handler).solve("aGVsbG8=", "image/png")
        assert result.error is not None
        assert "timed out" in result.error


class TestGlobalClient:
    @pytest.mark.asyncio
    async def test_get_and_reset(self, relay_config):
        await reset_gemini_client()
        client = get_gemini_client(relay_config)
        try:
            assert get_gemini_client(relay_config) is client
            assert client.model == "gemini-test"
            assert client.endpoint.endswith("/models/gemini-test:generateContent")
            assert "gemini-secret" not in client.endpoint
        finally:
            await reset_gemini_client()
