"""Gemini HTTP client for captcha recognition.

This service sends a captcha image plus a fixed instruction to the Gemini
``generateContent`` REST endpoint and extracts the short textual answer.

Request Flow:
    1. Build payload with the instruction text and the inline base64 image
    2. POST to {base_url}/models/{model}:generateContent?key=<api key>
    3. Read candidates[0].content.parts[0].text from the JSON response
    4. Return the stripped answer

Error Handling:
    Provider failures never raise. Every failure is returned as an
    ``InferenceResult`` with ``error`` set, because the caller runs in the
    background after the submitting request has already returned.
    - HTTP non-2xx: error carries the provider's response body
    - Invalid JSON / missing or empty answer: "Failed to parse Gemini response"
    - Connection errors and timeouts: error carries the sanitized transport error
    A single attempt is made; there is no retry and no circuit breaker.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from captcha_relay.core.config import RelayConfig
from captcha_relay.core.exceptions import InferenceError
from captcha_relay.core.logging import get_logger, sanitize_error
from captcha_relay.core.metrics import observe_inference_duration, record_inference_error
from captcha_relay.services.prompts import CAPTCHA_PROMPT

logger = get_logger(__name__)

PARSE_ERROR_MESSAGE = "Failed to parse Gemini response"

# Provider error bodies are relayed to the client as-is up to this length
MAX_ERROR_BODY_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class InferenceResult:
    """Outcome of one provider call: exactly one of solution/error is set."""

    solution: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GeminiClient:
    """Client for the Gemini multimodal generateContent API.

    Usage:
        client = GeminiClient(api_key="...", model="gemini-1.5-flash")
        result = await client.solve(image_b64, "image/png")
        if result.ok:
            print(result.solution)
        await client.close()
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30.0,
        temperature: float = 0.1,
        max_output_tokens: int = 20,
        prompt: str = CAPTCHA_PROMPT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Gemini client.

        Args:
            api_key: Provider credential, sent as the ``key`` query parameter
            model: Model identifier used in the request path
            base_url: API base URL
            timeout: Transport timeout in seconds for the single attempt
            temperature: Sampling temperature
            max_output_tokens: Output token cap
            prompt: Instruction sent alongside the image
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._prompt = prompt
        self._generation_config = {
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
        }
        # Persistent connection pool, reused across tasks
        self._http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            transport=transport,
        )
        logger.info(f"GeminiClient initialized with model={model}, base_url={self._base_url}")

    @classmethod
    def from_config(cls, config: RelayConfig) -> GeminiClient:
        return cls(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_base_url,
            timeout=config.gemini_timeout_seconds,
            temperature=config.gemini_temperature,
            max_output_tokens=config.gemini_max_output_tokens,
        )

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        """generateContent URL without the credential."""
        return f"{self._base_url}/models/{self._model}:generateContent"

    async def close(self) -> None:
        """Close the HTTP client connections."""
        await self._http_client.aclose()
        logger.debug("GeminiClient HTTP connections closed")

    def build_payload(self, image_b64: str, mime_type: str) -> dict[str, Any]:
        """Build the generateContent request body.

        Args:
            image_b64: Base64-encoded image bytes
            mime_type: Media type declared by the submitter, passed through as-is

        Returns:
            JSON-serializable request payload
        """
        return {
            "contents": [
                {
                    "parts": [
                        {"text": self._prompt},
                        {"inline_data": {"mime_type": mime_type, "data": image_b64}},
                    ]
                }
            ],
            "generationConfig": dict(self._generation_config),
        }

    @staticmethod
    def extract_solution(body: Any) -> str:
        """Pull the answer text out of a generateContent response body.

        Raises:
            InferenceError: If the body does not contain a non-empty answer
        """
        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError(PARSE_ERROR_MESSAGE) from e
        if not isinstance(text, str) or not text.strip():
            raise InferenceError(PARSE_ERROR_MESSAGE)
        return text.strip()

    async def solve(self, image_b64: str, mime_type: str) -> InferenceResult:
        """Ask the model to read or solve the captcha in ``image_b64``.

        Args:
            image_b64: Base64-encoded image bytes
            mime_type: Declared media type of the image

        Returns:
            InferenceResult with either ``solution`` or ``error`` set
        """
        payload = self.build_payload(image_b64, mime_type)
        start_time = time.time()

        try:
            response = await self._http_client.post(
                self.endpoint,
                params={"key": self._api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            record_inference_error("transport")
            message = f"Gemini request failed: {sanitize_error(e)}"
            logger.warning(message)
            return InferenceResult(error=message)
        finally:
            observe_inference_duration(time.time() - start_time)

        if not response.is_success:
            record_inference_error("http_status")
            body = response.text
            if len(body) > MAX_ERROR_BODY_LENGTH:
                body = body[:MAX_ERROR_BODY_LENGTH] + "...[truncated]"
            message = f"Gemini API error: {body}"
            logger.warning(
                f"Gemini returned status {response.status_code}",
                extra={"status_code": response.status_code},
            )
            return InferenceResult(error=message)

        try:
            solution = self.extract_solution(response.json())
        except (ValueError, InferenceError) as e:
            # ValueError covers a body that is not JSON at all
            record_inference_error("malformed_response")
            logger.warning(f"Malformed response from Gemini: {sanitize_error(e)}")
            return InferenceResult(error=PARSE_ERROR_MESSAGE)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Gemini answered {len(solution)} chars in {duration_ms}ms")
        return InferenceResult(solution=solution)


# Global client instance
_gemini_client: GeminiClient | None = None


def get_gemini_client(config: RelayConfig) -> GeminiClient:
    """Get or create the global GeminiClient instance.

    Returns:
        Global GeminiClient instance
    """
    global _gemini_client  # noqa: PLW0603
    if _gemini_client is None:
        _gemini_client = GeminiClient.from_config(config)
    return _gemini_client


async def reset_gemini_client() -> None:
    """Close and drop the global GeminiClient instance."""
    global _gemini_client  # noqa: PLW0603
    if _gemini_client is not None:
        await _gemini_client.close()
    _gemini_client = None
