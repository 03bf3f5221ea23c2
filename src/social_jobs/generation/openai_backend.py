"""OpenAI-compatible chat completions generator."""

from __future__ import annotations

import json
import logging

import httpx

from social_jobs.generation.base import (
    GenerationError,
    GenerationRequest,
    GenerationResult,
)
from social_jobs.generation.schema import parse_kit_json

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_TEMPERATURE = 0.7
_PREVIEW_CHARS = 500


class OpenAIChatGenerator:
    """Calls ``/chat/completions`` in JSON mode and validates the reply."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        temperature: float = DEFAULT_TEMPERATURE,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OPENAI_API_KEY is required unless dry-run generation is enabled.")
        self.model = model
        self.temperature = temperature
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def generate(self, request: GenerationRequest) -> GenerationResult:
        body = {
            "model": self.model,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": request.system_instructions},
                {"role": "user", "content": request.user_context},
            ],
            "response_format": {"type": "json_object"},
        }
        try:
            response = self._client.post(
                "/chat/completions",
                json=body,
                headers={"X-Request-Id": request.trace_id},
            )
        except httpx.TimeoutException as error:
            logger.warning("Generation timed out (trace_id=%s)", request.trace_id)
            raise GenerationError(f"Generation request timed out: {error}") from error
        except httpx.HTTPError as error:
            logger.warning("Generation transport error (trace_id=%s): %s", request.trace_id, error)
            raise GenerationError(f"Generation request failed: {error}") from error

        raw_text = response.text
        if not response.is_success:
            raise GenerationError(
                f"OpenAI error {response.status_code}: {raw_text[:_PREVIEW_CHARS]}",
            )

        try:
            envelope = json.loads(raw_text)
        except json.JSONDecodeError as error:
            raise GenerationError(
                f"OpenAI returned non-JSON response: {raw_text[:_PREVIEW_CHARS]}",
            ) from error

        content = _message_content(envelope)
        if content is None:
            raise GenerationError(
                f"OpenAI response missing message.content: {raw_text[:_PREVIEW_CHARS]}",
            )

        kit = parse_kit_json(content)
        model = envelope.get("model") if isinstance(envelope.get("model"), str) else self.model
        return GenerationResult(kit=kit, model=model, raw=envelope)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> OpenAIChatGenerator:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _message_content(envelope: object) -> str | None:
    if not isinstance(envelope, dict):
        return None
    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) and content.strip() else None
