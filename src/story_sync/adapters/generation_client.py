"""HTTP text generation client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

import httpx

from story_sync.domain.ports import GenerationServiceError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


def _float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


class HttpGenerationService:
    """Generate paragraph suggestions through ``/chat/completions``.

    ``kind`` is sent as the system message and each context block as a
    user message, in order.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_base = base_url or os.environ.get("STORY_SYNC_AI_BASE_URL", "").strip()
        self._base_url = (resolved_base or DEFAULT_BASE_URL).rstrip("/")
        self._model = model or os.environ.get("STORY_SYNC_AI_MODEL", "").strip() or DEFAULT_MODEL
        self._api_key = api_key or os.environ.get("STORY_SYNC_AI_API_KEY", "").strip()
        if timeout_seconds is None:
            timeout_seconds = _float_env(
                "STORY_SYNC_AI_TIMEOUT_SECONDS", 60.0, minimum=1.0, maximum=600.0
            )
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def model(self) -> str:
        return self._model

    async def generate(self, kind: str, context_blocks: Sequence[str]) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": kind},
                *({"role": "user", "content": block} for block in context_blocks),
            ],
        }
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions", json=payload, headers=headers
                )
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("generation.request_failed model=%s error=%s", self._model, exc)
            raise GenerationServiceError(f"Generation request failed: {exc}") from exc

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerationServiceError("Generation response is missing message content.") from exc
        if not isinstance(content, str) or not content.strip():
            raise GenerationServiceError("Generation response content is empty.")
        logger.debug("generation.completed model=%s characters=%s", self._model, len(content))
        return content.strip()
