"""Inference providers — remote (OpenAI-compatible) and local (Ollama).

Both speak plain JSON over httpx and raise ProviderError for every kind of
failure (transport, HTTP status, malformed body), so the chain only has one
error type to degrade on. Sampling parameters come from LLMSettings and are
never set per call site.

Tests inject an `httpx.AsyncClient(transport=httpx.MockTransport(...))`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from nutribot.config import LLMSettings
from nutribot.errors import ProviderError

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """What a generation request is for."""

    ASSESSMENT_QUESTION = "assessment_question"
    RECOMMENDATIONS = "recommendations"
    ADVICE = "advice"
    MEAL_PLAN = "meal_plan"
    PROGRESS = "progress"


@dataclass(frozen=True)
class GenerationRequest:
    """A fully built prompt. Only minimized/anonymized data may appear here.

    `user_text` is the end-user's own words (query, preferences), which the
    rule-based responder matches keywords against.
    """

    intent: Intent
    system_prompt: str
    prompt: str
    user_text: str = ""
    question_number: int | None = None


@dataclass(frozen=True)
class GenerationResult:
    text: str
    model: str
    provider: str
    processing_time_ms: int = 0
    matched_key: str | None = None


class Provider(Protocol):
    name: str

    async def generate(self, request: GenerationRequest) -> GenerationResult: ...

    async def health(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class LocalProvider:
    """Ollama `/api/generate` (non-streaming)."""

    name = "local"

    def __init__(self, settings: LLMSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.ollama_base_url,
            timeout=httpx.Timeout(settings.timeout, connect=10.0),
        )

    @property
    def model(self) -> str:
        return self._settings.local_model

    def _url(self, path: str) -> str:
        return f"{self._settings.ollama_base_url.rstrip('/')}{path}"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        s = self._settings
        body = {
            "model": s.local_model,
            "prompt": f"{request.system_prompt}\n\n{request.prompt}",
            "stream": False,
            "options": {
                "temperature": s.temperature,
                "num_predict": s.max_tokens,
                "top_p": s.top_p,
                "top_k": s.top_k,
                "repeat_penalty": s.repeat_penalty,
            },
        }

        start = time.monotonic()
        try:
            response = await self._client.post(self._url("/api/generate"), json=body)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Local provider request failed: {exc}"
            raise ProviderError(msg, provider=self.name) from exc

        text = data.get("response")
        if not isinstance(text, str) or not text.strip():
            msg = "Local provider returned an empty response"
            raise ProviderError(msg, provider=self.name)

        # eval_duration is reported in nanoseconds
        eval_duration = data.get("eval_duration")
        if isinstance(eval_duration, (int, float)):
            elapsed_ms = int(eval_duration / 1_000_000)
        else:
            elapsed_ms = int((time.monotonic() - start) * 1000)

        return GenerationResult(
            text=text.strip(),
            model=str(data.get("model") or s.local_model),
            provider=self.name,
            processing_time_ms=elapsed_ms,
        )

    async def list_models(self) -> list[dict[str, Any]]:
        """Models installed on the Ollama server. Empty on any failure."""
        try:
            response = await self._client.get(self._url("/api/tags"), timeout=self._settings.health_timeout)
            response.raise_for_status()
            models = response.json().get("models") or []
        except (httpx.HTTPError, ValueError):
            logger.warning("Failed to list local models", exc_info=True)
            return []
        return list(models)

    async def health(self) -> dict[str, Any]:
        try:
            response = await self._client.get(self._url("/api/tags"), timeout=self._settings.health_timeout)
            response.raise_for_status()
            models = response.json().get("models") or []
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Local provider health check failed: %s", exc)
            return {"provider": self.name, "status": "unavailable", "available": False, "error": str(exc)}
        return {
            "provider": self.name,
            "status": "healthy",
            "available": True,
            "model": self.model,
            "models": [m.get("name") for m in models if isinstance(m, dict)],
        }

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class RemoteProvider:
    """Hosted OpenAI-compatible `/chat/completions`."""

    name = "remote"

    def __init__(self, settings: LLMSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.timeout, connect=10.0))

    @property
    def model(self) -> str:
        return self._settings.remote_model

    def _url(self, path: str) -> str:
        return f"{self._settings.remote_base_url.rstrip('/')}{path}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.remote_api_key}"}

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        s = self._settings
        if not s.remote_api_key:
            msg = "Remote provider has no API key configured"
            raise ProviderError(msg, provider=self.name)

        body = {
            "model": s.remote_model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.prompt},
            ],
            "max_tokens": s.max_tokens,
            "temperature": s.temperature,
            "top_p": s.top_p,
            "stream": False,
        }

        start = time.monotonic()
        try:
            response = await self._client.post(
                self._url("/chat/completions"), json=body, headers=self._headers()
            )
            response.raise_for_status()
            data: dict[str, Any] = response.json()
            text = data["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            msg = f"Remote provider request failed: {exc}"
            raise ProviderError(msg, provider=self.name) from exc

        if not isinstance(text, str) or not text.strip():
            msg = "Remote provider returned an empty response"
            raise ProviderError(msg, provider=self.name)

        return GenerationResult(
            text=text.strip(),
            model=str(data.get("model") or s.remote_model),
            provider=self.name,
            processing_time_ms=int((time.monotonic() - start) * 1000),
        )

    async def health(self) -> dict[str, Any]:
        if not self._settings.remote_api_key:
            return {"provider": self.name, "status": "unconfigured", "available": False}
        try:
            response = await self._client.get(
                self._url("/models"), headers=self._headers(), timeout=self._settings.health_timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Remote provider health check failed: %s", exc)
            return {"provider": self.name, "status": "unhealthy", "available": False, "error": str(exc)}
        return {"provider": self.name, "status": "healthy", "available": True, "model": self.model}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
