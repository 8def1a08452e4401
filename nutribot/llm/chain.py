"""Provider chain — one retry-and-degrade loop over an ordered provider list.

Order is [primary, secondary?] followed by the rule-based responder when it is
enabled. Each network provider is attempted once, bounded by
`asyncio.wait_for(timeout)`; a timeout counts as a failure and the abandoned
call never contributes to the result.

Usage:
    chain = build_provider_chain(settings.llm, bus)
    result = await chain.generate(prompts.advice_request(ctx, payload))
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import uuid
from typing import Any

import httpx

from nutribot.config import LLMSettings
from nutribot.errors import ProviderError
from nutribot.events import EventBus
from nutribot.llm.providers import GenerationRequest, GenerationResult, LocalProvider, Provider, RemoteProvider
from nutribot.llm.rules import RuleBasedResponder
from nutribot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class ProviderChain:
    def __init__(
        self,
        providers: list[Provider],
        bus: EventBus,
        *,
        timeout: float = 30.0,
        fallback: RuleBasedResponder | None = None,
    ) -> None:
        self._providers = providers
        self._bus = bus
        self._timeout = timeout
        self._fallback = fallback

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    async def generate(
        self,
        request: GenerationRequest,
        *,
        owner_id: str | None = None,
        assessment_id: uuid.UUID | None = None,
    ) -> GenerationResult:
        """Try each provider in order; degrade to the rule-based floor.

        Raises ProviderError only when every provider failed and no
        rule-based floor is configured.
        """
        prompt_hash = hashlib.sha256(request.prompt.encode("utf-8")).hexdigest()[:12]
        failures: list[str] = []

        for provider in self._providers:
            await self._emit(EventType.LLM_REQUEST, owner_id, assessment_id, {
                "provider": provider.name,
                "intent": request.intent.value,
                "prompt_hash": prompt_hash,
            })
            try:
                result = await asyncio.wait_for(provider.generate(request), timeout=self._timeout)
            except asyncio.TimeoutError:
                failures.append(f"{provider.name}: timeout")
                logger.warning("Provider %s timed out after %.1fs", provider.name, self._timeout)
                await self._emit(EventType.LLM_ERROR, owner_id, assessment_id, {
                    "provider": provider.name,
                    "error": "timeout",
                })
                continue
            except ProviderError as exc:
                failures.append(f"{provider.name}: {exc.message}")
                logger.warning("Provider %s failed: %s", provider.name, exc.message)
                await self._emit(EventType.LLM_ERROR, owner_id, assessment_id, {
                    "provider": provider.name,
                    "error": "provider_error",
                })
                continue
            except Exception:
                failures.append(f"{provider.name}: unexpected error")
                logger.exception("Provider %s raised unexpectedly", provider.name)
                await self._emit(EventType.LLM_ERROR, owner_id, assessment_id, {
                    "provider": provider.name,
                    "error": "unexpected",
                })
                continue

            await self._emit(EventType.LLM_RESPONSE, owner_id, assessment_id, {
                "provider": result.provider,
                "model": result.model,
                "latency_ms": result.processing_time_ms,
            })
            logger.info(
                "LLM response: provider=%s model=%s latency=%dms",
                result.provider,
                result.model,
                result.processing_time_ms,
            )
            return result

        if self._fallback is None:
            msg = "All inference providers failed: " + "; ".join(failures)
            raise ProviderError(msg)

        result = await self._fallback.generate(request)
        await self._emit(EventType.LLM_FALLBACK, owner_id, assessment_id, {
            "intent": request.intent.value,
            "model": result.model,
            "failed_providers": len(failures),
        })
        logger.info("Rule-based fallback used for %s (model=%s)", request.intent.value, result.model)
        return result

    async def health(self) -> list[dict[str, Any]]:
        """Status of every configured provider, in chain order."""
        members: list[Any] = [*self._providers]
        if self._fallback is not None:
            members.append(self._fallback)
        results = await asyncio.gather(*(p.health() for p in members), return_exceptions=True)
        report: list[dict[str, Any]] = []
        for member, outcome in zip(members, results):
            if isinstance(outcome, BaseException):
                report.append({"provider": member.name, "status": "unhealthy", "available": False})
            else:
                report.append(outcome)
        return report

    async def close(self) -> None:
        for provider in self._providers:
            await provider.close()

    async def _emit(
        self,
        event_type: EventType,
        owner_id: str | None,
        assessment_id: uuid.UUID | None,
        data: dict[str, Any],
    ) -> None:
        await self._bus.emit(SystemEvent(
            event_type=event_type,
            owner_id=owner_id,
            assessment_id=assessment_id,
            data=data,
            source_module="llm.chain",
        ))


def _make_provider(name: str, settings: LLMSettings, client: httpx.AsyncClient | None) -> Provider:
    if name == "local":
        return LocalProvider(settings, client)
    if name == "remote":
        return RemoteProvider(settings, client)
    msg = f"Unknown provider: {name}. Must be 'local' or 'remote'"
    raise ValueError(msg)


def build_provider_chain(
    settings: LLMSettings,
    bus: EventBus,
    client: httpx.AsyncClient | None = None,
) -> ProviderChain:
    """Build the chain described by LLMSettings."""
    providers = [_make_provider(settings.primary_provider, settings, client)]
    if settings.secondary_provider and settings.secondary_provider != settings.primary_provider:
        providers.append(_make_provider(settings.secondary_provider, settings, client))
    return ProviderChain(
        providers,
        bus,
        timeout=settings.timeout,
        fallback=RuleBasedResponder() if settings.rule_based_fallback else None,
    )
