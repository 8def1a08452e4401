"""Tests for inference providers, the rule-based responder and the provider chain.

Provider wire formats are checked against httpx.MockTransport; nothing leaves
the process.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from factories import ScriptedProvider
from nutribot.config import LLMSettings
from nutribot.errors import ProviderError
from nutribot.events import EventBus
from nutribot.llm.chain import ProviderChain, build_provider_chain
from nutribot.llm.providers import GenerationRequest, Intent, LocalProvider, RemoteProvider
from nutribot.llm.rules import (
    DEFAULT_MODEL,
    FALLBACK_QUESTIONS,
    FALLBACK_RECOMMENDATIONS,
    RULE_BASED_MODEL,
    RuleBasedResponder,
    fallback_question,
)
from nutribot.schemas.events import EventType, SystemEvent

REQUEST = GenerationRequest(
    intent=Intent.ADVICE,
    system_prompt="Eres NutriBot.",
    prompt="CONSULTA: ¿qué desayuno?",
    user_text="¿qué desayuno?",
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _Recorder:
    """Collects emitted events."""

    def __init__(self, bus: EventBus) -> None:
        self.events: list[SystemEvent] = []
        bus.subscribe(self.on_event)

    async def on_event(self, event: SystemEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[EventType]:
        return [e.event_type for e in self.events]


class _SlowProvider(ScriptedProvider):
    async def generate(self, request: GenerationRequest):
        await asyncio.sleep(5)
        return await super().generate(request)


# ── LocalProvider ────────────────────────────────────────────────────


class TestLocalProvider:
    @pytest.mark.asyncio()
    async def test_generate_wire_format(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"model": "mistral:7b", "response": " Avena con fruta. ", "eval_duration": 2_500_000},
            )

        settings = LLMSettings(ollama_base_url="http://ollama:11434/", temperature=0.3, max_tokens=256)
        provider = LocalProvider(settings, _client(handler))
        result = await provider.generate(REQUEST)

        assert seen["url"] == "http://ollama:11434/api/generate"
        body = seen["body"]
        assert body["model"] == "mistral:7b"
        assert body["stream"] is False
        assert body["prompt"] == "Eres NutriBot.\n\nCONSULTA: ¿qué desayuno?"
        assert body["options"] == {
            "temperature": 0.3,
            "num_predict": 256,
            "top_p": 0.9,
            "top_k": 40,
            "repeat_penalty": 1.1,
        }
        assert result.text == "Avena con fruta."
        assert result.provider == "local"
        assert result.processing_time_ms == 2

    @pytest.mark.asyncio()
    async def test_http_error_raises_provider_error(self) -> None:
        provider = LocalProvider(LLMSettings(), _client(lambda r: httpx.Response(500)))
        with pytest.raises(ProviderError):
            await provider.generate(REQUEST)

    @pytest.mark.asyncio()
    async def test_empty_response_raises_provider_error(self) -> None:
        provider = LocalProvider(LLMSettings(), _client(lambda r: httpx.Response(200, json={"response": "  "})))
        with pytest.raises(ProviderError, match="empty"):
            await provider.generate(REQUEST)

    @pytest.mark.asyncio()
    async def test_health_lists_models(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "mistral:7b"}, {"name": "llama3:8b"}]})

        provider = LocalProvider(LLMSettings(), _client(handler))
        health = await provider.health()
        assert health["available"] is True
        assert health["models"] == ["mistral:7b", "llama3:8b"]
        assert [m["name"] for m in await provider.list_models()] == ["mistral:7b", "llama3:8b"]

    @pytest.mark.asyncio()
    async def test_health_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = LocalProvider(LLMSettings(), _client(handler))
        assert (await provider.health())["available"] is False
        assert await provider.list_models() == []


# ── RemoteProvider ───────────────────────────────────────────────────


class TestRemoteProvider:
    @pytest.mark.asyncio()
    async def test_generate_wire_format(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={"model": "gpt-4", "choices": [{"message": {"content": "Yogur natural."}}]},
            )

        settings = LLMSettings(remote_base_url="https://llm.example/v1", remote_api_key="sk-test")
        result = await RemoteProvider(settings, _client(handler)).generate(REQUEST)

        assert seen["url"] == "https://llm.example/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"] == [
            {"role": "system", "content": "Eres NutriBot."},
            {"role": "user", "content": "CONSULTA: ¿qué desayuno?"},
        ]
        assert seen["body"]["stream"] is False
        assert seen["body"]["max_tokens"] == 1024
        assert result.text == "Yogur natural."
        assert result.model == "gpt-4"

    @pytest.mark.asyncio()
    async def test_missing_api_key(self) -> None:
        provider = RemoteProvider(LLMSettings(remote_api_key=""), _client(lambda r: httpx.Response(200)))
        with pytest.raises(ProviderError, match="API key"):
            await provider.generate(REQUEST)
        assert (await provider.health())["status"] == "unconfigured"

    @pytest.mark.asyncio()
    async def test_malformed_body(self) -> None:
        settings = LLMSettings(remote_api_key="sk-test")
        provider = RemoteProvider(settings, _client(lambda r: httpx.Response(200, json={"choices": []})))
        with pytest.raises(ProviderError):
            await provider.generate(REQUEST)


# ── RuleBasedResponder ───────────────────────────────────────────────


class TestRuleBasedResponder:
    @pytest.mark.asyncio()
    async def test_keyword_match(self) -> None:
        request = GenerationRequest(Intent.ADVICE, "sys", "prompt", user_text="Soy VEGANO, ¿qué como?")
        result = await RuleBasedResponder().generate(request)
        assert result.model == RULE_BASED_MODEL
        assert result.matched_key == "vegano"

    @pytest.mark.asyncio()
    async def test_default_response(self) -> None:
        request = GenerationRequest(Intent.ADVICE, "sys", "prompt", user_text="xyz")
        result = await RuleBasedResponder().generate(request)
        assert result.model == DEFAULT_MODEL
        assert result.matched_key is None

    @pytest.mark.asyncio()
    async def test_system_prompt_is_not_matched(self) -> None:
        request = GenerationRequest(Intent.ADVICE, "hola nutrición plan peso", "hola", user_text="")
        assert (await RuleBasedResponder().generate(request)).model == DEFAULT_MODEL

    @pytest.mark.asyncio()
    async def test_assessment_question_and_recommendations(self) -> None:
        responder = RuleBasedResponder()
        question = await responder.generate(
            GenerationRequest(Intent.ASSESSMENT_QUESTION, "s", "p", question_number=3)
        )
        assert question.text == FALLBACK_QUESTIONS[2]
        final = await responder.generate(GenerationRequest(Intent.RECOMMENDATIONS, "s", "p"))
        assert final.text == FALLBACK_RECOMMENDATIONS

    def test_fallback_question_wraps(self) -> None:
        assert fallback_question(1) == FALLBACK_QUESTIONS[0]
        assert fallback_question(len(FALLBACK_QUESTIONS) + 1) == FALLBACK_QUESTIONS[0]
        assert fallback_question(0) == FALLBACK_QUESTIONS[0]


# ── ProviderChain ────────────────────────────────────────────────────


class TestProviderChain:
    @pytest.mark.asyncio()
    async def test_primary_answers(self, bus: EventBus) -> None:
        recorder = _Recorder(bus)
        primary, secondary = ScriptedProvider("local"), ScriptedProvider("remote")
        chain = ProviderChain([primary, secondary], bus, fallback=RuleBasedResponder())
        result = await chain.generate(REQUEST, owner_id="o")
        assert result.provider == "local"
        assert secondary.requests == []
        assert recorder.types == [EventType.LLM_REQUEST, EventType.LLM_RESPONSE]

    @pytest.mark.asyncio()
    async def test_secondary_after_primary_failure(self, bus: EventBus) -> None:
        recorder = _Recorder(bus)
        chain = ProviderChain([ScriptedProvider("local", failing=True), ScriptedProvider("remote")], bus)
        result = await chain.generate(REQUEST)
        assert result.provider == "remote"
        assert EventType.LLM_ERROR in recorder.types

    @pytest.mark.asyncio()
    async def test_all_fail_degrades_to_rules(self, bus: EventBus) -> None:
        recorder = _Recorder(bus)
        chain = ProviderChain(
            [ScriptedProvider("local", failing=True), ScriptedProvider("remote", failing=True)],
            bus,
            fallback=RuleBasedResponder(),
        )
        result = await chain.generate(REQUEST)
        assert result.model in {RULE_BASED_MODEL, DEFAULT_MODEL}
        assert recorder.types[-1] is EventType.LLM_FALLBACK
        assert recorder.types.count(EventType.LLM_ERROR) == 2

    @pytest.mark.asyncio()
    async def test_all_fail_without_floor(self, bus: EventBus) -> None:
        chain = ProviderChain([ScriptedProvider("local", failing=True)], bus, fallback=None)
        with pytest.raises(ProviderError, match="All inference providers failed"):
            await chain.generate(REQUEST)

    @pytest.mark.asyncio()
    async def test_timeout_counts_as_failure(self, bus: EventBus) -> None:
        slow = _SlowProvider("local")
        chain = ProviderChain([slow, ScriptedProvider("remote")], bus, timeout=0.05)
        result = await chain.generate(REQUEST)
        assert result.provider == "remote"

    @pytest.mark.asyncio()
    async def test_unexpected_exception_is_contained(self, bus: EventBus) -> None:
        broken = ScriptedProvider("local")
        broken.generate = _raise_runtime  # type: ignore[method-assign]
        chain = ProviderChain([broken], bus, fallback=RuleBasedResponder())
        assert (await chain.generate(REQUEST)).provider == "rule_based"

    @pytest.mark.asyncio()
    async def test_prompt_never_in_events(self, bus: EventBus) -> None:
        recorder = _Recorder(bus)
        chain = ProviderChain([ScriptedProvider("local")], bus)
        await chain.generate(REQUEST)
        assert all("desayuno" not in json.dumps(e.data) for e in recorder.events)

    @pytest.mark.asyncio()
    async def test_health_includes_floor(self, bus: EventBus) -> None:
        chain = ProviderChain([ScriptedProvider("local", failing=True)], bus, fallback=RuleBasedResponder())
        report = await chain.health()
        assert [r["provider"] for r in report] == ["local", "rule_based"]
        assert report[0]["available"] is False


class TestBuildProviderChain:
    def test_order_and_floor(self, bus: EventBus) -> None:
        settings = LLMSettings(primary_provider="remote", secondary_provider="local", rule_based_fallback=True)
        chain = build_provider_chain(settings, bus)
        assert [p.name for p in chain.providers] == ["remote", "local"]

    def test_duplicate_secondary_ignored(self, bus: EventBus) -> None:
        chain = build_provider_chain(LLMSettings(primary_provider="local", secondary_provider="local"), bus)
        assert [p.name for p in chain.providers] == ["local"]

    def test_unknown_provider(self, bus: EventBus) -> None:
        with pytest.raises(ValueError, match="Unknown provider"):
            build_provider_chain(LLMSettings(primary_provider="openai"), bus)


async def _raise_runtime(request: GenerationRequest):
    msg = "unexpected"
    raise RuntimeError(msg)
