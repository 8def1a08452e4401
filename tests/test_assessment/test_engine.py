"""Tests for the assessment engine.

Covers: start, answer loop to completion, duplicate and out-of-turn answers,
owner scoping, retry after a provider failure, delete, health-data projection.

Uses in-memory repositories and scripted providers.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from factories import OTHER_OWNER, OWNER, PROFILE, ScriptedProvider, grant, make_context
from nutribot.assessment.engine import AssessmentService, make_question_id
from nutribot.config import AssessmentSettings
from nutribot.errors import (
    DuplicateAnswerError,
    HealthConsentRequiredError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from nutribot.events import EventBus
from nutribot.llm.chain import ProviderChain
from nutribot.llm.rules import RuleBasedResponder
from nutribot.privacy.gate import ConsentGate
from nutribot.privacy.pipeline import PrivacyPipeline
from nutribot.schemas.events import EventType
from nutribot.security.audit import AuditLogger
from nutribot.security.consent import ConsentManager
from nutribot.security.encryption import FieldEncryptor
from nutribot.storage.ports import Repositories


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider("local")


@pytest.fixture
def consents(repos: Repositories, bus: EventBus) -> ConsentManager:
    bus.subscribe(AuditLogger(repos.audit).on_event)
    return ConsentManager(repos.consents, bus)


@pytest.fixture
def make_service(repos: Repositories, bus: EventBus, encryptor: FieldEncryptor, consents: ConsentManager):
    """Factory for an AssessmentService over the given chain."""
    def _make(chain: ProviderChain, total: int = 15) -> AssessmentService:
        return AssessmentService(
            repository=repos.assessments,
            gate=ConsentGate(consents, repos.restrictions, bus),
            pipeline=PrivacyPipeline(bus),
            chain=chain,
            encryptor=encryptor,
            bus=bus,
            settings=AssessmentSettings(total_questions=total, minutes_per_question=2),
        )
    return _make


@pytest.fixture
def service(make_service, provider: ScriptedProvider, bus: EventBus) -> AssessmentService:
    return make_service(ProviderChain([provider], bus, fallback=RuleBasedResponder()))


async def _started(service: AssessmentService, consents: ConsentManager, context=None) -> dict:
    await grant(consents)
    return await service.start(OWNER, PROFILE, context or make_context())


# ── start ────────────────────────────────────────────────────────────


class TestStart:
    @pytest.mark.asyncio()
    async def test_returns_first_question(self, service, consents, provider) -> None:
        result = await _started(service, consents)
        assert result["status"] == "in_progress"
        assert result["firstQuestion"] == {"id": "q1", "text": "local reply 1"}
        assert result["progress"] == 0
        assert result["estimatedCompletionMinutes"] == 30
        assert provider.requests[0].question_number == 1

    @pytest.mark.asyncio()
    async def test_health_data_stored_encrypted(self, service, consents, repos) -> None:
        result = await _started(service, consents)
        record = await repos.assessments.find_by_id_and_owner(uuid.UUID(result["id"]), OWNER)
        assert "frutos secos" not in record.raw_health_data
        assert "frutos secos" not in record.anonymized_health_data

    @pytest.mark.asyncio()
    async def test_rejected_without_consent_token(self, service, consents, provider, repos) -> None:
        await grant(consents)
        with pytest.raises(HealthConsentRequiredError):
            await service.start(OWNER, PROFILE, make_context(consent_valid=False))
        assert provider.requests == []
        assert len(repos.assessments) == 0

    @pytest.mark.asyncio()
    async def test_prompt_carries_only_anonymized_data(self, service, consents, provider) -> None:
        await grant(consents)
        profile = {**PROFILE, "goals": ["me llamo Ana Ruiz y quiero correr"], "email": "ana@example.com"}
        await service.start(OWNER, profile, make_context())
        prompt = provider.requests[0].prompt + provider.requests[0].system_prompt
        assert "Ana Ruiz" not in prompt
        assert "ana@example.com" not in prompt


# ── answers ──────────────────────────────────────────────────────────


class TestAnswerLoop:
    @pytest.mark.asyncio()
    async def test_fifteen_answers_complete_the_assessment(self, service, consents, repos) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        question = started["firstQuestion"]

        for n in range(1, 15):
            result = await service.submit_answer(
                assessment_id, OWNER, question["id"], f"respuesta {n}", 0.8, make_context()
            )
            question = result["nextQuestion"]
            assert question["id"] == make_question_id(n + 1)

        assert result["status"] == "in_progress"
        assert result["progress"] == 93

        final = await service.submit_answer(assessment_id, OWNER, question["id"], "última", None, make_context())
        assert final["status"] == "completed"
        assert final["progress"] == 100
        assert final["recommendations"]

        view = await service.get(assessment_id, OWNER, make_context())
        assert view["completedQuestions"] == 15
        assert view["currentQuestion"] is None
        assert view["completedAt"] is not None
        assert view["answers"][-1]["confidence"] == 1.0
        assert EventType.ASSESSMENT_COMPLETED.value in [e.event_type for e in repos.audit.entries]

    @pytest.mark.asyncio()
    async def test_progress_rounds_half_up(self, make_service, consents, bus) -> None:
        service = make_service(ProviderChain([ScriptedProvider()], bus), total=8)
        started = await _started(service, consents)
        result = await service.submit_answer(uuid.UUID(started["id"]), OWNER, "q1", "sí", None, make_context())
        assert result["progress"] == 13

    @pytest.mark.asyncio()
    async def test_duplicate_answer_rejected(self, service, consents, provider) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        await service.submit_answer(assessment_id, OWNER, "q1", "sí", 0.9, make_context())
        calls = len(provider.requests)

        with pytest.raises(DuplicateAnswerError):
            await service.submit_answer(assessment_id, OWNER, "q1", "otra vez", 0.9, make_context())
        assert len(provider.requests) == calls
        view = await service.get(assessment_id, OWNER, make_context())
        assert view["completedQuestions"] == 1

    @pytest.mark.asyncio()
    async def test_concurrent_duplicates_apply_once(self, service, consents) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        results = await asyncio.gather(
            service.submit_answer(assessment_id, OWNER, "q1", "a", 0.5, make_context()),
            service.submit_answer(assessment_id, OWNER, "q1", "b", 0.5, make_context()),
            return_exceptions=True,
        )
        assert sum(isinstance(r, DuplicateAnswerError) for r in results) == 1
        view = await service.get(assessment_id, OWNER, make_context())
        assert view["completedQuestions"] == 1

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("question_id", ["q9", "q2", "pregunta-libre"])
    async def test_only_the_pending_question_is_answerable(self, service, consents, provider, question_id) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        calls = len(provider.requests)

        with pytest.raises(ValidationError, match="not the pending question"):
            await service.submit_answer(assessment_id, OWNER, question_id, "sí", 0.9, make_context())
        assert len(provider.requests) == calls
        view = await service.get(assessment_id, OWNER, make_context())
        assert view["completedQuestions"] == 0
        assert view["currentQuestion"] == started["firstQuestion"]

    @pytest.mark.asyncio()
    async def test_unmatched_pair_is_not_found(self, service, consents) -> None:
        started = await _started(service, consents)
        with pytest.raises(NotFoundError):
            await service.submit_answer(uuid.UUID(started["id"]), OTHER_OWNER, "q1", "a", None, make_context())
        with pytest.raises(NotFoundError):
            await service.submit_answer(uuid.uuid4(), OWNER, "q1", "a", None, make_context())

    @pytest.mark.asyncio()
    async def test_completed_assessment_takes_no_answers(self, make_service, consents, bus) -> None:
        service = make_service(ProviderChain([ScriptedProvider()], bus), total=1)
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        await service.submit_answer(assessment_id, OWNER, "q1", "a", None, make_context())
        with pytest.raises(NotFoundError):
            await service.submit_answer(assessment_id, OWNER, "q2", "b", None, make_context())


# ── retry ────────────────────────────────────────────────────────────


class TestNextQuestionRetry:
    @pytest.mark.asyncio()
    async def test_resumes_after_provider_failure(self, make_service, consents, bus, repos) -> None:
        provider = ScriptedProvider("local")
        service = make_service(ProviderChain([provider], bus, fallback=None))
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])

        provider.failing = True
        with pytest.raises(ProviderError):
            await service.submit_answer(assessment_id, OWNER, "q1", "sí", 1.0, make_context())

        # The answer was committed before the provider call
        record = await repos.assessments.find_by_id_and_owner(assessment_id, OWNER)
        assert record.answered_count == 1
        assert record.pending_question is None

        provider.failing = False
        retried = await service.next_question(assessment_id, OWNER, make_context())
        assert retried["nextQuestion"]["id"] == "q2"
        assert retried["progress"] == 7

        calls = len(provider.requests)
        again = await service.next_question(assessment_id, OWNER, make_context())
        assert again["nextQuestion"] == retried["nextQuestion"]
        assert len(provider.requests) == calls

    @pytest.mark.asyncio()
    async def test_no_answers_while_no_question_is_pending(self, make_service, consents, bus, repos) -> None:
        provider = ScriptedProvider("local")
        service = make_service(ProviderChain([provider], bus, fallback=None))
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])

        provider.failing = True
        with pytest.raises(ProviderError):
            await service.submit_answer(assessment_id, OWNER, "q1", "sí", 1.0, make_context())

        provider.failing = False
        with pytest.raises(ValidationError, match="No question is pending"):
            await service.submit_answer(assessment_id, OWNER, "q2", "quizás", 1.0, make_context())
        record = await repos.assessments.find_by_id_and_owner(assessment_id, OWNER)
        assert record.answered_count == 1

        retried = await service.next_question(assessment_id, OWNER, make_context())
        result = await service.submit_answer(
            assessment_id, OWNER, retried["nextQuestion"]["id"], "quizás", 1.0, make_context()
        )
        assert result["nextQuestion"]["id"] == "q3"

    @pytest.mark.asyncio()
    async def test_falls_back_to_rule_based_questions(self, make_service, consents, bus) -> None:
        chain = ProviderChain([ScriptedProvider("local", failing=True)], bus, fallback=RuleBasedResponder())
        service = make_service(chain)
        started = await _started(service, consents)
        assert started["firstQuestion"]["text"]
        result = await service.submit_answer(uuid.UUID(started["id"]), OWNER, "q1", "sí", None, make_context())
        assert result["nextQuestion"]["id"] == "q2"


# ── read / delete ────────────────────────────────────────────────────


class TestGetAndDelete:
    @pytest.mark.asyncio()
    async def test_health_data_only_on_request(self, service, consents) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        assert "healthData" not in await service.get(assessment_id, OWNER, make_context())
        view = await service.get(assessment_id, OWNER, make_context(include_health_data=True))
        assert view["healthData"]["allergies"] == ["frutos secos"]

    @pytest.mark.asyncio()
    async def test_other_owner_cannot_read(self, service, consents) -> None:
        started = await _started(service, consents)
        with pytest.raises(NotFoundError):
            await service.get(uuid.UUID(started["id"]), OTHER_OWNER, make_context())

    @pytest.mark.asyncio()
    async def test_delete_then_get_is_not_found(self, service, consents, repos) -> None:
        started = await _started(service, consents)
        assessment_id = uuid.UUID(started["id"])
        await service.delete(assessment_id, OWNER)
        with pytest.raises(NotFoundError):
            await service.get(assessment_id, OWNER, make_context())
        with pytest.raises(NotFoundError):
            await service.delete(assessment_id, OWNER)
        assert EventType.ASSESSMENT_DELETED.value in [e.event_type for e in repos.audit.entries]
