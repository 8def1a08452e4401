"""Assessment orchestrator — the question/answer/recommendation lifecycle.

Every provider-bound step runs the consent gate first, then the privacy
pipeline, then the provider chain. Answers are committed before any provider
call: if question generation fails or the request is cancelled, the answer
stays recorded, the assessment stays in_progress with no pending question, and
the client resumes with `next_question`.

Concurrent steps on the same assessment id are serialized by a KeyedLock.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from nutribot.assessment.fsm import AssessmentFSM
from nutribot.assessment.locks import KeyedLock
from nutribot.config import AssessmentSettings
from nutribot.errors import DuplicateAnswerError, NotFoundError, ValidationError
from nutribot.events import EventBus
from nutribot.llm import prompts
from nutribot.llm.chain import ProviderChain
from nutribot.models.assessment import Assessment, compute_progress
from nutribot.models.enums import AssessmentStatus, OperationCategory
from nutribot.privacy.context import PrivacyContext
from nutribot.privacy.gate import ConsentGate
from nutribot.privacy.pipeline import PrivacyPipeline
from nutribot.schemas.events import EventType, SystemEvent
from nutribot.security.encryption import FieldEncryptor
from nutribot.storage.ports import AssessmentRepository

logger = logging.getLogger(__name__)

CATEGORY = OperationCategory.HEALTH_ASSESSMENT


def make_question_id(number: int) -> str:
    """Stable id for the 1-based question number."""
    return f"q{number}"


class AssessmentService:
    def __init__(
        self,
        *,
        repository: AssessmentRepository,
        gate: ConsentGate,
        pipeline: PrivacyPipeline,
        chain: ProviderChain,
        encryptor: FieldEncryptor,
        bus: EventBus,
        settings: AssessmentSettings,
        locks: KeyedLock | None = None,
    ) -> None:
        self._repository = repository
        self._gate = gate
        self._pipeline = pipeline
        self._chain = chain
        self._encryptor = encryptor
        self._bus = bus
        self._settings = settings
        self._locks = locks or KeyedLock()

    def estimated_completion_minutes(self, total_questions: int) -> int:
        return total_questions * self._settings.minutes_per_question

    # ── Start ────────────────────────────────────────────────────────

    async def start(
        self,
        owner_id: str,
        health_data: Mapping[str, Any],
        context: PrivacyContext,
    ) -> dict[str, Any]:
        """Create an assessment and ask the first question."""
        await self._gate.check(owner_id, CATEGORY, context)

        total = self._settings.total_questions
        if total < 1:
            msg = "totalQuestions must be at least 1"
            raise ValidationError(msg)

        raw = dict(health_data)
        anonymized = await self._pipeline.prepare(raw, CATEGORY, context, owner_id=owner_id)

        assessment_id = uuid.uuid4()
        result = await self._chain.generate(
            prompts.question_request(context, anonymized, [], 1, total),
            owner_id=owner_id,
            assessment_id=assessment_id,
        )
        first_question = {"id": make_question_id(1), "text": result.text}

        now = datetime.now(UTC)
        assessment = Assessment(
            id=assessment_id,
            created_at=now,
            updated_at=now,
            owner_id=owner_id,
            status=AssessmentStatus.IN_PROGRESS.value,
            raw_health_data=self._encryptor.encrypt_json(raw),
            anonymized_health_data=self._encryptor.encrypt_json(anonymized),
            answers=self._encryptor.encrypt_json([]),
            pending_question=self._encryptor.encrypt_json(first_question),
            recommendations=None,
            total_questions=total,
            answered_count=0,
            progress=0,
            completed_at=None,
        )
        await self._repository.save(assessment)

        await self._bus.emit(SystemEvent(
            event_type=EventType.ASSESSMENT_STARTED,
            assessment_id=assessment_id,
            owner_id=owner_id,
            actor_role="user",
            data={"total_questions": total, "model": result.model},
            source_module="assessment.engine",
        ))
        logger.info("Assessment started: id=%s owner=%s total=%d", assessment_id, owner_id, total)

        return {
            "id": str(assessment_id),
            "status": assessment.status,
            "firstQuestion": first_question,
            "progress": 0,
            "estimatedCompletionMinutes": self.estimated_completion_minutes(total),
        }

    # ── Answer ───────────────────────────────────────────────────────

    async def submit_answer(
        self,
        assessment_id: uuid.UUID,
        owner_id: str,
        question_id: str,
        answer_text: str,
        confidence: float | None,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        """Record an answer, then ask the next question or finish."""
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            msg = "confidence must be between 0 and 1"
            raise ValidationError(msg)

        async with self._locks(assessment_id):
            assessment = await self._load_in_progress(assessment_id, owner_id)
            answers: list[dict[str, Any]] = self._encryptor.decrypt_json(assessment.answers, default=[])

            if any(a["questionId"] == question_id for a in answers):
                msg = f"Question {question_id} has already been answered"
                raise DuplicateAnswerError(msg)
            if len(answers) >= assessment.total_questions:
                msg = "All questions have already been answered"
                raise ValidationError(msg)

            # Only the question currently on offer can be answered
            pending = self._encryptor.decrypt_json(assessment.pending_question)
            if pending is None:
                msg = "No question is pending; request the next question first"
                raise ValidationError(msg)
            if pending["id"] != question_id:
                msg = f"Question {question_id} is not the pending question ({pending['id']})"
                raise ValidationError(msg)

            await self._gate.check(owner_id, CATEGORY, context)

            # Durable append first; the provider step below may fail
            now = datetime.now(UTC)
            answers.append({
                "questionId": question_id,
                "answer": answer_text,
                "confidence": 1.0 if confidence is None else confidence,
                "timestamp": now.isoformat(),
            })
            assessment.answers = self._encryptor.encrypt_json(answers)
            assessment.answered_count = len(answers)
            assessment.progress = compute_progress(len(answers), assessment.total_questions)
            assessment.pending_question = None
            assessment.updated_at = now
            await self._repository.save(assessment)

            await self._bus.emit(SystemEvent(
                event_type=EventType.ASSESSMENT_ANSWERED,
                assessment_id=assessment.id,
                owner_id=owner_id,
                actor_role="user",
                data={"question_id": question_id, "answered": len(answers)},
                source_module="assessment.engine",
            ))

            return await self._advance(assessment, answers, context)

    async def next_question(
        self,
        assessment_id: uuid.UUID,
        owner_id: str,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        """Return the pending question, or regenerate the step that failed."""
        async with self._locks(assessment_id):
            assessment = await self._load_in_progress(assessment_id, owner_id)
            pending = self._encryptor.decrypt_json(assessment.pending_question)
            if pending is not None:
                return {
                    "status": assessment.status,
                    "nextQuestion": pending,
                    "progress": assessment.progress,
                }

            await self._gate.check(owner_id, CATEGORY, context)
            answers = self._encryptor.decrypt_json(assessment.answers, default=[])
            return await self._advance(assessment, answers, context)

    async def _advance(
        self,
        assessment: Assessment,
        answers: list[dict[str, Any]],
        context: PrivacyContext,
    ) -> dict[str, Any]:
        if len(answers) >= assessment.total_questions:
            return await self._complete(assessment, answers, context)
        return await self._ask_next(assessment, answers, context)

    async def _anonymized_history(
        self,
        assessment: Assessment,
        answers: list[dict[str, Any]],
        context: PrivacyContext,
    ) -> tuple[dict[str, Any], list[Any]]:
        health = self._encryptor.decrypt_json(assessment.anonymized_health_data, default={})
        prepared = await self._pipeline.prepare(
            {"answers": answers}, CATEGORY, context, owner_id=assessment.owner_id
        )
        return health, list(prepared.get("answers", []))

    async def _ask_next(
        self,
        assessment: Assessment,
        answers: list[dict[str, Any]],
        context: PrivacyContext,
    ) -> dict[str, Any]:
        number = len(answers) + 1
        health, history = await self._anonymized_history(assessment, answers, context)
        result = await self._chain.generate(
            prompts.question_request(context, health, history, number, assessment.total_questions),
            owner_id=assessment.owner_id,
            assessment_id=assessment.id,
        )

        pending = {"id": make_question_id(number), "text": result.text}
        assessment.pending_question = self._encryptor.encrypt_json(pending)
        assessment.updated_at = datetime.now(UTC)
        await self._repository.save(assessment)

        return {
            "status": assessment.status,
            "nextQuestion": pending,
            "progress": assessment.progress,
        }

    async def _complete(
        self,
        assessment: Assessment,
        answers: list[dict[str, Any]],
        context: PrivacyContext,
    ) -> dict[str, Any]:
        health, history = await self._anonymized_history(assessment, answers, context)
        result = await self._chain.generate(
            prompts.recommendations_request(context, health, history),
            owner_id=assessment.owner_id,
            assessment_id=assessment.id,
        )

        await AssessmentFSM(assessment, self._bus).transition("complete")
        now = datetime.now(UTC)
        assessment.recommendations = self._encryptor.encrypt_json(result.text)
        assessment.progress = 100
        assessment.completed_at = now
        assessment.updated_at = now
        await self._repository.save(assessment)

        await self._bus.emit(SystemEvent(
            event_type=EventType.ASSESSMENT_COMPLETED,
            assessment_id=assessment.id,
            owner_id=assessment.owner_id,
            data={"answered": len(answers), "model": result.model},
            source_module="assessment.engine",
        ))
        logger.info("Assessment completed: id=%s model=%s", assessment.id, result.model)

        return {
            "status": assessment.status,
            "recommendations": result.text,
            "progress": 100,
        }

    # ── Read / delete ────────────────────────────────────────────────

    async def get(
        self,
        assessment_id: uuid.UUID,
        owner_id: str,
        context: PrivacyContext,
    ) -> dict[str, Any]:
        """Owner-scoped projection. Raw health data only when the context authorizes it."""
        assessment = await self._repository.find_by_id_and_owner(assessment_id, owner_id)
        if assessment is None:
            msg = "Assessment not found"
            raise NotFoundError(msg)
        projection = self.project(assessment)
        if context.include_health_data:
            projection["healthData"] = self._encryptor.decrypt_json(assessment.raw_health_data, default={})
        return projection

    def project(self, assessment: Assessment) -> dict[str, Any]:
        """Decrypted view of an assessment without the raw health data."""
        answers = self._encryptor.decrypt_json(assessment.answers, default=[])
        projection: dict[str, Any] = {
            "id": str(assessment.id),
            "status": assessment.status,
            "progress": compute_progress(len(answers), assessment.total_questions)
            if assessment.status == AssessmentStatus.IN_PROGRESS.value
            else assessment.progress,
            "totalQuestions": assessment.total_questions,
            "completedQuestions": len(answers),
            "currentQuestion": self._encryptor.decrypt_json(assessment.pending_question),
            "answers": answers,
            "estimatedCompletionMinutes": self.estimated_completion_minutes(assessment.total_questions),
            "createdAt": assessment.created_at.isoformat() if assessment.created_at else None,
            "lastUpdated": assessment.updated_at.isoformat() if assessment.updated_at else None,
            "completedAt": assessment.completed_at.isoformat() if assessment.completed_at else None,
        }
        if assessment.recommendations is not None:
            projection["recommendations"] = self._encryptor.decrypt_json(assessment.recommendations)
        return projection

    async def delete(self, assessment_id: uuid.UUID, owner_id: str) -> None:
        """Irreversible hard delete. A repeat delete is NotFound."""
        async with self._locks(assessment_id):
            assessment = await self._repository.find_by_id_and_owner(assessment_id, owner_id)
            if assessment is None:
                msg = "Assessment not found"
                raise NotFoundError(msg)

            await AssessmentFSM(assessment, self._bus).transition("delete")
            if not await self._repository.delete_by_id_and_owner(assessment_id, owner_id):
                msg = "Assessment not found"
                raise NotFoundError(msg)

        await self._bus.emit(SystemEvent(
            event_type=EventType.ASSESSMENT_DELETED,
            assessment_id=assessment_id,
            owner_id=owner_id,
            actor_role="user",
            data={"reason": "user_request"},
            source_module="assessment.engine",
        ))
        logger.info("Assessment deleted: id=%s owner=%s", assessment_id, owner_id)

    # ── Internals ────────────────────────────────────────────────────

    async def _load_in_progress(self, assessment_id: uuid.UUID, owner_id: str) -> Assessment:
        assessment = await self._repository.find_by_id_and_owner(assessment_id, owner_id)
        if assessment is None or assessment.status != AssessmentStatus.IN_PROGRESS.value:
            msg = "Assessment not found or not in progress"
            raise NotFoundError(msg)
        return assessment
