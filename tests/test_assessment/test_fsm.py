"""Tests for the assessment lifecycle FSM."""

from __future__ import annotations

import uuid

import pytest

from nutribot.assessment.fsm import AssessmentFSM, InvalidTransitionError
from nutribot.assessment.states import TRANSITIONS
from nutribot.events import EventBus
from nutribot.models.assessment import Assessment, compute_progress
from nutribot.models.enums import AssessmentStatus
from nutribot.schemas.events import EventType, SystemEvent


@pytest.fixture()
def make_fsm(bus: EventBus):
    """Factory to create an FSM over an assessment in a given state."""
    def _make(state: AssessmentStatus = AssessmentStatus.IN_PROGRESS) -> AssessmentFSM:
        assessment = Assessment(id=uuid.uuid4(), owner_id="owner-1", status=state.value)
        return AssessmentFSM(assessment, bus)
    return _make


class TestTransitions:
    @pytest.mark.asyncio()
    async def test_complete_then_restrict_then_delete(self, make_fsm):
        fsm = make_fsm()

        await fsm.transition("complete")
        assert fsm.current_state == AssessmentStatus.COMPLETED
        assert fsm.assessment.status == "completed"

        await fsm.transition("restrict")
        assert fsm.current_state == AssessmentStatus.RESTRICTED

        await fsm.transition("delete")
        assert fsm.current_state == AssessmentStatus.DELETED
        assert fsm.is_terminal

    @pytest.mark.asyncio()
    async def test_no_way_back(self, make_fsm):
        fsm = make_fsm(AssessmentStatus.COMPLETED)
        assert not fsm.can_transition("complete")
        with pytest.raises(InvalidTransitionError):
            await fsm.transition("complete")
        assert fsm.current_state == AssessmentStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_restricted_cannot_complete(self, make_fsm):
        fsm = make_fsm(AssessmentStatus.RESTRICTED)
        assert fsm.get_valid_triggers() == ["delete"]
        with pytest.raises(InvalidTransitionError):
            await fsm.transition("complete")

    @pytest.mark.asyncio()
    async def test_deleted_is_terminal(self, make_fsm):
        fsm = make_fsm(AssessmentStatus.DELETED)
        assert fsm.is_terminal
        assert fsm.get_valid_triggers() == []

    def test_every_state_in_map(self):
        assert set(TRANSITIONS) == set(AssessmentStatus)

    def test_delete_reachable_from_every_live_state(self):
        for state, triggers in TRANSITIONS.items():
            if state is not AssessmentStatus.DELETED:
                assert triggers["delete"] is AssessmentStatus.DELETED

    @pytest.mark.asyncio()
    async def test_emits_state_changed(self, make_fsm, bus: EventBus):
        seen: list[SystemEvent] = []

        async def record(event: SystemEvent) -> None:
            seen.append(event)

        bus.subscribe(record)
        fsm = make_fsm()
        await fsm.transition("complete")
        assert seen[0].event_type is EventType.ASSESSMENT_STATE_CHANGED
        assert seen[0].data == {"from_state": "in_progress", "to_state": "completed", "trigger": "complete"}


class TestProgress:
    @pytest.mark.parametrize(
        ("answered", "total", "expected"),
        [
            (0, 15, 0), (1, 15, 7), (14, 15, 93), (15, 15, 100), (20, 15, 100), (3, 0, 0),
            # exact halves round up
            (1, 8, 13), (5, 8, 63), (1, 200, 1),
        ],
    )
    def test_compute_progress(self, answered, total, expected):
        assert compute_progress(answered, total) == expected
