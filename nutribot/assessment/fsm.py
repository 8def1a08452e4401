"""Finite state machine for the assessment lifecycle.

Validates every status change against the transition map and emits
ASSESSMENT_STATE_CHANGED. Services never assign `status` directly.
"""

from __future__ import annotations

import logging

from nutribot.assessment.states import TRANSITIONS
from nutribot.events import EventBus
from nutribot.models.assessment import Assessment
from nutribot.models.enums import AssessmentStatus
from nutribot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class InvalidTransitionError(ValueError):
    """A trigger that is not valid from the current state."""


class AssessmentFSM:
    """Applies transitions to one Assessment record."""

    def __init__(self, assessment: Assessment, bus: EventBus) -> None:
        self.assessment = assessment
        self._bus = bus

    @property
    def current_state(self) -> AssessmentStatus:
        return AssessmentStatus(self.assessment.status)

    def can_transition(self, trigger: str) -> bool:
        return trigger in TRANSITIONS.get(self.current_state, {})

    def get_valid_triggers(self) -> list[str]:
        return list(TRANSITIONS.get(self.current_state, {}).keys())

    async def transition(self, trigger: str) -> AssessmentStatus:
        """Execute a state transition.

        Raises:
            InvalidTransitionError: If the trigger is not valid from the current state.
        """
        old_state = self.current_state
        state_transitions = TRANSITIONS.get(old_state, {})
        if trigger not in state_transitions:
            msg = (
                f"Invalid transition: {old_state.value} --{trigger}--> ??? "
                f"(valid: {list(state_transitions.keys())})"
            )
            raise InvalidTransitionError(msg)

        new_state = state_transitions[trigger]
        self.assessment.status = new_state.value

        logger.info(
            "State transition: %s --%s--> %s (assessment=%s)",
            old_state.value,
            trigger,
            new_state.value,
            self.assessment.id,
        )

        await self._bus.emit(SystemEvent(
            event_type=EventType.ASSESSMENT_STATE_CHANGED,
            assessment_id=self.assessment.id,
            owner_id=self.assessment.owner_id,
            data={
                "from_state": old_state.value,
                "to_state": new_state.value,
                "trigger": trigger,
            },
            source_module="assessment.fsm",
        ))
        return new_state

    @property
    def is_terminal(self) -> bool:
        return len(TRANSITIONS.get(self.current_state, {})) == 0
