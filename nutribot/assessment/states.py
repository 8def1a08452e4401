"""Assessment lifecycle transition map.

Status only moves forward. `deleted` is terminal and the record is purged as
part of the same operation, so nothing ever persists in that state.
"""

from __future__ import annotations

from nutribot.models.enums import AssessmentStatus

# Transition map: {current_state: {trigger_name: next_state}}
TRANSITIONS: dict[AssessmentStatus, dict[str, AssessmentStatus]] = {
    AssessmentStatus.IN_PROGRESS: {
        "complete": AssessmentStatus.COMPLETED,
        "restrict": AssessmentStatus.RESTRICTED,
        "delete": AssessmentStatus.DELETED,
    },
    AssessmentStatus.COMPLETED: {
        "restrict": AssessmentStatus.RESTRICTED,
        "delete": AssessmentStatus.DELETED,
    },
    AssessmentStatus.RESTRICTED: {
        "delete": AssessmentStatus.DELETED,
    },
    AssessmentStatus.DELETED: {},
}
