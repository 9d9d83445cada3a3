"""Project lifecycle state machine with the manager approval gate."""

from workboard.workflow.state_machine import (
    STATUS_LABELS,
    VALID_TRANSITIONS,
    ProjectWorkflowEngine,
    mirror_for,
    validate_transition,
)

__all__ = [
    "ProjectWorkflowEngine",
    "STATUS_LABELS",
    "VALID_TRANSITIONS",
    "mirror_for",
    "validate_transition",
]
