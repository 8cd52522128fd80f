"""Step-related enums."""

from enum import Enum


class EntityKind(str, Enum):
    """Entities that own an ordered step collection."""

    LEAD = "lead"
    FUND_RAISE = "fund_raise"
    FINOPS_TASK = "finops_task"


class StepStatus(str, Enum):
    """
    Step instance status.

    Lead and fund-raise steps only store pending/in_progress/completed;
    overdue is derived from the due date for them. FinOps subtasks may
    also store delayed and overdue.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"  # Explicit, reasoned pause (FinOps only)
    OVERDUE = "overdue"  # Stored only for FinOps subtasks


class DelayReason(str, Enum):
    """Reasons accepted when a step is moved to delayed."""

    TECHNICAL_ISSUE = "technical_issue"
    DATA_UNAVAILABLE = "data_unavailable"
    EXTERNAL_DEPENDENCY = "external_dependency"
    RESOURCE_CONSTRAINT = "resource_constraint"
    PROCESS_CHANGE = "process_change"
    OTHER = "other"


class SlaState(str, Enum):
    """Read-time SLA state of a step."""

    NOT_STARTED = "not_started"  # No start timestamp or no SLA to measure
    ON_TRACK = "on_track"
    WARNING = "warning"  # Within the warning window of the deadline
    OVERDUE = "overdue"
    COMPLETED = "completed"


STEP_STATUSES_BY_KIND: dict[EntityKind, frozenset[StepStatus]] = {
    EntityKind.LEAD: frozenset(
        {StepStatus.PENDING, StepStatus.IN_PROGRESS, StepStatus.COMPLETED}
    ),
    EntityKind.FUND_RAISE: frozenset(
        {StepStatus.PENDING, StepStatus.IN_PROGRESS, StepStatus.COMPLETED}
    ),
    EntityKind.FINOPS_TASK: frozenset(StepStatus),
}
