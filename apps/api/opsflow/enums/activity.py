"""Activity log enums."""

from enum import Enum


class StepActivityType(str, Enum):
    """Actions recorded in the step activity log."""

    INSTANTIATED = "instantiated"
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    DELAYED = "delayed"
    REORDERED = "reordered"
    DELETED = "deleted"
    DAILY_RESET = "daily_reset"
