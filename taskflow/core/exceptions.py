"""Error kinds raised by the task store, assignment and snapshot services."""


class TaskflowError(Exception):
    """Base class for service-level failures reported to callers."""

    default_detail = "Task operation failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(TaskflowError):
    """Input rejected before any state change (missing reason, bad target user)."""

    default_detail = "Invalid request"


class NotFoundError(TaskflowError):
    default_detail = "Not found"


class ConflictError(TaskflowError):
    """The edge is no longer in a state that permits the transition; refetch and retry."""

    default_detail = "Assignment state changed"


class TransientFault(TaskflowError):
    """The underlying store could not be reached."""

    default_detail = "Task store unavailable"
