"""
Workflow error taxonomy.

Every failure the engine can report is one of these kinds. Each carries the
HTTP status it maps to at the API boundary; the exception handler registered
in `app.main` turns them into `{"detail", "error"}` JSON bodies so the kind
survives all the way to the client.
"""

from __future__ import annotations


class WorkflowError(Exception):
    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ForbiddenError(WorkflowError):
    """Authorization denied.

    `conceal` is set for scope denials (the row belongs to someone else), in
    which case the boundary answers 404 so existence is not confirmed.
    """

    status_code = 403
    kind = "forbidden"

    def __init__(self, detail: str, *, conceal: bool = False):
        super().__init__(detail)
        self.conceal = conceal
        if conceal:
            self.status_code = 404


class NotFoundError(WorkflowError):
    status_code = 404
    kind = "not_found"


class ValidationFailedError(WorkflowError):
    status_code = 400
    kind = "validation_error"


class InvalidTransitionError(WorkflowError):
    status_code = 409
    kind = "invalid_transition"

    def __init__(self, current: str, requested: str, allowed: list[str]):
        super().__init__(
            f"Invalid status transition: {current} -> {requested}. "
            f"Allowed targets: {allowed if allowed else 'none (terminal state)'}"
        )
        self.current = current
        self.requested = requested
        self.allowed = allowed


class ConflictError(WorkflowError):
    status_code = 409
    kind = "conflict"

    def __init__(self, detail: str, *, reference_count: int | None = None):
        super().__init__(detail)
        self.reference_count = reference_count


class StoreUnavailableError(WorkflowError):
    status_code = 503
    kind = "unavailable"


class StoreTimeoutError(WorkflowError):
    status_code = 504
    kind = "timeout"
