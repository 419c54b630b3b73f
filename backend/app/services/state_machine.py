"""
Complaint State Machine

Validates and applies complaint status transitions.

    SUBMITTED ──> UNDER_REVIEW ──> IN_PROGRESS ──> RESOLVED ──> CLOSED
        │              │                │
        └──────────────┴────────────────┴──> REJECTED

CLOSED and REJECTED are terminal. Self-loops are not edges: asking for the
current status is an InvalidTransition, so callers must detect no-change
requests themselves.
"""

import logging
from collections import deque

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import Principal
from app.auth.permissions import Action
from app.auth.policy import require
from app.database import utcnow
from app.errors import InvalidTransitionError
from app.middleware.metrics import complaint_transitions_total
from app.models import Complaint, ComplaintStatus
from app.services.audit_service import AuditService
from app.services.complaint_service import load_complaint, parse_status
from app.services.store import atomic

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: dict[ComplaintStatus, frozenset[ComplaintStatus]] = {
    ComplaintStatus.SUBMITTED: frozenset({ComplaintStatus.UNDER_REVIEW, ComplaintStatus.REJECTED}),
    ComplaintStatus.UNDER_REVIEW: frozenset({ComplaintStatus.IN_PROGRESS, ComplaintStatus.REJECTED}),
    ComplaintStatus.IN_PROGRESS: frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED}),
    ComplaintStatus.RESOLVED: frozenset({ComplaintStatus.CLOSED}),
    ComplaintStatus.CLOSED: frozenset(),  # terminal
    ComplaintStatus.REJECTED: frozenset(),  # terminal
}


def allowed_transitions(status: str | ComplaintStatus) -> list[ComplaintStatus]:
    return sorted(VALID_TRANSITIONS[parse_status(status)], key=lambda s: s.value)


def is_terminal(status: str | ComplaintStatus) -> bool:
    return not VALID_TRANSITIONS[parse_status(status)]


def reachable_statuses(start: ComplaintStatus = ComplaintStatus.SUBMITTED) -> set[ComplaintStatus]:
    """Every status reachable from `start` along valid edges (including start)."""
    seen = {start}
    queue = deque([start])
    while queue:
        for nxt in VALID_TRANSITIONS[queue.popleft()]:
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


def validate_transition(current: str | ComplaintStatus, requested: str | ComplaintStatus) -> ComplaintStatus:
    """Return the requested status if `current -> requested` is an edge."""
    current_status = parse_status(current)
    requested_status = parse_status(requested)
    allowed = VALID_TRANSITIONS[current_status]
    if requested_status not in allowed:
        raise InvalidTransitionError(
            current_status.value,
            requested_status.value,
            sorted(s.value for s in allowed),
        )
    return requested_status


class ComplaintStateMachine:
    """Authorizes and applies status transitions on stored complaints."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def transition(
        self,
        complaint_id: int,
        requested_status: str | ComplaintStatus,
        principal: Principal,
    ) -> Complaint:
        """
        Move a complaint to `requested_status`.

        Raises NotFoundError, ForbiddenError, ValidationFailedError or
        InvalidTransitionError before anything is written. The row is locked
        for the duration of the unit where the backend supports it, and the
        status write only lands if the status is still the one validated, so
        of two racing transitions the second never overwrites the first.
        """
        async with atomic(self.session, "transition"):
            complaint = await load_complaint(self.session, complaint_id, for_update=True)
            require(principal, Action.TRANSITION_STATUS, complaint)
            await self.apply(complaint, requested_status, principal)
        return complaint

    async def apply(
        self,
        complaint: Complaint,
        requested_status: str | ComplaintStatus,
        principal: Principal,
    ) -> tuple[ComplaintStatus, ComplaintStatus]:
        """
        Validate and apply a transition on an already-authorized row.

        Raises InvalidTransitionError against the stored status when another
        writer moved the complaint since it was loaded.

        Must be called inside the caller's atomic unit. Returns (old, new).
        """
        old_status = parse_status(complaint.status)
        new_status = validate_transition(old_status, requested_status)

        # Compare-and-set: the row lock is a no-op on SQLite
        result = await self.session.execute(
            update(Complaint)
            .where(Complaint.id == complaint.id, Complaint.status == old_status.value)
            .values(status=new_status.value, updated_at=utcnow())
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 0:
            current = parse_status(await self.session.scalar(
                select(Complaint.status).where(Complaint.id == complaint.id)
            ))
            logger.info(
                "Complaint %s moved to %s concurrently; %s -> %s refused",
                complaint.id, current.value, old_status.value, new_status.value,
            )
            raise InvalidTransitionError(
                current.value,
                new_status.value,
                sorted(s.value for s in VALID_TRANSITIONS[current]),
            )

        await self.audit.log_status_changed(
            complaint_id=complaint.id,
            old_status=old_status.value,
            new_status=new_status.value,
            actor=principal.actor,
        )
        complaint_transitions_total.labels(
            from_status=old_status.value,
            to_status=new_status.value,
        ).inc()
        logger.info(
            "Complaint %s: %s -> %s by %s",
            complaint.id, old_status.value, new_status.value, principal.actor,
        )
        return old_status, new_status
