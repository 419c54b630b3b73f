"""
Response Ledger

Append-only record of staff responses to a complaint. A response may carry a
status transition; the response insert, the status change and their audit
entries are committed together or not at all. There is no
update or delete operation.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import Principal
from app.auth.permissions import Action
from app.auth.policy import require, require_visible
from app.config import settings
from app.errors import ValidationFailedError
from app.middleware.metrics import complaint_responses_total
from app.models import ComplaintStatus, Response
from app.services.audit_service import AuditService
from app.services.complaint_service import load_complaint
from app.services.state_machine import ComplaintStateMachine
from app.services.store import atomic, store_errors

logger = logging.getLogger(__name__)


class ResponseLedger:
    def __init__(self, session: AsyncSession, *, min_length: int | None = None):
        self.session = session
        self.audit = AuditService(session)
        self.state_machine = ComplaintStateMachine(session)
        self.min_length = settings.response_min_length if min_length is None else min_length

    async def add_response(
        self,
        complaint_id: int,
        content: str,
        principal: Principal,
        new_status: str | ComplaintStatus | None = None,
    ) -> Response:
        """
        Append a response, optionally moving the complaint to `new_status`.

        Check order: NotFound, Forbidden, ValidationFailed (content),
        InvalidTransition. All of them fire before the first write.
        """
        async with atomic(self.session, "add_response"):
            complaint = await load_complaint(self.session, complaint_id, for_update=True)
            require(principal, Action.ADD_RESPONSE, complaint)

            content = (content or "").strip()
            if len(content) < self.min_length:
                raise ValidationFailedError(
                    f"Response must be at least {self.min_length} characters"
                )

            previous_status = None
            if new_status is not None:
                old, new = await self.state_machine.apply(complaint, new_status, principal)
                previous_status, new_status = old.value, new.value

            response = Response(
                complaint_id=complaint.id,
                author_id=principal.id,
                author_role=principal.role.value,
                content=content,
                previous_status=previous_status,
                new_status=new_status,
            )
            self.session.add(response)
            await self.session.flush()

            await self.audit.log_response_added(
                complaint_id=complaint.id,
                response_id=response.id,
                new_status=new_status,
                actor=principal.actor,
            )

        complaint_responses_total.labels(with_transition=str(new_status is not None).lower()).inc()
        logger.info("Response %s added to complaint %s by %s", response.id, complaint.id, principal.actor)
        return response

    async def list_responses(
        self,
        complaint_id: int,
        principal: Principal,
        *,
        order: str = "desc",
    ) -> list[Response]:
        """
        The full response thread of a complaint the principal may read.

        `desc` is newest-first for display; `asc` is insertion (causal) order.
        """
        if order not in ("asc", "desc"):
            raise ValidationFailedError("order must be 'asc' or 'desc'")

        async with store_errors("list_responses"):
            complaint = await load_complaint(self.session, complaint_id)
            require_visible(principal, complaint, f"Complaint {complaint_id} not found")

            if order == "desc":
                ordering = (Response.created_at.desc(), Response.id.desc())
            else:
                ordering = (Response.created_at.asc(), Response.id.asc())

            result = await self.session.execute(
                select(Response)
                .where(Response.complaint_id == complaint.id)
                .order_by(*ordering)
            )
            return list(result.scalars())
