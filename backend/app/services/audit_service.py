"""
Audit Service

Hash-chained audit trail for every workflow mutation. Entries are written in
the same transaction as the change they describe, so a rolled-back mutation
leaves no audit entry behind.

Each entry's `current_hash` is SHA-256 over its own fields plus the previous
entry's hash; editing or removing any row breaks every hash after it.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import NamedTuple
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import AuditLog

HASHED_FIELDS = ("event_type", "actor", "action", "resource_type", "resource_id", "details")


def chain_hash(fields: dict, previous_hash: str | None) -> str:
    raw = json.dumps(
        {"content": fields, "previous_hash": previous_hash or ""},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(raw.encode()).hexdigest()


@dataclass
class AuditFilters:
    event_type: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    actor: str | None = None

    def apply(self, query: Select) -> Select:
        for column in ("event_type", "resource_type", "resource_id", "actor"):
            value = getattr(self, column)
            if value:
                query = query.where(getattr(AuditLog, column) == value)
        return query


class IntegrityReport(NamedTuple):
    valid: bool
    entries_checked: int
    first_invalid: str | None = None
    reason: str | None = None


class AuditService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_event(
        self,
        event_type: str,
        actor: str,
        action: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict | None = None,
    ) -> AuditLog:
        """
        Append one entry to the chain.

        Args:
            event_type: e.g. "complaint_created", "status_changed", "agency_deleted"
            actor: Principal.actor of whoever caused the change
            action: Human-readable description
            resource_type: "complaint", "agency", "category", "user"
            resource_id: The ID of the affected resource
            details: Event payload, hashed with the rest of the entry
        """
        previous_hash = (await self.session.execute(
            select(AuditLog.current_hash).order_by(AuditLog.id.desc()).limit(1)
        )).scalar()

        fields = {
            "event_type": event_type,
            "actor": actor,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "details": details or {},
        }
        entry = AuditLog(
            event_id=str(uuid4()),
            previous_hash=previous_hash,
            current_hash=chain_hash(fields, previous_hash),
            **fields,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    # ── Workflow events ──────────────────────────────────────────────────

    async def log_complaint_created(self, complaint_id: int, agency_id: int, priority: str, actor: str) -> AuditLog:
        return await self.log_event(
            event_type="complaint_created",
            actor=actor,
            action=f"Complaint {complaint_id} filed with agency {agency_id} ({priority})",
            resource_type="complaint",
            resource_id=str(complaint_id),
            details={"agency_id": agency_id, "priority": priority},
        )

    async def log_status_changed(self, complaint_id: int, old_status: str, new_status: str, actor: str) -> AuditLog:
        return await self.log_event(
            event_type="status_changed",
            actor=actor,
            action=f"Complaint {complaint_id} status: {old_status} → {new_status}",
            resource_type="complaint",
            resource_id=str(complaint_id),
            details={"old_status": old_status, "new_status": new_status},
        )

    async def log_response_added(self, complaint_id: int, response_id: int, new_status: str | None, actor: str) -> AuditLog:
        return await self.log_event(
            event_type="response_added",
            actor=actor,
            action=f"Response {response_id} added to complaint {complaint_id}",
            resource_type="complaint",
            resource_id=str(complaint_id),
            details={"response_id": response_id, "new_status": new_status},
        )

    async def log_reference_changed(self, resource_type: str, verb: str, resource_id: int, name: str, actor: str) -> AuditLog:
        return await self.log_event(
            event_type=f"{resource_type}_{verb}",
            actor=actor,
            action=f"{resource_type.capitalize()} '{name}' {verb}",
            resource_type=resource_type,
            resource_id=str(resource_id),
            details={"name": name},
        )

    async def log_user_changed(self, user_id: int, verb: str, changes: dict, actor: str) -> AuditLog:
        return await self.log_event(
            event_type=f"user_{verb}",
            actor=actor,
            action=f"User {user_id} {verb}",
            resource_type="user",
            resource_id=str(user_id),
            details=changes,
        )

    # ── Reads ────────────────────────────────────────────────────────────

    async def page(self, filters: AuditFilters, *, limit: int = 50, offset: int = 0) -> tuple[list[AuditLog], int]:
        """Entries matching `filters`, newest first, plus the matching total."""
        total = (await self.session.execute(
            filters.apply(select(func.count()).select_from(AuditLog))
        )).scalar() or 0

        result = await self.session.execute(
            filters.apply(select(AuditLog))
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars()), total

    async def verify_chain(self) -> IntegrityReport:
        """Walk the chain oldest first; stop at the first broken link."""
        result = await self.session.execute(select(AuditLog).order_by(AuditLog.id.asc()))

        previous_hash = None
        checked = 0
        for entry in result.scalars():
            checked += 1
            if entry.previous_hash != previous_hash:
                return IntegrityReport(False, checked, entry.event_id, "previous_hash mismatch")

            fields = {name: getattr(entry, name) for name in HASHED_FIELDS}
            if entry.current_hash != chain_hash(fields, entry.previous_hash):
                return IntegrityReport(False, checked, entry.event_id, "current_hash mismatch (data tampered)")
            previous_hash = entry.current_hash

        return IntegrityReport(True, checked)
