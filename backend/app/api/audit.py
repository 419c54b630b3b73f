"""Audit trail for admins: page through workflow events and check the hash chain."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, require
from app.auth.context import Principal
from app.auth.permissions import Action
from app.schemas.schemas import AuditEntry, AuditListResponse, IntegrityCheckResponse
from app.services.audit_service import AuditFilters, AuditService

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=AuditListResponse)
async def list_audit_entries(
    event_type: str | None = Query(None, description="e.g. status_changed, agency_deleted"),
    resource_type: str | None = Query(None, description="complaint, agency, category or user"),
    resource_id: str | None = Query(None),
    actor: str | None = Query(None, description="Principal actor, e.g. AGENCY_OFFICIAL:7@agency:2"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(require(Action.READ_AUDIT)),
    db: AsyncSession = Depends(get_db),
) -> AuditListResponse:
    """Newest entries first. All filters combine with AND."""
    filters = AuditFilters(event_type=event_type, resource_type=resource_type,
                           resource_id=resource_id, actor=actor)
    entries, total = await AuditService(db).page(filters, limit=size, offset=(page - 1) * size)

    return AuditListResponse(
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size if total > 0 else 1,
        items=[AuditEntry.model_validate(e, from_attributes=True) for e in entries],
    )


@router.get("/integrity", response_model=IntegrityCheckResponse)
async def check_integrity(
    principal: Principal = Depends(require(Action.READ_AUDIT)),
    db: AsyncSession = Depends(get_db),
) -> IntegrityCheckResponse:
    report = await AuditService(db).verify_chain()
    return IntegrityCheckResponse(**report._asdict())
