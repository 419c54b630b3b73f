"""
Complaints API

Complaint filing, scoped listing and detail, status transitions and the
response thread. Authorization is decided inside the services; errors
propagate as WorkflowError and are mapped to HTTP by the handler in main.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_principal
from app.auth.context import Principal
from app.models import Complaint, ComplaintStatus, Response
from app.schemas.schemas import (
    ComplaintCreate,
    ComplaintDetail,
    ComplaintListResponse,
    ComplaintSummary,
    ResponseCreate,
    ResponseSchema,
    StatusUpdate,
)
from app.services.complaint_service import (
    MAX_PAGE_SIZE,
    ComplaintFilters,
    ComplaintRow,
    ComplaintService,
)
from app.services.response_ledger import ResponseLedger
from app.services.state_machine import ComplaintStateMachine, allowed_transitions

router = APIRouter(prefix="/api/complaints", tags=["complaints"])


# ── Helpers ──────────────────────────────────────────────────────────────────

def _summary(row: ComplaintRow) -> ComplaintSummary:
    c = row.complaint
    return ComplaintSummary(
        id=c.id,
        title=c.title,
        status=c.status,
        priority=c.priority,
        agency_id=c.agency_id,
        agency_name=row.agency_name,
        category_id=c.category_id,
        category_name=row.category_name,
        location=c.location,
        created_at=c.created_at,
    )


def _detail(row: ComplaintRow) -> ComplaintDetail:
    c = row.complaint
    return ComplaintDetail(
        **_summary(row).model_dump(),
        description=c.description,
        submitter_id=c.submitter_id,
        updated_at=c.updated_at,
        allowed_transitions=allowed_transitions(c.status),
    )


def _response_schema(r: Response) -> ResponseSchema:
    return ResponseSchema(
        id=r.id,
        complaint_id=r.complaint_id,
        author_id=r.author_id,
        author_role=r.author_role,
        content=r.content,
        previous_status=r.previous_status,
        new_status=r.new_status,
        created_at=r.created_at,
    )


async def _detail_for(complaint: Complaint, principal: Principal, db: AsyncSession) -> ComplaintDetail:
    row = await ComplaintService(db).get_complaint(principal, complaint.id)
    return _detail(row)


# ── POST /api/complaints — file a complaint ─────────────────────────────────

@router.post("", response_model=ComplaintDetail, status_code=201)
async def create_complaint(
    body: ComplaintCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """File a new complaint (citizens only). Starts in SUBMITTED."""
    complaint = await ComplaintService(db).create_complaint(
        principal,
        title=body.title,
        description=body.description,
        category_id=body.category_id,
        agency_id=body.agency_id,
        location=body.location,
        priority=body.priority,
    )
    return await _detail_for(complaint, principal, db)


# ── GET /api/complaints — scoped listing ─────────────────────────────────────

@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    status: ComplaintStatus | None = Query(None),
    category_id: int | None = Query(None),
    agency_id: int | None = Query(None),
    search: str | None = Query(None, max_length=200),
    sort: str = Query("created_at", pattern="^(created_at|priority|status|title)$"),
    direction: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Complaints visible to the caller, newest first by default.

    Citizens see their own submissions, officials their agency's queue,
    admins everything. Out-of-scope rows are silently absent.
    """
    filters = ComplaintFilters(
        status=status,
        category_id=category_id,
        agency_id=agency_id,
        search=search,
        sort=sort,
        direction=direction,
        page=page,
        size=size,
    )
    result = await ComplaintService(db).list_complaints(principal, filters)
    return ComplaintListResponse(
        items=[_summary(row) for row in result.items],
        total=result.total,
        page=result.page,
        size=result.size,
        pages=result.pages,
    )


# ── GET /api/complaints/{complaint_id} — detail ─────────────────────────────

@router.get("/{complaint_id}", response_model=ComplaintDetail)
async def get_complaint(
    complaint_id: int,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    row = await ComplaintService(db).get_complaint(principal, complaint_id)
    return _detail(row)


# ── PATCH /api/complaints/{complaint_id}/status — transition ────────────────

@router.patch("/{complaint_id}/status", response_model=ComplaintDetail)
async def update_status(
    complaint_id: int,
    body: StatusUpdate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """
    Move a complaint along its lifecycle.

    Allowed transitions:
        SUBMITTED -> UNDER_REVIEW | REJECTED
        UNDER_REVIEW -> IN_PROGRESS | REJECTED
        IN_PROGRESS -> RESOLVED | REJECTED
        RESOLVED -> CLOSED
        CLOSED, REJECTED -> (terminal)
    """
    complaint = await ComplaintStateMachine(db).transition(complaint_id, body.status, principal)
    return await _detail_for(complaint, principal, db)


# ── Responses ────────────────────────────────────────────────────────────────

@router.post("/{complaint_id}/responses", response_model=ResponseSchema, status_code=201)
async def add_response(
    complaint_id: int,
    body: ResponseCreate,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """Append a response; if `status` is given the transition is applied atomically with it."""
    response = await ResponseLedger(db).add_response(
        complaint_id, body.content, principal, new_status=body.status,
    )
    return _response_schema(response)


@router.get("/{complaint_id}/responses", response_model=list[ResponseSchema])
async def list_responses(
    complaint_id: int,
    order: str = Query("desc", pattern="^(asc|desc)$"),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
):
    """Full response thread, newest first unless `order=asc`."""
    responses = await ResponseLedger(db).list_responses(complaint_id, principal, order=order)
    return [_response_schema(r) for r in responses]
