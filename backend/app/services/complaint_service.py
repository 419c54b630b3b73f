"""
Complaint Service

Complaint creation, single reads and scoped listings.

Listings apply the READ_COMPLAINT rule as a row filter (never as per-row
exceptions) AND-ed with caller filters, and order rows deterministically:
the requested sort key first, then created_at DESC, then id ASC. The total
order keeps pages from skipping or repeating rows while new complaints are
being filed.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import Principal
from app.auth.permissions import Action
from app.auth.policy import complaint_scope, require, require_visible
from app.errors import NotFoundError, ValidationFailedError
from app.middleware.metrics import complaints_created_total
from app.models import Agency, Category, Complaint, ComplaintStatus, Priority
from app.models.complaint import PRIORITY_RANK
from app.services.audit_service import AuditService
from app.services.store import atomic, store_errors

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 5
DESCRIPTION_MIN_LENGTH = 20
LOCATION_MIN_LENGTH = 3
MAX_PAGE_SIZE = 100

SORT_KEYS = ("created_at", "priority", "status", "title")


class ComplaintRow(NamedTuple):
    complaint: Complaint
    agency_name: str
    category_name: str


@dataclass
class ComplaintFilters:
    status: ComplaintStatus | None = None
    category_id: int | None = None
    agency_id: int | None = None
    search: str | None = None
    sort: str = "created_at"
    direction: str = "desc"
    page: int = 1
    size: int = 20


@dataclass
class ComplaintPage:
    items: list[ComplaintRow]
    total: int
    page: int
    size: int

    @property
    def pages(self) -> int:
        return (self.total + self.size - 1) // self.size if self.total > 0 else 0


async def load_complaint(session: AsyncSession, complaint_id: int, *, for_update: bool = False) -> Complaint:
    """Fetch a complaint row, optionally locking it for the current transaction."""
    query = select(Complaint).where(Complaint.id == complaint_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    complaint = result.scalar_one_or_none()
    if complaint is None:
        raise NotFoundError(f"Complaint {complaint_id} not found")
    return complaint


def parse_status(value: str | ComplaintStatus) -> ComplaintStatus:
    """Coerce a raw value into a ComplaintStatus or raise ValidationFailedError."""
    if isinstance(value, ComplaintStatus):
        return value
    try:
        return ComplaintStatus(value)
    except ValueError:
        valid = [s.value for s in ComplaintStatus]
        raise ValidationFailedError(f"Invalid status {value!r}. Valid: {valid}") from None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _order_by(filters: ComplaintFilters) -> list:
    if filters.sort not in SORT_KEYS:
        raise ValidationFailedError(f"Invalid sort key {filters.sort!r}. Valid: {list(SORT_KEYS)}")
    if filters.direction not in ("asc", "desc"):
        raise ValidationFailedError("Sort direction must be 'asc' or 'desc'")

    if filters.sort == "priority":
        key = case(PRIORITY_RANK, value=Complaint.priority, else_=-1)
    else:
        key = getattr(Complaint, filters.sort)

    primary = key.asc() if filters.direction == "asc" else key.desc()
    return [primary, Complaint.created_at.desc(), Complaint.id.asc()]


class ComplaintService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    # ── Creation ─────────────────────────────────────────────────────────

    async def create_complaint(
        self,
        principal: Principal,
        *,
        title: str,
        description: str,
        category_id: int,
        agency_id: int,
        location: str,
        priority: str | Priority,
    ) -> Complaint:
        """
        File a new complaint as `principal`.

        Agency and category references are validated here, once; reads never
        re-check them. The complaint always starts in SUBMITTED.
        """
        async with atomic(self.session, "create_complaint"):
            require(principal, Action.CREATE_COMPLAINT)

            title, description, location = title.strip(), description.strip(), location.strip()
            if len(title) < TITLE_MIN_LENGTH:
                raise ValidationFailedError(f"Title must be at least {TITLE_MIN_LENGTH} characters")
            if len(description) < DESCRIPTION_MIN_LENGTH:
                raise ValidationFailedError(f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters")
            if len(location) < LOCATION_MIN_LENGTH:
                raise ValidationFailedError(f"Location must be at least {LOCATION_MIN_LENGTH} characters")
            try:
                priority = Priority(priority)
            except ValueError:
                raise ValidationFailedError(
                    f"Invalid priority {priority!r}. Valid: {[p.value for p in Priority]}"
                ) from None

            if await self.session.get(Agency, agency_id) is None:
                raise ValidationFailedError("Selected agency does not exist")
            if await self.session.get(Category, category_id) is None:
                raise ValidationFailedError("Selected category does not exist")

            complaint = Complaint(
                title=title,
                description=description,
                category_id=category_id,
                agency_id=agency_id,
                submitter_id=principal.id,
                location=location,
                priority=priority.value,
                status=ComplaintStatus.SUBMITTED.value,
            )
            self.session.add(complaint)
            await self.session.flush()

            await self.audit.log_complaint_created(
                complaint_id=complaint.id,
                agency_id=agency_id,
                priority=priority.value,
                actor=principal.actor,
            )

        complaints_created_total.labels(priority=priority.value).inc()
        logger.info("Complaint %s filed by %s for agency %s", complaint.id, principal.actor, agency_id)
        return complaint

    # ── Reads ────────────────────────────────────────────────────────────

    async def get_complaint(self, principal: Principal, complaint_id: int) -> ComplaintRow:
        """
        Single complaint with agency/category names.

        A complaint the principal may not read is reported exactly like a
        missing one.
        """
        async with store_errors("get_complaint"):
            result = await self.session.execute(
                select(Complaint, Agency.name, Category.name)
                .join(Agency, Agency.id == Complaint.agency_id)
                .join(Category, Category.id == Complaint.category_id)
                .where(Complaint.id == complaint_id)
            )
            row = result.one_or_none()

        if row is None:
            raise NotFoundError(f"Complaint {complaint_id} not found")
        require_visible(principal, row[0], f"Complaint {complaint_id} not found")
        return ComplaintRow(*row)

    async def list_complaints(self, principal: Principal, filters: ComplaintFilters) -> ComplaintPage:
        """Paginated complaints visible to `principal`, narrowed by `filters`."""
        if filters.page < 1 or not 1 <= filters.size <= MAX_PAGE_SIZE:
            raise ValidationFailedError(f"page must be >= 1 and size between 1 and {MAX_PAGE_SIZE}")
        order_by = _order_by(filters)

        conditions = [complaint_scope(principal)]
        if filters.status is not None:
            conditions.append(Complaint.status == parse_status(filters.status).value)
        if filters.category_id is not None:
            conditions.append(Complaint.category_id == filters.category_id)
        if filters.agency_id is not None:
            conditions.append(Complaint.agency_id == filters.agency_id)
        if filters.search and filters.search.strip():
            pattern = f"%{_escape_like(filters.search.strip())}%"
            conditions.append(or_(
                Complaint.title.ilike(pattern, escape="\\"),
                Complaint.description.ilike(pattern, escape="\\"),
                Complaint.location.ilike(pattern, escape="\\"),
            ))
        where_clause = and_(*conditions)

        async with store_errors("list_complaints"):
            count_result = await self.session.execute(
                select(func.count()).select_from(Complaint).where(where_clause)
            )
            total = count_result.scalar() or 0

            rows_result = await self.session.execute(
                select(Complaint, Agency.name, Category.name)
                .join(Agency, Agency.id == Complaint.agency_id)
                .join(Category, Category.id == Complaint.category_id)
                .where(where_clause)
                .order_by(*order_by)
                .offset((filters.page - 1) * filters.size)
                .limit(filters.size)
            )
            items = [ComplaintRow(*row) for row in rows_result.all()]

        return ComplaintPage(items=items, total=total, page=filters.page, size=filters.size)
