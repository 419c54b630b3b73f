from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, ForeignKey, Index, event, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class ComplaintStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# Severity order used when sorting by priority
PRIORITY_RANK: dict[str, int] = {
    Priority.LOW.value: 0,
    Priority.MEDIUM.value: 1,
    Priority.HIGH.value: 2,
    Priority.URGENT.value: 3,
}


class Complaint(Base):
    __tablename__ = "complaints"
    __table_args__ = (
        Index("ix_complaints_agency_status", "agency_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(String(5000))
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), index=True)
    agency_id: Mapped[int] = mapped_column(ForeignKey("agencies.id"), index=True)
    submitter_id: Mapped[str] = mapped_column(String(64), index=True)
    location: Mapped[str] = mapped_column(String(300))
    priority: Mapped[str] = mapped_column(String(10), index=True)  # "LOW" | "MEDIUM" | "HIGH" | "URGENT"
    status: Mapped[str] = mapped_column(String(20), default=ComplaintStatus.SUBMITTED.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())


class Response(Base):
    """Ledger entry: never updated or deleted once inserted."""
    __tablename__ = "responses"

    id: Mapped[int] = mapped_column(primary_key=True)
    complaint_id: Mapped[int] = mapped_column(ForeignKey("complaints.id"), index=True)
    author_id: Mapped[str] = mapped_column(String(64))
    author_role: Mapped[str] = mapped_column(String(20))
    content: Mapped[str] = mapped_column(String(5000))
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())


@event.listens_for(Response, "before_update")
@event.listens_for(Response, "before_delete")
def _reject_ledger_rewrite(mapper, connection, target: Response) -> None:
    raise PermissionError(f"Response {target.id} is append-only")
