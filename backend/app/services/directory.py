"""
Reference Directory

Agencies and categories: readable by every principal, mutable by ADMIN only.

Deletion never cascades. A record still referenced by a complaint (or, for
agencies, by an official's account) is refused with ConflictError carrying
the reference count. The target row is locked while references are counted.
"""

import logging
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.context import Principal
from app.auth.permissions import Action
from app.auth.policy import require
from app.errors import ConflictError, NotFoundError, ValidationFailedError
from app.models import Agency, Category, Complaint, User
from app.services.audit_service import AuditService
from app.services.store import atomic, store_errors

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100

RefModel = TypeVar("RefModel", Agency, Category)


class ReferenceDirectory:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    # ── Agencies ─────────────────────────────────────────────────────────

    async def list_agencies(self, principal: Principal) -> list[Agency]:
        return await self._list(Agency, principal)

    async def get_agency(self, principal: Principal, agency_id: int) -> Agency:
        return await self._get(Agency, principal, agency_id)

    async def create_agency(self, principal: Principal, name: str, description: str | None = None) -> Agency:
        return await self._create(Agency, Action.MANAGE_AGENCY, principal, name, description)

    async def delete_agency(self, principal: Principal, agency_id: int) -> None:
        await self._delete(Agency, Action.MANAGE_AGENCY, principal, agency_id)

    # ── Categories ───────────────────────────────────────────────────────

    async def list_categories(self, principal: Principal) -> list[Category]:
        return await self._list(Category, principal)

    async def get_category(self, principal: Principal, category_id: int) -> Category:
        return await self._get(Category, principal, category_id)

    async def create_category(self, principal: Principal, name: str, description: str | None = None) -> Category:
        return await self._create(Category, Action.MANAGE_CATEGORY, principal, name, description)

    async def delete_category(self, principal: Principal, category_id: int) -> None:
        await self._delete(Category, Action.MANAGE_CATEGORY, principal, category_id)

    # ── Shared implementation ────────────────────────────────────────────

    async def _list(self, model: type[RefModel], principal: Principal) -> list[RefModel]:
        require(principal, Action.READ_REFERENCE_DATA)
        async with store_errors(f"list_{model.__tablename__}"):
            result = await self.session.execute(select(model).order_by(model.name.asc(), model.id.asc()))
            return list(result.scalars())

    async def _get(self, model: type[RefModel], principal: Principal, record_id: int) -> RefModel:
        require(principal, Action.READ_REFERENCE_DATA)
        async with store_errors(f"get_{model.__tablename__}"):
            record = await self.session.get(model, record_id)
        if record is None:
            raise NotFoundError(f"{model.__name__} {record_id} not found")
        return record

    async def _create(
        self,
        model: type[RefModel],
        action: Action,
        principal: Principal,
        name: str,
        description: str | None,
    ) -> RefModel:
        kind = model.__name__.lower()
        async with atomic(self.session, f"create_{kind}"):
            require(principal, action)

            name = (name or "").strip()
            if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
                raise ValidationFailedError(
                    f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
                )
            description = (description or "").strip() or None

            existing = await self.session.execute(
                select(model.id).where(func.lower(model.name) == name.lower())
            )
            if existing.scalar_one_or_none() is not None:
                raise ConflictError(f"{model.__name__} '{name}' already exists")

            record = model(name=name, description=description)
            self.session.add(record)
            await self.session.flush()

            await self.audit.log_reference_changed(kind, "created", record.id, record.name, principal.actor)

        logger.info("%s %s '%s' created by %s", model.__name__, record.id, record.name, principal.actor)
        return record

    async def _delete(self, model: type[RefModel], action: Action, principal: Principal, record_id: int) -> None:
        kind = model.__name__.lower()
        async with atomic(self.session, f"delete_{kind}"):
            require(principal, action)

            result = await self.session.execute(
                select(model).where(model.id == record_id).with_for_update()
            )
            record = result.scalar_one_or_none()
            if record is None:
                raise NotFoundError(f"{model.__name__} {record_id} not found")

            references = await self._reference_count(model, record_id)
            if references:
                raise ConflictError(
                    f"{model.__name__} '{record.name}' is still referenced by {references} record(s)",
                    reference_count=references,
                )

            name = record.name
            await self.session.delete(record)
            await self.session.flush()
            await self.audit.log_reference_changed(kind, "deleted", record_id, name, principal.actor)

        logger.info("%s %s '%s' deleted by %s", model.__name__, record_id, name, principal.actor)

    async def _reference_count(self, model: type[RefModel], record_id: int) -> int:
        if model is Agency:
            complaints = select(func.count()).select_from(Complaint).where(Complaint.agency_id == record_id)
            officials = select(func.count()).select_from(User).where(User.agency_id == record_id)
            total = (await self.session.execute(complaints)).scalar() or 0
            total += (await self.session.execute(officials)).scalar() or 0
            return total

        complaints = select(func.count()).select_from(Complaint).where(Complaint.category_id == record_id)
        return (await self.session.execute(complaints)).scalar() or 0
