"""
Reference directory API for agencies and categories.

Every authenticated principal may read; only admins may create or delete.
Deleting a record that is still referenced answers 409 with the count.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_principal
from app.auth.context import Principal
from app.models import Agency, Category
from app.schemas.schemas import AgencySchema, CategorySchema, ReferenceCreate
from app.services.directory import ReferenceDirectory

agencies_router = APIRouter(prefix="/api/agencies", tags=["directory"])
categories_router = APIRouter(prefix="/api/categories", tags=["directory"])


def _agency(a: Agency) -> AgencySchema:
    return AgencySchema(id=a.id, name=a.name, description=a.description, created_at=a.created_at)


def _category(c: Category) -> CategorySchema:
    return CategorySchema(id=c.id, name=c.name, description=c.description, created_at=c.created_at)


# ── Agencies ─────────────────────────────────────────────────────────────────

@agencies_router.get("", response_model=list[AgencySchema])
async def list_agencies(principal: Principal = Depends(get_principal),
                        db: AsyncSession = Depends(get_db)):
    return [_agency(a) for a in await ReferenceDirectory(db).list_agencies(principal)]


@agencies_router.post("", response_model=AgencySchema, status_code=201)
async def create_agency(body: ReferenceCreate,
                        principal: Principal = Depends(get_principal),
                        db: AsyncSession = Depends(get_db)):
    agency = await ReferenceDirectory(db).create_agency(principal, body.name, body.description)
    return _agency(agency)


@agencies_router.get("/{agency_id}", response_model=AgencySchema)
async def get_agency(agency_id: int,
                     principal: Principal = Depends(get_principal),
                     db: AsyncSession = Depends(get_db)):
    return _agency(await ReferenceDirectory(db).get_agency(principal, agency_id))


@agencies_router.delete("/{agency_id}", status_code=204)
async def delete_agency(agency_id: int,
                        principal: Principal = Depends(get_principal),
                        db: AsyncSession = Depends(get_db)):
    """Delete an agency. Refused with 409 while complaints or officials reference it."""
    await ReferenceDirectory(db).delete_agency(principal, agency_id)
    return Response(status_code=204)


# ── Categories ───────────────────────────────────────────────────────────────

@categories_router.get("", response_model=list[CategorySchema])
async def list_categories(principal: Principal = Depends(get_principal),
                          db: AsyncSession = Depends(get_db)):
    return [_category(c) for c in await ReferenceDirectory(db).list_categories(principal)]


@categories_router.post("", response_model=CategorySchema, status_code=201)
async def create_category(body: ReferenceCreate,
                          principal: Principal = Depends(get_principal),
                          db: AsyncSession = Depends(get_db)):
    category = await ReferenceDirectory(db).create_category(principal, body.name, body.description)
    return _category(category)


@categories_router.get("/{category_id}", response_model=CategorySchema)
async def get_category(category_id: int,
                       principal: Principal = Depends(get_principal),
                       db: AsyncSession = Depends(get_db)):
    return _category(await ReferenceDirectory(db).get_category(principal, category_id))


@categories_router.delete("/{category_id}", status_code=204)
async def delete_category(category_id: int,
                          principal: Principal = Depends(get_principal),
                          db: AsyncSession = Depends(get_db)):
    """Delete a category. Refused with 409 while complaints reference it."""
    await ReferenceDirectory(db).delete_category(principal, category_id)
    return Response(status_code=204)
