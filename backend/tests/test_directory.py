"""Tests for the agency / category reference directory."""

import pytest
from sqlalchemy import select

from app.auth.passwords import hash_password
from app.errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from app.models import Agency, AuditLog, Category, User
from app.services.directory import ReferenceDirectory
from tests.conftest import file_complaint


@pytest.mark.asyncio
class TestReads:
    async def test_everyone_can_list(self, db_session, principals):
        for principal in (principals.citizen, principals.official, principals.admin):
            agencies = await ReferenceDirectory(db_session).list_agencies(principal)
            assert [a.name for a in agencies] == ["Parks and Recreation", "Public Works"]

        categories = await ReferenceDirectory(db_session).list_categories(principals.citizen)
        assert [c.name for c in categories] == ["Noise", "Roads"]

    async def test_get_missing(self, db_session, principals):
        with pytest.raises(NotFoundError):
            await ReferenceDirectory(db_session).get_category(principals.citizen, 9999)


@pytest.mark.asyncio
class TestCreate:
    async def test_admin_creates_agency(self, session_factory, principals):
        async with session_factory() as session:
            agency = await ReferenceDirectory(session).create_agency(
                principals.admin, "  Sanitation  ", "Waste collection",
            )
            await session.commit()
        assert agency.name == "Sanitation"

        async with session_factory() as session:
            entry = (await session.execute(
                select(AuditLog).where(AuditLog.event_type == "agency_created")
            )).scalar_one()
            assert entry.resource_id == str(agency.id)

    @pytest.mark.parametrize("who", ["citizen", "official"])
    async def test_non_admin_forbidden(self, db_session, principals, who):
        with pytest.raises(ForbiddenError) as exc:
            await ReferenceDirectory(db_session).create_category(getattr(principals, who), "Graffiti")
        assert exc.value.status_code == 403

    async def test_duplicate_name_is_conflict(self, db_session, principals):
        with pytest.raises(ConflictError):
            await ReferenceDirectory(db_session).create_agency(principals.admin, "public works")

    @pytest.mark.parametrize("name", ["", " x ", "y" * 101])
    async def test_name_length(self, db_session, principals, name):
        with pytest.raises(ValidationFailedError):
            await ReferenceDirectory(db_session).create_category(principals.admin, name)


@pytest.mark.asyncio
class TestDelete:
    async def test_unreferenced_category_deleted(self, session_factory, directory, principals):
        async with session_factory() as session:
            await ReferenceDirectory(session).delete_category(principals.admin, directory.noise.id)
            await session.commit()

        async with session_factory() as session:
            assert await session.get(Category, directory.noise.id) is None

    async def test_unreferenced_agency_deleted(self, session_factory, directory, principals):
        async with session_factory() as session:
            await ReferenceDirectory(session).delete_agency(principals.admin, directory.parks.id)
            await session.commit()

        async with session_factory() as session:
            assert await session.get(Agency, directory.parks.id) is None
            assert await session.get(Agency, directory.public_works.id) is not None
            entry = (await session.execute(
                select(AuditLog).where(AuditLog.event_type == "agency_deleted")
            )).scalar_one()
            assert entry.details == {"name": "Parks and Recreation"}

    async def test_referenced_category_is_conflict(self, session_factory, directory, principals):
        await file_complaint(session_factory, directory, principals.citizen)
        await file_complaint(session_factory, directory, principals.other_citizen)

        async with session_factory() as session:
            with pytest.raises(ConflictError) as exc:
                await ReferenceDirectory(session).delete_category(principals.admin, directory.roads.id)
        assert exc.value.reference_count == 2

        async with session_factory() as session:
            assert await session.get(Category, directory.roads.id) is not None

    async def test_agency_with_officials_is_conflict(self, session_factory, directory, principals):
        async with session_factory() as session:
            session.add(User(
                email="inspector@cityhall.org",
                password_hash=hash_password("Inspector123!"),
                full_name="Park Inspector",
                role="AGENCY_OFFICIAL",
                agency_id=directory.parks.id,
            ))
            await session.commit()

        async with session_factory() as session:
            with pytest.raises(ConflictError) as exc:
                await ReferenceDirectory(session).delete_agency(principals.admin, directory.parks.id)
        assert exc.value.reference_count == 1

    async def test_delete_missing(self, db_session, principals):
        with pytest.raises(NotFoundError):
            await ReferenceDirectory(db_session).delete_agency(principals.admin, 9999)

    async def test_official_cannot_delete(self, session_factory, directory, principals):
        async with session_factory() as session:
            with pytest.raises(ForbiddenError):
                await ReferenceDirectory(session).delete_agency(principals.official, directory.parks.id)

        async with session_factory() as session:
            assert await session.get(Agency, directory.parks.id) is not None
