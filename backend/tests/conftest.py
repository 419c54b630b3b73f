"""Shared test fixtures for backend tests."""

import os

# Must be set before app.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from dataclasses import dataclass  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app.database import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.api.deps import get_db  # noqa: E402
from app.auth.context import Principal  # noqa: E402
from app.auth.jwt import create_access_token  # noqa: E402
from app.auth.roles import Role  # noqa: E402
from app.models import Agency, Category, Complaint  # noqa: E402


@dataclass
class Directory:
    public_works: Agency
    parks: Agency
    roads: Category
    noise: Category


@dataclass
class Principals:
    citizen: Principal
    other_citizen: Principal
    official: Principal  # Public Works
    parks_official: Principal
    admin: Principal


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """A fresh SQLite database per test, schema created from the models."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'civic.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def directory(session_factory) -> Directory:
    """Two agencies and two categories, committed."""
    async with session_factory() as session:
        records = Directory(
            public_works=Agency(name="Public Works", description="Streets, sewers and lighting"),
            parks=Agency(name="Parks and Recreation"),
            roads=Category(name="Roads"),
            noise=Category(name="Noise"),
        )
        session.add_all([records.public_works, records.parks, records.roads, records.noise])
        await session.commit()
    return records


@pytest_asyncio.fixture
async def principals(directory: Directory) -> Principals:
    return Principals(
        citizen=Principal(id="101", role=Role.CITIZEN),
        other_citizen=Principal(id="102", role=Role.CITIZEN),
        official=Principal(id="201", role=Role.AGENCY_OFFICIAL, agency_id=directory.public_works.id),
        parks_official=Principal(id="202", role=Role.AGENCY_OFFICIAL, agency_id=directory.parks.id),
        admin=Principal(id="1", role=Role.ADMIN),
    )


async def file_complaint(
    session_factory,
    directory: Directory,
    submitter: Principal,
    *,
    title: str = "Pothole on Main Street",
    priority: str = "MEDIUM",
    agency: Agency | None = None,
    status: str = "SUBMITTED",
) -> Complaint:
    """Insert a complaint row directly and commit it."""
    async with session_factory() as session:
        complaint = Complaint(
            title=title,
            description="A deep pothole has opened next to the bus stop.",
            category_id=directory.roads.id,
            agency_id=(agency or directory.public_works).id,
            submitter_id=submitter.id,
            location="Main St & 3rd Ave",
            priority=priority,
            status=status,
        )
        session.add(complaint)
        await session.commit()
    return complaint


def auth_header(principal: Principal) -> dict:
    """Create an Authorization header with a valid JWT for `principal`."""
    token = create_access_token(principal.id, principal.role.value, principal.agency_id)
    return {"Authorization": f"Bearer {token}"}


def _override_db(session_factory):
    """Create a dependency override for get_db bound to the test database."""
    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    return _get_db


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated HTTP client; pass `headers=auth_header(...)` per request."""
    app.dependency_overrides[get_db] = _override_db(session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
