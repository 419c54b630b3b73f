from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from app.config import settings


def engine_options(database_url: str) -> dict:
    """Driver-specific engine arguments (SQLite has no connection pool sizing)."""
    if database_url.startswith("sqlite"):
        options: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.endswith("://"):
            options["poolclass"] = StaticPool
        return options

    options = {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.store_timeout_seconds,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }
    if "+asyncpg" in database_url:
        options["connect_args"] = {"command_timeout": settings.store_timeout_seconds}
    return options


engine = create_async_engine(
    settings.database_url,
    echo=False,
    **engine_options(settings.database_url),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
