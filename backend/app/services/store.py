"""
Persistence-store boundary.

Translates driver/ORM failures into the workflow error taxonomy and wraps
mutation bundles so that a failure anywhere inside rolls the whole unit back.
Nothing here retries: retries belong to the caller.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import (
    ConflictError,
    StoreTimeoutError,
    StoreUnavailableError,
    WorkflowError,
)
from app.middleware.metrics import store_failures_total

logger = logging.getLogger(__name__)


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Surface store failures as Conflict / Timeout / Unavailable."""
    try:
        yield
    except WorkflowError:
        raise
    except (sa_exc.TimeoutError, TimeoutError) as exc:
        store_failures_total.labels(kind="timeout").inc()
        logger.error("Store timeout during %s: %s", operation, exc)
        raise StoreTimeoutError(f"Store timed out during {operation}") from exc
    except sa_exc.IntegrityError as exc:
        store_failures_total.labels(kind="conflict").inc()
        logger.warning("Integrity violation during %s: %s", operation, exc.orig)
        raise ConflictError(f"Conflicting write during {operation}") from exc
    except sa_exc.DBAPIError as exc:
        store_failures_total.labels(kind="unavailable").inc()
        logger.exception("Store failure during %s", operation)
        raise StoreUnavailableError(f"Store unavailable during {operation}") from exc


@asynccontextmanager
async def atomic(session: AsyncSession, operation: str) -> AsyncIterator[None]:
    """
    Run a mutation bundle as one unit.

    All writes made inside the block are flushed at the end; if anything
    raises (authorization, validation, store fault) the session transaction
    is rolled back so no partial state can be committed afterwards.
    """
    try:
        async with store_errors(operation):
            yield
            await session.flush()
    except Exception:
        await session.rollback()
        raise
