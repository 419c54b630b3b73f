"""Tests for store failure translation."""

import pytest
from sqlalchemy import exc as sa_exc

from app.errors import (
    ConflictError,
    NotFoundError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from app.services.store import store_errors


@pytest.mark.asyncio
class TestStoreErrors:
    @pytest.mark.parametrize("raised,expected,status", [
        (sa_exc.TimeoutError("QueuePool limit reached"), StoreTimeoutError, 504),
        (TimeoutError(), StoreTimeoutError, 504),
        (sa_exc.IntegrityError("INSERT INTO agencies", {}, Exception("UNIQUE")), ConflictError, 409),
        (sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused")), StoreUnavailableError, 503),
    ])
    async def test_translation(self, raised, expected, status):
        with pytest.raises(expected) as exc:
            async with store_errors("list_complaints"):
                raise raised
        assert exc.value.status_code == status
        assert exc.value.__cause__ is raised

    async def test_workflow_errors_pass_through(self):
        with pytest.raises(NotFoundError):
            async with store_errors("get_complaint"):
                raise NotFoundError("Complaint 7 not found")
