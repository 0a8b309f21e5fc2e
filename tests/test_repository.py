"""DealRepository tests that run against a stub session instead of Postgres."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.dealdesk.deals.repository import (
    REFERENCE_NUMBER_ATTEMPTS,
    DealRepository,
    ReferenceNumberConflictError,
    format_reference_number,
)


def _colliding_session() -> MagicMock:
    """Session whose every flush hits the unique reference number index."""
    session = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    session.execute = AsyncMock(return_value=result)
    session.flush = AsyncMock(
        side_effect=IntegrityError("INSERT INTO deals", {}, Exception("duplicate key"))
    )
    session.rollback = AsyncMock()
    session.commit = AsyncMock()
    return session


def _factory(session):
    async def _sessions():
        yield session

    return _sessions


def test_format_reference_number():
    assert format_reference_number(2026, 7) == "DEAL-2026-007"
    assert format_reference_number(2026, 1234) == "DEAL-2026-1234"


async def test_create_deal_gives_up_after_repeated_collisions(make_deal):
    session = _colliding_session()
    repo = DealRepository(session_factory=_factory(session))

    with pytest.raises(ReferenceNumberConflictError):
        await repo.create_deal(make_deal(), owner_id=None, changed_by="seller@company.com")

    assert session.flush.await_count == REFERENCE_NUMBER_ATTEMPTS
    assert session.rollback.await_count == REFERENCE_NUMBER_ATTEMPTS
    session.commit.assert_not_awaited()


def test_conflict_error_is_a_value_error():
    """Callers that map ValueError subclasses keep working."""
    assert issubclass(ReferenceNumberConflictError, ValueError)
    assert not issubclass(ReferenceNumberConflictError, IntegrityError)
