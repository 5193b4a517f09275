"""
Unit tests for transaction and retry decorators.

Tests cover:
- Commit on success, rollback on failure
- Retry after a lost concurrent update
- No retry for business errors
- Exception categories
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from taskvip.services.base_service import BaseService, transaction
from taskvip.utils.db_decorators import retry_on_conflict
from taskvip.utils.exceptions import (
    ConcurrentUpdateConflict,
    InsufficientBalance,
    is_retryable,
)


class FlakyService(BaseService):
    """Service whose operation fails a configurable number of times."""

    def __init__(self, session, failures):
        super().__init__(session)
        self.operation = AsyncMock(side_effect=[*failures, Decimal("50")])

    @retry_on_conflict(attempts=3, backoff_seconds=0)
    @transaction
    async def release(self):
        return await self.operation()


class TestTransactionDecorator:
    """Test @transaction."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, mock_session):
        """Successful call commits once."""
        service = FlakyService(mock_session, failures=[])

        assert await service.release() == Decimal("50")
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, mock_session):
        """Failing call rolls back and re-raises."""
        service = FlakyService(mock_session, failures=[])
        service.operation.side_effect = ValueError("bad amount")

        with pytest.raises(ValueError):
            await service.release()

        mock_session.rollback.assert_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_business_rejection(self, mock_session):
        """A rejected business rule rolls back like any other error."""
        service = FlakyService(mock_session, failures=[])
        service.operation.side_effect = InsufficientBalance(
            1, Decimal("10"), Decimal("0")
        )

        with pytest.raises(InsufficientBalance):
            await service.release()

        mock_session.rollback.assert_awaited_once()
        mock_session.commit.assert_not_awaited()


class TestRetryOnConflict:
    """Test @retry_on_conflict."""

    @pytest.mark.asyncio
    async def test_retries_conflict(self, mock_session):
        """A lost race is retried and the next attempt succeeds."""
        service = FlakyService(
            mock_session,
            failures=[ConcurrentUpdateConflict("credit_grant", 1)],
        )

        assert await service.release() == Decimal("50")
        assert service.operation.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, mock_session):
        """The last conflict propagates."""
        conflict = ConcurrentUpdateConflict("credit_grant", 1)
        service = FlakyService(mock_session, failures=[conflict] * 3)

        with pytest.raises(ConcurrentUpdateConflict):
            await service.release()

        assert service.operation.await_count == 3

    @pytest.mark.asyncio
    async def test_business_errors_are_not_retried(self, mock_session):
        """Validation failures surface on the first attempt."""
        service = FlakyService(
            mock_session,
            failures=[InsufficientBalance(1, Decimal("10"), Decimal("0"))],
        )

        with pytest.raises(InsufficientBalance):
            await service.release()

        assert service.operation.await_count == 1

    def test_attempts_must_be_positive(self):
        """Zero attempts is a programming error."""
        with pytest.raises(ValueError):
            retry_on_conflict(attempts=0)


class TestExceptionCategories:
    """Test exception classification."""

    def test_conflict_is_retryable(self):
        assert is_retryable(ConcurrentUpdateConflict("credit_grant", 1))

    def test_business_errors_are_not_retryable(self):
        error = InsufficientBalance(1, Decimal("10"), Decimal("0"))

        assert not is_retryable(error)
        assert not is_retryable(ValueError("bad amount"))
