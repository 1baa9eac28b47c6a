"""
Unit tests for DatabaseRetryPolicy and transient-error classification.
"""

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from turfwar.core.database.retry_policy import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
    is_transient,
)
from turfwar.core.exceptions import ConcurrencyConflictError
from turfwar.modules.shared.exceptions import InsufficientResourcesError


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__(pgcode)
        self.pgcode = pgcode


def _dbapi(pgcode=None, invalidated=False):
    return DBAPIError("UPDATE gangs", {}, _PgError(pgcode), connection_invalidated=invalidated)


@pytest.fixture
def policy():
    return DatabaseRetryPolicy(
        DatabaseRetryConfig(max_attempts=3, initial_backoff_ms=0, max_backoff_ms=0, jitter_ms=0)
    )


@pytest.mark.unit
class TestIsTransient:
    def test_version_conflict(self):
        assert is_transient(ConcurrencyConflictError("gang"))

    def test_operational_error(self):
        assert is_transient(OperationalError("SELECT 1", {}, Exception("gone")))

    @pytest.mark.parametrize("pgcode", ["40001", "40P01"])
    def test_serialization_and_deadlock(self, pgcode):
        assert is_transient(_dbapi(pgcode))

    def test_invalidated_connection(self):
        assert is_transient(_dbapi(invalidated=True))

    def test_unique_violation_is_final(self):
        assert not is_transient(IntegrityError("INSERT", {}, _PgError("23505")))

    def test_domain_error_is_final(self):
        assert not is_transient(InsufficientResourcesError("cash", 100, 10))


@pytest.mark.unit
class TestBackoff:
    def test_doubles_until_cap(self):
        config = DatabaseRetryConfig(initial_backoff_ms=50, max_backoff_ms=150, jitter_ms=0)

        assert config.backoff_seconds(1) == 0.05
        assert config.backoff_seconds(2) == 0.1
        assert config.backoff_seconds(3) == 0.15


@pytest.mark.unit
@pytest.mark.asyncio
class TestExecute:
    async def test_returns_first_success(self, mocker, policy):
        operation = mocker.AsyncMock(return_value="ok")

        assert await policy.execute(operation, operation_name="gang.deposit") == "ok"
        operation.assert_awaited_once()

    async def test_retries_conflict_then_succeeds(self, mocker, policy):
        operation = mocker.AsyncMock(side_effect=[ConcurrencyConflictError("gang"), "ok"])

        assert await policy.execute(operation, operation_name="gang.deposit") == "ok"
        assert operation.await_count == 2

    async def test_gives_up_after_max_attempts(self, mocker, policy):
        operation = mocker.AsyncMock(side_effect=ConcurrencyConflictError("gang"))

        with pytest.raises(ConcurrencyConflictError):
            await policy.execute(operation, operation_name="gang.deposit")
        assert operation.await_count == 3

    async def test_domain_error_is_not_retried(self, mocker, policy):
        operation = mocker.AsyncMock(side_effect=InsufficientResourcesError("cash", 100, 10))

        with pytest.raises(InsufficientResourcesError):
            await policy.execute(operation, operation_name="gang.deposit")
        operation.assert_awaited_once()
