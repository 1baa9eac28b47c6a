"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test database operations with real PostgreSQL using testcontainers.
Verifies schema creation, transaction management and optimistic locking.

Test Coverage
-------------
- Database connection and health check
- Schema creation for the gang tables
- Transaction commit and rollback
- Version conflicts surfacing as ConcurrencyConflictError
- Constraint violations

Testing Strategy
----------------
- Integration tests (uses testcontainers for real PostgreSQL)
- Tests actual database behavior, not mocks
- The `database` fixture truncates every table after each test
"""

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError

from turfwar.core.database.service import DatabaseService
from turfwar.core.exceptions import ConcurrencyConflictError
from turfwar.database.models import Gang


@pytest.fixture
def new_gang(make_gang):
    def _new(name: str) -> Gang:
        return make_gang(id=None, name=name)

    return _new


async def _gang_count() -> int:
    async with DatabaseService.get_session() as session:
        return await session.scalar(select(func.count()).select_from(Gang))


# ============================================================================
# DATABASE CONNECTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    async def test_database_connection(self, database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(text("SELECT 1 as value"))
            row = result.fetchone()

        assert row is not None
        assert row.value == 1

    async def test_health_check(self, database):
        assert await DatabaseService.health_check() is True

    async def test_gang_tables_created(self, database):
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    """
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                    """
                )
            )
            tables = {row.table_name for row in result.fetchall()}

        assert {
            "gangs",
            "gang_members",
            "gang_personnel",
            "member_cooldowns",
            "gang_invitations",
        } <= tables


# ============================================================================
# TRANSACTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseTransactions:
    async def test_transaction_commits_on_success(self, database, new_gang):
        async with DatabaseService.get_transaction() as session:
            session.add(new_gang("Vipers"))

        assert await _gang_count() == 1

    async def test_transaction_rolls_back_on_error(self, database, new_gang):
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(new_gang("Vipers"))
                await session.flush()
                raise RuntimeError("boom")

        assert await _gang_count() == 0

    async def test_version_conflict_raises_concurrency_error(self, database, new_gang):
        async with DatabaseService.get_transaction() as session:
            session.add(new_gang("Vipers"))

        with pytest.raises(ConcurrencyConflictError):
            async with DatabaseService.get_transaction() as stale:
                gang = await stale.scalar(select(Gang).where(Gang.name == "Vipers"))

                async with DatabaseService.get_transaction() as fresh:
                    winner = await fresh.scalar(select(Gang).where(Gang.name == "Vipers"))
                    winner.vault = 500

                gang.vault = 100

        async with DatabaseService.get_session() as session:
            gang = await session.scalar(select(Gang).where(Gang.name == "Vipers"))
        assert gang.vault == 500
        assert gang.version == 2


# ============================================================================
# ERROR HANDLING TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseErrorHandling:
    async def test_duplicate_gang_name_rejected(self, database, new_gang):
        async with DatabaseService.get_transaction() as session:
            session.add(new_gang("Vipers"))

        with pytest.raises(IntegrityError):
            async with DatabaseService.get_transaction() as session:
                session.add(new_gang("Vipers"))

    async def test_invalid_sql_query(self, database):
        with pytest.raises(Exception):
            async with DatabaseService.get_session() as session:
                await session.execute(text("SELECT * FROM nonexistent_table"))
