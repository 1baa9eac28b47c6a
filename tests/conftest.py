"""
Pytest Configuration and Fixtures for turfwar
=============================================

Purpose
-------
Centralized test fixtures for the turfwar test suite.

Responsibilities
----------------
- Testcontainers setup for PostgreSQL (integration tests)
- DatabaseService lifecycle around each integration test
- Scripted random source so every combat draw is deterministic
- Factories for plain Gang / GangMember rows (unit tests)
- EventBus and config mocks

Architecture Notes
------------------
- Unit tests use plain ORM objects and mocks (fast, isolated)
- Integration tests use testcontainers (real PostgreSQL) and are skipped
  when Docker is not available
- TESTING is forced before turfwar is imported so the engine uses NullPool
"""

from __future__ import annotations

import os

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import random
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Generator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import text

from turfwar.core.config.config import Config
from turfwar.core.config.manager import ConfigManager
from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import get_logger
from turfwar.core.redis.service import RedisService
from turfwar.database.models import Base, Gang, GangMember, GangRole, MemberStatus

logger = get_logger(__name__)


# ============================================================================
# SCRIPTED RANDOMNESS
# ============================================================================


class ScriptedRandom(random.Random):
    """
    random.Random whose draws come from pre-loaded queues.

    Combat draws in a fixed order: success roll (`random`), lockpick breakage
    (`random`), then amounts (`randint`, `uniform`, `choice`). Running out of
    scripted values fails the test loudly.
    """

    def __init__(
        self,
        randoms: Optional[List[float]] = None,
        randints: Optional[List[int]] = None,
        uniforms: Optional[List[float]] = None,
        choices: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(0)
        self.randoms = list(randoms or [])
        self.randints = list(randints or [])
        self.uniforms = list(uniforms or [])
        self.choices = list(choices or [])
        self.randint_calls: List[tuple] = []

    @staticmethod
    def _next(queue: List[Any], name: str) -> Any:
        if not queue:
            raise AssertionError(f"ScriptedRandom: no scripted value left for {name}()")
        return queue.pop(0)

    def random(self) -> float:
        return self._next(self.randoms, "random")

    def randint(self, a: int, b: int) -> int:
        self.randint_calls.append((a, b))
        value = self._next(self.randints, "randint")
        assert a <= value <= b, f"scripted randint {value} outside [{a}, {b}]"
        return value

    def uniform(self, a: float, b: float) -> float:
        return self._next(self.uniforms, "uniform")

    def choice(self, seq: Any) -> Any:
        value = self._next(self.choices, "choice")
        assert value in seq, f"scripted choice {value!r} not in {seq!r}"
        return value


@pytest.fixture
def scripted_rng():
    """Factory: scripted_rng(randoms=[...], randints=[...], ...)."""
    return ScriptedRandom


# ============================================================================
# CONFIG / EVENT MOCKS
# ============================================================================


class DictConfig:
    """Flat dot-key config source with the ConfigManager.get signature."""

    def __init__(self, values: Optional[Dict[str, Any]] = None) -> None:
        self.values = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


@pytest.fixture
def mock_config():
    """Empty config: every caller falls back to its code default."""
    return DictConfig()


@pytest.fixture
def mock_event_bus(mocker):
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def fake_transaction(mocker):
    """
    Replace DatabaseService transactions/sessions with a mock session.

    Returns the session mock so tests can assert on it.
    """
    session = mocker.AsyncMock()
    session.add = mocker.MagicMock()

    @asynccontextmanager
    async def _transaction():
        yield session

    mocker.patch.object(DatabaseService, "get_transaction", new=_transaction)
    mocker.patch.object(DatabaseService, "get_session", new=_transaction)
    return session


# ============================================================================
# ROW FACTORIES (Unit Tests)
# ============================================================================


def build_gang(**overrides: Any) -> Gang:
    fields: Dict[str, Any] = dict(
        id=1,
        name="Vipers",
        leader_id=100,
        description="No description set.",
        is_public=True,
        max_members=10,
        allow_invites=True,
        require_approval=False,
        min_level_to_join=1,
        banned_ids=[],
        vault=0,
        total_earnings=0,
        power=100,
        wins=0,
        losses=0,
        raids=0,
        robs=0,
        kidnaps=0,
        hostages=0,
        base_level=1,
        base_hp=250,
        last_raid_at=None,
        weapons_level=1,
        walls_level=1,
        guards_training_level=1,
        medic_training_level=1,
        basic_lockpick=False,
        steel_lockpick=False,
        titan_lockpick=False,
        breach_charges=0,
        version=1,
    )
    fields.update(overrides)
    return Gang(**fields)


def build_member(**overrides: Any) -> GangMember:
    fields: Dict[str, Any] = dict(
        id=1,
        user_id=100,
        gang_id=1,
        role=GangRole.MEMBER.value,
        level=1,
        status=MemberStatus.BASE.value,
        kidnapped_until=None,
        kidnapped_by=None,
        pocket=0,
        version=1,
    )
    fields.update(overrides)
    return GangMember(**fields)


@pytest.fixture
def make_gang():
    return build_gang


@pytest.fixture
def make_member():
    return build_member


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Start a PostgreSQL testcontainer for the integration suite.

    Skips the requesting tests when Docker is unavailable.
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for PostgreSQL testcontainer: {exc}")

    logger.info("PostgreSQL testcontainer started: %s", container.get_connection_url())
    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def database(postgres_container) -> AsyncGenerator[None, None]:
    """
    Initialize DatabaseService against the container with a fresh schema.

    Tables are truncated afterwards so every test starts from a clean slate.
    """
    Config.TESTING = True
    ConfigManager.reset()

    url = postgres_container.get_connection_url()
    await DatabaseService.initialize(url)
    engine = DatabaseService.get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        tables = ", ".join(table.name for table in reversed(Base.metadata.sorted_tables))
        await conn.execute(text(f"TRUNCATE {tables} RESTART IDENTITY CASCADE"))
    await DatabaseService.shutdown()
    ConfigManager.reset()


@pytest.fixture(scope="session")
def redis_container() -> Generator[Any, None, None]:
    """Redis testcontainer for the lease tests. Skips without Docker."""
    from testcontainers.redis import RedisContainer

    container = RedisContainer(image="redis:7-alpine")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for Redis testcontainer: {exc}")

    yield container
    container.stop()


@pytest_asyncio.fixture
async def redis(redis_container) -> AsyncGenerator[None, None]:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    await RedisService.initialize(f"redis://{host}:{port}/0")

    yield

    await RedisService.client().flushdb()
    await RedisService.shutdown()
