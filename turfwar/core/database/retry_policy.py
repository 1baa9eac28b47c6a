"""
Database Retry Policy

Replays a whole transactional unit when it lost a race: a version-column
conflict on a gang or member, a PostgreSQL deadlock or serialization failure
between two commands locking the same rows, or a dropped connection.

Domain errors (cooldowns, preconditions, insufficient funds) and constraint
violations are never retried; they propagate on the first attempt.

Wrap the callable that *opens* the transaction so every attempt re-reads
fresh rows:

```python
await policy.execute(
    lambda: self._raid(user_id, target),
    operation_name="gang.raid",
)
```
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from turfwar.core.config.config import Config
from turfwar.core.exceptions import ConcurrencyConflictError
from turfwar.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def is_transient(exc: BaseException) -> bool:
    """True when re-running the unit of work may succeed."""
    if isinstance(exc, (ConcurrencyConflictError, OperationalError)):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        return getattr(exc.orig, "pgcode", None) in RETRYABLE_SQLSTATES
    return False


@dataclass(frozen=True)
class DatabaseRetryConfig:
    max_attempts: int = 3
    initial_backoff_ms: int = 50
    max_backoff_ms: int = 1000
    jitter_ms: int = 50

    @classmethod
    def from_config(cls) -> DatabaseRetryConfig:
        return cls(
            max_attempts=max(1, int(Config.DATABASE_RETRY_MAX_ATTEMPTS)),
            initial_backoff_ms=int(Config.DATABASE_RETRY_INITIAL_BACKOFF_MS),
            max_backoff_ms=int(Config.DATABASE_RETRY_MAX_BACKOFF_MS),
            jitter_ms=int(Config.DATABASE_RETRY_JITTER_MS),
        )

    def backoff_seconds(self, attempt: int) -> float:
        """Exponential backoff for the pause after `attempt` failed, plus jitter."""
        delay = min(self.initial_backoff_ms * 2 ** (attempt - 1), self.max_backoff_ms)
        if self.jitter_ms > 0:
            delay += random.randint(0, self.jitter_ms)
        return delay / 1000.0


class DatabaseRetryPolicy:
    def __init__(self, config: Optional[DatabaseRetryConfig] = None) -> None:
        self._config = config or DatabaseRetryConfig()

    @classmethod
    def from_config(cls) -> DatabaseRetryPolicy:
        return cls(DatabaseRetryConfig.from_config())

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str,
        context: Optional[dict[str, Any]] = None,
    ) -> T:
        """
        Run `operation` until it succeeds or fails for good.

        The last transient error is re-raised once attempts run out.
        """
        extra = {**(context or {}), "operation": operation_name}

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if not is_transient(exc):
                    raise
                if attempt >= self._config.max_attempts:
                    logger.error(
                        "Giving up after repeated transient database failures",
                        extra={**extra, "attempt": attempt, "error_type": type(exc).__name__},
                    )
                    raise

                delay = self._config.backoff_seconds(attempt)
                logger.warning(
                    "Transient database failure, retrying",
                    extra={
                        **extra,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                        "backoff_ms": round(delay * 1000),
                    },
                )
                await asyncio.sleep(delay)

