"""
Database subsystem for turfwar.

Provides the async SQLAlchemy engine, session management, retry policy and
ORM base classes for model definitions.
"""

from turfwar.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from turfwar.core.database.retry_policy import DatabaseRetryConfig, DatabaseRetryPolicy
from turfwar.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
    # Exceptions
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
