"""
Shared building blocks for turfwar domain modules.

- BaseService: config access, event emission, logging and retry helpers
- BaseRepository: generic async repository with locking reads
- Domain exceptions raised by every service
"""

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    CooldownActiveError,
    InsufficientResourcesError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
    TurfwarDomainException,
    ValidationError,
)

__all__ = [
    "BaseService",
    "BaseRepository",
    "TurfwarDomainException",
    "PreconditionFailedError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
    "InsufficientResourcesError",
    "CooldownActiveError",
]
