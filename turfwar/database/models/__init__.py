"""
Database Models Package
========================

SQLAlchemy ORM models for turfwar.

All models:
- Are schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared Base plus IdMixin / TimestampMixin
- Use explicit foreign keys with CASCADE / SET NULL rules
- Carry a version column where rows are contended (gangs, members)

Importing this package registers every table on `Base.metadata`.
"""

from turfwar.core.database.base import Base

from .enums import CooldownAction, GangRole, MemberStatus, PersonnelKind, ToolId, UpgradeType
from .gang import Gang, GangInvitation, GangMember, GangPersonnel, MemberCooldown

__all__ = [
    "Base",
    # Models
    "Gang",
    "GangMember",
    "GangPersonnel",
    "MemberCooldown",
    "GangInvitation",
    # Enums
    "GangRole",
    "MemberStatus",
    "PersonnelKind",
    "CooldownAction",
    "UpgradeType",
    "ToolId",
]
