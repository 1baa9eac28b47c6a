"""
GangMember: a player identity, their affiliation and whereabouts.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from turfwar.core.database.base import Base, IdMixin, TimestampMixin
from turfwar.database.models.enums import GangRole, MemberStatus


class GangMember(Base, IdMixin, TimestampMixin):
    """
    One row per player identity, whether or not they belong to a gang.

    Schema-only:
    - user_id (unique external identity)
    - gang_id (nullable FK, cleared when the gang is destroyed)
    - role, level, status
    - kidnapped_until / kidnapped_by (both set iff status is kidnapped)
    - pocket (personal balance used by PocketWallet)
    - version for optimistic locking
    """

    __tablename__ = "gang_members"
    __table_args__ = (
        Index("ix_gang_members_gang_id", "gang_id"),
        Index("ix_gang_members_status_kidnapped_until", "status", "kidnapped_until"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    gang_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("gangs.id", ondelete="SET NULL"),
        nullable=True,
        default=None,
    )
    role: Mapped[str] = mapped_column(String(20), default=GangRole.MEMBER.value)
    level: Mapped[int] = mapped_column(Integer, default=1)

    status: Mapped[str] = mapped_column(String(20), default=MemberStatus.OUTSIDE.value)
    kidnapped_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    kidnapped_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, default=None)

    pocket: Mapped[int] = mapped_column(BigInteger, default=0)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_kidnapped(self) -> bool:
        return self.status == MemberStatus.KIDNAPPED
