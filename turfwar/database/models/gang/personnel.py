"""
GangPersonnel: one hired guard or medic with its own level.
Pure schema.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from turfwar.core.database.base import Base, IdMixin, TimestampMixin


class GangPersonnel(Base, IdMixin, TimestampMixin):
    """
    Hired unit.

    Schema-only:
    - gang_id (FK, deleted with the gang)
    - kind ("guard" or "medic")
    - level (1-10)
    - escort_member_id: set while a guard escorts a member outside the base
    """

    __tablename__ = "gang_personnel"
    __table_args__ = (
        Index("ix_gang_personnel_gang_kind", "gang_id", "kind"),
        Index("ix_gang_personnel_escort", "escort_member_id"),
    )

    gang_id: Mapped[int] = mapped_column(
        ForeignKey("gangs.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    escort_member_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("gang_members.id", ondelete="SET NULL"),
        nullable=True,
        default=None,
    )

    @property
    def at_base(self) -> bool:
        return self.escort_member_id is None
