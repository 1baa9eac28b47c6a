"""
MemberCooldown: last use of a rate-limited action per member.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from turfwar.core.database.base import Base, IdMixin


class MemberCooldown(Base, IdMixin):
    """One row per (member, action); action is a CooldownAction value."""

    __tablename__ = "member_cooldowns"
    __table_args__ = (
        UniqueConstraint("member_id", "action", name="uq_member_cooldowns_member_action"),
    )

    member_id: Mapped[int] = mapped_column(
        ForeignKey("gang_members.id", ondelete="CASCADE"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    last_used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
