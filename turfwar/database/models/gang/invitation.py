"""
GangInvitation: pending invitation for a player to join a gang.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from turfwar.core.database.base import Base, IdMixin, TimestampMixin


class GangInvitation(Base, IdMixin, TimestampMixin):
    """
    Invitation from one player to another.

    Schema-only:
    - gang_id (FK, deleted with the gang)
    - invitee_id / inviter_id (user identities)
    - expires_at
    """

    __tablename__ = "gang_invitations"
    __table_args__ = (
        UniqueConstraint("gang_id", "invitee_id", name="uq_gang_invitations_gang_invitee"),
    )

    gang_id: Mapped[int] = mapped_column(
        ForeignKey("gangs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    invitee_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    inviter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
