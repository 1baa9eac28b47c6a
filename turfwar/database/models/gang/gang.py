"""
Gang: persistent faction with a vault, a base, upgrades and tools.
Pure schema.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from turfwar.core.database.base import Base, IdMixin, TimestampMixin


class Gang(Base, IdMixin, TimestampMixin):
    """
    Gang aggregate root.

    Schema-only:
    - identity: name, leader_id, description, settings
    - treasury: vault, total_earnings
    - standing: power and combat counters
    - base: base_level, base_hp, last_raid_at
    - upgrade tiers (1-10) and owned tools
    - version for optimistic locking

    Members, personnel and invitations live in their own tables and point
    here by gang_id.
    """

    __tablename__ = "gangs"
    __table_args__ = (
        Index("ix_gangs_leader_id", "leader_id"),
        Index("ix_gangs_power", "power"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    leader_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    description: Mapped[str] = mapped_column(String(250), default="No description set.")
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    max_members: Mapped[int] = mapped_column(Integer, default=10)
    allow_invites: Mapped[bool] = mapped_column(Boolean, default=True)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    min_level_to_join: Mapped[int] = mapped_column(Integer, default=1)
    banned_ids: Mapped[List[int]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        default=list,
    )

    vault: Mapped[int] = mapped_column(BigInteger, default=0)
    total_earnings: Mapped[int] = mapped_column(BigInteger, default=0)

    power: Mapped[int] = mapped_column(Integer, default=100)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    raids: Mapped[int] = mapped_column(Integer, default=0)
    robs: Mapped[int] = mapped_column(Integer, default=0)
    kidnaps: Mapped[int] = mapped_column(Integer, default=0)
    hostages: Mapped[int] = mapped_column(Integer, default=0)

    base_level: Mapped[int] = mapped_column(Integer, default=1)
    base_hp: Mapped[int] = mapped_column(Integer, default=250)
    last_raid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    weapons_level: Mapped[int] = mapped_column(Integer, default=1)
    walls_level: Mapped[int] = mapped_column(Integer, default=1)
    guards_training_level: Mapped[int] = mapped_column(Integer, default=1)
    medic_training_level: Mapped[int] = mapped_column(Integer, default=1)

    basic_lockpick: Mapped[bool] = mapped_column(Boolean, default=False)
    steel_lockpick: Mapped[bool] = mapped_column(Boolean, default=False)
    titan_lockpick: Mapped[bool] = mapped_column(Boolean, default=False)
    breach_charges: Mapped[int] = mapped_column(Integer, default=0)

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic locking version",
    )

    __mapper_args__ = {"version_id_col": version}


Index("ix_gangs_name_lower", func.lower(Gang.name), unique=True)
