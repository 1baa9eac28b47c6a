"""
Database Model Enums
====================

Lightweight enumerations for gang models.

These enums provide type-safe constants for categorical columns. Columns
store the `.value` string; because every enum subclasses `str`, a value read
back from the database compares equal to its enum member.
"""

from __future__ import annotations

import enum


class GangRole(str, enum.Enum):
    """Role of a member inside their gang."""

    LEADER = "leader"
    OFFICER = "officer"
    MEMBER = "member"


class MemberStatus(str, enum.Enum):
    """
    Physical whereabouts of a member.

    Only members outside their base can be kidnapped; kidnapped members
    cannot act until released or until the kidnap expires.
    """

    OUTSIDE = "outside"
    BASE = "base"
    KIDNAPPED = "kidnapped"


class PersonnelKind(str, enum.Enum):
    GUARD = "guard"
    MEDIC = "medic"


class CooldownAction(str, enum.Enum):
    """Per-member rate-limited actions. Raid is limited per gang instead."""

    ROB = "rob"
    KIDNAP = "kidnap"
    REPAIR = "repair"


class UpgradeType(str, enum.Enum):
    """Gang-wide upgrade tiers, each ranging over levels 1-10."""

    WEAPONS = "weapons"
    WALLS = "walls"
    GUARDS_TRAINING = "guards_training"
    MEDIC_TRAINING = "medic_training"


class ToolId(str, enum.Enum):
    BASIC_LOCKPICK = "basic_lockpick"
    STEEL_LOCKPICK = "steel_lockpick"
    TITAN_LOCKPICK = "titan_lockpick"
    BREACH_CHARGE = "breach_charge"
