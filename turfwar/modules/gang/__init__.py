"""
Gang module - bases, vaults, personnel and gang warfare.

Pure rules (no I/O):
- progression: base level table, upgrade costs, training bonuses
- resolver: success-rate modifiers, two-stage clamp, rolls
- vault: capacity-bounded ledger operations
- tools: tool catalog and inventory helpers
- combat_engine: raid / rob / kidnap resolution against loaded rows

Transactional services:
- GangService: lifecycle, settings, vault deposits and withdrawals
- MemberService: invites, joining, leaving, roles, bans
- PersonnelService: hiring and upgrades
- TurfService: leaving and returning to base, repairs
- CombatService: raid, rob, kidnap
- HostageService: releases and expiry cleanup
- ToolService: tool shop and inventory
"""

from .cleanup_task import GangCleanupConfig, GangCleanupTask
from .combat_engine import CombatEngine, KidnapOutcome, RaidOutcome, RobOutcome
from .combat_service import CombatService
from .cooldowns import CooldownManager
from .gang_base_service import GangBaseService
from .gang_service import GangService
from .hostage_service import HostageService
from .member_service import MemberService
from .personnel_service import PersonnelService
from .progression import DEFAULT_TABLES, BaseStats, ProgressionTables
from .resolver import Modifier, ModifierStage, ResolvedRate
from .tool_service import ToolService
from .tools import TOOL_CATALOG, ToolSpec
from .turf_service import TurfService
from .wallet import PocketWallet, Wallet

__all__ = [
    # Rules
    "BaseStats",
    "ProgressionTables",
    "DEFAULT_TABLES",
    "Modifier",
    "ModifierStage",
    "ResolvedRate",
    "ToolSpec",
    "TOOL_CATALOG",
    "CombatEngine",
    "RaidOutcome",
    "RobOutcome",
    "KidnapOutcome",
    "CooldownManager",
    "Wallet",
    "PocketWallet",
    # Services
    "GangBaseService",
    "GangService",
    "MemberService",
    "PersonnelService",
    "TurfService",
    "CombatService",
    "HostageService",
    "ToolService",
    # Background
    "GangCleanupConfig",
    "GangCleanupTask",
]
