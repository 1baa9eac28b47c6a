"""
Progression Tables
==================

Purpose
-------
Static lookup data for gang bases and upgrade tiers: base-level stats,
geometric upgrade cost curves, bonus formulas and tier names.

Domain
------
- Base levels 1-8 (named tiers) with HP, vault capacity, personnel caps
  and the cost of the next level
- Upgrade tiers (weapons, walls, guards training, medic training), 1-10
- Bonus curves read by the combat engine and the repair flow

Design Decisions
----------------
- One `ProgressionTables` instance is the single source of truth; every
  combat formula receives it instead of reading its own constants.
- Defaults live in code and mirror `config/gangs.yaml`; `from_config`
  lets YAML override any table.
- Pure functions of level. No I/O, no logging in the hot path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from turfwar.database.models.enums import UpgradeType
from turfwar.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from turfwar.core.config.manager import ConfigManager


# ============================================================================
# Data Models
# ============================================================================


@dataclass(frozen=True)
class BaseStats:
    """Stats of one base level."""

    level: int
    name: str
    max_hp: int
    vault_capacity: int
    max_guards: int
    max_medics: int
    upgrade_cost_to_next: int  # 0 at the top level

    @property
    def is_max(self) -> bool:
        return self.upgrade_cost_to_next == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "name": self.name,
            "max_hp": self.max_hp,
            "vault_capacity": self.vault_capacity,
            "max_guards": self.max_guards,
            "max_medics": self.max_medics,
            "upgrade_cost_to_next": self.upgrade_cost_to_next,
        }


_DEFAULT_BASE_LEVELS: Tuple[BaseStats, ...] = (
    BaseStats(1, "Trailer", 250, 10_000, 4, 2, 10_000),
    BaseStats(2, "Cabin", 500, 20_000, 6, 3, 20_000),
    BaseStats(3, "Warehouse", 900, 35_000, 8, 4, 35_000),
    BaseStats(4, "Bunker", 1_400, 55_000, 10, 5, 55_000),
    BaseStats(5, "Compound", 2_000, 80_000, 12, 6, 80_000),
    BaseStats(6, "Fortress", 2_800, 110_000, 14, 7, 110_000),
    BaseStats(7, "Citadel", 3_800, 150_000, 16, 8, 150_000),
    BaseStats(8, "Kingdom", 5_000, 200_000, 18, 9, 0),
)

_DEFAULT_UPGRADE_BASE_COSTS: Dict[UpgradeType, int] = {
    UpgradeType.WEAPONS: 5_000,
    UpgradeType.WALLS: 8_000,
    UpgradeType.GUARDS_TRAINING: 12_000,
    UpgradeType.MEDIC_TRAINING: 1_200,
}

WALL_NAMES: Tuple[str, ...] = (
    "Rusty Fence",
    "Chain Fence",
    "Barbed Fence",
    "Reinforced Fence",
    "Plated Wall",
    "Concrete Barrier",
    "Fortified Wall",
    "Armored Gate",
    "Blast Wall",
    "Energy Perimeter",
)

# (minimum hp ratio, label), checked top-down
_CONDITION_THRESHOLDS: Tuple[Tuple[float, str], ...] = (
    (0.90, "Excellent"),
    (0.70, "Good"),
    (0.50, "Damaged"),
    (0.25, "Critical"),
)


# ============================================================================
# Tables
# ============================================================================


@dataclass(frozen=True)
class ProgressionTables:
    """
    Base ladder plus upgrade tier curves.

    Attributes:
        base_levels: Stats for levels 1..N in order
        upgrade_base_costs: Level-1 cost per upgrade type
        upgrade_multiplier: Geometric growth per level
        max_upgrade_level: Top tier for every upgrade type
    """

    base_levels: Tuple[BaseStats, ...] = _DEFAULT_BASE_LEVELS
    upgrade_base_costs: Mapping[UpgradeType, int] = field(
        default_factory=lambda: dict(_DEFAULT_UPGRADE_BASE_COSTS)
    )
    upgrade_multiplier: float = 1.5
    max_upgrade_level: int = 10

    @classmethod
    def default(cls) -> ProgressionTables:
        return cls()

    @classmethod
    def from_config(cls, config: type[ConfigManager] | Any) -> ProgressionTables:
        """
        Build tables from `gangs.base.levels` and `gangs.upgrades.*`.

        Missing keys fall back to the built-in defaults.
        """
        raw_levels: Optional[List[Mapping[str, Any]]] = config.get("gangs.base.levels")
        if raw_levels:
            levels = tuple(
                BaseStats(
                    level=index + 1,
                    name=str(entry["name"]),
                    max_hp=int(entry["max_hp"]),
                    vault_capacity=int(entry["vault_capacity"]),
                    max_guards=int(entry["max_guards"]),
                    max_medics=int(entry["max_medics"]),
                    upgrade_cost_to_next=int(entry.get("upgrade_cost", 0)),
                )
                for index, entry in enumerate(raw_levels)
            )
        else:
            levels = _DEFAULT_BASE_LEVELS

        raw_costs: Mapping[str, Any] = config.get("gangs.upgrades.base_costs") or {}
        costs = dict(_DEFAULT_UPGRADE_BASE_COSTS)
        for key, value in raw_costs.items():
            costs[UpgradeType(key)] = int(value)

        return cls(
            base_levels=levels,
            upgrade_base_costs=costs,
            upgrade_multiplier=float(config.get("gangs.upgrades.multiplier", 1.5)),
            max_upgrade_level=int(config.get("gangs.upgrades.max_level", 10)),
        )

    # ------------------------------------------------------------------
    # Base ladder
    # ------------------------------------------------------------------

    @property
    def max_base_level(self) -> int:
        return len(self.base_levels)

    def base_stats(self, level: int) -> BaseStats:
        if not 1 <= level <= self.max_base_level:
            raise ValidationError(
                "base_level", f"must be between 1 and {self.max_base_level}, got {level}"
            )
        return self.base_levels[level - 1]

    def vault_capacity(self, level: int) -> int:
        return self.base_stats(level).vault_capacity

    def max_hp(self, level: int) -> int:
        return self.base_stats(level).max_hp

    # ------------------------------------------------------------------
    # Upgrade tiers
    # ------------------------------------------------------------------

    def upgrade_cost(self, upgrade_type: UpgradeType | str, current_level: int) -> int:
        """
        Cost to raise `upgrade_type` from `current_level` to the next tier.

        floor(base_cost * multiplier ** (current_level - 1)); 0 at max level.
        """
        upgrade_type = UpgradeType(upgrade_type)
        if current_level < 1:
            raise ValidationError("level", f"must be at least 1, got {current_level}")
        if current_level >= self.max_upgrade_level:
            return 0
        base_cost = self.upgrade_base_costs[upgrade_type]
        return int(base_cost * self.upgrade_multiplier ** (current_level - 1))


DEFAULT_TABLES = ProgressionTables.default()


# ============================================================================
# Bonus curves
# ============================================================================


def training_bonus(level: int) -> int:
    """Guard training bonus: +10 per level above 1."""
    return (level - 1) * 10


def medic_training_bonus(level: int) -> int:
    return (level - 1) * 15


def weapon_damage_bonus(level: int) -> int:
    """Percent added to raid damage."""
    return (level - 1) * 15


def weapon_success_bonus(level: int) -> int:
    return (level - 1) * 5


def wall_defense_bonus(level: int) -> int:
    """Points subtracted from a raider's success rate."""
    return (level - 1) * 5


def wall_name(level: int) -> str:
    index = min(max(level, 1), len(WALL_NAMES)) - 1
    return WALL_NAMES[index]


def base_condition(hp: int, max_hp: int) -> str:
    if max_hp <= 0:
        return "Ruined"
    ratio = hp / max_hp
    for threshold, label in _CONDITION_THRESHOLDS:
        if ratio >= threshold:
            return label
    return "Ruined"


# Module-level shortcuts over the default tables


def base_stats(level: int) -> BaseStats:
    return DEFAULT_TABLES.base_stats(level)


def upgrade_cost(upgrade_type: UpgradeType | str, current_level: int) -> int:
    return DEFAULT_TABLES.upgrade_cost(upgrade_type, current_level)
