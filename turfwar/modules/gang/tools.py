"""
Tool Inventory
==============

Purpose
-------
Static tool catalog and the inventory rules that feed tool bonuses into
the resolver. Ownership is gang-scoped: lockpicks are permanent flags on
the gang row, breach charges a consumable count.

Domain
------
- Lockpicks (basic, steel, titan): rob success bonus, titan also raises the
  steal cap; each has an independent breakage chance rolled on use
- Breach charge: consumable raid bonus (success and flat damage)

Design Decisions
----------------
- Best lockpick is chosen titan > steel > basic.
- Breakage is rolled once per use, independently of the rob outcome.
- Prices and breach stack limit are config-driven (`gangs.tools.*`).
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from turfwar.database.models.enums import ToolId
from turfwar.modules.shared.exceptions import NotFoundError, PreconditionFailedError

if TYPE_CHECKING:
    from turfwar.database.models.gang import Gang


@dataclass(frozen=True)
class ToolSpec:
    """Catalog entry."""

    tool_id: ToolId
    name: str
    price: int
    permanent: bool
    success_bonus: int
    steal_cap_bonus: int = 0
    damage_bonus: int = 0
    break_chance: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_id": self.tool_id.value,
            "name": self.name,
            "price": self.price,
            "permanent": self.permanent,
            "success_bonus": self.success_bonus,
            "steal_cap_bonus": self.steal_cap_bonus,
            "damage_bonus": self.damage_bonus,
            "break_chance": self.break_chance,
        }


TOOL_CATALOG: Dict[ToolId, ToolSpec] = {
    ToolId.BASIC_LOCKPICK: ToolSpec(
        ToolId.BASIC_LOCKPICK, "Basic Lockpick", 6_000, True, 10, break_chance=0.25
    ),
    ToolId.STEEL_LOCKPICK: ToolSpec(
        ToolId.STEEL_LOCKPICK, "Steel Lockpick", 12_000, True, 25, break_chance=0.10
    ),
    ToolId.TITAN_LOCKPICK: ToolSpec(
        ToolId.TITAN_LOCKPICK,
        "Titan Lockpick",
        25_000,
        True,
        45,
        steal_cap_bonus=2_000,
        break_chance=0.05,
    ),
    ToolId.BREACH_CHARGE: ToolSpec(
        ToolId.BREACH_CHARGE, "Breach Charge", 40_000, False, 30, damage_bonus=100
    ),
}

# Preferred first
LOCKPICK_ORDER: Tuple[ToolId, ...] = (
    ToolId.TITAN_LOCKPICK,
    ToolId.STEEL_LOCKPICK,
    ToolId.BASIC_LOCKPICK,
)

_ALIASES: Dict[str, ToolId] = {
    "basic": ToolId.BASIC_LOCKPICK,
    "steel": ToolId.STEEL_LOCKPICK,
    "titan": ToolId.TITAN_LOCKPICK,
    "breach": ToolId.BREACH_CHARGE,
    "charge": ToolId.BREACH_CHARGE,
}

_SEPARATORS = re.compile(r"[\s_\-]+")


def _compact(text: str) -> str:
    return _SEPARATORS.sub("", text.lower())


# "Basic Lockpick", "basic-lockpick" and "basiclockpick" share one key
_LOOKUP: Dict[str, ToolId] = {
    **{_compact(tool_id.value): tool_id for tool_id in ToolId},
    **_ALIASES,
}

_FLAG_COLUMNS: Dict[ToolId, str] = {
    ToolId.BASIC_LOCKPICK: "basic_lockpick",
    ToolId.STEEL_LOCKPICK: "steel_lockpick",
    ToolId.TITAN_LOCKPICK: "titan_lockpick",
}


def get_tool(key: ToolId | str) -> ToolSpec:
    """Look up a tool by id or alias, ignoring case, spaces, hyphens and underscores."""
    if isinstance(key, ToolId):
        return TOOL_CATALOG[key]
    tool_id = _LOOKUP.get(_compact(key))
    if tool_id is None:
        raise NotFoundError("Tool", key)
    return TOOL_CATALOG[tool_id]


def owns(gang: Gang, tool_id: ToolId) -> bool:
    if tool_id is ToolId.BREACH_CHARGE:
        return gang.breach_charges > 0
    return bool(getattr(gang, _FLAG_COLUMNS[tool_id]))


def best_lockpick(gang: Gang) -> Optional[ToolSpec]:
    for tool_id in LOCKPICK_ORDER:
        if owns(gang, tool_id):
            return TOOL_CATALOG[tool_id]
    return None


def grant(gang: Gang, tool_id: ToolId, max_breach_charges: int = 1) -> None:
    """Add a tool to the gang inventory, refusing duplicates past the limit."""
    if tool_id is ToolId.BREACH_CHARGE:
        if gang.breach_charges >= max_breach_charges:
            raise PreconditionFailedError(
                "buy",
                f"gang already holds {gang.breach_charges} breach charge(s)",
                limit=max_breach_charges,
            )
        gang.breach_charges += 1
        return

    if owns(gang, tool_id):
        raise PreconditionFailedError("buy", f"gang already owns {TOOL_CATALOG[tool_id].name}")
    setattr(gang, _FLAG_COLUMNS[tool_id], True)


def consume(gang: Gang, tool_id: ToolId) -> None:
    """Remove one unit of a tool. No-op when the gang holds none."""
    if tool_id is ToolId.BREACH_CHARGE:
        gang.breach_charges = max(0, gang.breach_charges - 1)
    else:
        setattr(gang, _FLAG_COLUMNS[tool_id], False)


def roll_breakage(tool: ToolSpec, rng: random.Random) -> bool:
    return tool.break_chance > 0 and rng.random() < tool.break_chance


def inventory(gang: Gang) -> Dict[str, Any]:
    return {
        ToolId.BASIC_LOCKPICK.value: gang.basic_lockpick,
        ToolId.STEEL_LOCKPICK.value: gang.steel_lockpick,
        ToolId.TITAN_LOCKPICK.value: gang.titan_lockpick,
        ToolId.BREACH_CHARGE.value: gang.breach_charges,
    }
