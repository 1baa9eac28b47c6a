"""
Success-Rate Resolver
=====================

Purpose
-------
Combine a base probability with named modifiers and clamp the result to a
safety band so no action is ever certain to succeed or fail.

Design Decisions
----------------
- Modifiers are tagged with a stage. ODDS terms (tools, weapons, walls,
  unaffiliated-target bonus) are summed onto the base rate and clamped;
  PROTECTION terms (guards) are then applied to the clamped rate and the
  result is clamped again. Every action uses this same order.
- The band is [5, 95] whatever the inputs.
- `roll` takes an injectable `random.Random` so outcomes are reproducible
  in tests.
"""

from __future__ import annotations

import enum
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from turfwar.modules.gang.progression import training_bonus

MIN_RATE = 5
MAX_RATE = 95
PER_GUARD_BASE_PROTECTION = 5


class ModifierStage(str, enum.Enum):
    ODDS = "odds"
    PROTECTION = "protection"


@dataclass(frozen=True)
class Modifier:
    """A named, signed term added to a success rate."""

    name: str
    value: int
    stage: ModifierStage = ModifierStage.ODDS

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value, "stage": self.stage.value}


@dataclass(frozen=True)
class ResolvedRate:
    """
    Outcome of `resolve`.

    Attributes:
        rate: Final clamped success rate in [5, 95]
        raw: Unclamped sum of base and every modifier
        base: Base rate before modifiers
        breakdown: Modifiers in application order
    """

    rate: int
    raw: int
    base: int
    breakdown: Tuple[Modifier, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "raw": self.raw,
            "base": self.base,
            "modifiers": [m.to_dict() for m in self.breakdown],
        }


def clamp_rate(value: float) -> int:
    return int(max(MIN_RATE, min(MAX_RATE, value)))


def resolve(base_rate: int, modifiers: Iterable[Modifier] = ()) -> ResolvedRate:
    """
    Resolve a success rate.

    Zero-valued modifiers are dropped from the breakdown.
    """
    applied: List[Modifier] = [m for m in modifiers if m.value != 0]
    odds = [m for m in applied if m.stage is ModifierStage.ODDS]
    protection = [m for m in applied if m.stage is ModifierStage.PROTECTION]

    rate = clamp_rate(base_rate + sum(m.value for m in odds))
    if protection:
        rate = clamp_rate(rate + sum(m.value for m in protection))

    raw = base_rate + sum(m.value for m in applied)
    return ResolvedRate(rate=rate, raw=raw, base=base_rate, breakdown=tuple(odds + protection))


def roll(rate: int, rng: random.Random) -> bool:
    """One uniform draw in [0, 100); success when below `rate`."""
    return rng.random() * 100 < rate


def per_guard_protection(training_level: int) -> int:
    return PER_GUARD_BASE_PROTECTION + training_bonus(training_level)


def guard_protection(guard_count: int, training_level: int) -> Modifier:
    """PROTECTION modifier for `guard_count` guards at the given training tier."""
    return Modifier(
        "guards",
        -guard_count * per_guard_protection(training_level),
        ModifierStage.PROTECTION,
    )


def odds(name: str, value: int) -> Modifier:
    return Modifier(name, value, ModifierStage.ODDS)


