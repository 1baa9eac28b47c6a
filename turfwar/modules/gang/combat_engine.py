"""
Combat Resolution Engine
========================

Purpose
-------
Resolve raid, rob and kidnap attempts against in-memory gang and member
rows. The engine computes odds, draws the outcome and applies every state
change (vault, HP, power, counters, tools, hostage fields) to the objects
it is given. It never touches the database: the combat service loads and
locks the rows, calls the engine, then deletes or persists what the
returned outcome describes.

Domain
------
- Raid: base damage against the defender's base, vault theft, destruction
  cascade when HP reaches 0
- Rob: vault theft with lockpick bonuses and breakage, reduced by guards
  at the defender's base
- Kidnap: immobilize an outside member for 1-3 hours, reduced by the
  target's personal guard escort
- Shared preconditions and the hostage release helpers

Design Decisions
----------------
- Randomness comes from an injected `random.Random`.
  Draw order per action is fixed: success roll first, then tool breakage,
  then amounts.
- Every number comes from `ProgressionTables` and `gangs.*` config keys;
  code defaults mirror `config/gangs.yaml`.
- Power losses only apply while the gang's power is above the loss amount,
  so power never drops below zero through combat.
- Outcomes are frozen dataclasses with `to_dict()` for the service layer.

Dependencies
------------
- resolver: success-rate algebra
- vault: capacity-bounded transfers
- tools: lockpick selection and breach charges
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from turfwar.core.exceptions import InvariantViolationError
from turfwar.core.logging.logger import get_logger
from turfwar.database.models.enums import GangRole, MemberStatus, ToolId
from turfwar.modules.gang import tools, vault
from turfwar.modules.gang.progression import (
    DEFAULT_TABLES,
    ProgressionTables,
    wall_defense_bonus,
    weapon_damage_bonus,
    weapon_success_bonus,
)
from turfwar.modules.gang.resolver import ResolvedRate, guard_protection, odds, resolve, roll
from turfwar.modules.shared.exceptions import PreconditionFailedError

if TYPE_CHECKING:
    from turfwar.database.models.gang import Gang, GangMember

logger = get_logger(__name__)


# ============================================================================
# Outcomes
# ============================================================================


@dataclass(frozen=True)
class RaidOutcome:
    success: bool
    rate: ResolvedRate
    breach_used: bool
    damage: int
    hp_before: int
    hp_after: int
    destroyed: bool
    stolen: int
    attacker_power_delta: int
    defender_power_delta: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "rate": self.rate.to_dict(),
            "breach_used": self.breach_used,
            "damage": self.damage,
            "hp_before": self.hp_before,
            "hp_after": self.hp_after,
            "destroyed": self.destroyed,
            "stolen": self.stolen,
            "attacker_power_delta": self.attacker_power_delta,
            "defender_power_delta": self.defender_power_delta,
        }


@dataclass(frozen=True)
class RobOutcome:
    success: bool
    rate: ResolvedRate
    lockpick: Optional[str]
    lockpick_broke: bool
    guards: int
    attempted: int
    stolen: int
    attacker_power_delta: int
    defender_power_delta: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "rate": self.rate.to_dict(),
            "lockpick": self.lockpick,
            "lockpick_broke": self.lockpick_broke,
            "guards": self.guards,
            "attempted": self.attempted,
            "stolen": self.stolen,
            "attacker_power_delta": self.attacker_power_delta,
            "defender_power_delta": self.defender_power_delta,
        }


@dataclass(frozen=True)
class KidnapOutcome:
    success: bool
    rate: ResolvedRate
    escort_guards: int
    hours: int
    kidnapped_until: Optional[datetime]
    attacker_power_delta: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "rate": self.rate.to_dict(),
            "escort_guards": self.escort_guards,
            "hours": self.hours,
            "kidnapped_until": self.kidnapped_until,
            "attacker_power_delta": self.attacker_power_delta,
        }


# ============================================================================
# Shared preconditions and hostage helpers
# ============================================================================


def ensure_can_act(member: GangMember, action: str) -> None:
    """Actor must be free and in a gang."""
    if member.status == MemberStatus.KIDNAPPED:
        raise PreconditionFailedError(action, "you are being held hostage")
    if member.gang_id is None:
        raise PreconditionFailedError(action, "you are not in a gang")


def ensure_rival(attacker: Gang, defender: Optional[Gang], action: str) -> Gang:
    if defender is None:
        raise PreconditionFailedError(action, "target gang does not exist")
    if defender.id == attacker.id:
        raise PreconditionFailedError(action, "cannot target your own gang")
    return defender


def ensure_kidnappable(actor: GangMember, target: GangMember) -> None:
    if target.id == actor.id:
        raise PreconditionFailedError("kidnap", "cannot kidnap yourself")
    if target.status == MemberStatus.KIDNAPPED:
        raise PreconditionFailedError("kidnap", "target is already held hostage")
    if target.gang_id is not None and target.gang_id == actor.gang_id:
        raise PreconditionFailedError("kidnap", "target is in your gang")
    if target.gang_id is not None and target.status == MemberStatus.BASE:
        raise PreconditionFailedError("kidnap", "target is safe inside their base")


def release(member: GangMember) -> None:
    """Clear hostage state; the member wakes up at base if they have one."""
    member.status = (
        MemberStatus.BASE.value if member.gang_id is not None else MemberStatus.OUTSIDE.value
    )
    member.kidnapped_until = None
    member.kidnapped_by = None


def release_expired(member: GangMember, now: datetime) -> bool:
    """Release `member` if their kidnap has run out. Returns True if released."""
    if member.status != MemberStatus.KIDNAPPED:
        return False
    if member.kidnapped_until is not None and member.kidnapped_until > now:
        return False
    release(member)
    return True


def dissolve_membership(members: Iterable[GangMember]) -> List[int]:
    """
    Detach every member from their gang.

    Hostages keep their captivity; everyone else is put outside.
    Returns the affected user ids.
    """
    user_ids: List[int] = []
    for member in members:
        member.gang_id = None
        member.role = GangRole.MEMBER.value
        if member.status != MemberStatus.KIDNAPPED:
            member.status = MemberStatus.OUTSIDE.value
        user_ids.append(member.user_id)
    return user_ids


def _gain_power(gang: Gang, amount: int) -> int:
    gang.power += amount
    return amount


def _lose_power(gang: Gang, amount: int) -> int:
    """Apply a power loss only while power stays positive; returns the signed delta."""
    if gang.power > amount:
        gang.power -= amount
        return -amount
    return 0


# ============================================================================
# CombatEngine
# ============================================================================


class CombatEngine:
    """
    Pure resolver for raid, rob and kidnap.

    Public Methods
    --------------
    - raid_rate(attacker, defender, breach) -> ResolvedRate
    - resolve_raid(attacker, defender) -> RaidOutcome
    - rob_rate(attacker, defender, lockpick, guards) -> ResolvedRate
    - resolve_rob(attacker, defender, guards_at_base) -> RobOutcome
    - kidnap_rate(target, target_gang, escort_guards) -> ResolvedRate
    - resolve_kidnap(actor, attacker, target, target_gang, escort_guards, now) -> KidnapOutcome
    """

    def __init__(
        self,
        config: Any,
        tables: ProgressionTables = DEFAULT_TABLES,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._tables = tables
        self._rng = rng or random.Random()

        self._raid_base_rate = int(config.get("gangs.raid.base_rate", 50))
        self._raid_damage_min = float(config.get("gangs.raid.damage_min_pct", 0.05))
        self._raid_damage_max = float(config.get("gangs.raid.damage_max_pct", 0.15))
        self._raid_steal_min = float(config.get("gangs.raid.steal_min_pct", 0.05))
        self._raid_steal_max = float(config.get("gangs.raid.steal_max_pct", 0.15))
        self._raid_power = {
            "destroy": int(config.get("gangs.raid.power.destroy", 25)),
            "win": int(config.get("gangs.raid.power.win", 10)),
            "defender_loss": int(config.get("gangs.raid.power.defender_loss", 5)),
            "fail": int(config.get("gangs.raid.power.fail", 3)),
            "defender_hold": int(config.get("gangs.raid.power.defender_hold", 5)),
        }

        self._rob_base_rate = int(config.get("gangs.rob.base_rate", 60))
        self._rob_min_steal = int(config.get("gangs.rob.min_steal", 500))
        self._rob_max_steal = int(config.get("gangs.rob.max_steal", 2000))
        self._rob_power = {
            "win": int(config.get("gangs.rob.power.win", 3)),
            "defender_loss": int(config.get("gangs.rob.power.defender_loss", 2)),
            "fail": int(config.get("gangs.rob.power.fail", 1)),
            "defender_hold": int(config.get("gangs.rob.power.defender_hold", 2)),
        }

        self._kidnap_base_rate = int(config.get("gangs.kidnap.base_rate", 70))
        self._kidnap_unaffiliated_bonus = int(config.get("gangs.kidnap.unaffiliated_bonus", 20))
        self._kidnap_hours: Sequence[int] = tuple(
            int(h) for h in config.get("gangs.kidnap.duration_hours", [1, 2, 3])
        )
        self._kidnap_power = {
            "win": int(config.get("gangs.kidnap.power.win", 5)),
            "fail": int(config.get("gangs.kidnap.power.fail", 2)),
        }

    @property
    def tables(self) -> ProgressionTables:
        return self._tables

    # ------------------------------------------------------------------
    # Raid
    # ------------------------------------------------------------------

    def raid_rate(self, attacker: Gang, defender: Gang, breach: bool) -> ResolvedRate:
        breach_bonus = tools.get_tool(ToolId.BREACH_CHARGE).success_bonus if breach else 0
        return resolve(
            self._raid_base_rate,
            [
                odds("weapons", weapon_success_bonus(attacker.weapons_level)),
                odds("breach_charge", breach_bonus),
                odds("walls", -wall_defense_bonus(defender.walls_level)),
            ],
        )

    def roll_raid_damage(self, defender: Gang, attacker: Gang, breach: bool) -> int:
        max_hp = self._tables.max_hp(defender.base_level)
        low = math.floor(max_hp * self._raid_damage_min)
        high = math.floor(max_hp * self._raid_damage_max)
        damage = self._rng.randint(low, max(low, high))
        damage += damage * weapon_damage_bonus(attacker.weapons_level) // 100
        if breach:
            damage += tools.get_tool(ToolId.BREACH_CHARGE).damage_bonus
        return damage

    def resolve_raid(self, attacker: Gang, defender: Gang) -> RaidOutcome:
        """
        Resolve one raid and apply its effects to both gangs.

        A breach charge held by the attacker is spent on every attempt. When
        `destroyed` is set the caller must dissolve the defender's
        membership and delete the defender row; nothing else changes on it.
        """
        breach = tools.owns(attacker, ToolId.BREACH_CHARGE)
        if breach:
            tools.consume(attacker, ToolId.BREACH_CHARGE)

        rate = self.raid_rate(attacker, defender, breach)
        hp_before = defender.base_hp

        if not roll(rate.rate, self._rng):
            attacker.losses += 1
            attacker_delta = _lose_power(attacker, self._raid_power["fail"])
            defender.wins += 1
            defender_delta = _gain_power(defender, self._raid_power["defender_hold"])
            return RaidOutcome(
                success=False,
                rate=rate,
                breach_used=breach,
                damage=0,
                hp_before=hp_before,
                hp_after=hp_before,
                destroyed=False,
                stolen=0,
                attacker_power_delta=attacker_delta,
                defender_power_delta=defender_delta,
            )

        damage = self.roll_raid_damage(defender, attacker, breach)
        defender.base_hp = max(0, defender.base_hp - damage)
        self._assert_hp(defender)

        attacker.wins += 1
        attacker.raids += 1

        if defender.base_hp == 0:
            loot = defender.vault
            vault.debit(defender, loot)
            stolen = vault.credit(attacker, loot, self._tables)
            attacker.total_earnings += stolen
            attacker_delta = _gain_power(attacker, self._raid_power["destroy"])
            logger.info(
                "Gang destroyed in raid",
                extra={
                    "attacker_gang_id": attacker.id,
                    "defender_gang_id": defender.id,
                    "loot": loot,
                    "credited": stolen,
                },
            )
            return RaidOutcome(
                success=True,
                rate=rate,
                breach_used=breach,
                damage=damage,
                hp_before=hp_before,
                hp_after=0,
                destroyed=True,
                stolen=stolen,
                attacker_power_delta=attacker_delta,
                defender_power_delta=0,
            )

        share = self._rng.uniform(self._raid_steal_min, self._raid_steal_max)
        stolen = vault.transfer(defender, attacker, math.floor(defender.vault * share), self._tables)
        attacker.total_earnings += stolen
        attacker_delta = _gain_power(attacker, self._raid_power["win"])
        defender.losses += 1
        defender_delta = _lose_power(defender, self._raid_power["defender_loss"])

        return RaidOutcome(
            success=True,
            rate=rate,
            breach_used=breach,
            damage=damage,
            hp_before=hp_before,
            hp_after=defender.base_hp,
            destroyed=False,
            stolen=stolen,
            attacker_power_delta=attacker_delta,
            defender_power_delta=defender_delta,
        )

    # ------------------------------------------------------------------
    # Rob
    # ------------------------------------------------------------------

    def rob_rate(
        self,
        attacker: Gang,
        defender: Gang,
        lockpick: Optional[tools.ToolSpec],
        guards: int,
    ) -> ResolvedRate:
        return resolve(
            self._rob_base_rate,
            [
                odds("lockpick", lockpick.success_bonus if lockpick else 0),
                guard_protection(guards, defender.guards_training_level),
            ],
        )

    def resolve_rob(self, attacker: Gang, defender: Gang, guards_at_base: int) -> RobOutcome:
        if defender.vault <= 0:
            raise PreconditionFailedError("rob", "target vault is empty")

        lockpick = tools.best_lockpick(attacker)
        rate = self.rob_rate(attacker, defender, lockpick, guards_at_base)
        success = roll(rate.rate, self._rng)

        broke = False
        if lockpick is not None and tools.roll_breakage(lockpick, self._rng):
            tools.consume(attacker, lockpick.tool_id)
            broke = True

        attempted = 0
        stolen = 0
        if success:
            max_steal = self._rob_max_steal + (lockpick.steal_cap_bonus if lockpick else 0)
            low = min(self._rob_min_steal, defender.vault)
            high = min(max_steal, defender.vault)
            attempted = self._rng.randint(low, high)
            stolen = vault.transfer(defender, attacker, attempted, self._tables)
            attacker.total_earnings += stolen
            attacker.robs += 1
            attacker_delta = _gain_power(attacker, self._rob_power["win"])
            defender_delta = _lose_power(defender, self._rob_power["defender_loss"])
        else:
            attacker_delta = _lose_power(attacker, self._rob_power["fail"])
            defender_delta = _gain_power(defender, self._rob_power["defender_hold"])

        return RobOutcome(
            success=success,
            rate=rate,
            lockpick=lockpick.tool_id.value if lockpick else None,
            lockpick_broke=broke,
            guards=guards_at_base,
            attempted=attempted,
            stolen=stolen,
            attacker_power_delta=attacker_delta,
            defender_power_delta=defender_delta,
        )

    # ------------------------------------------------------------------
    # Kidnap
    # ------------------------------------------------------------------

    def kidnap_rate(
        self, target: GangMember, target_gang: Optional[Gang], escort_guards: int
    ) -> ResolvedRate:
        training_level = target_gang.guards_training_level if target_gang is not None else 1
        bonus = self._kidnap_unaffiliated_bonus if target.gang_id is None else 0
        return resolve(
            self._kidnap_base_rate,
            [
                odds("unaffiliated_target", bonus),
                guard_protection(escort_guards, training_level),
            ],
        )

    def resolve_kidnap(
        self,
        actor: GangMember,
        attacker: Gang,
        target: GangMember,
        target_gang: Optional[Gang],
        escort_guards: int,
        now: datetime,
    ) -> KidnapOutcome:
        """
        Resolve one kidnap attempt.

        On success the caller must delete the target's escort units.
        """
        ensure_kidnappable(actor, target)
        rate = self.kidnap_rate(target, target_gang, escort_guards)

        if not roll(rate.rate, self._rng):
            return KidnapOutcome(
                success=False,
                rate=rate,
                escort_guards=escort_guards,
                hours=0,
                kidnapped_until=None,
                attacker_power_delta=_lose_power(attacker, self._kidnap_power["fail"]),
            )

        hours = self._rng.choice(self._kidnap_hours)
        until = now + timedelta(hours=hours)
        target.status = MemberStatus.KIDNAPPED.value
        target.kidnapped_until = until
        target.kidnapped_by = actor.user_id

        attacker.kidnaps += 1
        attacker.hostages += 1
        delta = _gain_power(attacker, self._kidnap_power["win"])

        return KidnapOutcome(
            success=True,
            rate=rate,
            escort_guards=escort_guards,
            hours=hours,
            kidnapped_until=until,
            attacker_power_delta=delta,
        )

    # ------------------------------------------------------------------

    def _assert_hp(self, gang: Gang) -> None:
        max_hp = self._tables.max_hp(gang.base_level)
        if not 0 <= gang.base_hp <= max_hp:
            raise InvariantViolationError(
                "base_hp_bounds",
                {"gang_id": gang.id, "hp": gang.base_hp, "max_hp": max_hp},
            )
