"""
PersonnelService - Personnel & Upgrade Manager
==============================================

Handles:
- Hiring guards and medics up to the base level's caps
- Raising the weakest unit of a kind (single or bulk)
- Gang-wide upgrade tiers (weapons, walls, guards/medic training)
- The base-level ladder

Business Logic:
- Every purchase is paid from the acting member's wallet, never the vault
- Only leaders and officers may hire or upgrade
- Hiring happens on the street: the actor must be outside the base
- Units are explicit rows; counts are the size of the collection
- Unit upgrades always target the current minimum level, so after any
  upgrade the minimum never decreases
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import MemberStatus, PersonnelKind, UpgradeType
from turfwar.database.models.gang import GangPersonnel
from turfwar.modules.gang.gang_base_service import GangBaseService
from turfwar.modules.gang.progression import (
    medic_training_bonus,
    training_bonus,
    wall_defense_bonus,
    wall_name,
    weapon_damage_bonus,
    weapon_success_bonus,
)
from turfwar.modules.shared.exceptions import (
    InsufficientResourcesError,
    PreconditionFailedError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from turfwar.database.models.gang import Gang, GangMember

_TIER_COLUMNS: Dict[UpgradeType, str] = {
    UpgradeType.WEAPONS: "weapons_level",
    UpgradeType.WALLS: "walls_level",
    UpgradeType.GUARDS_TRAINING: "guards_training_level",
    UpgradeType.MEDIC_TRAINING: "medic_training_level",
}

_DEFAULT_HIRE_COST = {PersonnelKind.GUARD: 6_000, PersonnelKind.MEDIC: 7_000}
_DEFAULT_UNIT_UPGRADE_COST = {PersonnelKind.GUARD: 12_000, PersonnelKind.MEDIC: 15_000}


def minimum_level_units(units: List[GangPersonnel]) -> Tuple[int, List[GangPersonnel]]:
    """Lowest level among `units` and the units sitting at it, in id order."""
    lowest = min(unit.level for unit in units)
    return lowest, [unit for unit in units if unit.level == lowest]


class PersonnelService(GangBaseService):
    """Hiring, unit upgrades, gang upgrade tiers and base levels."""

    def hire_cost(self, kind: PersonnelKind) -> int:
        return int(
            self.get_config(f"gangs.personnel.hire_cost.{kind.value}", _DEFAULT_HIRE_COST[kind])
        )

    def unit_upgrade_cost(self, kind: PersonnelKind) -> int:
        return int(
            self.get_config(
                f"gangs.personnel.upgrade_cost.{kind.value}", _DEFAULT_UNIT_UPGRADE_COST[kind]
            )
        )

    @property
    def max_unit_level(self) -> int:
        return int(self.get_config("gangs.personnel.max_level", 10))

    def _cap(self, gang: Gang, kind: PersonnelKind) -> int:
        stats = self._tables.base_stats(gang.base_level)
        return stats.max_guards if kind is PersonnelKind.GUARD else stats.max_medics

    async def _load_commander(
        self, session: AsyncSession, user_id: int, action: str
    ) -> Tuple[GangMember, Gang]:
        now = self._now()
        actor = await self._load_active_actor(session, user_id, action, now)
        self._require_role(actor, action)
        gang = await self._require_gang(session, actor, action)
        return actor, gang

    async def _pay(self, session: AsyncSession, actor: GangMember, cost: int) -> int:
        balance = await self._wallet.get_balance(session, actor)
        if balance < cost:
            raise InsufficientResourcesError("balance", cost, balance)
        return await self._wallet.debit(session, actor, cost)

    # -------------------------------------------------------------------------
    # Hiring
    # -------------------------------------------------------------------------

    async def hire(self, user_id: int, kind: PersonnelKind | str) -> Dict[str, Any]:
        """
        Hire one guard or medic at level 1.

        Raises:
            PreconditionFailedError: Not outside the base, kidnapped, no gang
            PermissionDeniedError: Not leader/officer
            InsufficientResourcesError: Cap reached or balance too low
        """
        kind = PersonnelKind(kind)
        async with LogContext(user_id=user_id, command="hire"):
            result = await self.run_with_retry(
                lambda: self._hire(user_id, kind),
                operation_name="gang.hire",
                user_id=user_id,
                kind=kind.value,
            )
            await self.emit_event("personnel.hired", result)
            return result

    async def _hire(self, user_id: int, kind: PersonnelKind) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang = await self._load_commander(session, user_id, "hire")
            if actor.status != MemberStatus.OUTSIDE:
                raise PreconditionFailedError("hire", "you must be outside the base to recruit")

            units = await self._personnel.list_units(session, gang.id, kind)
            cap = self._cap(gang, kind)
            if len(units) >= cap:
                raise InsufficientResourcesError(f"{kind.value}_slots", len(units) + 1, cap)

            cost = self.hire_cost(kind)
            balance = await self._pay(session, actor, cost)

            unit = self._personnel.add(
                session, GangPersonnel(gang_id=gang.id, kind=kind.value, level=1)
            )
            await self._personnel.flush(session)

            self.log_operation("hire", user_id=user_id, gang_id=gang.id, kind=kind.value, cost=cost)
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "kind": kind.value,
                "unit_id": unit.id,
                "count": len(units) + 1,
                "cap": cap,
                "cost": cost,
                "balance": balance,
            }

    # -------------------------------------------------------------------------
    # Unit upgrades
    # -------------------------------------------------------------------------

    async def upgrade_unit(self, user_id: int, kind: PersonnelKind | str) -> Dict[str, Any]:
        """Raise one unit at the current minimum level by one."""
        return await self._run_unit_upgrade(user_id, PersonnelKind(kind), bulk=False)

    async def upgrade_units_bulk(self, user_id: int, kind: PersonnelKind | str) -> Dict[str, Any]:
        """Raise every unit at the current minimum level; cost scales with the count."""
        return await self._run_unit_upgrade(user_id, PersonnelKind(kind), bulk=True)

    async def _run_unit_upgrade(
        self, user_id: int, kind: PersonnelKind, bulk: bool
    ) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="upgrade_personnel"):
            result = await self.run_with_retry(
                lambda: self._upgrade_units(user_id, kind, bulk),
                operation_name="gang.upgrade_personnel",
                user_id=user_id,
                kind=kind.value,
                bulk=bulk,
            )
            await self.emit_event("personnel.upgraded", result)
            return result

    async def _upgrade_units(
        self, user_id: int, kind: PersonnelKind, bulk: bool
    ) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang = await self._load_commander(session, user_id, "upgrade")

            units = await self._personnel.list_units(session, gang.id, kind, for_update=True)
            if not units:
                raise PreconditionFailedError("upgrade", f"gang has no {kind.value}s")

            lowest, at_minimum = minimum_level_units(units)
            if lowest >= self.max_unit_level:
                raise PreconditionFailedError(
                    "upgrade", f"every {kind.value} is already level {self.max_unit_level}"
                )

            targets = at_minimum if bulk else at_minimum[:1]
            cost = self.unit_upgrade_cost(kind) * len(targets)
            balance = await self._pay(session, actor, cost)

            for unit in targets:
                unit.level += 1

            new_minimum = min(unit.level for unit in units)
            self.log_operation(
                "upgrade_personnel",
                user_id=user_id,
                gang_id=gang.id,
                kind=kind.value,
                upgraded=len(targets),
                from_level=lowest,
                cost=cost,
            )
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "kind": kind.value,
                "bulk": bulk,
                "upgraded": len(targets),
                "from_level": lowest,
                "to_level": lowest + 1,
                "new_minimum": new_minimum,
                "levels": sorted(unit.level for unit in units),
                "cost": cost,
                "balance": balance,
            }

    # -------------------------------------------------------------------------
    # Gang tiers and base level
    # -------------------------------------------------------------------------

    async def upgrade_tier(self, user_id: int, upgrade_type: UpgradeType | str) -> Dict[str, Any]:
        """Raise a gang-wide tier (weapons, walls, guards/medic training) by one."""
        upgrade_type = UpgradeType(upgrade_type)
        async with LogContext(user_id=user_id, command="upgrade"):
            result = await self.run_with_retry(
                lambda: self._upgrade_tier(user_id, upgrade_type),
                operation_name="gang.upgrade_tier",
                user_id=user_id,
                upgrade=upgrade_type.value,
            )
            await self.emit_event("gang.upgraded", result)
            return result

    async def _upgrade_tier(self, user_id: int, upgrade_type: UpgradeType) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang = await self._load_commander(session, user_id, "upgrade")

            column = _TIER_COLUMNS[upgrade_type]
            current = getattr(gang, column)
            if current >= self._tables.max_upgrade_level:
                raise PreconditionFailedError(
                    "upgrade", f"{upgrade_type.value} is already at max level"
                )

            cost = self._tables.upgrade_cost(upgrade_type, current)
            balance = await self._pay(session, actor, cost)
            setattr(gang, column, current + 1)

            self.log_operation(
                "upgrade_tier",
                user_id=user_id,
                gang_id=gang.id,
                upgrade=upgrade_type.value,
                level=current + 1,
                cost=cost,
            )
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "upgrade": upgrade_type.value,
                "from_level": current,
                "to_level": current + 1,
                "cost": cost,
                "next_cost": self._tables.upgrade_cost(upgrade_type, current + 1),
                "balance": balance,
            }

    async def upgrade_base(self, user_id: int) -> Dict[str, Any]:
        """Move the base one rung up the ladder and restore it to full HP."""
        async with LogContext(user_id=user_id, command="upgrade_base"):
            result = await self.run_with_retry(
                lambda: self._upgrade_base(user_id),
                operation_name="gang.upgrade_base",
                user_id=user_id,
            )
            await self.emit_event("gang.upgraded", result)
            return result

    async def _upgrade_base(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang = await self._load_commander(session, user_id, "upgrade")

            current = self._tables.base_stats(gang.base_level)
            if gang.base_level >= self._tables.max_base_level or current.is_max:
                raise PreconditionFailedError("upgrade", "base is already at max level")

            cost = current.upgrade_cost_to_next
            balance = await self._pay(session, actor, cost)

            new_stats = self._tables.base_stats(gang.base_level + 1)
            gang.base_level = new_stats.level
            gang.base_hp = new_stats.max_hp

            self.log_operation(
                "upgrade_base", user_id=user_id, gang_id=gang.id, level=new_stats.level, cost=cost
            )
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "upgrade": "base",
                "from_level": current.level,
                "to_level": new_stats.level,
                "cost": cost,
                "base": new_stats.to_dict(),
                "balance": balance,
            }

    # -------------------------------------------------------------------------
    # Read-only view
    # -------------------------------------------------------------------------

    async def get_army(self, user_id: int) -> Dict[str, Any]:
        """Personnel, tiers and derived bonuses of the caller's gang."""
        async with DatabaseService.get_session() as session:
            member = await self._members.find_by_user(session, user_id)
            if member is None or member.gang_id is None:
                raise PreconditionFailedError("army", "you are not in a gang")
            gang = await self._require_gang(session, member, "army", lock=False)
            units = await self._personnel.list_units(session, gang.id)

        stats = self._tables.base_stats(gang.base_level)
        guards = [u for u in units if u.kind == PersonnelKind.GUARD]
        medics = [u for u in units if u.kind == PersonnelKind.MEDIC]
        return {
            "gang_id": gang.id,
            "guards": {
                "count": len(guards),
                "cap": stats.max_guards,
                "at_base": sum(1 for u in guards if u.at_base),
                "levels": [u.level for u in guards],
                "upgrade_cost": self.unit_upgrade_cost(PersonnelKind.GUARD),
            },
            "medics": {
                "count": len(medics),
                "cap": stats.max_medics,
                "levels": [u.level for u in medics],
                "upgrade_cost": self.unit_upgrade_cost(PersonnelKind.MEDIC),
            },
            "tiers": {
                upgrade.value: {
                    "level": getattr(gang, column),
                    "next_cost": self._tables.upgrade_cost(upgrade, getattr(gang, column)),
                }
                for upgrade, column in _TIER_COLUMNS.items()
            },
            "bonuses": {
                "guard_training": training_bonus(gang.guards_training_level),
                "medic_training": medic_training_bonus(gang.medic_training_level),
                "weapon_damage_pct": weapon_damage_bonus(gang.weapons_level),
                "weapon_success": weapon_success_bonus(gang.weapons_level),
                "wall_defense": wall_defense_bonus(gang.walls_level),
            },
            "walls": wall_name(gang.walls_level),
            "hire_cost": {kind.value: self.hire_cost(kind) for kind in PersonnelKind},
        }
