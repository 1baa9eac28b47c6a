"""
CombatService - transactional raid, rob and kidnap
==================================================

Handles:
- Loading and locking every row one resolution touches
- Cooldown checks and stamps (gang raid cooldown, member rob/kidnap)
- Running the pure CombatEngine and persisting its outcome
- The destruction cascade's row-level work (membership dissolution, delete)
- Emitting domain events after commit

Each command runs in a single transaction. Gangs are locked together in
ascending id order, so two raids on one defender serialize: the second
re-reads HP and vault after the first commits and cannot double-credit a
vault that no longer exists.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import CooldownAction
from turfwar.modules.gang.combat_engine import (
    CombatEngine,
    dissolve_membership,
    ensure_kidnappable,
    ensure_rival,
)
from turfwar.modules.gang.gang_base_service import GangBaseService
from turfwar.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from turfwar.core.config.manager import ConfigManager
    from turfwar.core.event.bus import EventBus


class CombatService(GangBaseService):
    """
    Raid, rob and kidnap commands.

    `rng` is forwarded to the engine so tests can script every draw.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        rng: Optional[random.Random] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, **kwargs)
        self._engine = CombatEngine(config_manager, self._tables, rng)

    @property
    def engine(self) -> CombatEngine:
        return self._engine

    # -------------------------------------------------------------------------
    # Raid
    # -------------------------------------------------------------------------

    async def raid(self, user_id: int, target_gang: str) -> Dict[str, Any]:
        """
        Raid another gang's base.

        Returns:
            Dict with outcome, rate breakdown, damage, loot and both gangs'
            updated balances.

        Raises:
            PreconditionFailedError: Not in a gang, kidnapped, own gang target
            NotFoundError: Target gang missing
            CooldownActiveError: Gang raided within the last window
        """
        async with LogContext(user_id=user_id, command="raid"):
            result, event = await self.run_with_retry(
                lambda: self._raid(user_id, target_gang),
                operation_name="gang.raid",
                user_id=user_id,
                target=target_gang,
            )
            await self.emit_event(event, result)
            return result

    async def _raid(self, user_id: int, target_gang: str) -> Tuple[Dict[str, Any], str]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            actor = await self._load_active_actor(session, user_id, "raid", now)
            target = await self._find_gang(session, target_gang)

            gangs = await self._lock_gangs(session, [actor.gang_id, target.id])
            attacker = gangs.get(actor.gang_id)
            if attacker is None:
                raise NotFoundError("Gang", actor.gang_id)
            defender = ensure_rival(attacker, gangs.get(target.id), "raid")

            self._cooldowns.check_raid(attacker, now)

            outcome = self._engine.resolve_raid(attacker, defender)
            self._cooldowns.stamp_raid(attacker, now)

            result: Dict[str, Any] = {
                "action": "raid",
                "attacker_user_id": user_id,
                "attacker_gang_id": attacker.id,
                "defender_gang_id": defender.id,
                "defender_name": defender.name,
                **outcome.to_dict(),
                "attacker": self._gang_snapshot(attacker),
            }

            if outcome.destroyed:
                members = await self._members.list_gang(session, defender.id, for_update=True)
                result["released_members"] = dissolve_membership(members)
                await self._members.flush(session)
                await self._gangs.delete(session, defender)
                event = "gang.destroyed"
            else:
                result["defender"] = self._gang_snapshot(defender)
                event = "gang.raided"

            self.log_operation(
                "raid",
                user_id=user_id,
                attacker_gang_id=attacker.id,
                defender_gang_id=defender.id,
                success=outcome.success,
                destroyed=outcome.destroyed,
                stolen=outcome.stolen,
            )
            return result, event

    # -------------------------------------------------------------------------
    # Rob
    # -------------------------------------------------------------------------

    async def rob(self, user_id: int, target_gang: str) -> Dict[str, Any]:
        """
        Rob another gang's vault.

        Raises:
            PreconditionFailedError: Not in a gang, kidnapped, own gang, empty vault
            NotFoundError: Target gang missing
            CooldownActiveError: Actor robbed within the last window
        """
        async with LogContext(user_id=user_id, command="rob"):
            result = await self.run_with_retry(
                lambda: self._rob(user_id, target_gang),
                operation_name="gang.rob",
                user_id=user_id,
                target=target_gang,
            )
            await self.emit_event("gang.robbed", result)
            return result

    async def _rob(self, user_id: int, target_gang: str) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            actor = await self._load_active_actor(session, user_id, "rob", now)
            await self._cooldowns.check(session, actor, CooldownAction.ROB, now)
            target = await self._find_gang(session, target_gang)

            gangs = await self._lock_gangs(session, [actor.gang_id, target.id])
            attacker = gangs.get(actor.gang_id)
            if attacker is None:
                raise NotFoundError("Gang", actor.gang_id)
            defender = ensure_rival(attacker, gangs.get(target.id), "rob")

            guards = await self._personnel.guards_at_base(session, defender.id)
            outcome = self._engine.resolve_rob(attacker, defender, len(guards))
            await self._cooldowns.stamp(session, actor, CooldownAction.ROB, now)

            self.log_operation(
                "rob",
                user_id=user_id,
                attacker_gang_id=attacker.id,
                defender_gang_id=defender.id,
                success=outcome.success,
                stolen=outcome.stolen,
                lockpick_broke=outcome.lockpick_broke,
            )
            return {
                "action": "rob",
                "attacker_user_id": user_id,
                "attacker_gang_id": attacker.id,
                "defender_gang_id": defender.id,
                "defender_name": defender.name,
                **outcome.to_dict(),
                "attacker": self._gang_snapshot(attacker),
                "defender": self._gang_snapshot(defender),
            }

    # -------------------------------------------------------------------------
    # Kidnap
    # -------------------------------------------------------------------------

    async def kidnap(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        """
        Kidnap a member who is outside their base.

        Raises:
            PreconditionFailedError: Actor cannot act, or target is ineligible
            NotFoundError: Target member unknown
            CooldownActiveError: Actor kidnapped within the last window
        """
        async with LogContext(user_id=user_id, command="kidnap"):
            result = await self.run_with_retry(
                lambda: self._kidnap(user_id, target_user_id),
                operation_name="gang.kidnap",
                user_id=user_id,
                target_user_id=target_user_id,
            )
            if result["success"]:
                await self.emit_event("member.kidnapped", result)
            return result

    async def _kidnap(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            actor = await self._load_active_actor(session, user_id, "kidnap", now)
            await self._cooldowns.check(session, actor, CooldownAction.KIDNAP, now)
            attacker = await self._require_gang(session, actor, "kidnap")

            target = await self._lock_member(session, target_user_id, now)
            ensure_kidnappable(actor, target)

            target_gang = None
            if target.gang_id is not None:
                target_gang = await self._gangs.get(session, target.gang_id)
            escort = await self._personnel.escort_of(session, target.id, for_update=True)

            outcome = self._engine.resolve_kidnap(
                actor, attacker, target, target_gang, len(escort), now
            )
            if outcome.success and escort:
                await self._personnel.delete_escort(session, target.id)
            await self._cooldowns.stamp(session, actor, CooldownAction.KIDNAP, now)

            self.log_operation(
                "kidnap",
                user_id=user_id,
                target_user_id=target_user_id,
                success=outcome.success,
                hours=outcome.hours,
            )
            return {
                "action": "kidnap",
                "attacker_user_id": user_id,
                "attacker_gang_id": attacker.id,
                "target_user_id": target_user_id,
                "target_gang_id": target.gang_id,
                **outcome.to_dict(),
                "attacker": self._gang_snapshot(attacker),
            }
