"""
TurfService - moving in and out of the base, and repairs.

Members inside the base cannot be kidnapped; members outside can recruit
and may take guards from the base along as a personal escort. Escort guards
stop protecting the base while they are out and are lost if their member is
kidnapped.

Repairs are done by the gang's medics:
    heal = medics * floor(max_hp * (base_heal_pct + medic_training_bonus) / 100)
capped at the base's max HP, once per repair cooldown per member.
"""

from __future__ import annotations

import math
from typing import Any, Dict

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import CooldownAction, MemberStatus, PersonnelKind
from turfwar.modules.gang.gang_base_service import GangBaseService
from turfwar.modules.gang.progression import base_condition, medic_training_bonus
from turfwar.modules.shared.exceptions import InsufficientResourcesError, PreconditionFailedError


class TurfService(GangBaseService):
    async def leave_base(self, user_id: int, escort: int = 0) -> Dict[str, Any]:
        """
        Step outside, optionally taking `escort` guards (strongest first).

        Raises:
            InsufficientResourcesError: Fewer free guards at the base than `escort`
        """
        self.validate_non_negative_int(escort, "escort")
        async with LogContext(user_id=user_id, command="leave_base"):
            return await self.run_with_retry(
                lambda: self._leave_base(user_id, escort),
                operation_name="gang.leave_base",
                user_id=user_id,
                escort=escort,
            )

    async def _leave_base(self, user_id: int, escort: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            member = await self._load_active_actor(session, user_id, "leave base", self._now())
            gang = await self._require_gang(session, member, "leave base")
            if member.status != MemberStatus.BASE:
                raise PreconditionFailedError("leave base", "you are already outside")

            taken = []
            if escort:
                guards = await self._personnel.find_many_where(
                    session,
                    self._personnel.model_class.gang_id == gang.id,
                    self._personnel.model_class.kind == PersonnelKind.GUARD.value,
                    self._personnel.model_class.escort_member_id.is_(None),
                    for_update=True,
                )
                if escort > len(guards):
                    raise InsufficientResourcesError("guards", escort, len(guards))
                guards.sort(key=lambda unit: (-unit.level, unit.id))
                taken = guards[:escort]
                for unit in taken:
                    unit.escort_member_id = member.id

            member.status = MemberStatus.OUTSIDE.value
            self.log_operation("leave_base", user_id=user_id, gang_id=gang.id, escort=len(taken))
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "status": member.status,
                "escort": [unit.level for unit in taken],
            }

    async def return_to_base(self, user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="return_to_base"):
            return await self.run_with_retry(
                lambda: self._return(user_id),
                operation_name="gang.return_to_base",
                user_id=user_id,
            )

    async def _return(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            member = await self._load_active_actor(session, user_id, "return", self._now())
            gang = await self._require_gang(session, member, "return")
            if member.status != MemberStatus.OUTSIDE:
                raise PreconditionFailedError("return", "you are already inside the base")

            returned = await self._personnel.release_escort(session, member.id)
            member.status = MemberStatus.BASE.value
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "status": member.status,
                "escort_returned": returned,
            }

    async def repair_base(self, user_id: int) -> Dict[str, Any]:
        """
        Have the gang's medics patch up the base.

        Raises:
            PreconditionFailedError: No medics, base at full HP
            CooldownActiveError: Member repaired within the last window
        """
        async with LogContext(user_id=user_id, command="repair"):
            return await self.run_with_retry(
                lambda: self._repair(user_id),
                operation_name="gang.repair",
                user_id=user_id,
            )

    async def _repair(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            member = await self._load_active_actor(session, user_id, "repair", now)
            await self._cooldowns.check(session, member, CooldownAction.REPAIR, now)
            gang = await self._require_gang(session, member, "repair")

            max_hp = self._tables.max_hp(gang.base_level)
            if gang.base_hp >= max_hp:
                raise PreconditionFailedError("repair", "base is already at full health")

            medics = await self._personnel.list_units(session, gang.id, PersonnelKind.MEDIC)
            if not medics:
                raise PreconditionFailedError("repair", "gang has no medics")

            pct = int(self.get_config("gangs.repair.base_heal_pct", 5)) + medic_training_bonus(
                gang.medic_training_level
            )
            heal = len(medics) * math.floor(max_hp * pct / 100)
            before = gang.base_hp
            gang.base_hp = min(max_hp, gang.base_hp + heal)
            await self._cooldowns.stamp(session, member, CooldownAction.REPAIR, now)

            self.log_operation("repair", user_id=user_id, gang_id=gang.id, healed=gang.base_hp - before)
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "medics": len(medics),
                "healed": gang.base_hp - before,
                "hp": gang.base_hp,
                "max_hp": max_hp,
                "condition": base_condition(gang.base_hp, max_hp),
            }
