"""
HostageService - hostage lifecycle
==================================

Handles:
- Early release of a hostage by the captor gang's leader or an officer
- Periodic cleanup: releasing kidnaps whose time has run out and
  recomputing every gang's hostage counter from the live kidnaps

Cleanup is idempotent. Each expired member is released in its own short
transaction under a row lock, re-checked after locking, so a second run
(or a concurrent release on read) finds nothing to do. Counters are then
reconciled under gang locks taken in ascending id order.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import MemberStatus
from turfwar.database.models.gang import Gang
from turfwar.modules.gang.combat_engine import release, release_expired
from turfwar.modules.gang.gang_base_service import GangBaseService
from turfwar.modules.shared.exceptions import PreconditionFailedError


class HostageService(GangBaseService):
    # -------------------------------------------------------------------------
    # Early release
    # -------------------------------------------------------------------------

    async def release_hostage(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="release_hostage"):
            result = await self.run_with_retry(
                lambda: self._release(user_id, target_user_id),
                operation_name="gang.release_hostage",
                user_id=user_id,
                target_user_id=target_user_id,
            )
            await self.emit_event("member.released", result)
            return result

    async def _release(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            actor = await self._load_active_actor(session, user_id, "release", now)
            self._require_role(actor, "release")
            gang = await self._require_gang(session, actor, "release")

            target = await self._lock_member(session, target_user_id, now)
            if target.status != MemberStatus.KIDNAPPED or target.kidnapped_by is None:
                raise PreconditionFailedError("release", "target is not being held")

            captor = await self._members.find_by_user(session, target.kidnapped_by)
            if captor is None or captor.gang_id != gang.id:
                raise PreconditionFailedError("release", "target is not held by your gang")

            release(target)
            gang.hostages = max(0, gang.hostages - 1)

            self.log_operation("release_hostage", user_id=user_id, gang_id=gang.id, target=target_user_id)
            return {
                "gang_id": gang.id,
                "user_id": target_user_id,
                "released_by": user_id,
                "reason": "released",
                "hostages": gang.hostages,
            }

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def cleanup_expired_kidnaps(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Release expired kidnaps and reconcile hostage counters.

        Returns:
            Dict with the released user ids and the gangs whose counter changed.
        """
        now = now or self._now()
        async with DatabaseService.get_session() as session:
            expired = await self._members.find_expired_kidnaps(session, now)
            candidate_ids = [member.id for member in expired]

        released = []
        for member_id in candidate_ids:
            user_id = await self.run_with_retry(
                lambda member_id=member_id: self._release_one(member_id, now),
                operation_name="gang.cleanup.release",
                member_id=member_id,
            )
            if user_id is not None:
                released.append(user_id)
                await self.emit_event(
                    "member.released", {"user_id": user_id, "reason": "expired"}
                )

        changed = await self.run_with_retry(
            lambda: self._reconcile_hostages(now),
            operation_name="gang.cleanup.reconcile",
        )
        if changed:
            await self.emit_event("hostages.reconciled", {"gangs": changed})

        self.log_operation(
            "cleanup_expired_kidnaps",
            released=len(released),
            reconciled=len(changed),
        )
        return {"released": released, "reconciled": changed}

    async def _release_one(self, member_id: int, now: datetime) -> Optional[int]:
        async with DatabaseService.get_transaction() as session:
            member = await self._members.get_for_update(session, member_id)
            if member is None or not release_expired(member, now):
                return None
            return member.user_id

    async def _reconcile_hostages(self, now: datetime) -> Dict[int, Dict[str, int]]:
        async with DatabaseService.get_transaction() as session:
            counted = await self._members.active_hostages_by_gang(session, now)
            holding = await self._gangs.find_many_where(session, Gang.hostages > 0)
            gang_ids = set(counted) | {gang.id for gang in holding}
            if not gang_ids:
                return {}

            gangs = await self._lock_gangs(session, gang_ids)
            # recount under the locks
            counted = await self._members.active_hostages_by_gang(session, now)

            changed: Dict[int, Dict[str, int]] = {}
            for gang_id, gang in gangs.items():
                actual = counted.get(gang_id, 0)
                if gang.hostages != actual:
                    changed[gang_id] = {"before": gang.hostages, "after": actual}
                    gang.hostages = actual
            return changed

    async def hostages_of(self, user_id: int) -> list[Dict[str, Any]]:
        """Members currently held by the caller's gang."""
        async with DatabaseService.get_session() as session:
            now = self._now()
            member = await self._members.find_by_user(session, user_id)
            if member is None or member.gang_id is None:
                raise PreconditionFailedError("hostages", "you are not in a gang")
            captors = await self._members.list_gang(session, member.gang_id)
            captor_ids = [captor.user_id for captor in captors]
            held = await self._members.find_many_where(
                session,
                self._members.model_class.status == MemberStatus.KIDNAPPED.value,
                self._members.model_class.kidnapped_until > now,
                self._members.model_class.kidnapped_by.in_(captor_ids),
            )
            return [
                {
                    "user_id": hostage.user_id,
                    "kidnapped_by": hostage.kidnapped_by,
                    "kidnapped_until": hostage.kidnapped_until,
                    "remaining_seconds": (hostage.kidnapped_until - now).total_seconds(),
                }
                for hostage in held
            ]
