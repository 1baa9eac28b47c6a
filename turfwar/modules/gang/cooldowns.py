"""
Cooldown Manager
================

Per-member action timestamps (rob, kidnap, repair) stored in
`member_cooldowns`, plus the per-gang raid timestamp on `gangs.last_raid_at`.

An action is blocked while `now - last < window`. Stamping happens inside
the caller's transaction when an attempt resolves, success or failure.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from turfwar.database.models.enums import CooldownAction
from turfwar.database.models.gang import MemberCooldown
from turfwar.modules.shared.base_repository import BaseRepository
from turfwar.modules.shared.exceptions import CooldownActiveError

if TYPE_CHECKING:
    from logging import Logger

    from turfwar.database.models.gang import Gang, GangMember

RAID = "raid"

DEFAULT_WINDOWS: Dict[str, int] = {
    CooldownAction.ROB.value: 30,
    CooldownAction.KIDNAP.value: 300,
    CooldownAction.REPAIR.value: 120,
    RAID: 60,
}

_CONFIG_KEYS: Dict[str, str] = {
    CooldownAction.ROB.value: "gangs.rob.cooldown_seconds",
    CooldownAction.KIDNAP.value: "gangs.kidnap.cooldown_seconds",
    CooldownAction.REPAIR.value: "gangs.repair.cooldown_seconds",
    RAID: "gangs.raid.cooldown_seconds",
}


def remaining_seconds(last_used: Optional[datetime], window_seconds: int, now: datetime) -> float:
    """Seconds until the window closes; 0 when the action is available."""
    if last_used is None:
        return 0.0
    elapsed = (now - last_used).total_seconds()
    return max(0.0, window_seconds - elapsed)


class CooldownManager:
    """
    Checks and stamps cooldowns.

    Windows come from `gangs.<action>.cooldown_seconds` with code defaults.
    """

    def __init__(self, config: Any, logger: Logger) -> None:
        self._config = config
        self.log = logger
        self._repo = BaseRepository[MemberCooldown](MemberCooldown, logger)

    def window(self, action: CooldownAction | str) -> int:
        key = action.value if isinstance(action, CooldownAction) else action
        return int(self._config.get(_CONFIG_KEYS[key], DEFAULT_WINDOWS[key]))

    async def _row(
        self, session: AsyncSession, member: GangMember, action: CooldownAction
    ) -> Optional[MemberCooldown]:
        return await self._repo.find_one_where(
            session,
            MemberCooldown.member_id == member.id,
            MemberCooldown.action == action.value,
        )

    async def remaining(
        self, session: AsyncSession, member: GangMember, action: CooldownAction, now: datetime
    ) -> float:
        row = await self._row(session, member, action)
        return remaining_seconds(row.last_used_at if row else None, self.window(action), now)

    async def check(
        self, session: AsyncSession, member: GangMember, action: CooldownAction, now: datetime
    ) -> None:
        """Raise CooldownActiveError while the member's window is open."""
        left = await self.remaining(session, member, action, now)
        if left > 0:
            raise CooldownActiveError(action.value, left)

    async def stamp(
        self, session: AsyncSession, member: GangMember, action: CooldownAction, now: datetime
    ) -> None:
        row = await self._row(session, member, action)
        if row is None:
            self._repo.add(
                session,
                MemberCooldown(member_id=member.id, action=action.value, last_used_at=now),
            )
        else:
            row.last_used_at = now

    async def snapshot(
        self, session: AsyncSession, member: GangMember, now: datetime
    ) -> Dict[str, float]:
        """Remaining seconds for every per-member action."""
        rows = await self._repo.find_many_where(session, MemberCooldown.member_id == member.id)
        by_action = {row.action: row.last_used_at for row in rows}
        return {
            action.value: remaining_seconds(by_action.get(action.value), self.window(action), now)
            for action in CooldownAction
        }

    # ------------------------------------------------------------------
    # Gang raid cooldown
    # ------------------------------------------------------------------

    def check_raid(self, gang: Gang, now: datetime) -> None:
        left = remaining_seconds(gang.last_raid_at, self.window(RAID), now)
        if left > 0:
            raise CooldownActiveError(RAID, left)

    def stamp_raid(self, gang: Gang, now: datetime) -> None:
        gang.last_raid_at = now
