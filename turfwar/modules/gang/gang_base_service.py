"""
Shared plumbing for gang services.

Every gang service loads the acting member, checks their gang and role,
and locks rows in one global order:

    actor member -> gangs (ascending id) -> other members (ascending id)

which keeps most overlapping commands queueing instead of deadlocking.
It does not rule deadlocks out: a raid locks the defender gang before its
members while a defender's deposit holds its own member row first, and two
kidnaps in opposite directions lock each other's members in reverse. PostgreSQL
breaks such a cycle by failing one transaction with 40P01; like a lost
optimistic race (ConcurrencyConflictError), that is transient and the retry
policy re-runs the whole command with a fresh read.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Sequence

from turfwar.core.database.base import utc_now
from turfwar.database.models.enums import GangRole
from turfwar.database.models.gang import Gang, GangInvitation, GangMember, GangPersonnel
from turfwar.modules.gang.combat_engine import ensure_can_act, release_expired
from turfwar.modules.gang.cooldowns import CooldownManager
from turfwar.modules.gang.progression import ProgressionTables
from turfwar.modules.gang.repository import (
    GangRepository,
    InvitationRepository,
    MemberRepository,
    PersonnelRepository,
)
from turfwar.modules.gang.wallet import PocketWallet, Wallet
from turfwar.modules.shared.base_service import BaseService
from turfwar.modules.shared.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from turfwar.core.config.manager import ConfigManager
    from turfwar.core.database.retry_policy import DatabaseRetryPolicy
    from turfwar.core.event.bus import EventBus

COMMAND_ROLES = (GangRole.LEADER.value, GangRole.OFFICER.value)
LEADER_ONLY = (GangRole.LEADER.value,)


class GangBaseService(BaseService):
    """
    Base class for gang services.

    Args:
        config_manager: Balance configuration
        event_bus: Domain event bus
        logger: Structured logger
        tables: Progression tables; built from config when omitted
        wallet: Personal balance collaborator; PocketWallet by default
        retry_policy: Optional retry policy override
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        tables: Optional[ProgressionTables] = None,
        wallet: Optional[Wallet] = None,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger, retry_policy)
        self._tables = tables or ProgressionTables.from_config(config_manager)
        self._wallet: Wallet = wallet or PocketWallet()
        self._gangs = GangRepository(Gang, self.log)
        self._members = MemberRepository(GangMember, self.log)
        self._personnel = PersonnelRepository(GangPersonnel, self.log)
        self._invitations = InvitationRepository(GangInvitation, self.log)
        self._cooldowns = CooldownManager(config_manager, self.log)

    @property
    def tables(self) -> ProgressionTables:
        return self._tables

    def _now(self) -> datetime:
        return utc_now()

    # ------------------------------------------------------------------
    # Loading and checks
    # ------------------------------------------------------------------

    async def _load_actor(
        self,
        session: AsyncSession,
        user_id: int,
        now: datetime,
        level: Optional[int] = None,
    ) -> GangMember:
        """Lock the acting member, registering them if new and freeing an expired hostage."""
        member = await self._members.get_or_create(session, user_id, level=level)
        if release_expired(member, now):
            self.log.info(
                "Released expired hostage on read",
                extra={"user_id": member.user_id},
            )
        return member

    async def _load_active_actor(
        self, session: AsyncSession, user_id: int, action: str, now: datetime
    ) -> GangMember:
        member = await self._load_actor(session, user_id, now)
        ensure_can_act(member, action)
        return member

    async def _require_gang(
        self, session: AsyncSession, member: GangMember, action: str, lock: bool = True
    ) -> Gang:
        if member.gang_id is None:
            raise PreconditionFailedError(action, "you are not in a gang")
        if lock:
            gang = await self._gangs.get_for_update(session, member.gang_id)
        else:
            gang = await self._gangs.get(session, member.gang_id)
        if gang is None:
            raise NotFoundError("Gang", member.gang_id)
        return gang

    async def _find_gang(self, session: AsyncSession, name: str) -> Gang:
        gang = await self._gangs.find_by_name(session, name)
        if gang is None:
            raise NotFoundError("Gang", name)
        return gang

    @staticmethod
    def _require_role(member: GangMember, action: str, roles: Sequence[str] = COMMAND_ROLES) -> None:
        if member.role not in roles:
            raise PermissionDeniedError(action, tuple(roles), member.role)

    async def _lock_gangs(self, session: AsyncSession, gang_ids: Iterable[int]) -> Dict[int, Gang]:
        """Lock gangs in ascending id order; missing ids are absent from the result."""
        gangs = await self._gangs.get_many_for_update(session, list(gang_ids))
        return {gang.id: gang for gang in gangs}

    async def _lock_member(self, session: AsyncSession, user_id: int, now: datetime) -> GangMember:
        member = await self._members.find_by_user(session, user_id, for_update=True)
        if member is None:
            raise NotFoundError("Member", user_id)
        release_expired(member, now)
        return member

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _gang_snapshot(self, gang: Gang) -> Dict[str, Any]:
        stats = self._tables.base_stats(gang.base_level)
        return {
            "gang_id": gang.id,
            "name": gang.name,
            "vault": gang.vault,
            "vault_capacity": stats.vault_capacity,
            "power": gang.power,
            "base_level": gang.base_level,
            "base_hp": gang.base_hp,
            "max_hp": stats.max_hp,
            "hostages": gang.hostages,
        }
