"""
Gang repositories.

Thin query helpers over `BaseRepository` for gangs, members, personnel and
invitations. No business rules; locking is explicit at the call site.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from turfwar.core.exceptions import ConcurrencyConflictError
from turfwar.database.models.enums import MemberStatus, PersonnelKind
from turfwar.database.models.gang import Gang, GangInvitation, GangMember, GangPersonnel
from turfwar.modules.shared.base_repository import BaseRepository


class GangRepository(BaseRepository[Gang]):
    async def find_by_name(
        self, session: AsyncSession, name: str, for_update: bool = False
    ) -> Optional[Gang]:
        """Case-insensitive lookup by name."""
        return await self.find_one_where(
            session,
            func.lower(Gang.name) == name.strip().lower(),
            for_update=for_update,
        )

    async def name_taken(
        self, session: AsyncSession, name: str, exclude_id: Optional[int] = None
    ) -> bool:
        conditions = [func.lower(Gang.name) == name.strip().lower()]
        if exclude_id is not None:
            conditions.append(Gang.id != exclude_id)
        return await self.exists(session, *conditions)


class MemberRepository(BaseRepository[GangMember]):
    async def find_by_user(
        self, session: AsyncSession, user_id: int, for_update: bool = False
    ) -> Optional[GangMember]:
        return await self.find_one_where(
            session, GangMember.user_id == user_id, for_update=for_update
        )

    async def get_or_create(
        self,
        session: AsyncSession,
        user_id: int,
        level: Optional[int] = None,
        for_update: bool = True,
    ) -> GangMember:
        """
        Fetch the member row for `user_id`, registering it on first sight.

        A new member has no gang and stands outside. `level` refreshes the
        mirrored profile level when given. Two first commands from the same
        user may race here: the INSERT skips on the unique `user_id` and both
        then read (and lock) the single committed row.
        """
        member = await self.find_by_user(session, user_id, for_update=for_update)
        if member is None:
            stmt = (
                pg_insert(GangMember)
                .values(
                    user_id=user_id,
                    level=level or 1,
                    status=MemberStatus.OUTSIDE.value,
                    pocket=0,
                )
                .on_conflict_do_nothing(index_elements=[GangMember.user_id])
            )
            inserted = (await session.execute(stmt)).rowcount
            member = await self.find_by_user(session, user_id, for_update=for_update)
            if member is None:
                raise ConcurrencyConflictError("GangMember")
            if inserted:
                self.log.info("Registered gang member", extra={"user_id": user_id})
        if level is not None and member.level != level:
            member.level = level
        return member

    async def find_by_users_for_update(
        self, session: AsyncSession, user_ids: Sequence[int]
    ) -> List[GangMember]:
        """Lock several members by identity, ordered by primary key."""
        return await self.find_many_where(
            session,
            GangMember.user_id.in_(sorted(set(user_ids))),
            for_update=True,
        )

    async def list_gang(
        self, session: AsyncSession, gang_id: int, for_update: bool = False
    ) -> List[GangMember]:
        return await self.find_many_where(
            session, GangMember.gang_id == gang_id, for_update=for_update
        )

    async def count_gang(self, session: AsyncSession, gang_id: int) -> int:
        return await self.count(session, GangMember.gang_id == gang_id)

    async def find_expired_kidnaps(
        self, session: AsyncSession, now: datetime, limit: int = 500
    ) -> List[GangMember]:
        return await self.find_many_where(
            session,
            GangMember.status == MemberStatus.KIDNAPPED.value,
            GangMember.kidnapped_until <= now,
            limit=limit,
        )

    async def active_hostages_by_gang(self, session: AsyncSession, now: datetime) -> dict[int, int]:
        """Map of captor gang id to the number of members its members still hold."""
        captor = aliased(GangMember)
        stmt = (
            select(captor.gang_id, func.count(GangMember.id))
            .join(captor, captor.user_id == GangMember.kidnapped_by)
            .where(
                GangMember.status == MemberStatus.KIDNAPPED.value,
                GangMember.kidnapped_until > now,
                captor.gang_id.is_not(None),
            )
            .group_by(captor.gang_id)
        )
        result = await session.execute(stmt)
        return {gang_id: count for gang_id, count in result.all()}


class PersonnelRepository(BaseRepository[GangPersonnel]):
    async def list_units(
        self,
        session: AsyncSession,
        gang_id: int,
        kind: Optional[PersonnelKind] = None,
        for_update: bool = False,
    ) -> List[GangPersonnel]:
        conditions = [GangPersonnel.gang_id == gang_id]
        if kind is not None:
            conditions.append(GangPersonnel.kind == kind.value)
        return await self.find_many_where(session, *conditions, for_update=for_update)

    async def guards_at_base(self, session: AsyncSession, gang_id: int) -> List[GangPersonnel]:
        return await self.find_many_where(
            session,
            GangPersonnel.gang_id == gang_id,
            GangPersonnel.kind == PersonnelKind.GUARD.value,
            GangPersonnel.escort_member_id.is_(None),
        )

    async def escort_of(
        self, session: AsyncSession, member_id: int, for_update: bool = False
    ) -> List[GangPersonnel]:
        return await self.find_many_where(
            session, GangPersonnel.escort_member_id == member_id, for_update=for_update
        )

    async def release_escort(self, session: AsyncSession, member_id: int) -> int:
        """Send every escort guard of `member_id` back to the army."""
        units = await self.escort_of(session, member_id, for_update=True)
        for unit in units:
            unit.escort_member_id = None
        return len(units)

    async def delete_escort(self, session: AsyncSession, member_id: int) -> int:
        """Remove a member's escort guards outright (lost in a kidnap)."""
        units = await self.escort_of(session, member_id, for_update=True)
        for unit in units:
            await self.delete(session, unit)
        return len(units)


class InvitationRepository(BaseRepository[GangInvitation]):
    async def find_pending(
        self, session: AsyncSession, gang_id: int, invitee_id: int, now: datetime
    ) -> Optional[GangInvitation]:
        return await self.find_one_where(
            session,
            GangInvitation.gang_id == gang_id,
            GangInvitation.invitee_id == invitee_id,
            GangInvitation.expires_at > now,
        )

    async def find_any(
        self, session: AsyncSession, gang_id: int, invitee_id: int
    ) -> Optional[GangInvitation]:
        return await self.find_one_where(
            session,
            GangInvitation.gang_id == gang_id,
            GangInvitation.invitee_id == invitee_id,
        )

    async def delete_for_invitee(self, session: AsyncSession, invitee_id: int) -> None:
        await session.execute(
            delete(GangInvitation).where(GangInvitation.invitee_id == invitee_id)
        )
