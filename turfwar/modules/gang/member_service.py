"""
MemberService - gang membership
===============================

Handles:
- Invitations (invite, accept, decline) and joining public gangs
- Leaving and kicking
- Officer promotion/demotion and leadership transfer
- Ban list management

Business Logic:
- Leaders and officers invite and ban; only the leader kicks, promotes and
  hands over leadership
- The leader cannot leave; they transfer leadership or disband
- Invitations expire after `gangs.membership.invite_ttl_hours`
- A member leaving the gang by any route brings their escort back to the
  army and ends up outside
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, Tuple

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import GangRole, MemberStatus
from turfwar.database.models.gang import GangInvitation
from turfwar.modules.gang.gang_base_service import LEADER_ONLY, GangBaseService
from turfwar.modules.shared.exceptions import (
    InsufficientResourcesError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from turfwar.database.models.gang import Gang, GangMember


class MemberService(GangBaseService):
    """Membership, roles and bans."""

    @property
    def invite_ttl(self) -> timedelta:
        return timedelta(hours=int(self.get_config("gangs.membership.invite_ttl_hours", 24)))

    async def _ensure_room(self, session: AsyncSession, gang: Gang, action: str) -> None:
        count = await self._members.count_gang(session, gang.id)
        if count >= gang.max_members:
            raise InsufficientResourcesError("member_slots", count + 1, gang.max_members)

    @staticmethod
    def _ensure_admissible(gang: Gang, member: GangMember, action: str) -> None:
        if member.gang_id is not None:
            raise PreconditionFailedError(action, "already in a gang")
        if member.user_id in (gang.banned_ids or []):
            raise PreconditionFailedError(action, f"banned from {gang.name}")
        if member.level < gang.min_level_to_join:
            raise PreconditionFailedError(
                action, f"level {gang.min_level_to_join} required", level=member.level
            )

    async def _detach(self, session: AsyncSession, member: GangMember) -> int:
        """Remove `member` from their gang. Returns the number of escort guards sent back."""
        returned = await self._personnel.release_escort(session, member.id)
        member.gang_id = None
        member.role = GangRole.MEMBER.value
        if member.status != MemberStatus.KIDNAPPED:
            member.status = MemberStatus.OUTSIDE.value
        return returned

    async def _load_pair(
        self, session: AsyncSession, actor_id: int, target_id: int, action: str
    ) -> Tuple[GangMember, Gang, GangMember]:
        """Actor, their locked gang and the locked target, in lock order."""
        if actor_id == target_id:
            raise PreconditionFailedError(action, "cannot target yourself")
        now = self._now()
        actor = await self._load_actor(session, actor_id, now)
        gang = await self._require_gang(session, actor, action)
        target = await self._members.get_or_create(session, target_id)
        return actor, gang, target

    @staticmethod
    def _ensure_same_gang(gang: Gang, target: GangMember, action: str) -> None:
        if target.gang_id != gang.id:
            raise PreconditionFailedError(action, "target is not in your gang")

    # -------------------------------------------------------------------------
    # Invitations and joining
    # -------------------------------------------------------------------------

    async def invite(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="invite"):
            return await self.run_with_retry(
                lambda: self._invite(user_id, target_user_id),
                operation_name="gang.invite",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def _invite(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang, target = await self._load_pair(session, user_id, target_user_id, "invite")
            self._require_role(actor, "invite")
            if not gang.allow_invites:
                raise PreconditionFailedError("invite", "invitations are disabled for this gang")
            self._ensure_admissible(gang, target, "invite")
            await self._ensure_room(session, gang, "invite")

            now = self._now()
            existing = await self._invitations.find_any(session, gang.id, target.user_id)
            if existing is not None:
                if existing.expires_at > now:
                    raise PreconditionFailedError("invite", "an invitation is already pending")
                await self._invitations.delete(session, existing)
                await self._invitations.flush(session)

            invitation = self._invitations.add(
                session,
                GangInvitation(
                    gang_id=gang.id,
                    invitee_id=target.user_id,
                    inviter_id=actor.user_id,
                    expires_at=now + self.invite_ttl,
                ),
            )
            self.log_operation("invite", user_id=user_id, gang_id=gang.id, target=target_user_id)
            return {
                "gang_id": gang.id,
                "gang_name": gang.name,
                "inviter_id": actor.user_id,
                "invitee_id": target.user_id,
                "expires_at": invitation.expires_at,
            }

    async def accept_invite(self, user_id: int, gang_name: str) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="accept_invite"):
            return await self.run_with_retry(
                lambda: self._join(user_id, gang_name, via_invite=True),
                operation_name="gang.accept_invite",
                user_id=user_id,
            )

    async def join_gang(self, user_id: int, gang_name: str) -> Dict[str, Any]:
        """Join a public gang that does not require approval."""
        async with LogContext(user_id=user_id, command="join_gang"):
            return await self.run_with_retry(
                lambda: self._join(user_id, gang_name, via_invite=False),
                operation_name="gang.join",
                user_id=user_id,
            )

    async def _join(self, user_id: int, gang_name: str, via_invite: bool) -> Dict[str, Any]:
        action = "accept" if via_invite else "join"
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            member = await self._load_actor(session, user_id, now)
            if member.status == MemberStatus.KIDNAPPED:
                raise PreconditionFailedError(action, "you are being held hostage")

            found = await self._find_gang(session, gang_name)
            gang = await self._gangs.get_for_update(session, found.id)
            if gang is None:
                raise NotFoundError("Gang", gang_name)

            if via_invite:
                invitation = await self._invitations.find_pending(session, gang.id, user_id, now)
                if invitation is None:
                    raise NotFoundError("Invitation", gang.name)
            elif not gang.is_public or gang.require_approval:
                raise PreconditionFailedError("join", f"{gang.name} is invite-only")

            self._ensure_admissible(gang, member, action)
            await self._ensure_room(session, gang, action)

            member.gang_id = gang.id
            member.role = GangRole.MEMBER.value
            await self._invitations.delete_for_invitee(session, user_id)

            self.log_operation("join", user_id=user_id, gang_id=gang.id, via_invite=via_invite)
            return {"gang_id": gang.id, "gang_name": gang.name, "user_id": user_id}

    async def decline_invite(self, user_id: int, gang_name: str) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            gang = await self._find_gang(session, gang_name)
            invitation = await self._invitations.find_any(session, gang.id, user_id)
            if invitation is None:
                raise NotFoundError("Invitation", gang.name)
            await self._invitations.delete(session, invitation)
            return {"gang_id": gang.id, "gang_name": gang.name, "user_id": user_id}

    async def list_invites(self, user_id: int) -> list[Dict[str, Any]]:
        async with DatabaseService.get_session() as session:
            now = self._now()
            invitations = await self._invitations.find_many_where(
                session,
                GangInvitation.invitee_id == user_id,
                GangInvitation.expires_at > now,
            )
            return [
                {
                    "gang_id": inv.gang_id,
                    "inviter_id": inv.inviter_id,
                    "expires_at": inv.expires_at,
                }
                for inv in invitations
            ]

    # -------------------------------------------------------------------------
    # Leaving and removal
    # -------------------------------------------------------------------------

    async def leave_gang(self, user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="leave_gang"):
            return await self.run_with_retry(
                lambda: self._leave(user_id),
                operation_name="gang.leave",
                user_id=user_id,
            )

    async def _leave(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            member = await self._load_actor(session, user_id, self._now())
            gang = await self._require_gang(session, member, "leave")
            if member.role == GangRole.LEADER:
                raise PreconditionFailedError(
                    "leave", "the leader must transfer leadership or disband the gang"
                )
            returned = await self._detach(session, member)
            self.log_operation("leave", user_id=user_id, gang_id=gang.id)
            return {"gang_id": gang.id, "user_id": user_id, "escort_returned": returned}

    async def kick(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="kick"):
            return await self.run_with_retry(
                lambda: self._kick(user_id, target_user_id),
                operation_name="gang.kick",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def _kick(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang, target = await self._load_pair(session, user_id, target_user_id, "kick")
            self._require_role(actor, "kick", LEADER_ONLY)
            self._ensure_same_gang(gang, target, "kick")
            returned = await self._detach(session, target)
            self.log_operation("kick", user_id=user_id, gang_id=gang.id, target=target_user_id)
            return {"gang_id": gang.id, "kicked": target_user_id, "escort_returned": returned}

    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------

    async def set_officer(self, user_id: int, target_user_id: int, promote: bool = True) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="promote" if promote else "demote"):
            return await self.run_with_retry(
                lambda: self._set_officer(user_id, target_user_id, promote),
                operation_name="gang.set_officer",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def _set_officer(self, user_id: int, target_user_id: int, promote: bool) -> Dict[str, Any]:
        action = "promote" if promote else "demote"
        async with DatabaseService.get_transaction() as session:
            actor, gang, target = await self._load_pair(session, user_id, target_user_id, action)
            self._require_role(actor, action, LEADER_ONLY)
            self._ensure_same_gang(gang, target, action)
            target.role = GangRole.OFFICER.value if promote else GangRole.MEMBER.value
            return {"gang_id": gang.id, "user_id": target_user_id, "role": target.role}

    async def transfer_leadership(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="transfer_leadership"):
            return await self.run_with_retry(
                lambda: self._transfer(user_id, target_user_id),
                operation_name="gang.transfer_leadership",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def _transfer(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            actor, gang, target = await self._load_pair(session, user_id, target_user_id, "transfer")
            self._require_role(actor, "transfer", LEADER_ONLY)
            self._ensure_same_gang(gang, target, "transfer")

            target.role = GangRole.LEADER.value
            actor.role = GangRole.OFFICER.value
            gang.leader_id = target.user_id

            self.log_operation("transfer_leadership", gang_id=gang.id, old=user_id, new=target_user_id)
            return {"gang_id": gang.id, "old_leader_id": user_id, "leader_id": target_user_id}

    # -------------------------------------------------------------------------
    # Bans
    # -------------------------------------------------------------------------

    async def ban(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        """Ban a user from the gang, removing them if they are a member."""
        async with LogContext(user_id=user_id, command="ban"):
            return await self.run_with_retry(
                lambda: self._ban(user_id, target_user_id, banned=True),
                operation_name="gang.ban",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def unban(self, user_id: int, target_user_id: int) -> Dict[str, Any]:
        async with LogContext(user_id=user_id, command="unban"):
            return await self.run_with_retry(
                lambda: self._ban(user_id, target_user_id, banned=False),
                operation_name="gang.unban",
                user_id=user_id,
                target_user_id=target_user_id,
            )

    async def _ban(self, user_id: int, target_user_id: int, banned: bool) -> Dict[str, Any]:
        action = "ban" if banned else "unban"
        async with DatabaseService.get_transaction() as session:
            actor, gang, target = await self._load_pair(session, user_id, target_user_id, action)
            self._require_role(actor, action)

            current = list(gang.banned_ids or [])
            removed = False
            if banned:
                if target.gang_id == gang.id:
                    if target.role == GangRole.LEADER or (
                        target.role == GangRole.OFFICER and actor.role != GangRole.LEADER
                    ):
                        raise PermissionDeniedError(action, LEADER_ONLY, actor.role)
                    await self._detach(session, target)
                    removed = True
                if target.user_id not in current:
                    current.append(target.user_id)
                invitation = await self._invitations.find_any(session, gang.id, target.user_id)
                if invitation is not None:
                    await self._invitations.delete(session, invitation)
            else:
                if target.user_id not in current:
                    raise PreconditionFailedError("unban", "user is not banned")
                current.remove(target.user_id)

            # reassign so the JSON column is marked dirty
            gang.banned_ids = current
            self.log_operation(action, user_id=user_id, gang_id=gang.id, target=target_user_id)
            return {
                "gang_id": gang.id,
                "user_id": target_user_id,
                "banned": banned,
                "removed_from_gang": removed,
            }
