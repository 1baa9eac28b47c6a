"""
GangService - Business logic for core gang management
=====================================================

Handles:
- Founding a gang (name checks, founding cost, starting base)
- Disbanding with a vault payout to the leader
- Renaming and settings
- Vault deposits and withdrawals
- Read-only gang profile

Business Logic:
- Names are unique case-insensitively
- A new gang starts at base level 1 with full HP, power from config, all
  tiers at 1, no personnel and no tools; the founder leads from inside
- Deposits clamp to the vault's remaining capacity; a full vault refuses
- Only leaders and officers may withdraw
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import GangRole, MemberStatus, PersonnelKind
from turfwar.database.models.gang import Gang
from turfwar.modules.gang import tools, vault
from turfwar.modules.gang.combat_engine import dissolve_membership
from turfwar.modules.gang.gang_base_service import LEADER_ONLY, GangBaseService
from turfwar.modules.gang.progression import base_condition, wall_name
from turfwar.modules.shared.exceptions import (
    InsufficientResourcesError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)

_SETTING_FLAGS = ("is_public", "allow_invites", "require_approval")


class GangService(GangBaseService):
    """Gang lifecycle, settings and vault flows."""

    def _validate_name(self, name: str, min_key: str, max_key: str, max_default: int) -> str:
        name = (name or "").strip()
        min_len = int(self.get_config(min_key, 3))
        max_len = int(self.get_config(max_key, max_default))
        if not min_len <= len(name) <= max_len:
            raise ValidationError(
                "name", f"must be between {min_len} and {max_len} characters"
            )
        return name

    @property
    def min_transfer(self) -> int:
        return int(self.get_config("gangs.membership.min_deposit", 30))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_gang(self, user_id: int, name: str, level: Optional[int] = None) -> Dict[str, Any]:
        """
        Found a new gang led by `user_id`.

        Raises:
            ValidationError: Name length
            PreconditionFailedError: Already in a gang, kidnapped, name taken
            InsufficientResourcesError: Cannot pay the founding cost
        """
        name = self._validate_name(
            name, "gangs.membership.name_min_length", "gangs.membership.name_max_length", 100
        )
        async with LogContext(user_id=user_id, command="create_gang"):
            result = await self.run_with_retry(
                lambda: self._create(user_id, name, level),
                operation_name="gang.create",
                user_id=user_id,
                gang_name=name,
            )
            await self.emit_event("gang.created", result)
            return result

    async def _create(self, user_id: int, name: str, level: Optional[int]) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            founder = await self._load_actor(session, user_id, now, level=level)
            if founder.status == MemberStatus.KIDNAPPED:
                raise PreconditionFailedError("create", "you are being held hostage")
            if founder.gang_id is not None:
                raise PreconditionFailedError("create", "you are already in a gang")
            if await self._gangs.name_taken(session, name):
                raise PreconditionFailedError("create", f"gang name '{name}' is already taken")

            cost = int(self.get_config("gangs.membership.founding_cost", 0))
            if cost:
                balance = await self._wallet.get_balance(session, founder)
                if balance < cost:
                    raise InsufficientResourcesError("balance", cost, balance)
                await self._wallet.debit(session, founder, cost)

            stats = self._tables.base_stats(1)
            gang = self._gangs.add(
                session,
                Gang(
                    name=name,
                    leader_id=user_id,
                    power=int(self.get_config("gangs.membership.starting_power", 100)),
                    max_members=int(self.get_config("gangs.membership.default_max_members", 10)),
                    vault=0,
                    base_level=stats.level,
                    base_hp=stats.max_hp,
                ),
            )
            await self._gangs.flush(session)

            founder.gang_id = gang.id
            founder.role = GangRole.LEADER.value
            founder.status = MemberStatus.BASE.value
            await self._invitations.delete_for_invitee(session, user_id)

            self.log_operation("create_gang", user_id=user_id, gang_id=gang.id, gang_name=name)
            return {
                "gang_id": gang.id,
                "name": gang.name,
                "leader_id": user_id,
                "founding_cost": cost,
                "power": gang.power,
                "base": stats.to_dict(),
            }

    async def disband_gang(self, user_id: int) -> Dict[str, Any]:
        """Leader dissolves the gang; the remaining vault goes to their wallet."""
        async with LogContext(user_id=user_id, command="disband_gang"):
            result = await self.run_with_retry(
                lambda: self._disband(user_id),
                operation_name="gang.disband",
                user_id=user_id,
            )
            await self.emit_event("gang.disbanded", result)
            return result

    async def _disband(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            leader = await self._load_actor(session, user_id, now)
            gang = await self._require_gang(session, leader, "disband")
            self._require_role(leader, "disband", LEADER_ONLY)

            payout = vault.debit(gang, gang.vault)
            await self._wallet.credit(session, leader, payout)

            members = await self._members.list_gang(session, gang.id, for_update=True)
            released = dissolve_membership(members)
            await self._members.flush(session)
            gang_id, gang_name = gang.id, gang.name
            await self._gangs.delete(session, gang)

            self.log_operation("disband_gang", user_id=user_id, gang_id=gang_id, payout=payout)
            return {
                "gang_id": gang_id,
                "name": gang_name,
                "leader_id": user_id,
                "payout": payout,
                "released_members": released,
            }

    async def rename_gang(self, user_id: int, new_name: str) -> Dict[str, Any]:
        new_name = self._validate_name(
            new_name,
            "gangs.membership.rename_min_length",
            "gangs.membership.rename_max_length",
            20,
        )
        async with LogContext(user_id=user_id, command="rename_gang"):
            return await self.run_with_retry(
                lambda: self._rename(user_id, new_name),
                operation_name="gang.rename",
                user_id=user_id,
            )

    async def _rename(self, user_id: int, new_name: str) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            leader = await self._load_actor(session, user_id, self._now())
            gang = await self._require_gang(session, leader, "rename")
            self._require_role(leader, "rename", LEADER_ONLY)

            if await self._gangs.name_taken(session, new_name, exclude_id=gang.id):
                raise PreconditionFailedError("rename", f"gang name '{new_name}' is already taken")

            old_name, gang.name = gang.name, new_name
            self.log_operation("rename_gang", user_id=user_id, gang_id=gang.id, old_name=old_name)
            return {"gang_id": gang.id, "old_name": old_name, "name": new_name}

    async def update_settings(self, user_id: int, **settings: Any) -> Dict[str, Any]:
        """
        Update gang settings.

        Accepted keys: is_public, allow_invites, require_approval,
        min_level_to_join, max_members, description.
        """
        unknown = set(settings) - set(_SETTING_FLAGS) - {
            "min_level_to_join",
            "max_members",
            "description",
        }
        if unknown:
            raise ValidationError("settings", f"unknown setting(s): {', '.join(sorted(unknown))}")

        async with LogContext(user_id=user_id, command="gang_settings"):
            return await self.run_with_retry(
                lambda: self._update_settings(user_id, settings),
                operation_name="gang.settings",
                user_id=user_id,
            )

    async def _update_settings(self, user_id: int, settings: Dict[str, Any]) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            leader = await self._load_actor(session, user_id, self._now())
            gang = await self._require_gang(session, leader, "settings")
            self._require_role(leader, "settings", LEADER_ONLY)

            for flag in _SETTING_FLAGS:
                if flag in settings:
                    setattr(gang, flag, bool(settings[flag]))

            if "min_level_to_join" in settings:
                level = int(settings["min_level_to_join"])
                self.validate_range(level, "min_level_to_join", 1, 100)
                gang.min_level_to_join = level

            if "max_members" in settings:
                limit = int(settings["max_members"])
                current = await self._members.count_gang(session, gang.id)
                cap = int(self.get_config("gangs.membership.max_members_cap", 50))
                self.validate_range(limit, "max_members", max(current, 1), cap)
                gang.max_members = limit

            if "description" in settings:
                description = str(settings["description"]).strip()
                if len(description) > 250:
                    raise ValidationError("description", "must be at most 250 characters")
                gang.description = description or "No description set."

            return {
                "gang_id": gang.id,
                "is_public": gang.is_public,
                "allow_invites": gang.allow_invites,
                "require_approval": gang.require_approval,
                "min_level_to_join": gang.min_level_to_join,
                "max_members": gang.max_members,
                "description": gang.description,
            }

    # -------------------------------------------------------------------------
    # Vault
    # -------------------------------------------------------------------------

    async def deposit(self, user_id: int, amount: int) -> Dict[str, Any]:
        """
        Move money from the member's wallet into the gang vault.

        Only what fits is taken; a full vault refuses the deposit.
        """
        self.validate_positive_int(amount, "amount")
        if amount < self.min_transfer:
            raise ValidationError("amount", f"minimum deposit is {self.min_transfer}")

        async with LogContext(user_id=user_id, command="deposit"):
            result = await self.run_with_retry(
                lambda: self._deposit(user_id, amount),
                operation_name="gang.deposit",
                user_id=user_id,
                amount=amount,
            )
            await self.emit_event("vault.deposited", result)
            return result

    async def _deposit(self, user_id: int, amount: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            member = await self._load_active_actor(session, user_id, "deposit", self._now())
            gang = await self._require_gang(session, member, "deposit")

            room = vault.free_space(gang, self._tables)
            if room <= 0:
                raise InsufficientResourcesError(
                    "vault_capacity", amount, 0
                )

            accepted = min(amount, room)
            balance = await self._wallet.get_balance(session, member)
            if balance < accepted:
                raise InsufficientResourcesError("balance", accepted, balance)

            balance = await self._wallet.debit(session, member, accepted)
            credited = vault.credit(gang, accepted, self._tables)

            self.log_operation("deposit", user_id=user_id, gang_id=gang.id, amount=credited)
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "requested": amount,
                "deposited": credited,
                "vault": gang.vault,
                "vault_capacity": vault.capacity(gang, self._tables),
                "balance": balance,
            }

    async def withdraw(self, user_id: int, amount: int) -> Dict[str, Any]:
        """Leader or officer moves money from the vault to their wallet."""
        self.validate_positive_int(amount, "amount")
        if amount < self.min_transfer:
            raise ValidationError("amount", f"minimum withdrawal is {self.min_transfer}")

        async with LogContext(user_id=user_id, command="withdraw"):
            result = await self.run_with_retry(
                lambda: self._withdraw(user_id, amount),
                operation_name="gang.withdraw",
                user_id=user_id,
                amount=amount,
            )
            await self.emit_event("vault.withdrawn", result)
            return result

    async def _withdraw(self, user_id: int, amount: int) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            member = await self._load_active_actor(session, user_id, "withdraw", self._now())
            gang = await self._require_gang(session, member, "withdraw")
            self._require_role(member, "withdraw")

            vault.debit(gang, amount)
            balance = await self._wallet.credit(session, member, amount)

            self.log_operation("withdraw", user_id=user_id, gang_id=gang.id, amount=amount)
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "withdrawn": amount,
                "vault": gang.vault,
                "balance": balance,
            }

    # -------------------------------------------------------------------------
    # Read-only
    # -------------------------------------------------------------------------

    async def get_gang(self, name: Optional[str] = None, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Profile of a gang, by name or by one of its members."""
        async with DatabaseService.get_session() as session:
            gang, members, units = await self._load_profile(session, name, user_id)

        stats = self._tables.base_stats(gang.base_level)
        officers = [m.user_id for m in members if m.role == GangRole.OFFICER]
        return {
            **self._gang_snapshot(gang),
            "leader_id": gang.leader_id,
            "description": gang.description,
            "officers": officers,
            "members": [m.user_id for m in members],
            "member_count": len(members),
            "max_members": gang.max_members,
            "total_earnings": gang.total_earnings,
            "record": {
                "wins": gang.wins,
                "losses": gang.losses,
                "raids": gang.raids,
                "robs": gang.robs,
                "kidnaps": gang.kidnaps,
            },
            "base": {
                **stats.to_dict(),
                "hp": gang.base_hp,
                "condition": base_condition(gang.base_hp, stats.max_hp),
                "walls": wall_name(gang.walls_level),
            },
            "guards": sum(1 for u in units if u.kind == PersonnelKind.GUARD),
            "medics": sum(1 for u in units if u.kind == PersonnelKind.MEDIC),
            "tools": tools.inventory(gang),
            "settings": {
                "is_public": gang.is_public,
                "allow_invites": gang.allow_invites,
                "require_approval": gang.require_approval,
                "min_level_to_join": gang.min_level_to_join,
            },
        }

    async def _load_profile(
        self, session: Any, name: Optional[str], user_id: Optional[int]
    ) -> Tuple[Gang, list, list]:
        if name:
            gang = await self._find_gang(session, name)
        elif user_id is not None:
            member = await self._members.find_by_user(session, user_id)
            if member is None or member.gang_id is None:
                raise PreconditionFailedError("view", "you are not in a gang")
            gang = await self._require_gang(session, member, "view", lock=False)
        else:
            raise NotFoundError("Gang")
        members = await self._members.list_gang(session, gang.id)
        units = await self._personnel.list_units(session, gang.id)
        return gang, members, units
