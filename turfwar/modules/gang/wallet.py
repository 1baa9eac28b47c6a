"""
Wallet collaborator.

Personal balances are owned by an external ledger; the gang core only needs
`get_balance`, `debit` and `credit`. `PocketWallet` is the default
implementation and keeps the balance on `GangMember.pocket`, inside the
caller's transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from turfwar.modules.shared.exceptions import InsufficientResourcesError, ValidationError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from turfwar.database.models.gang import GangMember


@runtime_checkable
class Wallet(Protocol):
    async def get_balance(self, session: AsyncSession, member: GangMember) -> int: ...

    async def debit(self, session: AsyncSession, member: GangMember, amount: int) -> int: ...

    async def credit(self, session: AsyncSession, member: GangMember, amount: int) -> int: ...


class PocketWallet:
    """Wallet backed by the member row. The member must already be locked."""

    async def get_balance(self, session: AsyncSession, member: GangMember) -> int:
        return member.pocket

    async def debit(self, session: AsyncSession, member: GangMember, amount: int) -> int:
        if amount < 0:
            raise ValidationError("amount", f"must be non-negative, got {amount}")
        if member.pocket < amount:
            raise InsufficientResourcesError("balance", amount, member.pocket)
        member.pocket -= amount
        return member.pocket

    async def credit(self, session: AsyncSession, member: GangMember, amount: int) -> int:
        if amount < 0:
            raise ValidationError("amount", f"must be non-negative, got {amount}")
        member.pocket += amount
        return member.pocket
