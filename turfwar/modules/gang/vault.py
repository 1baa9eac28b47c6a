"""
Vault Ledger
============

Purpose
-------
Capacity-bounded gang treasury. Every write to `Gang.vault` goes through
this module so `0 <= vault <= capacity(base_level)` holds after every
operation.

Design Decisions
----------------
- `credit` clamps to remaining capacity; the excess is dropped, never
  queued or refunded.
- `debit` refuses to overdraw with `InsufficientResourcesError`.
- `transfer` debits only what the destination accepted, so a capped credit
  never destroys source funds. Callers run it inside their transaction;
  a failure rolls back both legs.
- A vault outside its bounds after arithmetic is a defect and raises
  `InvariantViolationError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from turfwar.core.exceptions import InvariantViolationError
from turfwar.core.logging.logger import get_logger
from turfwar.modules.gang.progression import DEFAULT_TABLES, ProgressionTables
from turfwar.modules.shared.exceptions import InsufficientResourcesError, ValidationError

if TYPE_CHECKING:
    from turfwar.database.models.gang import Gang

logger = get_logger(__name__)


def capacity(gang: Gang, tables: ProgressionTables = DEFAULT_TABLES) -> int:
    return tables.vault_capacity(gang.base_level)


def free_space(gang: Gang, tables: ProgressionTables = DEFAULT_TABLES) -> int:
    return max(0, capacity(gang, tables) - gang.vault)


def assert_invariant(gang: Gang, tables: ProgressionTables = DEFAULT_TABLES) -> None:
    cap = capacity(gang, tables)
    if gang.vault < 0 or gang.vault > cap:
        logger.critical(
            "Vault out of bounds",
            extra={"gang_id": gang.id, "vault": gang.vault, "capacity": cap},
        )
        raise InvariantViolationError(
            "vault_bounds",
            {"gang_id": gang.id, "vault": gang.vault, "capacity": cap},
        )


def credit(gang: Gang, amount: int, tables: ProgressionTables = DEFAULT_TABLES) -> int:
    """
    Add up to `amount` to the vault.

    Returns:
        The amount actually credited, min(amount, capacity - vault).
    """
    if amount < 0:
        raise ValidationError("amount", f"credit amount must be non-negative, got {amount}")

    accepted = min(amount, free_space(gang, tables))
    gang.vault += accepted
    assert_invariant(gang, tables)
    return accepted


def debit(gang: Gang, amount: int) -> int:
    """Remove exactly `amount` from the vault."""
    if amount < 0:
        raise ValidationError("amount", f"debit amount must be non-negative, got {amount}")
    if amount > gang.vault:
        raise InsufficientResourcesError("vault", amount, gang.vault)

    gang.vault -= amount
    if gang.vault < 0:
        raise InvariantViolationError("vault_non_negative", {"gang_id": gang.id, "vault": gang.vault})
    return amount


def transfer(
    source: Gang,
    destination: Gang,
    amount: int,
    tables: ProgressionTables = DEFAULT_TABLES,
) -> int:
    """
    Move up to `amount` from `source` to `destination`.

    Only the share the destination can hold leaves the source.

    Returns:
        The amount moved.
    """
    if amount > source.vault:
        raise InsufficientResourcesError("vault", amount, source.vault)

    movable = min(amount, free_space(destination, tables))
    debit(source, movable)
    credited = credit(destination, movable, tables)
    if credited != movable:
        raise InvariantViolationError(
            "vault_transfer_balanced",
            {"debited": movable, "credited": credited},
        )
    return credited
