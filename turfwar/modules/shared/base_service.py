"""
BaseService: what every turfwar service gets for free.

A service method validates its arguments, runs one transactional unit through
`run_with_retry` (so a lost optimistic-lock race replays the whole unit on
fresh rows), and publishes a domain event only after that unit committed.

    class GangService(BaseService):
        async def deposit(self, user_id: int, amount: int) -> dict:
            self.validate_positive_int(amount, "amount")
            result = await self.run_with_retry(
                lambda: self._deposit(user_id, amount),
                operation_name="gang.deposit",
                user_id=user_id,
            )
            await self.emit_event("vault.deposited", result)
            return result

Services keep no session or row between calls.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, TypeVar

from turfwar.core.database.retry_policy import DatabaseRetryPolicy
from turfwar.core.exceptions import ConfigurationError

from .exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from turfwar.core.config.manager import ConfigManager
    from turfwar.core.event.bus import EventBus

R = TypeVar("R")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class BaseService:
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        retry_policy: Optional[DatabaseRetryPolicy] = None,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger
        self._retry = retry_policy or DatabaseRetryPolicy.from_config()

    def get_config(self, key: str, default: Any = None, required: bool = False) -> Any:
        """Balance value by dotted key; `required=True` turns a miss into ConfigurationError."""
        value = self._config.get(key, default)
        if value is None and required:
            raise ConfigurationError(key, "missing required balance value")
        return value

    async def run_with_retry(
        self,
        operation: Callable[[], Awaitable[R]],
        *,
        operation_name: str,
        **context: Any,
    ) -> R:
        return await self._retry.execute(operation, operation_name=operation_name, context=context)

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish after commit. Listener failures are isolated by the bus."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **fields: Any) -> None:
        self.log.info(f"Gang operation: {operation}", extra={"operation": operation, **fields})

    # ------------------------------------------------------------------
    # Argument checks
    # ------------------------------------------------------------------

    def validate_positive_int(self, value: Any, name: str) -> None:
        if not _is_int(value) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive whole number, got {value!r}")

    def validate_non_negative_int(self, value: Any, name: str) -> None:
        if not _is_int(value) or value < 0:
            raise ValidationError(name, f"{name} cannot be negative, got {value!r}")

    def validate_range(self, value: Any, name: str, min_val: int, max_val: int) -> None:
        if not _is_int(value) or not min_val <= value <= max_val:
            raise ValidationError(name, f"{name} must be between {min_val} and {max_val}, got {value!r}")
