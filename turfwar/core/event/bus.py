"""
In-process event bus for turfwar.

Services publish what happened once it is committed ("gang.raided",
"member.kidnapped", "vault.deposited"); anything interested subscribes by
name or shell-style pattern ("gang.*", "*.kidnapped"). Publishers never see
listener failures.

Listener priorities:
- HIGH: awaited one by one, in subscription order, before anything else.
- NORMAL: awaited together.
- LOW: scheduled as background tasks; `drain()` waits for them.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import itertools
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from turfwar.core.logging.logger import get_logger

logger = get_logger(__name__)

EventPayload = Dict[str, Any]
CallbackType = Callable[[EventPayload], Union[Awaitable[Any], Any]]

_sequence = itertools.count()


class ListenerPriority(enum.IntEnum):
    HIGH = 0
    NORMAL = 1
    LOW = 2


@dataclass(frozen=True)
class EventListener:
    pattern: str
    callback: CallbackType
    priority: ListenerPriority = ListenerPriority.NORMAL
    order: int = field(default_factory=lambda: next(_sequence))

    @property
    def identifier(self) -> str:
        return f"{getattr(self.callback, '__qualname__', 'listener')}#{self.order}"

    def wants(self, event_name: str) -> bool:
        return fnmatchcase(event_name, self.pattern)


class EventBus:
    def __init__(self) -> None:
        self._listeners: List[EventListener] = []
        self._background: Set[asyncio.Task[Any]] = set()

    def subscribe(
        self,
        pattern: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
    ) -> str:
        """Register `callback(payload)` for events matching `pattern`; returns its id."""
        listener = EventListener(pattern, callback, priority)
        self._listeners.append(listener)
        logger.debug(
            "Listener subscribed",
            extra={"pattern": pattern, "listener_id": listener.identifier, "priority": priority.name},
        )
        return listener.identifier

    def unsubscribe(self, identifier: str) -> bool:
        kept = [listener for listener in self._listeners if listener.identifier != identifier]
        removed = len(kept) != len(self._listeners)
        self._listeners = kept
        return removed

    def listeners_for(self, event_name: str) -> List[EventListener]:
        return sorted(
            (listener for listener in self._listeners if listener.wants(event_name)),
            key=lambda listener: (listener.priority, listener.order),
        )

    async def _call(self, event_name: str, listener: EventListener, payload: EventPayload) -> Any:
        try:
            outcome = listener.callback(payload)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
        except Exception as exc:
            logger.error(
                "Event listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return None

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Deliver `data` to every matching listener.

        Returns the HIGH then NORMAL results; a failed listener contributes None.
        """
        listeners = self.listeners_for(event_name)
        logger.debug("Publishing event", extra={"event_name": event_name, "listeners": len(listeners)})

        tiers: Dict[ListenerPriority, List[EventListener]] = {tier: [] for tier in ListenerPriority}
        for listener in listeners:
            tiers[listener.priority].append(listener)

        results = [await self._call(event_name, listener, data) for listener in tiers[ListenerPriority.HIGH]]
        results.extend(
            await asyncio.gather(
                *(self._call(event_name, listener, data) for listener in tiers[ListenerPriority.NORMAL])
            )
        )
        for listener in tiers[ListenerPriority.LOW]:
            task = asyncio.create_task(self._call(event_name, listener, data))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        return results

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for LOW-priority listeners still running."""
        if self._background:
            await asyncio.wait(set(self._background), timeout=timeout)
