"""
Gang Cleanup Task - periodic hostage expiry sweep

Purpose
-------
Background loop that releases expired kidnaps and reconciles every gang's
hostage counter via HostageService.cleanup_expired_kidnaps().

When Redis is initialized each sweep runs under a short distributed lease,
so only one process sweeps at a time; a process that loses the race skips
that tick. Without Redis the sweep runs unguarded, which is safe because
cleanup is idempotent.

Configuration
-------------
- gangs.cleanup.interval_seconds (default: 300)
- gangs.cleanup.lock_ttl_seconds (default: 60)
- gangs.cleanup.lock_key (default: "turfwar:gangs:cleanup")

Usage
-----
>>> stop_event = asyncio.Event()
>>> task = GangCleanupTask.from_config(hostage_service)
>>> runner = asyncio.create_task(task.run_forever(stop_event=stop_event))
>>> # ... later ...
>>> stop_event.set()
>>> await runner
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from turfwar.core.config.manager import ConfigManager
from turfwar.core.logging.logger import get_logger
from turfwar.core.redis.service import LockNotAcquiredError, RedisService
from turfwar.modules.gang.hostage_service import HostageService

logger = get_logger(__name__)


@dataclass
class GangCleanupConfig:
    interval_seconds: float
    lock_ttl_seconds: int
    lock_key: str

    @classmethod
    def from_config(cls) -> GangCleanupConfig:
        return cls(
            interval_seconds=float(ConfigManager.get("gangs.cleanup.interval_seconds", 300)),
            lock_ttl_seconds=int(ConfigManager.get("gangs.cleanup.lock_ttl_seconds", 60)),
            lock_key=str(ConfigManager.get("gangs.cleanup.lock_key", "turfwar:gangs:cleanup")),
        )


class GangCleanupTask:
    """
    Periodic hostage cleanup.

    Public API
    ----------
    - from_config(hostage_service) -> Create task from ConfigManager
    - run_once() -> One sweep, None when another process holds the lease
    - run_forever(stop_event) -> Sweep until stopped
    """

    def __init__(self, hostage_service: HostageService, config: GangCleanupConfig) -> None:
        self._hostages = hostage_service
        self._config = config

    @classmethod
    def from_config(cls, hostage_service: HostageService) -> GangCleanupTask:
        return cls(hostage_service, GangCleanupConfig.from_config())

    async def run_once(self) -> Optional[Dict[str, Any]]:
        if not RedisService.is_initialized():
            return await self._hostages.cleanup_expired_kidnaps()

        try:
            async with RedisService.acquire_lock(
                self._config.lock_key,
                timeout=self._config.lock_ttl_seconds,
                wait_timeout=0,
            ):
                return await self._hostages.cleanup_expired_kidnaps()
        except LockNotAcquiredError:
            logger.debug(
                "Gang cleanup skipped, lease held elsewhere",
                extra={"lock_key": self._config.lock_key},
            )
            return None

    async def run_forever(self, *, stop_event: asyncio.Event) -> None:
        logger.info(
            "GangCleanupTask started",
            extra={
                "interval_seconds": self._config.interval_seconds,
                "lock_ttl_seconds": self._config.lock_ttl_seconds,
            },
        )

        try:
            while not stop_event.is_set():
                try:
                    await self.run_once()
                except Exception as exc:
                    # a failed sweep must not stop the loop; the next tick retries
                    logger.error(
                        "Gang cleanup sweep failed",
                        extra={"error": str(exc), "error_type": type(exc).__name__},
                        exc_info=True,
                    )

                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self._config.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue

        finally:
            logger.info("GangCleanupTask stopped")
