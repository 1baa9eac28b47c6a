"""
ServiceContainer: builds the gang services once and hands them out.

Every service shares one ConfigManager, one EventBus, one ProgressionTables
snapshot and one wallet, so a balance table is read once per process and all
services agree on it. The combat service additionally gets the injected random
source (tests pass a scripted one).

The container does not start DatabaseService or RedisService and does not
schedule the cleanup loop; the host application does that:

    await DatabaseService.initialize()
    container = ServiceContainer(ConfigManager, EventBus(), get_logger("turfwar"))
    await container.initialize()
    asyncio.create_task(container.cleanup_task.run_forever(stop_event=stop))
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from turfwar.core.logging.logger import get_logger
from turfwar.modules.gang import (
    CombatService,
    GangCleanupTask,
    GangService,
    HostageService,
    MemberService,
    PersonnelService,
    PocketWallet,
    ProgressionTables,
    ToolService,
    TurfService,
    Wallet,
)

if TYPE_CHECKING:
    from logging import Logger

    from turfwar.core.config.manager import ConfigManager
    from turfwar.core.event.bus import EventBus

SERVICES: Dict[str, type] = {
    "gang": GangService,
    "member": MemberService,
    "personnel": PersonnelService,
    "turf": TurfService,
    "combat": CombatService,
    "hostage": HostageService,
    "tool": ToolService,
}


class ServiceContainer:
    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        wallet: Optional[Wallet] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._wallet = wallet or PocketWallet()
        self._rng = rng

        self._tables: Optional[ProgressionTables] = None
        self._services: Dict[str, Any] = {}
        self._cleanup_task: Optional[GangCleanupTask] = None
        self._build_seconds: Optional[float] = None

    @property
    def initialized(self) -> bool:
        return self._build_seconds is not None

    async def initialize(self) -> None:
        """Build every service. A second call is a no-op."""
        if self.initialized:
            return

        start = time.perf_counter()
        try:
            self._tables = ProgressionTables.from_config(self._config_manager)
            for name, service_cls in SERVICES.items():
                self._services[name] = self._build(service_cls)
            self._cleanup_task = GangCleanupTask.from_config(self._services["hostage"])
        except Exception:
            self._logger.critical("Could not build gang services", exc_info=True)
            self._services.clear()
            raise

        self._build_seconds = time.perf_counter() - start
        self._logger.info(
            "Gang services ready",
            extra={"services": sorted(self._services), "build_ms": round(self._build_seconds * 1000, 1)},
        )

    def _build(self, service_cls: type) -> Any:
        extra: Dict[str, Any] = {"rng": self._rng} if service_cls is CombatService else {}
        return service_cls(
            config_manager=self._config_manager,
            event_bus=self._event_bus,
            logger=get_logger(f"{service_cls.__module__}.{service_cls.__name__}"),
            tables=self._tables,
            wallet=self._wallet,
            **extra,
        )

    async def shutdown(self) -> None:
        if not self.initialized:
            return
        self._services.clear()
        self._cleanup_task = None
        self._build_seconds = None
        self._logger.info("Gang services released")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "services": sorted(self._services),
            "all_services_available": set(self._services) == set(SERVICES),
        }

    def _get(self, name: str) -> Any:
        try:
            return self._services[name]
        except KeyError:
            raise RuntimeError(f"ServiceContainer.initialize() has not run; {name} unavailable") from None

    @property
    def tables(self) -> ProgressionTables:
        if self._tables is None:
            raise RuntimeError("ServiceContainer.initialize() has not run; tables unavailable")
        return self._tables

    @property
    def gang(self) -> GangService:
        return self._get("gang")

    @property
    def member(self) -> MemberService:
        return self._get("member")

    @property
    def personnel(self) -> PersonnelService:
        return self._get("personnel")

    @property
    def turf(self) -> TurfService:
        return self._get("turf")

    @property
    def combat(self) -> CombatService:
        return self._get("combat")

    @property
    def hostage(self) -> HostageService:
        return self._get("hostage")

    @property
    def tool(self) -> ToolService:
        return self._get("tool")

    @property
    def cleanup_task(self) -> GangCleanupTask:
        if self._cleanup_task is None:
            raise RuntimeError("ServiceContainer.initialize() has not run; cleanup_task unavailable")
        return self._cleanup_task
