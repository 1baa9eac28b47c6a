"""
RedisService: shared async Redis client and short-lived leases.

turfwar keeps all game state in PostgreSQL. Redis is only used so that,
when several processes share one database, a single one runs the periodic
hostage cleanup at a time. The lease is a key written with SET NX EX and a
random token; only the holder of the token may delete it.

Configuration
-------------
Config: REDIS_URL, REDIS_SOCKET_TIMEOUT

ConfigManager:
- core.redis.lock.default_timeout_sec  (default 5)
- core.redis.lock.wait_timeout_sec     (default 5)
- core.redis.lock.retry_interval_sec   (default 0.1)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from turfwar.core.config.config import Config
from turfwar.core.config.manager import ConfigManager
from turfwar.core.exceptions import RedisConnectionError
from turfwar.core.logging.logger import get_logger

logger = get_logger(__name__)

# Delete the key only if it still holds our token.
_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class LockNotAcquiredError(TimeoutError):
    """Another holder kept the lease for the whole wait window."""

    def __init__(self, key: str, wait_timeout: float) -> None:
        self.key = key
        self.wait_timeout = wait_timeout
        super().__init__(f"Redis lock '{key}' not acquired within {wait_timeout}s")


class RedisService:
    _client: Optional[AsyncRedis] = None
    _init_lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and PING. Idempotent.

        Raises:
            RedisConnectionError: The server did not answer.
        """
        async with cls._init_lock:
            if cls._client is not None:
                return

            client: AsyncRedis = AsyncRedis.from_url(
                url or Config.REDIS_URL,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                decode_responses=True,
            )
            try:
                await client.ping()  # type: ignore[misc]
            except RedisError as exc:
                await client.aclose()
                logger.critical(
                    "Redis unreachable",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                raise RedisConnectionError("initialize", exc) from exc

            cls._client = client
            logger.info("RedisService initialized")

    @classmethod
    async def shutdown(cls) -> None:
        client, cls._client = cls._client, None
        if client is not None:
            await client.aclose()
            logger.info("RedisService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise RuntimeError("RedisService.initialize() has not been awaited")
        return cls._client

    @classmethod
    async def health_check(cls) -> bool:
        if cls._client is None:
            return False
        try:
            return bool(await cls._client.ping())  # type: ignore[misc]
        except RedisError as exc:
            logger.warning("Redis health check failed", extra={"error": str(exc)})
            return False

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    @classmethod
    async def _try_set(cls, client: AsyncRedis, key: str, token: str, ttl: int) -> bool:
        try:
            return bool(await client.set(name=key, value=token, nx=True, ex=ttl))
        except RedisError as exc:
            # treated as "held elsewhere"; the caller keeps polling until its deadline
            logger.error(
                "Redis lock attempt failed",
                extra={"lock_key": key, "error": str(exc)},
            )
            return False

    @classmethod
    async def _release(cls, client: AsyncRedis, key: str, token: str) -> None:
        try:
            released = await client.eval(_RELEASE_SCRIPT, 1, key, token)  # type: ignore[misc]
        except RedisError as exc:
            logger.warning(
                "Redis lock release failed, key will expire",
                extra={"lock_key": key, "error": str(exc)},
            )
            return
        if not released:
            logger.warning("Redis lock expired before release", extra={"lock_key": key})

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Hold `key` for the duration of the block.

        The lease expires on its own after `timeout` seconds. `wait_timeout=0`
        makes a single attempt.

        Raises:
            LockNotAcquiredError: Still held elsewhere after `wait_timeout`.
        """
        client = cls.client()
        ttl = int(
            timeout
            if timeout is not None
            else ConfigManager.get("core.redis.lock.default_timeout_sec", 5)
        )
        wait = float(
            wait_timeout
            if wait_timeout is not None
            else ConfigManager.get("core.redis.lock.wait_timeout_sec", 5)
        )
        interval = float(
            retry_interval
            if retry_interval is not None
            else ConfigManager.get("core.redis.lock.retry_interval_sec", 0.1)
        )

        token = uuid.uuid4().hex
        deadline = time.monotonic() + max(0.0, wait)
        while not await cls._try_set(client, key, token, ttl):
            if time.monotonic() >= deadline:
                raise LockNotAcquiredError(key, wait)
            await asyncio.sleep(interval)

        logger.debug("Redis lock acquired", extra={"lock_key": key, "ttl_seconds": ttl})
        try:
            yield
        finally:
            await cls._release(client, key, token)
