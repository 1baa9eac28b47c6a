"""
Integration tests for RedisService leases against a real Redis.
"""

import asyncio

import pytest

from turfwar.core.redis.service import LockNotAcquiredError, RedisService

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


class TestLease:
    async def test_holds_key_while_inside_block(self, redis):
        async with RedisService.acquire_lock("lease:sweep", timeout=5, wait_timeout=0):
            assert await RedisService.client().get("lease:sweep") is not None

        assert await RedisService.client().get("lease:sweep") is None

    async def test_second_holder_is_refused(self, redis):
        async with RedisService.acquire_lock("lease:sweep", timeout=5, wait_timeout=0):
            with pytest.raises(LockNotAcquiredError) as exc_info:
                async with RedisService.acquire_lock(
                    "lease:sweep", timeout=5, wait_timeout=0.05, retry_interval=0.01
                ):
                    pass

        assert exc_info.value.key == "lease:sweep"

    async def test_waiter_gets_lease_after_release(self, redis):
        order = []

        async def holder():
            async with RedisService.acquire_lock("lease:sweep", timeout=5, wait_timeout=0):
                order.append("first")
                await asyncio.sleep(0.1)

        async def waiter():
            await asyncio.sleep(0.02)
            async with RedisService.acquire_lock(
                "lease:sweep", timeout=5, wait_timeout=2, retry_interval=0.01
            ):
                order.append("second")

        await asyncio.gather(holder(), waiter())
        assert order == ["first", "second"]

    async def test_expired_lease_is_not_deleted_from_new_owner(self, redis):
        client = RedisService.client()
        async with RedisService.acquire_lock("lease:sweep", timeout=5, wait_timeout=0):
            # simulate expiry plus takeover by another process
            await client.set("lease:sweep", "someone-else")

        assert await client.get("lease:sweep") == "someone-else"

    async def test_health_check(self, redis):
        assert await RedisService.health_check() is True
