"""
Redis infrastructure for turfwar: client lifecycle and distributed locks.
"""

from turfwar.core.redis.service import LockNotAcquiredError, RedisService

__all__ = ["RedisService", "LockNotAcquiredError"]
