"""
Per-booking transition lock.

CONCURRENCY STRATEGY: Advisory Redis lock + optimistic version check
=====================================================================

Problem:
  Two admins (or an admin and the customer) act on the same booking at the
  same time. Both pass the status guard, both issue a proforma or a storno.
  Result: duplicate documents at the invoicing provider.

Solution:
  1. SET booking-lock:{id} <token> NX PX <ttl> before any side effect.
     A second transition finds the key and is refused with a conflict.
  2. The final status write is still conditional on the row's `version`,
     so the database stays authoritative.

  If Redis is down the lock fails open (same trade-off as the cache):
  transitions proceed and only the version check protects the row.

  Release uses compare-and-delete so an expired lock that another request
  re-acquired is never deleted by the original holder.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from studio_booking.core.config import get_settings
from studio_booking.core.logging import get_logger
from studio_booking.core.metrics import booking_lock_contention, redis_connection_errors
from studio_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(booking_id: str) -> str:
    return f"booking-lock:{booking_id}"


class BookingLock:

    def __init__(self, ttl_ms: Optional[int] = None):
        self.ttl_ms = ttl_ms or get_settings().BOOKING_LOCK_TTL_MS

    async def acquire(self, booking_id: str) -> Optional[str]:
        """
        Returns a token when the lock is held (or Redis is unavailable),
        None when another transition holds it.
        """
        token = uuid.uuid4().hex
        client = await get_redis()
        if client is None:
            return token

        try:
            acquired = await client.set(_lock_key(booking_id), token, nx=True, px=self.ttl_ms)
        except Exception as e:
            # Fail open: the version check on the write still guards the row
            redis_connection_errors.inc()
            logger.warning("booking_lock_unavailable", booking_id=booking_id, error=str(e))
            return token

        if not acquired:
            booking_lock_contention.inc()
            logger.info("booking_lock_busy", booking_id=booking_id)
            return None
        return token

    async def release(self, booking_id: str, token: str) -> None:
        client = await get_redis()
        if client is None:
            return
        try:
            await client.eval(RELEASE_SCRIPT, 1, _lock_key(booking_id), token)
        except Exception as e:
            logger.warning("booking_lock_release_failed", booking_id=booking_id, error=str(e))

    @asynccontextmanager
    async def hold(self, booking_id: str) -> AsyncIterator[bool]:
        """Yields True while the lock is held, False if it could not be taken."""
        token = await self.acquire(booking_id)
        if token is None:
            yield False
            return
        try:
            yield True
        finally:
            await self.release(booking_id, token)
