"""
Redis caching for studio settings.

CACHING STRATEGY
================

What we cache:
  - The cancellation policy, under "settings:cancellation_policy"

Why:
  - Every cancellation quote and every cancel request reads the policy
  - It changes only when an admin saves the settings screen

Invalidation strategy:
  - On policy save: delete the key
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

Why NOT cache bookings:
  - Lifecycle transitions need the current status and version; a stale read
    would let two transitions race past the guards
"""

import json
from typing import Optional

from studio_booking.core.config import get_settings
from studio_booking.core.logging import get_logger
from studio_booking.core.metrics import record_cache_operation
from studio_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)

POLICY_CACHE_KEY = "settings:cancellation_policy"


async def get_cached_policy() -> Optional[list[dict]]:
    """Retrieve cached policy rules."""
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(POLICY_CACHE_KEY)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=POLICY_CACHE_KEY)
            return json.loads(data)
        logger.debug("cache_miss", key=POLICY_CACHE_KEY)
    except Exception as e:
        logger.error("cache_get_error", key=POLICY_CACHE_KEY, error=str(e))

    return None


async def set_cached_policy(rules: list[dict]) -> None:
    """Cache policy rules with TTL."""
    client = await get_redis()
    if not client:
        return

    ttl = get_settings().REDIS_CACHE_TTL
    try:
        await client.setex(POLICY_CACHE_KEY, ttl, json.dumps(rules))
        logger.debug("cache_set", key=POLICY_CACHE_KEY, ttl=ttl)
    except Exception as e:
        logger.error("cache_set_error", key=POLICY_CACHE_KEY, error=str(e))


async def invalidate_policy_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.delete(POLICY_CACHE_KEY)
        logger.info("cache_invalidated", key=POLICY_CACHE_KEY)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
