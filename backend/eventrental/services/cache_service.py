"""
Redis caching service for the available-equipment catalog.

CACHING STRATEGY
================

What we cache:
  - The rentable catalog (approved equipment with units left), JSON-serialized
  - Cache key pattern: "equipment:catalog:category={category}"

Invalidation strategy:
  - After every committed ledger mutation (event created, equipment lines
    added/changed/removed, event deleted) and every catalog change
    (equipment listed, approved, rejected, deleted)
  - TTL-based expiry as safety net

  All catalog keys share the "equipment:catalog:" prefix so we can SCAN and
  delete them.

Why NOT cache per-equipment stock:
  - The ledger must decide on live counts (stale data = overbooking)
  - The catalog is advisory; the conditional UPDATE in the ledger is the
    authority on whether a reservation fits
"""

import json
from typing import Optional

from eventrental.core.config import get_settings
from eventrental.core.logging import get_logger
from eventrental.core.metrics import record_cache_operation
from eventrental.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

CATALOG_PREFIX = "equipment:catalog:"


def _make_catalog_key(category: Optional[str]) -> str:
    return f"{CATALOG_PREFIX}category={category or '*'}"


async def get_cached_catalog(category: Optional[str]) -> Optional[list]:
    """Retrieve cached catalog listing."""
    client = await get_redis()
    if not client:
        return None

    key = _make_catalog_key(category)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_catalog(category: Optional[str], items: list) -> None:
    """Cache catalog listing with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_catalog_key(category)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(items, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_catalog_cache() -> None:
    """Drop every cached catalog listing."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{CATALOG_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
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
