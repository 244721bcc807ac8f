"""
Cache for derived entitlement data (the subscription status read).

The cache is advisory: every backend error is logged and treated as a miss, so a
cache outage never fails a request or a webhook. Without REDIS_URL caching is
off; a per-process cache would keep serving a stale tier on every instance that
did not handle the webhook.
"""
import json
import logging
from typing import Any, Optional

from app.core.plan_limits import subscription_cache_key

logger = logging.getLogger(__name__)


class EntitlementCache:
    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullEntitlementCache(EntitlementCache):
    """Caching disabled: every read is a miss."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        pass

    def delete(self, key: str) -> None:
        pass


class RedisEntitlementCache(EntitlementCache):
    """Shared cache for multi-instance deployments (REDIS_URL)."""

    def __init__(self, url: str, timeout_seconds: float = 2.0):
        import redis

        self._client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._client.get(key)
        except Exception as e:
            logger.error("[Cache] get %s failed: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[Cache] Dropping unreadable entry %s", key)
            invalidate_key(self, key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        try:
            payload = json.dumps(value, default=str)
            if ttl_seconds:
                self._client.setex(key, ttl_seconds, payload)
            else:
                self._client.set(key, payload)
        except Exception as e:
            logger.error("[Cache] set %s failed: %s", key, e)

    def delete(self, key: str) -> None:
        # Callers decide whether a failed invalidation matters; raise so they can log it
        self._client.delete(key)

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as e:
            logger.warning("[Cache] close failed: %s", e)


def create_cache(redis_url: str, timeout_seconds: float = 2.0) -> EntitlementCache:
    if redis_url:
        logger.info("[Cache] Using Redis entitlement cache")
        return RedisEntitlementCache(redis_url, timeout_seconds=timeout_seconds)
    logger.info("[Cache] REDIS_URL not set, entitlement caching disabled")
    return NullEntitlementCache()


def invalidate_key(cache: EntitlementCache, key: str) -> bool:
    try:
        cache.delete(key)
        return True
    except Exception as e:
        logger.error("[Cache] Invalidation of %s failed: %s", key, e)
        return False


def invalidate_subscription_cache(cache: EntitlementCache, user_id: str) -> bool:
    """Drop the cached subscription status for user_id. Failures are logged, never raised."""
    return invalidate_key(cache, subscription_cache_key(user_id))
