# ==============================================================================
# Valkey Report Cache
# ==============================================================================
"""
Valkey/Redis implementation of the Cache interface.

Stores rendered analytics reports as JSON strings under keys derived from
every query parameter, so a hit is always an exact match for the request.
Entries expire after `VALKEY_CACHE_TTL_SECONDS`; there is no other
invalidation.
"""

import json
import logging

import redis
from redis.backoff import ExponentialBackoff
from redis.retry import Retry

from sitelens.base import Cache
from sitelens.utils.config import Settings, get_settings
from sitelens.utils.retry import REDIS_RETRY_EXCEPTIONS, VALKEY_RETRIES

logger = logging.getLogger(__name__)

# Keys fetched per SCAN round trip when deleting by pattern
SCAN_BATCH = 500


class ValkeyCache(Cache):
    """
    Valkey/Redis implementation of the Cache interface.

    Configured with short socket timeouts and redis-py's built-in retry so a
    slow cache degrades to a miss instead of stalling a query.
    """

    def __init__(
        self,
        url: str | None = None,
        socket_timeout: int = 5,
        retries: int | None = None,
        health_check_interval: int = 30,
    ):
        """
        Initialize Valkey cache.

        Args:
            url: Valkey/Redis connection URL. If None, uses settings.
            socket_timeout: Socket timeout in seconds (default: 5)
            retries: Number of retries for transient failures (default: VALKEY_RETRIES)
            health_check_interval: Health check interval in seconds (default: 30)
        """
        if url is None:
            url = get_settings().valkey.url

        retry_count = retries if retries is not None else VALKEY_RETRIES
        retry_strategy = Retry(ExponentialBackoff(cap=8, base=0.5), retries=retry_count)

        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry=retry_strategy,
            retry_on_error=list(REDIS_RETRY_EXCEPTIONS),
            health_check_interval=health_check_interval,
        )
        self._url = url

    @property
    def client(self) -> redis.Redis:
        """Get the underlying Redis client for advanced operations."""
        return self._client

    def get(self, key: str) -> dict | None:
        """Return the cached report, or None on a miss or an unreadable entry."""
        raw = self._client.get(key)
        if raw is None:
            logger.debug("Cache miss: %s", key)
            return None
        try:
            report = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Unreadable cache entry %s", key)
            return None
        return report if isinstance(report, dict) else None

    def set(self, key: str, value: dict, ttl_seconds: int | None = None) -> None:
        self._client.set(key, json.dumps(value, separators=(",", ":")), ex=ttl_seconds)

    def delete(self, key: str) -> bool:
        return self._client.unlink(key) > 0

    def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob pattern, in batches of SCAN_BATCH."""
        removed = 0
        batch: list[str] = []
        for key in self._client.scan_iter(match=pattern, count=SCAN_BATCH):
            batch.append(key)
            if len(batch) >= SCAN_BATCH:
                removed += self._client.unlink(*batch)
                batch.clear()
        if batch:
            removed += self._client.unlink(*batch)
        return removed

    def ping(self) -> bool:
        """
        Check if the cache is reachable.

        Returns:
            True if ping succeeds, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        """Close the connection."""
        self._client.close()


def get_valkey_cache(settings: Settings | None = None) -> ValkeyCache | None:
    """
    Get a ValkeyCache configured from settings.

    Returns:
        A ValkeyCache, or None when caching is disabled
    """
    settings = settings or get_settings()
    if not settings.valkey.enabled:
        return None
    return ValkeyCache(url=settings.valkey.url)


def check_valkey_connection(settings: Settings | None = None) -> bool:
    """
    Check if Valkey is reachable.

    Uses a short timeout and no retries since this is just a health check.

    Returns:
        True if Valkey responds to ping, False otherwise
    """
    settings = settings or get_settings()
    cache = ValkeyCache(url=settings.valkey.url, socket_timeout=3, retries=0)
    try:
        return cache.ping()
    finally:
        cache.close()
