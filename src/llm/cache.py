"""Response cache for processed orchestrator responses."""

import hashlib
import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from ..models.prompt_models import ProcessedResponse

logger = logging.getLogger(__name__)


def make_cache_key(**parts: Any) -> str:
    """
    Cache key for a request.

    PATTERN: SHA256 of the normalized request parameters
    GOTCHA: Include everything that changes the output (format, schema, constraints)

    Args:
        **parts: JSON-serializable request parameters

    Returns:
        Cache key (SHA256 hex digest)
    """
    normalized = json.dumps(parts, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()


class LLMResponseCache:
    """
    In-memory cache for processed responses with TTL support.

    PATTERN: Dict-based cache with TTL and LRU eviction
    CRITICAL: Only valid responses are cached
    GOTCHA: Returned responses are copies flagged cache_hit=True
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: int = 3600,
    ):
        """
        Initialize response cache.

        Args:
            max_size: Maximum number of cached entries
            default_ttl: Default time-to-live in seconds
        """
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

        # Statistics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    async def get(self, cache_key: str) -> Optional[ProcessedResponse]:
        """
        Retrieve cached response.

        Args:
            cache_key: Cache key

        Returns:
            Cached response if found and not expired, None otherwise
        """
        with self._lock:
            entry = self.cache.get(cache_key)

            if entry is None:
                self.misses += 1
                return None

            if datetime.now() > entry["expires_at"]:
                self.logger.debug(f"Cache entry expired: {cache_key[:16]}...")
                del self.cache[cache_key]
                self.misses += 1
                return None

            entry["last_accessed"] = datetime.now()
            entry["access_count"] += 1
            self.hits += 1
            response = entry["response"]

        self.logger.debug(
            f"Cache hit: {cache_key[:16]}... "
            f"(hit rate: {self.get_hit_rate():.2%})"
        )
        return response.model_copy(update={"cache_hit": True})

    async def set(
        self,
        cache_key: str,
        response: ProcessedResponse,
        ttl: Optional[int] = None,
    ) -> None:
        """
        Store response in cache.

        Args:
            cache_key: Cache key
            response: Processed response to cache
            ttl: Time-to-live in seconds (uses default if None)
        """
        if not response.valid:
            self.logger.debug("Not caching invalid response")
            return

        ttl = ttl or self.default_ttl
        now = datetime.now()

        with self._lock:
            if cache_key not in self.cache and len(self.cache) >= self.max_size:
                self._evict_lru()

            self.cache[cache_key] = {
                "response": response,
                "created_at": now,
                "expires_at": now + timedelta(seconds=ttl),
                "last_accessed": now,
                "access_count": 0,
            }
            size = len(self.cache)

        self.logger.debug(
            f"Cached response: {cache_key[:16]}... (size: {size}/{self.max_size})"
        )

    def _evict_lru(self) -> None:
        """Evict least recently used entry; caller holds the lock."""
        if not self.cache:
            return

        lru_key = min(
            self.cache.keys(),
            key=lambda k: self.cache[k]["last_accessed"],
        )
        del self.cache[lru_key]
        self.evictions += 1

        self.logger.debug(f"Evicted LRU entry: {lru_key[:16]}...")

    def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = datetime.now()
        with self._lock:
            expired_keys = [
                key for key, entry in self.cache.items()
                if now > entry["expires_at"]
            ]
            for key in expired_keys:
                del self.cache[key]

        if expired_keys:
            self.logger.info(f"Cleaned up {len(expired_keys)} expired entries")

        return len(expired_keys)

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            count = len(self.cache)
            self.cache.clear()
        self.logger.info(f"Cleared {count} cache entries")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        total_requests = self.hits + self.misses

        return {
            "size": len(self.cache),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": self.get_hit_rate(),
            "total_requests": total_requests,
            "cost_saved": self.estimate_cost_savings(),
        }

    def get_hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0

    def estimate_cost_savings(self) -> float:
        """
        Estimate total cost savings from caching.

        Returns:
            Sum of cost x hits over all entries, in USD
        """
        with self._lock:
            entries = list(self.cache.values())
        return sum(e["response"].total_cost * e["access_count"] for e in entries)
