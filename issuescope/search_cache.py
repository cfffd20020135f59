"""
Search Cache for query results
Maps an exact query string to an ordered list of issue ids with TTL expiry.
The cache is purely an optimization: storage errors are logged and treated
as a miss so the caller recomputes.
"""
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, timedelta
import asyncio
import logging

from .config import settings
from .issue_store import IssueStore
from .models import SearchCacheEntry, cache_key, utcnow

logger = logging.getLogger(__name__)

class SearchCache:
    """TTL cache of search results, scoped to one repository"""

    def __init__(
        self,
        store: IssueStore,
        repository: Optional[str] = None,
        default_ttl: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.repository = repository
        self.default_ttl = default_ttl if default_ttl is not None else settings.SEARCH_CACHE_TTL
        self.clock = clock
        self.stats = {
            "hits": 0,
            "misses": 0,
            "expirations": 0,
            "errors": 0,
        }

    async def get(self, query: str) -> Optional[List[int]]:
        """Get cached issue ids if present and not expired"""
        try:
            entry = await self.store.get_cache_entry(cache_key(self.repository, query))
        except Exception as e:
            logger.warning(f"Search cache read failed for {query!r}: {e}")
            self.stats["errors"] += 1
            self.stats["misses"] += 1
            return None

        if entry is None:
            self.stats["misses"] += 1
            return None

        if entry.is_expired(self.clock()):
            self.stats["expirations"] += 1
            self.stats["misses"] += 1
            return None

        self.stats["hits"] += 1
        return list(entry.results)

    async def put(self, query: str, ids: List[int], ttl: Optional[float] = None) -> None:
        """Overwrite the entry for this exact query with a fresh expiry"""
        now = self.clock()
        entry = SearchCacheEntry(
            query=query,
            repository=self.repository,
            results=list(ids),
            timestamp=now,
            expires_at=now + timedelta(seconds=ttl if ttl is not None else self.default_ttl),
        )
        try:
            await self.store.put_cache_entry(entry)
        except Exception as e:
            logger.warning(f"Search cache write failed for {query!r}: {e}")
            self.stats["errors"] += 1

    async def clear_expired(self) -> int:
        """Remove all expired entries"""
        try:
            removed = await self.store.delete_expired_cache_entries(self.clock())
        except Exception as e:
            logger.warning(f"Search cache cleanup failed: {e}")
            self.stats["errors"] += 1
            return 0
        self.stats["expirations"] += removed
        return removed

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        total_requests = self.stats["hits"] + self.stats["misses"]
        hit_rate = self.stats["hits"] / total_requests if total_requests > 0 else 0

        return {
            **self.stats,
            "hit_rate": hit_rate,
            "repository": self.repository,
        }

# Background task to clean expired entries
async def cleanup_search_cache_periodically(cache: SearchCache, interval: Optional[float] = None):
    """Sweep expired search cache entries forever"""
    interval = interval or settings.CACHE_CLEANUP_INTERVAL
    while True:
        await asyncio.sleep(interval)
        removed = await cache.clear_expired()
        if removed:
            logger.info(f"Removed {removed} expired search cache entries")
