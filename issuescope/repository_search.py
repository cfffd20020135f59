"""
Single-repository search over the local store, with result caching.
"""
from typing import List, Optional
import logging

from .config import settings
from .issue_store import IssueStore
from .models import Issue, SearchOptions
from .relevance import calculate_relevance, clamp_score
from .search_cache import SearchCache

logger = logging.getLogger(__name__)

def default_search_options(**overrides) -> SearchOptions:
    values = {
        "limit": settings.DEFAULT_SEARCH_LIMIT,
        "min_relevance": settings.DEFAULT_MIN_RELEVANCE,
        "use_cache": settings.SEARCH_CACHE_ENABLED,
    }
    values.update(overrides)
    return SearchOptions(**values)

class RepositorySearch:
    def __init__(self, store: IssueStore, cache: SearchCache, repository: str):
        self.store = store
        self.cache = cache
        self.repository = repository

    async def _from_cache(self, query: str, options: SearchOptions) -> Optional[List[Issue]]:
        ids = await self.cache.get(query)
        if ids is None:
            return None

        issues = []
        for issue_id in ids:
            try:
                issue = await self.store.get_issue(issue_id)
            except Exception as e:
                logger.warning(f"Could not resolve cached issue {issue_id}: {e}")
                return None
            # Issues cleared from the store since caching are dropped
            if issue is None:
                continue
            if options.state != "all" and issue.state != options.state:
                continue
            score = clamp_score(calculate_relevance(issue, query))
            if score >= options.min_relevance:
                issue.relevance_score = score
                issues.append(issue)
        return issues[: options.limit]

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> List[Issue]:
        """
        Score stored issues against ``query``.

        Results are strictly descending by (clamped) score; equal scores keep
        the store's natural order. A cache hit returns the cached ordering,
        narrowed by the call's state, min_relevance and limit.
        """
        options = options or default_search_options()

        if options.use_cache:
            cached = await self._from_cache(query, options)
            if cached is not None:
                return cached

        try:
            candidates = await self.store.list_issues(self.repository, options.state)
        except Exception as e:
            logger.error(f"Local store read failed for {self.repository}: {e}")
            return []

        scored = []
        for issue in candidates:
            score = clamp_score(calculate_relevance(issue, query))
            if score >= options.min_relevance:
                issue.relevance_score = score
                scored.append(issue)

        # sorted() is stable, so ties keep retrieval order
        results = sorted(scored, key=lambda issue: issue.relevance_score, reverse=True)[: options.limit]

        if options.use_cache and results:
            await self.cache.put(query, [issue.id for issue in results])

        return results
