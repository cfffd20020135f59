"""
Multi-Repository Coordinator
Fans a query out to every configured repository concurrently, re-scores the
candidates, and merges them into one ranked list. A failing repository
contributes nothing; the overall search never raises because of it.
"""
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass
from functools import cmp_to_key
import asyncio
import logging
import math
import time

from .background import BackgroundTaskQueue
from .config import settings
from .exceptions import InvalidRepositoryError, RepositoryNotConfiguredError
from .github_client import GitHubIssueClient, parse_repository
from .issue_store import IssueStore
from .keywords import extract_technical_keywords
from .models import (
    Issue,
    IssueTemplate,
    MultiRepoSearchOptions,
    MultiRepoSearchResult,
    OperationResult,
    RepositoryConfig,
    SearchOptions,
    SearchTrace,
    SyncOptions,
    SyncStatusReport,
)
from .relevance import calculate_enhanced_relevance
from .repository_search import RepositorySearch
from .search_cache import SearchCache
from .sync_engine import ProgressCallback, SyncEngine

logger = logging.getLogger(__name__)

# Scores closer than this are considered a tie and ordered by repository priority
PRIORITY_TIE_BAND = 0.1
# Per-repository threshold relative to the global min_relevance
PER_REPOSITORY_THRESHOLD_FACTOR = 0.8

ClientFactory = Callable[[RepositoryConfig], GitHubIssueClient]

def default_client_factory(config: RepositoryConfig) -> GitHubIssueClient:
    return GitHubIssueClient(token=config.api_key)

def default_repositories() -> List[RepositoryConfig]:
    configs = []
    for full_name, priority in settings.default_repository_specs:
        owner, name = parse_repository(full_name)
        configs.append(RepositoryConfig(owner=owner, name=name, priority=priority))
    return configs

@dataclass
class RepositoryServices:
    config: RepositoryConfig
    sync_engine: SyncEngine
    search: RepositorySearch

class MultiRepositorySearch:
    def __init__(
        self,
        store: IssueStore,
        repositories: Optional[List[RepositoryConfig]] = None,
        client_factory: ClientFactory = default_client_factory,
        trace_queue: Optional[BackgroundTaskQueue] = None,
        cache_ttl: Optional[float] = None,
    ):
        self.store = store
        self.client_factory = client_factory
        self.trace_queue = trace_queue
        self.cache_ttl = cache_ttl
        self._repositories: List[RepositoryConfig] = []
        self._services: Dict[str, RepositoryServices] = {}

        for config in default_repositories() if repositories is None else repositories:
            self._register(config)

    def _register(self, config: RepositoryConfig) -> None:
        for index, existing in enumerate(self._repositories):
            if existing.full_name == config.full_name:
                self._repositories[index] = config
                break
        else:
            self._repositories.append(config)

        # Disabled repositories take part in neither sync nor search
        if config.enabled:
            cache = SearchCache(self.store, repository=config.full_name, default_ttl=self.cache_ttl)
            self._services[config.full_name] = RepositoryServices(
                config=config,
                sync_engine=SyncEngine(self.store, self.client_factory(config), config.full_name),
                search=RepositorySearch(self.store, cache, config.full_name),
            )
        else:
            self._services.pop(config.full_name, None)

    def add_repository(self, config: RepositoryConfig) -> OperationResult:
        """Add or replace a repository configuration by full name."""
        try:
            owner, name = parse_repository(config.full_name)
        except InvalidRepositoryError as e:
            return OperationResult(success=False, error=str(e))
        if (owner, name) != (config.owner, config.name):
            return OperationResult(success=False, error=f"Invalid GitHub repository identifier: {config.full_name!r}")

        self._register(config)
        logger.info(f"Registered repository {config.full_name} (priority={config.priority}, enabled={config.enabled})")
        return OperationResult(success=True, data=config.model_dump(exclude={"api_key"}))

    def get_repositories(self) -> List[RepositoryConfig]:
        return sorted(self._repositories, key=lambda config: config.priority, reverse=True)

    def get_repository(self, full_name: str) -> Optional[RepositoryConfig]:
        for config in self._repositories:
            if config.full_name == full_name:
                return config
        return None

    def _services_for(self, repository: str) -> Optional[RepositoryServices]:
        return self._services.get(repository)

    def _priority(self, repository: str) -> int:
        config = self.get_repository(repository)
        return config.priority if config else 0

    async def search_repository(self, repository: str, query: str, options: Optional[SearchOptions] = None) -> List[Issue]:
        """
        Explicit single-repository search.

        Raises:
            RepositoryNotConfiguredError: if the repository is unknown or disabled
        """
        services = self._services_for(repository)
        if services is None:
            raise RepositoryNotConfiguredError(repository)
        return await services.search.search(query, options)

    async def _search_one(
        self, repository: str, options: MultiRepoSearchOptions, per_repository_limit: int
    ) -> Tuple[List[MultiRepoSearchResult], bool]:
        """Returns (results, failed). Never raises."""
        services = self._services_for(repository)
        if services is None:
            logger.error(f"Error searching repository {repository}: repository not configured or disabled")
            return [], True

        try:
            issues = await services.search.search(options.query, SearchOptions(
                state=options.state,
                limit=per_repository_limit,
                min_relevance=options.min_relevance * PER_REPOSITORY_THRESHOLD_FACTOR,
                # Cached entries carry the limit of whichever call filled them
                use_cache=False,
            ))

            results = []
            for issue in issues:
                comments: List[str] = []
                if options.include_comments:
                    stored = await self.store.list_comments(repository, issue.number)
                    comments = [comment.body for comment in stored]

                relevance = calculate_enhanced_relevance(
                    issue,
                    options.query,
                    include_body=options.include_body,
                    include_comments=options.include_comments,
                    comments=comments,
                )
                if relevance.score >= options.min_relevance:
                    results.append(MultiRepoSearchResult(
                        title=issue.title,
                        issue=issue,
                        repository=repository,
                        relevance_score=relevance.score,
                        match_type=relevance.match_type,
                        matched_text=relevance.matched_text,
                    ))
            return results, False
        except Exception as e:
            logger.error(f"Error searching repository {repository}: {e}")
            return [], True

    def _compare(self, a: MultiRepoSearchResult, b: MultiRepoSearchResult) -> int:
        if abs(a.relevance_score - b.relevance_score) < PRIORITY_TIE_BAND:
            by_priority = self._priority(b.repository) - self._priority(a.repository)
            if by_priority:
                return by_priority
        if a.relevance_score == b.relevance_score:
            return 0
        return -1 if a.relevance_score > b.relevance_score else 1

    def merge_results(self, results: List[MultiRepoSearchResult], limit: int) -> List[MultiRepoSearchResult]:
        """Score descending; near-equal scores ordered by repository priority."""
        return sorted(results, key=cmp_to_key(self._compare))[:limit]

    async def search_across_repositories(self, options: MultiRepoSearchOptions) -> List[MultiRepoSearchResult]:
        started = time.perf_counter()
        targets = list(dict.fromkeys(options.repositories)) if options.repositories is not None else [
            config.full_name for config in self._repositories if config.enabled
        ]
        if not targets:
            return []

        per_repository_limit = math.ceil(options.limit / len(targets))
        outcomes = await asyncio.gather(*[
            self._search_one(repository, options, per_repository_limit) for repository in targets
        ])

        merged = []
        seen = set()
        for results, _ in outcomes:
            for result in results:
                key = (result.repository, result.issue.id)
                if key not in seen:
                    seen.add(key)
                    merged.append(result)
        failed = [repository for repository, (_, did_fail) in zip(targets, outcomes) if did_fail]
        ranked = self.merge_results(merged, options.limit)

        self._record_trace(SearchTrace(
            query=options.query,
            repositories=list(targets),
            result_count=len(ranked),
            failed_repositories=failed,
            duration_ms=(time.perf_counter() - started) * 1000,
        ))
        return ranked

    def _record_trace(self, trace: SearchTrace) -> None:
        if self.trace_queue is None:
            return

        async def write():
            await self.store.add_trace(trace, max_entries=settings.TRACE_MAX_ENTRIES)

        self.trace_queue.submit(write)

    def extract_technical_keywords(self, content: str) -> List[str]:
        return extract_technical_keywords(content)

    async def search_by_message_content(self, content: str) -> List[MultiRepoSearchResult]:
        """Search every enabled repository using keywords pulled from a chat message."""
        keywords = extract_technical_keywords(content)
        if not keywords:
            return []

        return await self.search_across_repositories(MultiRepoSearchOptions(
            query=" ".join(keywords),
            include_body=True,
            include_comments=False,
            state="all",
            limit=settings.MESSAGE_SEARCH_LIMIT,
            min_relevance=settings.MESSAGE_MIN_RELEVANCE,
        ))

    async def sync_repository(
        self,
        repository: str,
        options: Optional[SyncOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OperationResult:
        """Sync one page; network errors propagate after being recorded in sync metadata."""
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")

        result = await services.sync_engine.sync(options, on_progress=on_progress)
        return OperationResult(success=True, data=result.model_dump())

    async def get_sync_status(self, repository: str) -> OperationResult:
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")
        status: SyncStatusReport = await services.sync_engine.get_sync_status()
        return OperationResult(success=True, data=status.model_dump(mode="json"))

    async def clear_cache(self, repository: Optional[str] = None) -> None:
        """Wipe issues, comments, cached queries and sync metadata."""
        await self.store.clear(repository)
        logger.info(f"Cleared local data for {repository or 'all repositories'}")

    async def create_issue_with_template(self, repository: str, template: IssueTemplate) -> OperationResult:
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")

        body = template.body
        if template.message_context:
            body = (
                "## Context from Chat\n\n"
                f"{template.message_context}\n\n"
                "---\n\n"
                f"{template.body}\n\n"
                "---\n\n"
                "*This issue was created from the knowledge base chat*"
            )

        issue = await services.sync_engine.create_issue(template.title, body, labels=template.labels)
        return OperationResult(success=True, data=issue.model_dump(mode="json"))

    async def fetch_discussions(self, repository: str, per_page: int = 100) -> OperationResult:
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")
        discussions = await services.sync_engine.fetch_discussions(per_page=per_page)
        return OperationResult(success=True, data=[d.model_dump(mode="json") for d in discussions])

    async def get_issue_comments(self, repository: str, number: int) -> OperationResult:
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")
        comments = await services.sync_engine.get_issue_comments(number)
        return OperationResult(success=True, data=[c.model_dump(mode="json") for c in comments])

    async def test_connection(self, repository: str) -> OperationResult:
        services = self._services_for(repository)
        if services is None:
            return OperationResult(success=False, error=f"Repository {repository} not configured")
        return await services.sync_engine.client.test_connection(repository)

    async def clear_expired_cache(self) -> int:
        removed = 0
        for services in self._services.values():
            removed += await services.search.cache.clear_expired()
        return removed

    def get_cache_stats(self) -> Dict[str, Dict]:
        return {name: services.search.cache.get_stats() for name, services in self._services.items()}
