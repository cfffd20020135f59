import redis.asyncio as redis
from typing import Optional, Dict, List
from abc import ABC, abstractmethod
from datetime import datetime
import json
import logging

from .config import settings
from .models import (
    Issue,
    Comment,
    SearchCacheEntry,
    SyncMetadata,
    RepositoryInfo,
    SearchTrace,
    utcnow,
)

logger = logging.getLogger(__name__)

class IssueStore(ABC):
    """
    Abstract base class for the local issue store.

    Every write is an upsert keyed by a stable identifier, so concurrent sync
    and search need no locking. Issues are always returned in their natural
    retrieval order (ascending issue id).
    """

    @abstractmethod
    async def upsert_issue(self, issue: Issue) -> None:
        pass

    @abstractmethod
    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        pass

    @abstractmethod
    async def get_issue_by_number(self, repository: Optional[str], number: int) -> Optional[Issue]:
        pass

    @abstractmethod
    async def list_issues(self, repository: Optional[str] = None, state: Optional[str] = None) -> List[Issue]:
        """List issues, optionally scoped to a repository and an issue state"""
        pass

    @abstractmethod
    async def count_issues(self, repository: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def upsert_comment(self, comment: Comment) -> None:
        pass

    @abstractmethod
    async def list_comments(self, repository: Optional[str], issue_number: int) -> List[Comment]:
        pass

    @abstractmethod
    async def count_comments(self, repository: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def get_cache_entry(self, key: str) -> Optional[SearchCacheEntry]:
        pass

    @abstractmethod
    async def put_cache_entry(self, entry: SearchCacheEntry) -> None:
        pass

    @abstractmethod
    async def delete_expired_cache_entries(self, now: Optional[datetime] = None) -> int:
        """Remove expired cache entries and return how many were removed"""
        pass

    @abstractmethod
    async def get_sync_metadata(self, key: str) -> Optional[SyncMetadata]:
        pass

    @abstractmethod
    async def put_sync_metadata(self, metadata: SyncMetadata) -> None:
        pass

    @abstractmethod
    async def upsert_repository_info(self, info: RepositoryInfo) -> None:
        pass

    @abstractmethod
    async def get_repository_info(self, full_name: str) -> Optional[RepositoryInfo]:
        pass

    @abstractmethod
    async def add_trace(self, trace: SearchTrace, max_entries: int = 500) -> None:
        pass

    @abstractmethod
    async def list_traces(self, limit: int = 50) -> List[SearchTrace]:
        """Most recent traces first"""
        pass

    @abstractmethod
    async def clear(self, repository: Optional[str] = None) -> None:
        """Wipe issues, comments, cache entries and sync metadata (all, or one repository's)"""
        pass

    async def close(self) -> None:
        pass

def _in_scope(repository: Optional[str], candidate: Optional[str]) -> bool:
    return repository is None or candidate == repository

class InMemoryIssueStore(IssueStore):
    """In-memory implementation of the issue store"""

    def __init__(self):
        self._issues: Dict[int, Issue] = {}
        self._comments: Dict[int, Comment] = {}
        self._search_cache: Dict[str, SearchCacheEntry] = {}
        self._sync_metadata: Dict[str, SyncMetadata] = {}
        self._repositories: Dict[str, RepositoryInfo] = {}
        self._traces: List[SearchTrace] = []

    async def upsert_issue(self, issue: Issue) -> None:
        self._issues[issue.id] = issue.model_copy(deep=True)

    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        issue = self._issues.get(issue_id)
        return issue.model_copy(deep=True) if issue else None

    async def get_issue_by_number(self, repository: Optional[str], number: int) -> Optional[Issue]:
        for issue_id in sorted(self._issues):
            issue = self._issues[issue_id]
            if issue.number == number and _in_scope(repository, issue.repository):
                return issue.model_copy(deep=True)
        return None

    async def list_issues(self, repository: Optional[str] = None, state: Optional[str] = None) -> List[Issue]:
        return [
            self._issues[issue_id].model_copy(deep=True)
            for issue_id in sorted(self._issues)
            if _in_scope(repository, self._issues[issue_id].repository)
            and (state in (None, "all") or self._issues[issue_id].state == state)
        ]

    async def count_issues(self, repository: Optional[str] = None) -> int:
        return sum(1 for issue in self._issues.values() if _in_scope(repository, issue.repository))

    async def upsert_comment(self, comment: Comment) -> None:
        self._comments[comment.id] = comment.model_copy(deep=True)

    async def list_comments(self, repository: Optional[str], issue_number: int) -> List[Comment]:
        return [
            self._comments[comment_id].model_copy(deep=True)
            for comment_id in sorted(self._comments)
            if self._comments[comment_id].issue_number == issue_number
            and _in_scope(repository, self._comments[comment_id].repository)
        ]

    async def count_comments(self, repository: Optional[str] = None) -> int:
        return sum(1 for comment in self._comments.values() if _in_scope(repository, comment.repository))

    async def get_cache_entry(self, key: str) -> Optional[SearchCacheEntry]:
        return self._search_cache.get(key)

    async def put_cache_entry(self, entry: SearchCacheEntry) -> None:
        self._search_cache[entry.key] = entry

    async def delete_expired_cache_entries(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        expired = [key for key, entry in self._search_cache.items() if entry.is_expired(now)]
        for key in expired:
            del self._search_cache[key]
        return len(expired)

    async def get_sync_metadata(self, key: str) -> Optional[SyncMetadata]:
        return self._sync_metadata.get(key)

    async def put_sync_metadata(self, metadata: SyncMetadata) -> None:
        self._sync_metadata[metadata.key] = metadata

    async def upsert_repository_info(self, info: RepositoryInfo) -> None:
        self._repositories[info.full_name] = info

    async def get_repository_info(self, full_name: str) -> Optional[RepositoryInfo]:
        return self._repositories.get(full_name)

    async def add_trace(self, trace: SearchTrace, max_entries: int = 500) -> None:
        self._traces.append(trace)
        if len(self._traces) > max_entries:
            del self._traces[: len(self._traces) - max_entries]

    async def list_traces(self, limit: int = 50) -> List[SearchTrace]:
        return list(reversed(self._traces))[:limit]

    async def clear(self, repository: Optional[str] = None) -> None:
        if repository is None:
            self._issues.clear()
            self._comments.clear()
            self._search_cache.clear()
            self._sync_metadata.clear()
            return

        self._issues = {k: v for k, v in self._issues.items() if v.repository != repository}
        self._comments = {k: v for k, v in self._comments.items() if v.repository != repository}
        self._search_cache = {k: v for k, v in self._search_cache.items() if v.repository != repository}
        self._sync_metadata.pop(repository, None)

class RedisIssueStore(IssueStore):
    """Redis-based implementation of the issue store, one hash per record type"""

    def __init__(self, client: "redis.Redis", prefix: str = "issuescope"):
        self.redis = client
        self.prefix = prefix

    def _key(self, table: str) -> str:
        return f"{self.prefix}:{table}"

    async def _hash_values(self, table: str) -> List[str]:
        return list((await self.redis.hgetall(self._key(table))).values())

    async def upsert_issue(self, issue: Issue) -> None:
        await self.redis.hset(self._key("issues"), str(issue.id), issue.model_dump_json())

    async def get_issue(self, issue_id: int) -> Optional[Issue]:
        raw = await self.redis.hget(self._key("issues"), str(issue_id))
        return Issue.model_validate_json(raw) if raw else None

    async def get_issue_by_number(self, repository: Optional[str], number: int) -> Optional[Issue]:
        for issue in await self.list_issues(repository):
            if issue.number == number:
                return issue
        return None

    async def list_issues(self, repository: Optional[str] = None, state: Optional[str] = None) -> List[Issue]:
        issues = [Issue.model_validate_json(raw) for raw in await self._hash_values("issues")]
        issues.sort(key=lambda issue: issue.id)
        return [
            issue for issue in issues
            if _in_scope(repository, issue.repository)
            and (state in (None, "all") or issue.state == state)
        ]

    async def count_issues(self, repository: Optional[str] = None) -> int:
        if repository is None:
            return await self.redis.hlen(self._key("issues"))
        return len(await self.list_issues(repository))

    async def upsert_comment(self, comment: Comment) -> None:
        await self.redis.hset(self._key("comments"), str(comment.id), comment.model_dump_json())

    async def _all_comments(self) -> List[Comment]:
        comments = [Comment.model_validate_json(raw) for raw in await self._hash_values("comments")]
        comments.sort(key=lambda comment: comment.id)
        return comments

    async def list_comments(self, repository: Optional[str], issue_number: int) -> List[Comment]:
        return [
            comment for comment in await self._all_comments()
            if comment.issue_number == issue_number and _in_scope(repository, comment.repository)
        ]

    async def count_comments(self, repository: Optional[str] = None) -> int:
        if repository is None:
            return await self.redis.hlen(self._key("comments"))
        return sum(1 for comment in await self._all_comments() if comment.repository == repository)

    async def get_cache_entry(self, key: str) -> Optional[SearchCacheEntry]:
        raw = await self.redis.hget(self._key("search_cache"), key)
        return SearchCacheEntry.model_validate_json(raw) if raw else None

    async def put_cache_entry(self, entry: SearchCacheEntry) -> None:
        await self.redis.hset(self._key("search_cache"), entry.key, entry.model_dump_json())

    async def delete_expired_cache_entries(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        entries = await self.redis.hgetall(self._key("search_cache"))
        expired = [
            key for key, raw in entries.items()
            if SearchCacheEntry.model_validate_json(raw).is_expired(now)
        ]
        if expired:
            await self.redis.hdel(self._key("search_cache"), *expired)
        return len(expired)

    async def get_sync_metadata(self, key: str) -> Optional[SyncMetadata]:
        raw = await self.redis.hget(self._key("sync_metadata"), key)
        return SyncMetadata.model_validate_json(raw) if raw else None

    async def put_sync_metadata(self, metadata: SyncMetadata) -> None:
        await self.redis.hset(self._key("sync_metadata"), metadata.key, metadata.model_dump_json())

    async def upsert_repository_info(self, info: RepositoryInfo) -> None:
        await self.redis.hset(self._key("repositories"), info.full_name, info.model_dump_json())

    async def get_repository_info(self, full_name: str) -> Optional[RepositoryInfo]:
        raw = await self.redis.hget(self._key("repositories"), full_name)
        return RepositoryInfo.model_validate_json(raw) if raw else None

    async def add_trace(self, trace: SearchTrace, max_entries: int = 500) -> None:
        await self.redis.lpush(self._key("traces"), trace.model_dump_json())
        await self.redis.ltrim(self._key("traces"), 0, max_entries - 1)

    async def list_traces(self, limit: int = 50) -> List[SearchTrace]:
        raws = await self.redis.lrange(self._key("traces"), 0, limit - 1)
        return [SearchTrace.model_validate_json(raw) for raw in raws]

    async def _delete_matching(self, table: str, repository: str) -> None:
        entries = await self.redis.hgetall(self._key(table))
        doomed = [
            key for key, raw in entries.items()
            if json.loads(raw).get("repository") == repository
        ]
        if doomed:
            await self.redis.hdel(self._key(table), *doomed)

    async def clear(self, repository: Optional[str] = None) -> None:
        if repository is None:
            await self.redis.delete(
                self._key("issues"),
                self._key("comments"),
                self._key("search_cache"),
                self._key("sync_metadata"),
            )
            return

        for table in ("issues", "comments", "search_cache"):
            await self._delete_matching(table, repository)
        await self.redis.hdel(self._key("sync_metadata"), repository)

    async def close(self) -> None:
        await self.redis.close()

class IssueStoreFactory:
    """Factory for creating issue stores"""

    @staticmethod
    async def create(store_type: Optional[str] = None) -> IssueStore:
        store_type = store_type or settings.STORE_TYPE
        if store_type == "redis":
            client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
            try:
                await client.ping()
                logger.info("Using Redis issue store")
                return RedisIssueStore(client, prefix=settings.STORE_KEY_PREFIX)
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning(f"Redis unavailable: {e}. Falling back to in-memory issue store (non-persistent).")
                await client.close()
        logger.info("Using in-memory issue store")
        return InMemoryIssueStore()
