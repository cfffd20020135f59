"""
Sync Engine
Pulls pages of issues from GitHub into the local store and tracks sync status.
"""
from typing import Callable, List, Optional
import logging

from .github_client import GitHubIssueClient
from .issue_store import IssueStore
from .models import (
    Issue,
    Comment,
    Discussion,
    Label,
    RepositoryInfo,
    SyncMetadata,
    SyncOptions,
    SyncResult,
    SyncStatusReport,
    utcnow,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

class SyncEngine:
    """Only writer of issues, comments and sync metadata for one repository."""

    def __init__(self, store: IssueStore, client: GitHubIssueClient, repository: str):
        self.store = store
        self.client = client
        self.repository = repository

    def _enrich(self, issue: Issue, comment_count: Optional[int] = None) -> Issue:
        now = utcnow()
        return issue.model_copy(update={
            "repository": self.repository,
            "indexed_at": now,
            "comment_count": issue.comments if comment_count is None else comment_count,
            "last_activity": issue.updated_at,
        })

    async def _write_status(self, status: str, error_message: Optional[str] = None) -> None:
        await self.store.put_sync_metadata(SyncMetadata(
            key=self.repository,
            last_sync=utcnow(),
            total_issues=await self.store.count_issues(self.repository),
            total_comments=await self.store.count_comments(self.repository),
            sync_status=status,
            error_message=error_message,
        ))

    async def sync(
        self,
        options: Optional[SyncOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncResult:
        """
        Fetch one page of issues and upsert them into the local store.

        Pagination is the caller's job: call again with an increasing
        ``options.page``. Rows upserted before a failure are kept; upserts are
        idempotent so the page can simply be retried.

        Raises:
            GitHubAPIError: after recording ``status=error`` in sync metadata
        """
        options = options or SyncOptions()
        logger.info(f"Syncing {self.repository} page {options.page} (state={options.state})")
        await self._write_status("syncing")

        try:
            issues = await self.client.list_issues(self.repository, options)
            total = len(issues)
            synced = 0

            for issue in issues:
                # The issues API mixes in pull requests
                if issue.is_pull_request:
                    continue

                await self.store.upsert_issue(self._enrich(issue))
                synced += 1

                if on_progress:
                    on_progress(synced, total)

            await self._write_status("idle")
            logger.info(f"Synced {synced}/{total} records from {self.repository}")
            return SyncResult(synced=synced, total=total)
        except Exception as e:
            logger.error(f"Sync failed for {self.repository}: {e}")
            await self._write_status("error", str(e) or e.__class__.__name__)
            raise

    async def get_sync_status(self) -> SyncStatusReport:
        metadata = await self.store.get_sync_metadata(self.repository)
        return SyncStatusReport(
            status=metadata.sync_status if metadata else "idle",
            last_sync=metadata.last_sync if metadata else None,
            total_issues=await self.store.count_issues(self.repository),
            total_comments=await self.store.count_comments(self.repository),
            error_message=metadata.error_message if metadata else None,
        )

    async def get_issue(self, number: int) -> Optional[Issue]:
        """Local store first, then the API. Pull requests yield None."""
        local_issue = await self.store.get_issue_by_number(self.repository, number)
        if local_issue:
            return local_issue

        issue = await self.client.get_issue(self.repository, number)
        if issue.is_pull_request:
            return None

        enriched = self._enrich(issue)
        await self.store.upsert_issue(enriched)
        return enriched

    async def get_issue_comments(self, number: int) -> List[Comment]:
        """Comments are fetched lazily, on first request for an issue."""
        local_comments = await self.store.list_comments(self.repository, number)
        if local_comments:
            return local_comments

        comments = await self.client.list_issue_comments(self.repository, number)
        for comment in comments:
            await self.store.upsert_comment(
                comment.model_copy(update={"issue_number": number, "repository": self.repository})
            )
        return await self.store.list_comments(self.repository, number)

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
        milestone: Optional[int] = None,
    ) -> Issue:
        """Create the issue remotely and keep a searchable local copy."""
        issue = await self.client.create_issue(
            self.repository, title, body, labels=labels, assignees=assignees, milestone=milestone
        )
        enriched = self._enrich(issue, comment_count=0).model_copy(update={"last_activity": issue.created_at})
        await self.store.upsert_issue(enriched)
        return enriched

    async def get_repository(self) -> RepositoryInfo:
        info = await self.client.get_repository(self.repository)
        await self.store.upsert_repository_info(info)
        return info

    async def get_labels(self) -> List[Label]:
        try:
            return await self.client.list_labels(self.repository)
        except Exception as e:
            logger.error(f"Failed to fetch labels for {self.repository}: {e}")
            return []

    async def fetch_discussions(self, per_page: int = 100) -> List[Discussion]:
        """Pass-through; discussions are neither stored nor scored."""
        return await self.client.fetch_discussions(self.repository, per_page=per_page)
