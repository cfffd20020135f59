"""
Shared fixtures: an issue factory and an in-process stand-in for the GitHub client.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import itertools

import pytest

from issuescope.exceptions import GitHubAPIError
from issuescope.issue_store import InMemoryIssueStore
from issuescope.models import (
    Comment,
    Discussion,
    Issue,
    Label,
    OperationResult,
    Reactions,
    RepositoryInfo,
    SyncOptions,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1000)


def make_issue(
    number: int = 1,
    title: str = "Sample issue",
    body: str = "",
    labels: Optional[List[str]] = None,
    state: str = "open",
    repository: Optional[str] = "acme/widgets",
    updated_at: Optional[datetime] = None,
    reactions: int = 0,
    issue_id: Optional[int] = None,
    pull_request: Optional[dict] = None,
) -> Issue:
    updated_at = updated_at or NOW
    return Issue(
        id=issue_id if issue_id is not None else next(_ids),
        number=number,
        title=title,
        body=body,
        state=state,
        labels=[Label(name=name) for name in labels or []],
        created_at=updated_at - timedelta(days=1),
        updated_at=updated_at,
        html_url=f"https://github.com/{repository}/issues/{number}",
        reactions=Reactions(total_count=reactions),
        pull_request=pull_request,
        repository=repository,
    )


class FakeGitHubClient:
    """Serves canned pages of issues; set ``fail_with`` to make every call raise."""

    def __init__(self, pages: Optional[Dict[int, List[Issue]]] = None):
        self.pages = pages or {}
        self.comments: Dict[int, List[Comment]] = {}
        self.remote_issues: Dict[int, Issue] = {}
        self.created: List[dict] = []
        self.fail_with: Optional[Exception] = None
        self.fail_after: Optional[int] = None
        self.calls: List[str] = []

    def _maybe_fail(self, name: str):
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def list_issues(self, repository: str, options: Optional[SyncOptions] = None) -> List[Issue]:
        self._maybe_fail("list_issues")
        options = options or SyncOptions()
        return [issue.model_copy(deep=True) for issue in self.pages.get(options.page, [])]

    async def get_issue(self, repository: str, number: int) -> Issue:
        self._maybe_fail("get_issue")
        if number not in self.remote_issues:
            raise GitHubAPIError(404, "Not Found")
        return self.remote_issues[number].model_copy(deep=True)

    async def list_issue_comments(self, repository: str, number: int) -> List[Comment]:
        self._maybe_fail("list_issue_comments")
        return [comment.model_copy(deep=True) for comment in self.comments.get(number, [])]

    async def create_issue(self, repository, title, body, labels=None, assignees=None, milestone=None) -> Issue:
        self._maybe_fail("create_issue")
        self.created.append({"title": title, "body": body, "labels": labels})
        return make_issue(number=len(self.created) + 100, title=title, body=body, labels=labels, repository=repository)

    async def get_repository(self, repository: str) -> RepositoryInfo:
        self._maybe_fail("get_repository")
        owner, name = repository.split("/")
        return RepositoryInfo(id=1, name=name, full_name=repository)

    async def list_labels(self, repository: str) -> List[Label]:
        self._maybe_fail("list_labels")
        return [Label(name="bug"), Label(name="enhancement")]

    async def fetch_discussions(self, repository: str, per_page: int = 100, after=None) -> List[Discussion]:
        self._maybe_fail("fetch_discussions")
        return [Discussion(id="D_1", number=1, title="Roadmap", created_at=NOW, updated_at=NOW)]

    async def test_connection(self, repository: str) -> OperationResult:
        return OperationResult(success=self.fail_with is None)


class FailingStore(InMemoryIssueStore):
    """In-memory store whose search cache and issue reads can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail_cache = False
        self.fail_list = False

    async def get_cache_entry(self, key):
        if self.fail_cache:
            raise ConnectionError("cache backend down")
        return await super().get_cache_entry(key)

    async def put_cache_entry(self, entry):
        if self.fail_cache:
            raise ConnectionError("cache backend down")
        await super().put_cache_entry(entry)

    async def list_issues(self, repository=None, state=None):
        if self.fail_list:
            raise ConnectionError("store unavailable")
        return await super().list_issues(repository, state)


@pytest.fixture
def store():
    return InMemoryIssueStore()


@pytest.fixture
def failing_store():
    return FailingStore()
