from pydantic import BaseModel, Field, computed_field, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone

from .search_vector import build_search_vector

IssueState = Literal["open", "closed"]
StateFilter = Literal["open", "closed", "all"]
SyncState = Literal["idle", "syncing", "error"]
MatchType = Literal["title", "body", "labels", "comments"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Label(BaseModel):
    name: str
    color: str = ""
    description: Optional[str] = None

class GitHubUser(BaseModel):
    login: str
    id: Optional[int] = None
    avatar_url: Optional[str] = None
    html_url: Optional[str] = None

class Reactions(BaseModel):
    total_count: int = 0

class Milestone(BaseModel):
    title: str
    number: int
    state: str

class Issue(BaseModel):
    """An issue mirrored from the remote tracker, enriched for local search."""
    id: int
    number: int
    title: str
    body: str = ""
    state: IssueState
    labels: List[Label] = []
    user: Optional[GitHubUser] = None
    assignees: List[GitHubUser] = []
    milestone: Optional[Milestone] = None
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None
    html_url: str = ""
    comments: int = 0  # comment count, as reported by the API
    reactions: Reactions = Field(default_factory=Reactions)
    locked: bool = False
    pull_request: Optional[Dict[str, Any]] = None
    repository: Optional[str] = None

    # Enrichment written at ingestion time
    indexed_at: Optional[datetime] = None
    comment_count: Optional[int] = None
    last_activity: Optional[datetime] = None

    # Ephemeral, set per query and never persisted
    relevance_score: Optional[float] = Field(default=None, exclude=True)

    @field_validator("body", mode="before")
    @classmethod
    def _none_body(cls, value):
        return value or ""

    @field_validator("created_at", "updated_at", "closed_at", "indexed_at", "last_activity")
    @classmethod
    def _assume_utc(cls, value):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @computed_field
    @property
    def search_vector(self) -> str:
        # Derived from current title/body/labels on every read so it can never go stale
        return build_search_vector(self.title, self.body, (label.name for label in self.labels))

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.labels]

class Comment(BaseModel):
    id: int
    issue_number: int
    repository: Optional[str] = None
    body: str = ""
    user: Optional[GitHubUser] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    html_url: str = ""

    @field_validator("body", mode="before")
    @classmethod
    def _none_body(cls, value):
        return value or ""

class Discussion(BaseModel):
    id: str
    number: int
    title: str
    body: str = ""
    created_at: datetime
    updated_at: datetime
    url: str = ""
    author: Optional[str] = None
    category: Optional[str] = None

class RepositoryInfo(BaseModel):
    id: int
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str = ""
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0
    language: Optional[str] = None
    topics: List[str] = []
    updated_at: Optional[datetime] = None

class RepositoryConfig(BaseModel):
    """A configured search target."""
    owner: str
    name: str
    api_key: Optional[str] = None
    priority: int = 0  # higher wins ties
    enabled: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

class SearchCacheEntry(BaseModel):
    query: str
    repository: Optional[str] = None
    results: List[int]
    timestamp: datetime
    expires_at: datetime

    @property
    def key(self) -> str:
        return cache_key(self.repository, self.query)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

def cache_key(repository: Optional[str], query: str) -> str:
    return f"{repository or '*'}::{query}"

class SyncMetadata(BaseModel):
    key: str
    last_sync: datetime
    total_issues: int = 0
    total_comments: int = 0
    sync_status: SyncState = "idle"
    error_message: Optional[str] = None

class SyncStatusReport(BaseModel):
    status: SyncState = "idle"
    last_sync: Optional[datetime] = None
    total_issues: int = 0
    total_comments: int = 0
    error_message: Optional[str] = None

class SyncOptions(BaseModel):
    state: StateFilter = "all"
    labels: Optional[str] = None
    sort: Literal["created", "updated", "comments"] = "updated"
    direction: Literal["asc", "desc"] = "desc"
    per_page: int = Field(100, ge=1, le=100)
    page: int = Field(1, ge=1)

class SyncResult(BaseModel):
    synced: int
    total: int

class SearchOptions(BaseModel):
    limit: int = 10
    state: StateFilter = "all"
    min_relevance: float = 0.1
    use_cache: bool = True

class MultiRepoSearchOptions(BaseModel):
    query: str
    repositories: Optional[List[str]] = None  # None -> every enabled repository
    include_body: bool = True
    include_comments: bool = False
    state: StateFilter = "all"
    limit: int = 50
    min_relevance: float = 0.3

class MultiRepoSearchResult(BaseModel):
    title: str
    issue: Issue
    repository: str
    relevance_score: float
    match_type: MatchType
    matched_text: str

class IssueTemplate(BaseModel):
    title: str
    body: str
    labels: Optional[List[str]] = None
    message_context: Optional[str] = None

class OperationResult(BaseModel):
    """Typed outcome for caller mistakes that should not raise."""
    success: bool
    error: Optional[str] = None
    data: Optional[Any] = None

class SearchTrace(BaseModel):
    query: str
    repositories: List[str]
    result_count: int
    failed_repositories: List[str] = []
    duration_ms: float
    created_at: datetime = Field(default_factory=utcnow)
