from typing import Optional, Dict, Any, Tuple, List
import re
import asyncio
import logging
import aiohttp

from .config import settings
from .exceptions import GitHubAPIError, InvalidRepositoryError
from .models import (
    Issue,
    Comment,
    Discussion,
    Label,
    RepositoryInfo,
    SyncOptions,
    OperationResult,
)

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"github\.com/([^/\s]+)/([^/\s?#]+)")
_SHORT_PATTERN = re.compile(r"^/?([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)/?$")

DISCUSSIONS_QUERY = """
query($owner: String!, $repo: String!, $first: Int!, $after: String) {
  repository(owner: $owner, name: $repo) {
    discussions(first: $first, after: $after) {
      nodes {
        id
        number
        title
        body
        createdAt
        updatedAt
        author { login }
        url
        category { name }
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

def parse_repository(identifier: str) -> Tuple[str, str]:
    """
    Extract owner and name from ``owner/name`` or a github.com URL.

    Raises:
        InvalidRepositoryError: if the identifier does not name a repository
    """
    identifier = (identifier or "").strip()
    match = _URL_PATTERN.search(identifier) or _SHORT_PATTERN.match(identifier)
    if not match:
        raise InvalidRepositoryError(f"Invalid GitHub repository identifier: {identifier!r}")
    owner, name = match.groups()
    if name.endswith(".git"):
        name = name[:-4]
    if not owner or not name:
        raise InvalidRepositoryError(f"Invalid GitHub repository identifier: {identifier!r}")
    return owner, name

class GitHubIssueClient:
    """Async client for the GitHub issues REST API and the discussions GraphQL API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base: Optional[str] = None,
        graphql_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_factor: Optional[float] = None,
        backoff_base: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        http_config = settings.HTTP_CONFIG
        self.token = token or settings.github_token
        self.api_base = (api_base or settings.GITHUB_API_BASE).rstrip("/")
        self.graphql_url = graphql_url or settings.GITHUB_GRAPHQL_URL
        self.max_retries = max_retries if max_retries is not None else http_config["max_retries"]
        self.backoff_factor = backoff_factor if backoff_factor is not None else http_config["backoff_factor"]
        self.backoff_base = backoff_base if backoff_base is not None else http_config["backoff_base"]
        self.timeout = aiohttp.ClientTimeout(total=timeout or http_config["timeout"])
        self.headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": settings.GITHUB_USER_AGENT,
        }
        # Without a token requests fall back to unauthenticated rate limits
        if self.token:
            self.headers["Authorization"] = f"token {self.token}"

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        try:
            payload = await response.json(content_type=None)
            if isinstance(payload, dict) and payload.get("message"):
                return payload["message"]
        except (aiohttp.ContentTypeError, ValueError):
            pass
        return response.reason or "Unknown error"

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform a request with retry and exponential backoff.

        5xx responses and transport errors are retried; 4xx responses raise
        immediately.

        Raises:
            GitHubAPIError: on a non-2xx response or when retries are exhausted
        """
        last_error: Optional[GitHubAPIError] = None
        for attempt in range(max(self.max_retries, 1)):
            try:
                async with aiohttp.ClientSession(timeout=self.timeout) as session:
                    async with session.request(
                        method, url, headers=self.headers, params=params, json=json_body
                    ) as response:
                        if response.status < 400:
                            return await response.json(content_type=None)
                        error = GitHubAPIError(response.status, await self._error_message(response))
                        if response.status < 500:
                            raise error
                        last_error = error
            except GitHubAPIError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = GitHubAPIError(None, str(e) or e.__class__.__name__)

            if attempt < self.max_retries - 1:
                delay = self.backoff_base * (self.backoff_factor ** attempt)
                logger.warning(f"GitHub request {method} {url} failed ({last_error}); retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

        raise last_error or GitHubAPIError(None, "Unknown error occurred")

    def _repo_url(self, repository: str, suffix: str = "") -> str:
        owner, name = parse_repository(repository)
        return f"{self.api_base}/repos/{owner}/{name}{suffix}"

    async def list_issues(self, repository: str, options: Optional[SyncOptions] = None) -> List[Issue]:
        """
        Fetch one page of issues. Pull requests are returned too (the issues
        API mixes them in); callers check ``Issue.is_pull_request``.
        """
        options = options or SyncOptions()
        params = {
            "state": options.state,
            "sort": options.sort,
            "direction": options.direction,
            "per_page": str(options.per_page),
            "page": str(options.page),
        }
        if options.labels:
            params["labels"] = options.labels

        data = await self._request("GET", self._repo_url(repository, "/issues"), params=params)
        full_name = "/".join(parse_repository(repository))
        return [Issue.model_validate({**item, "repository": full_name}) for item in data]

    async def get_issue(self, repository: str, number: int) -> Issue:
        data = await self._request("GET", self._repo_url(repository, f"/issues/{number}"))
        return Issue.model_validate({**data, "repository": "/".join(parse_repository(repository))})

    async def list_issue_comments(self, repository: str, number: int) -> List[Comment]:
        data = await self._request("GET", self._repo_url(repository, f"/issues/{number}/comments"))
        full_name = "/".join(parse_repository(repository))
        return [
            Comment.model_validate({**item, "issue_number": number, "repository": full_name})
            for item in data
        ]

    async def create_issue(
        self,
        repository: str,
        title: str,
        body: str,
        labels: Optional[List[str]] = None,
        assignees: Optional[List[str]] = None,
        milestone: Optional[int] = None,
    ) -> Issue:
        """Create a new GitHub issue and return it."""
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = labels
        if assignees:
            payload["assignees"] = assignees
        if milestone is not None:
            payload["milestone"] = milestone

        data = await self._request("POST", self._repo_url(repository, "/issues"), json_body=payload)
        return Issue.model_validate({**data, "repository": "/".join(parse_repository(repository))})

    async def get_repository(self, repository: str) -> RepositoryInfo:
        data = await self._request("GET", self._repo_url(repository))
        return RepositoryInfo.model_validate(data)

    async def list_labels(self, repository: str) -> List[Label]:
        data = await self._request("GET", self._repo_url(repository, "/labels"))
        return [Label.model_validate(item) for item in data]

    async def fetch_discussions(
        self, repository: str, per_page: int = 100, after: Optional[str] = None
    ) -> List[Discussion]:
        """Fetch one page of discussions through GraphQL."""
        owner, name = parse_repository(repository)
        variables = {"owner": owner, "repo": name, "first": per_page, "after": after}
        data = await self._request(
            "POST", self.graphql_url, json_body={"query": DISCUSSIONS_QUERY, "variables": variables}
        )

        if data.get("errors"):
            messages = ", ".join(error.get("message", "") for error in data["errors"])
            raise GitHubAPIError(None, f"GraphQL errors: {messages}")

        nodes = (((data.get("data") or {}).get("repository") or {}).get("discussions") or {}).get("nodes") or []
        return [
            Discussion(
                id=node["id"],
                number=node["number"],
                title=node["title"],
                body=node.get("body") or "",
                created_at=node["createdAt"],
                updated_at=node["updatedAt"],
                url=node.get("url") or "",
                author=(node.get("author") or {}).get("login"),
                category=(node.get("category") or {}).get("name"),
            )
            for node in nodes
        ]

    async def test_connection(self, repository: str) -> OperationResult:
        """Check that the repository is reachable with the configured credentials."""
        try:
            await self.get_repository(repository)
        except InvalidRepositoryError as e:
            return OperationResult(success=False, error=str(e))
        except GitHubAPIError as e:
            if e.status == 404:
                return OperationResult(success=False, error="Repository not found or not accessible")
            if e.status == 401:
                return OperationResult(success=False, error="Invalid access token or insufficient permissions")
            return OperationResult(success=False, error=str(e))
        return OperationResult(success=True)

    async def get_rate_limit(self) -> Optional[Dict[str, Any]]:
        try:
            return await self._request("GET", f"{self.api_base}/rate_limit")
        except GitHubAPIError as e:
            logger.error(f"Failed to fetch rate limit: {e}")
            return None
