"""Error types raised by the issue search engine."""
from typing import Optional


class IssueScopeError(Exception):
    """Base class for all issuescope errors."""


class GitHubAPIError(IssueScopeError):
    """Non-2xx response, transport failure or GraphQL error from GitHub."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        if status is None:
            super().__init__(f"GitHub API Error: {message}")
        else:
            super().__init__(f"GitHub API Error: {status} - {message}")


class InvalidRepositoryError(IssueScopeError):
    """Repository identifier could not be parsed into owner/name."""


class RepositoryNotConfiguredError(IssueScopeError):
    """Repository is not registered, or is registered but disabled."""

    def __init__(self, repository: str):
        self.repository = repository
        super().__init__(f"Repository {repository} not configured")
