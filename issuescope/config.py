from pydantic_settings import BaseSettings
from typing import Dict, Any, Optional, List, Tuple
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # GitHub API
    github_token: Optional[str] = os.getenv("GITHUB_TOKEN")
    GITHUB_API_BASE: str = os.getenv("GITHUB_API_BASE", "https://api.github.com")
    GITHUB_GRAPHQL_URL: str = os.getenv("GITHUB_GRAPHQL_URL", "https://api.github.com/graphql")
    GITHUB_USER_AGENT: str = os.getenv("GITHUB_USER_AGENT", "issuescope/0.1")

    # HTTP retry behaviour
    HTTP_MAX_RETRIES: int = int(os.getenv("HTTP_MAX_RETRIES", "3"))
    HTTP_BACKOFF_FACTOR: float = float(os.getenv("HTTP_BACKOFF_FACTOR", "2"))
    HTTP_BACKOFF_BASE: float = float(os.getenv("HTTP_BACKOFF_BASE", "1.0"))  # seconds
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))

    # Local store
    STORE_TYPE: str = os.getenv("STORE_TYPE", "memory")  # "memory" or "redis"
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    STORE_KEY_PREFIX: str = os.getenv("STORE_KEY_PREFIX", "issuescope")

    # Search cache
    SEARCH_CACHE_ENABLED: bool = os.getenv("SEARCH_CACHE_ENABLED", "true").lower() == "true"
    SEARCH_CACHE_TTL: int = int(os.getenv("SEARCH_CACHE_TTL", "1800"))  # 30 minutes
    CACHE_CLEANUP_INTERVAL: int = int(os.getenv("CACHE_CLEANUP_INTERVAL", "60"))

    # Single repository search defaults
    DEFAULT_SEARCH_LIMIT: int = int(os.getenv("DEFAULT_SEARCH_LIMIT", "10"))
    DEFAULT_MIN_RELEVANCE: float = float(os.getenv("DEFAULT_MIN_RELEVANCE", "0.1"))

    # Multi repository search defaults
    MULTI_SEARCH_LIMIT: int = int(os.getenv("MULTI_SEARCH_LIMIT", "50"))
    MULTI_MIN_RELEVANCE: float = float(os.getenv("MULTI_MIN_RELEVANCE", "0.3"))
    MESSAGE_SEARCH_LIMIT: int = int(os.getenv("MESSAGE_SEARCH_LIMIT", "20"))
    MESSAGE_MIN_RELEVANCE: float = float(os.getenv("MESSAGE_MIN_RELEVANCE", "0.4"))

    # Sync
    SYNC_PAGE_SIZE: int = int(os.getenv("SYNC_PAGE_SIZE", "100"))

    # owner/name:priority, comma separated
    DEFAULT_REPOSITORIES: str = os.getenv(
        "DEFAULT_REPOSITORIES",
        "microsoft/TypeScript:10,facebook/react:9,nodejs/node:8,"
        "vercel/next.js:7,vitejs/vite:6,webpack/webpack:5",
    )

    # Search traces
    TRACE_MAX_ENTRIES: int = int(os.getenv("TRACE_MAX_ENTRIES", "500"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def default_repository_specs(self) -> List[Tuple[str, int]]:
        """Parse DEFAULT_REPOSITORIES into (full_name, priority) pairs."""
        specs = []
        for raw in self.DEFAULT_REPOSITORIES.split(","):
            raw = raw.strip()
            if not raw:
                continue
            full_name, _, priority = raw.partition(":")
            specs.append((full_name.strip(), int(priority) if priority.strip() else 0))
        return specs

    @property
    def HTTP_CONFIG(self) -> Dict[str, Any]:
        return {
            "max_retries": self.HTTP_MAX_RETRIES,
            "backoff_factor": self.HTTP_BACKOFF_FACTOR,
            "backoff_base": self.HTTP_BACKOFF_BASE,
            "timeout": self.HTTP_TIMEOUT_SECONDS,
        }

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
