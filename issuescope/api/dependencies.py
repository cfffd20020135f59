from typing import Optional
from fastapi import HTTPException
from ..background import BackgroundTaskQueue
from ..coordinator import MultiRepositorySearch
from ..issue_store import IssueStore, IssueStoreFactory
from ..search_cache import SearchCache
import logging

logger = logging.getLogger(__name__)

class ServiceContainer:
    """Process-wide services, created on application startup"""

    def __init__(self):
        self.store: Optional[IssueStore] = None
        self.coordinator: Optional[MultiRepositorySearch] = None
        self.trace_queue = BackgroundTaskQueue("search-traces")
        self.cache_sweeper: Optional[SearchCache] = None

    async def initialize(self, store: Optional[IssueStore] = None):
        self.store = store or await IssueStoreFactory.create()
        self.coordinator = MultiRepositorySearch(self.store, trace_queue=self.trace_queue)
        # Unscoped cache handle used only for sweeping expired entries
        self.cache_sweeper = SearchCache(self.store)
        logger.info(f"Initialized coordinator with {len(self.coordinator.get_repositories())} repositories")

    async def shutdown(self):
        await self.trace_queue.close()
        if self.store is not None:
            await self.store.close()

services = ServiceContainer()

# Dependency to get the coordinator
def get_coordinator() -> MultiRepositorySearch:
    if services.coordinator is None:
        raise HTTPException(status_code=503, detail="Search service not initialized")
    return services.coordinator

# Dependency to get the local store
def get_store() -> IssueStore:
    if services.store is None:
        raise HTTPException(status_code=503, detail="Search service not initialized")
    return services.store
