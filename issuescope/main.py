from fastapi import FastAPI, Depends
import asyncio
import logging
from typing import Optional
from .api.middleware import setup_cors, setup_request_logging
from .api.dependencies import services, get_coordinator
from .coordinator import MultiRepositorySearch
from .search_cache import cleanup_search_cache_periodically
from .config import settings

# Import routers
from .api.routers import search, sync, repositories

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="IssueScope",
    description="Local-first search over GitHub issues across multiple repositories",
    version="0.1.0"
)

# Setup middleware
setup_cors(app)
setup_request_logging(app)

# Include routers
app.include_router(search.router)
app.include_router(sync.router)
app.include_router(repositories.router)

_cleanup_task: Optional[asyncio.Task] = None

@app.on_event("startup")
async def startup_event():
    global _cleanup_task
    # Redis when configured and reachable, in-memory otherwise
    await services.initialize()

    # Start background tasks
    _cleanup_task = asyncio.create_task(cleanup_search_cache_periodically(services.cache_sweeper))

@app.get("/")
async def root():
    return {"message": "IssueScope API"}

@app.get("/api/cache-stats")
async def get_cache_statistics(coordinator: MultiRepositorySearch = Depends(get_coordinator)):
    """Search cache statistics per repository"""
    return {
        "repositories": coordinator.get_cache_stats(),
        "cache_enabled": settings.SEARCH_CACHE_ENABLED,
        "cache_ttl_seconds": settings.SEARCH_CACHE_TTL,
        "store_type": type(services.store).__name__,
        "trace_queue": services.trace_queue.stats,
    }

@app.on_event("shutdown")
async def shutdown_event():
    """Stop cleanup, flush pending traces and close the store"""
    if _cleanup_task is not None:
        _cleanup_task.cancel()
    await services.shutdown()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
