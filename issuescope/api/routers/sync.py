from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Optional
from pydantic import BaseModel, Field

from ...coordinator import MultiRepositorySearch
from ...exceptions import GitHubAPIError, InvalidRepositoryError
from ...models import OperationResult, SyncOptions
from ...config import settings
from ..dependencies import get_coordinator, logger

router = APIRouter(prefix="/api", tags=["sync"])

class SyncRequest(BaseModel):
    repository: str
    options: SyncOptions = Field(default_factory=lambda: SyncOptions(per_page=min(settings.SYNC_PAGE_SIZE, 100)))

def _raise_for_failure(result: OperationResult) -> OperationResult:
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result

@router.post("/sync", response_model=OperationResult)
async def sync_repository(request: SyncRequest, coordinator: MultiRepositorySearch = Depends(get_coordinator)):
    """Sync one page of issues from GitHub into the local store."""
    try:
        result = await coordinator.sync_repository(request.repository, request.options)
    except (GitHubAPIError, InvalidRepositoryError) as e:
        logger.error(f"Sync request for {request.repository} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return _raise_for_failure(result)

@router.get("/sync/status", response_model=OperationResult)
async def get_sync_status(
    repository: str = Query(..., description="Repository full name"),
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    return _raise_for_failure(await coordinator.get_sync_status(repository))

@router.delete("/cache")
async def clear_cache(
    repository: Optional[str] = Query(None, description="Limit the wipe to one repository"),
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    """Wipe issues, comments, cached searches and sync metadata."""
    await coordinator.clear_cache(repository)
    return {"cleared": repository or "all"}
