from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Any, Dict, List
from pydantic import BaseModel

from ...coordinator import MultiRepositorySearch
from ...exceptions import RepositoryNotConfiguredError
from ...models import MultiRepoSearchOptions, MultiRepoSearchResult, SearchTrace, StateFilter
from ...repository_search import default_search_options
from ...config import settings
from ..dependencies import get_coordinator, get_store, logger

router = APIRouter(prefix="/api", tags=["search"])

class MessageRequest(BaseModel):
    content: str

class KeywordsResponse(BaseModel):
    keywords: List[str]

@router.get("/search")
async def search_repository(
    repository: str = Query(..., description="Repository full name, e.g. owner/name"),
    q: str = Query(..., description="Free-text query"),
    limit: int = Query(settings.DEFAULT_SEARCH_LIMIT, ge=1, le=100),
    state: StateFilter = "all",
    min_relevance: float = Query(settings.DEFAULT_MIN_RELEVANCE, ge=0.0, le=1.0),
    use_cache: bool = settings.SEARCH_CACHE_ENABLED,
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
) -> List[Dict[str, Any]]:
    """Search the local copy of one repository's issues."""
    options = default_search_options(limit=limit, state=state, min_relevance=min_relevance, use_cache=use_cache)
    try:
        issues = await coordinator.search_repository(repository, q, options)
    except RepositoryNotConfiguredError as e:
        raise HTTPException(status_code=404, detail=str(e))

    # relevance_score is excluded from dumps, so surface it explicitly
    return [{**issue.model_dump(mode="json"), "relevance_score": issue.relevance_score} for issue in issues]

@router.post("/search/multi", response_model=List[MultiRepoSearchResult])
async def search_across_repositories(
    options: MultiRepoSearchOptions,
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    return await coordinator.search_across_repositories(options)

@router.post("/search/message", response_model=List[MultiRepoSearchResult])
async def search_by_message(
    request: MessageRequest,
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    """Find issues related to a chat message."""
    results = await coordinator.search_by_message_content(request.content)
    logger.info(f"Message search returned {len(results)} results")
    return results

@router.post("/keywords", response_model=KeywordsResponse)
async def extract_keywords(request: MessageRequest, coordinator: MultiRepositorySearch = Depends(get_coordinator)):
    return KeywordsResponse(keywords=coordinator.extract_technical_keywords(request.content))

@router.get("/search/traces", response_model=List[SearchTrace])
async def list_search_traces(limit: int = Query(50, ge=1, le=500), store=Depends(get_store)):
    """Most recent multi-repository searches, newest first."""
    return await store.list_traces(limit)
