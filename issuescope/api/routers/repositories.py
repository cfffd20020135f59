from fastapi import APIRouter, HTTPException, Query, Depends
from typing import Any, Dict, List
from pydantic import BaseModel

from ...coordinator import MultiRepositorySearch
from ...exceptions import GitHubAPIError
from ...models import IssueTemplate, OperationResult, RepositoryConfig
from ..dependencies import get_coordinator, logger

router = APIRouter(prefix="/api", tags=["repositories"])

class CreateIssueRequest(BaseModel):
    repository: str
    template: IssueTemplate

def _public(config: RepositoryConfig) -> Dict[str, Any]:
    # api_key never leaves the process
    return {**config.model_dump(exclude={"api_key"}), "full_name": config.full_name}

@router.get("/repositories")
async def list_repositories(coordinator: MultiRepositorySearch = Depends(get_coordinator)) -> List[Dict[str, Any]]:
    """Configured repositories, highest priority first."""
    return [_public(config) for config in coordinator.get_repositories()]

@router.post("/repositories", response_model=OperationResult)
async def add_repository(config: RepositoryConfig, coordinator: MultiRepositorySearch = Depends(get_coordinator)):
    result = coordinator.add_repository(config)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result

@router.post("/issues", response_model=OperationResult)
async def create_issue(request: CreateIssueRequest, coordinator: MultiRepositorySearch = Depends(get_coordinator)):
    """Create a GitHub issue, optionally prefixed with chat context."""
    try:
        result = await coordinator.create_issue_with_template(request.repository, request.template)
    except GitHubAPIError as e:
        logger.error(f"Failed to create issue in {request.repository}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result

@router.get("/discussions", response_model=OperationResult)
async def list_discussions(
    repository: str = Query(..., description="Repository full name"),
    per_page: int = Query(100, ge=1, le=100),
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    try:
        result = await coordinator.fetch_discussions(repository, per_page=per_page)
    except GitHubAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result

@router.get("/issues/{issue_number}/comments", response_model=OperationResult)
async def list_issue_comments(
    issue_number: int,
    repository: str = Query(..., description="Repository full name"),
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    """Comments are fetched from GitHub on first request and stored locally."""
    try:
        result = await coordinator.get_issue_comments(repository, issue_number)
    except GitHubAPIError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result

@router.get("/repositories/connection", response_model=OperationResult)
async def test_connection(
    repository: str = Query(..., description="Repository full name"),
    coordinator: MultiRepositorySearch = Depends(get_coordinator),
):
    return await coordinator.test_connection(repository)
