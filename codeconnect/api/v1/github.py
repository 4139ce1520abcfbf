"""
GitHub endpoints: cached repository data and PR analytics.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from codeconnect.api.deps import get_current_user, get_github_service
from codeconnect.domain.base import DocumentModel
from codeconnect.domain.user import User
from codeconnect.services.github_service import GitHubService

router = APIRouter()


class PRAnalyticsRequest(DocumentModel):
    prs: Any = None
    user: Optional[str] = None


@router.get("/github/repos")
async def list_repositories(
    owner: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    repos = await service.list_repositories(owner)
    return {"repositories": repos, "count": len(repos)}


@router.get("/github/repos/{owner}/{repo}/pulls/{number}")
async def pull_request_details(
    owner: str,
    repo: str,
    number: int,
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await service.get_pr_details(owner, repo, number)


@router.get("/github/repos/{owner}/{repo}/pulls")
async def list_pulls(
    owner: str,
    repo: str,
    state: str = Query(default="all"),
    per_page: int = Query(default=30, alias="perPage", ge=1, le=100),
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    pulls = await service.list_pulls(owner, repo, state=state, per_page=per_page)
    return {"pulls": pulls, "count": len(pulls)}


@router.get("/github/repos/{owner}/{repo}/commits/{sha}")
async def commit_details(
    owner: str,
    repo: str,
    sha: str,
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await service.get_commit_details(owner, repo, sha)


@router.get("/github/repos/{owner}/{repo}/commits")
async def list_commits(
    owner: str,
    repo: str,
    per_page: int = Query(default=30, alias="perPage", ge=1, le=100),
    author: Optional[str] = Query(default=None),
    sha: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    commits = await service.list_commits(owner, repo, per_page=per_page, author=author, sha=sha)
    return {"commits": commits, "count": len(commits)}


@router.get("/github/repos/{owner}/{repo}/contents/{path:path}")
async def file_content(
    owner: str,
    repo: str,
    path: str,
    ref: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return await service.get_file_content(owner, repo, path, ref=ref)


@router.post("/github/pr-analytics")
async def pr_analytics(
    request: PRAnalyticsRequest,
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """AI insights over a user's pull requests, data-based when watsonx is down."""
    result = await service.analyze_pull_requests(request.prs, request.user)
    return {"success": True, **result}


@router.get("/github/cache/stats")
async def cache_stats(
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    return {"success": True, "stats": service.cache_stats()}


@router.delete("/github/cache")
async def invalidate_cache(
    tier: Optional[str] = Query(default=None),
    pattern: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    service: GitHubService = Depends(get_github_service),
) -> dict[str, Any]:
    """Drop cached entries; without ``tier`` every tier is cleared."""
    removed = service.invalidate(tier, pattern)
    return {"success": True, "removed": removed}
