"""API routes — thin controllers that delegate to the GitHub client."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from repo_pulse.interface.dependencies import get_github_client
from repo_pulse.interface.schemas import (
    DiagnosticsResponse,
    HeatmapCellSchema,
    RateLimitStateResponse,
    RepositoryResponse,
    StatusResponse,
    UserResponse,
)
from repo_pulse.services.github_client import GitHubClient

router = APIRouter()


@router.get("/repos/{owner}/{name}", response_model=RepositoryResponse)
async def get_repository(
    owner: str,
    name: str,
    client: GitHubClient = Depends(get_github_client),
) -> RepositoryResponse:
    """Aggregated snapshot of one repository (``error`` set on partial failure)."""
    repo = await client.full_repository(owner, name)
    return RepositoryResponse.model_validate(repo)


@router.get(
    "/repos",
    response_model=list[RepositoryResponse],
    responses={422: {"description": "A name is not of the form owner/name"}},
)
async def list_repositories(
    full_names: str = Query(..., description="Comma-separated owner/name list"),
    client: GitHubClient = Depends(get_github_client),
) -> list[RepositoryResponse]:
    names = [n for n in (part.strip() for part in full_names.split(",")) if n]
    repos = await client.expand_repositories(names)
    return [RepositoryResponse.model_validate(r) for r in repos]


@router.get("/search", response_model=list[RepositoryResponse])
async def search_repositories(
    q: str = "",
    client: GitHubClient = Depends(get_github_client),
) -> list[RepositoryResponse]:
    repos = await client.search_repositories(q)
    return [RepositoryResponse.model_validate(r) for r in repos]


@router.get(
    "/user",
    response_model=UserResponse,
    responses={401: {"description": "No GitHub token configured"}},
)
async def current_user(client: GitHubClient = Depends(get_github_client)) -> UserResponse:
    return UserResponse.model_validate(await client.current_user())


@router.get("/users/{login}/heatmap", response_model=list[HeatmapCellSchema])
async def user_heatmap(
    login: str,
    client: GitHubClient = Depends(get_github_client),
) -> list[HeatmapCellSchema]:
    """Contribution calendar; empty when the GraphQL channel is unavailable."""
    cells = await client.user_contribution_heatmap(login)
    return [HeatmapCellSchema.model_validate(c) for c in cells]


@router.get("/rate-limit", response_model=RateLimitStateResponse)
async def rate_limit(client: GitHubClient = Depends(get_github_client)) -> RateLimitStateResponse:
    return RateLimitStateResponse.model_validate(client.rate_limit_state())


@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(client: GitHubClient = Depends(get_github_client)) -> DiagnosticsResponse:
    return DiagnosticsResponse.model_validate(client.diagnostics_summary())


@router.delete("/cache", response_model=StatusResponse)
async def clear_cache(client: GitHubClient = Depends(get_github_client)) -> StatusResponse:
    await client.clear_cache()
    return StatusResponse()
