"""FastAPI dependency injection wiring."""

from __future__ import annotations

import httpx

from repo_pulse.domain.ports.token_provider import StaticTokenProvider
from repo_pulse.infrastructure.config import get_settings
from repo_pulse.infrastructure.diagnostics import LoggingDiagnosticsSink
from repo_pulse.services.github_client import GitHubClient
from repo_pulse.services.repo_detail_coordinator import RepoDetailCachePolicy

_http_client: httpx.AsyncClient | None = None
_github_client: GitHubClient | None = None


async def startup() -> None:
    """Initialise shared resources — called from the lifespan context manager."""
    global _http_client, _github_client  # noqa: PLW0603

    settings = get_settings()
    _http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.request_timeout_seconds)
    )
    token = settings.github_token.get_secret_value() if settings.github_token else None
    _github_client = GitHubClient(
        token_provider=StaticTokenProvider(token),
        http_client=_http_client,
        api_host=settings.api_host,
        diagnostics=LoggingDiagnosticsSink(enabled=settings.diagnostics_enabled),
        detail_policy=RepoDetailCachePolicy.uniform(settings.detail_cache_ttl),
        activity_limit=settings.activity_limit,
        user_agent=settings.user_agent,
    )


async def shutdown() -> None:
    """Release shared resources."""
    global _http_client, _github_client  # noqa: PLW0603

    if _github_client:
        await _github_client.close()
        _github_client = None
    if _http_client:
        await _http_client.aclose()
        _http_client = None


def get_github_client() -> GitHubClient:
    """Return the client built at startup."""
    assert _github_client is not None, "startup() was not called"
    return _github_client
