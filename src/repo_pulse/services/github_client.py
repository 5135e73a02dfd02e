"""Consumer facade — the one object callers hold.

Wires the request runner, REST adapter, GraphQL client and aggregation
coordinator around a shared ``httpx.AsyncClient``, and adds host
configuration, in-flight de-duplication and the read-only state views.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from urllib.parse import urlsplit

import httpx

from repo_pulse.domain.entities import (
    DiagnosticsSummary,
    GraphRepoSnapshot,
    HeatmapCell,
    RateLimitState,
    Repository,
    UserIdentity,
)
from repo_pulse.domain.exceptions import InvalidHostError, InvalidRepositoryNameError
from repo_pulse.domain.ports.diagnostics_sink import DiagnosticsSink
from repo_pulse.domain.ports.token_provider import TokenProvider
from repo_pulse.infrastructure.constants import DEFAULT_API_HOST, DEFAULT_USER_AGENT
from repo_pulse.infrastructure.diagnostics import LoggingDiagnosticsSink
from repo_pulse.infrastructure.github_rest_adapter import GitHubRestAdapter, web_host_url
from repo_pulse.infrastructure.graphql_client import GraphQLClient
from repo_pulse.infrastructure.request_runner import GitHubRequestRunner
from repo_pulse.infrastructure.wire_models import RepoItem
from repo_pulse.services.repo_detail_coordinator import (
    RepoDetailCachePolicy,
    RepoDetailCoordinator,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def trusted_host(host: str) -> str:
    """Return *host* without a trailing slash, or raise :class:`InvalidHostError`."""
    parts = urlsplit(host.strip())
    if parts.scheme.lower() != "https" or not parts.hostname:
        raise InvalidHostError(host)
    return host.strip().rstrip("/")


def split_full_name(full_name: str) -> tuple[str, str]:
    owner, _, name = full_name.strip().partition("/")
    if not owner or not name or "/" in name:
        raise InvalidRepositoryNameError(full_name)
    return owner, name


class GitHubClient:
    """GitHub sync client: REST aggregation plus best-effort GraphQL enrichment.

    Parameters
    ----------
    token_provider:
        Async callable returning the bearer token for every request.
    http_client:
        Shared ``httpx.AsyncClient``; one is created (and owned) when omitted.
    api_host:
        REST base URL, validated with :func:`trusted_host`.
    diagnostics:
        Sink for diagnostics lines; logs through ``logging`` by default.
    detail_policy:
        TTLs for the per-source detail store.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        http_client: httpx.AsyncClient | None = None,
        api_host: str = DEFAULT_API_HOST,
        diagnostics: DiagnosticsSink | None = None,
        detail_policy: RepoDetailCachePolicy | None = None,
        activity_limit: int = 10,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(30.0))
        self._api_host = trusted_host(api_host)
        self._diag: DiagnosticsSink = diagnostics or LoggingDiagnosticsSink()
        self._token_provider = token_provider
        self._clock = clock

        self._runner = GitHubRequestRunner(
            self._http, diagnostics=self._diag, user_agent=user_agent, clock=clock
        )
        self._rest = GitHubRestAdapter(
            self._runner,
            self._token,
            api_host=lambda: self._api_host,
            diagnostics=self._diag,
        )
        self._graphql = GraphQLClient(
            self._http,
            token_provider,
            api_host=self._api_host,
            diagnostics=self._diag,
            user_agent=user_agent,
            clock=clock,
        )
        self._coordinator = RepoDetailCoordinator(
            self._rest, policy=detail_policy, activity_limit=activity_limit, clock=clock
        )
        self._inflight: dict[str, asyncio.Task[Repository]] = {}

    async def _token(self) -> str:
        return await self._token_provider()

    # ── Config ──────────────────────────────────────────────────────────

    @property
    def api_host(self) -> str:
        return self._api_host

    async def set_api_host(self, host: str) -> None:
        """Re-target REST and GraphQL at *host* (must be https with a hostname)."""
        try:
            trusted = trusted_host(host)
        except InvalidHostError:
            await self._diag.message(f"Rejected API host {host} (must be https with hostname)")
            raise
        self._api_host = trusted
        self._graphql.set_endpoint(trusted)
        await self._diag.message(f"API host set to {trusted}")

    def set_token_provider(self, token_provider: TokenProvider) -> None:
        self._token_provider = token_provider
        self._graphql.set_token_provider(token_provider)

    # ── Repository aggregation ──────────────────────────────────────────

    async def full_repository(
        self,
        owner: str,
        name: str,
        cancel_event: asyncio.Event | None = None,
    ) -> Repository:
        """Aggregated snapshot; concurrent calls for the same repo share one fetch.

        Only calls without a *cancel_event* are shared.  A call carrying its
        own event runs alone, so cancelling it never reaches other callers.
        """
        if cancel_event is not None:
            return await self._coordinator.full_repository(owner, name, cancel_event)

        key = f"{owner.lower()}/{name.lower()}"
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._coordinator.full_repository(owner, name))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task[Repository]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def expand_repositories(self, full_names: Iterable[str]) -> list[Repository]:
        """Aggregate many repositories concurrently, preserving input order."""
        pairs = [split_full_name(full_name) for full_name in full_names]
        repos = await asyncio.gather(*(self.full_repository(o, n) for o, n in pairs))
        return [repo.with_order(index) for index, repo in enumerate(repos)]

    async def _expand_items(self, items: Iterable[RepoItem]) -> list[Repository]:
        return await self.expand_repositories(f"{i.owner.login}/{i.name}" for i in items)

    async def recent_repositories(self, limit: int) -> list[Repository]:
        """The user's most recently pushed repositories, fully aggregated."""
        items = await self._rest.user_repos_sorted(max(limit, 10))
        return await self._expand_items(items[: max(limit, 0)])

    async def search_repositories(self, query: str) -> list[Repository]:
        """Search results as identity-plus-counts repositories (no enrichment calls)."""
        items = await self._rest.search_repositories(query)
        return [
            Repository(
                id=str(item.id),
                owner=item.owner.login,
                name=item.name,
                open_issues=item.open_issues_count,
                stars=item.stargazers_count,
                forks=item.forks_count,
                is_fork=item.fork,
                is_archived=item.archived,
                pushed_at=item.pushed_at,
                sort_order=index,
            )
            for index, item in enumerate(items)
        ]

    async def commit_total_count(self, owner: str, name: str) -> int:
        return await self._rest.commit_total_count(owner, name)

    async def current_user(self) -> UserIdentity:
        user = await self._rest.current_user()
        return UserIdentity(username=user.login, host=web_host_url(self._api_host))

    # ── Secondary channel (best-effort) ─────────────────────────────────

    async def user_contribution_heatmap(self, login: str) -> list[HeatmapCell]:
        try:
            return await self._graphql.user_contribution_heatmap(login)
        except Exception as exc:
            await self._diag.message(f"Contribution heatmap for {login} unavailable: {exc}")
            return []

    async def repository_graph_snapshot(self, owner: str, name: str) -> GraphRepoSnapshot | None:
        try:
            return await self._graphql.fetch_repo_snapshot(owner, name)
        except Exception as exc:
            await self._diag.message(f"GraphQL snapshot for {owner}/{name} unavailable: {exc}")
            return None

    # ── State views ─────────────────────────────────────────────────────

    def rate_limit_state(self) -> RateLimitState:
        now = self._clock()
        until = self._runner.rate_limit_reset(now)
        if until is None:
            return RateLimitState()
        return RateLimitState(until=until, message=self._runner.rate_limit_message(now))

    def diagnostics_summary(self) -> DiagnosticsSummary:
        snap = self._runner.diagnostics_snapshot()
        return DiagnosticsSummary(
            api_host=self._api_host,
            rate_limit_reset=snap.rate_limit_reset,
            last_rate_limit_error=snap.last_rate_limit_error,
            etag_entries=snap.etag_entries,
            backoff_entries=snap.backoff_entries,
            rest_rate_limit=snap.rest_rate_limit,
            graphql_rate_limit=self._graphql.rate_limit_snapshot(),
        )

    async def clear_cache(self) -> None:
        """Drop ETags, cooldowns, the rate-limit flag and stored repository details."""
        self._runner.clear()
        self._coordinator.clear_cache()
        await self._diag.message("Cleared GitHub caches")

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
