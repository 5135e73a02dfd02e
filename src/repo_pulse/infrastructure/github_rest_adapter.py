"""GitHub REST API adapter — one method per endpoint the aggregator reads.

Every call goes through :class:`GitHubRequestRunner`; this module only builds
URLs, picks the allowed statuses, and maps wire models to domain entities.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from urllib.parse import urlsplit

import httpx

from repo_pulse.domain.entities import (
    ActivityEvent,
    ActivitySnapshot,
    CIStatus,
    CIStatusDetails,
    HeatmapCell,
    Release,
    TrafficStats,
)
from repo_pulse.domain.exceptions import BadStatusError
from repo_pulse.domain.ports.diagnostics_sink import DiagnosticsSink
from repo_pulse.domain.ports.token_provider import TokenProvider
from repo_pulse.infrastructure.constants import (
    DEFAULT_ALLOWED_STATUSES,
    HTTP_FORBIDDEN,
    HTTP_NOT_FOUND,
    MAX_PAGE_SIZE,
)
from repo_pulse.infrastructure.pagination import last_page
from repo_pulse.infrastructure.request_runner import FetchResponse, GitHubRequestRunner
from repo_pulse.infrastructure.wire_models import (
    ActionsRunsResponse,
    CommitActivityWeek,
    CommitListItem,
    CurrentUser,
    PullRequestListItem,
    ReleaseResponse,
    RepoEvent,
    RepoItem,
    SearchResponse,
    TrafficResponse,
    decode,
)

logger = logging.getLogger(__name__)

_DAY_SECONDS = 86_400
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_USER_REPOS_PARAMS = {
    "sort": "pushed",
    "direction": "desc",
    "affiliation": "owner,collaborator,organization_member",
    "visibility": "all",
}


# ── Pure mapping helpers ────────────────────────────────────────────────────


def ci_status_from_run(status: str | None, conclusion: str | None) -> CIStatus:
    """Map a workflow run's ``conclusion`` (or ``status`` while running) to a CI state."""
    value = conclusion or status
    if value == "success":
        return CIStatus.PASSING
    if value in ("failure", "cancelled", "timed_out"):
        return CIStatus.FAILING
    if value in ("in_progress", "queued", "waiting"):
        return CIStatus.PENDING
    return CIStatus.UNKNOWN


def pick_latest_release(responses: Sequence[ReleaseResponse]) -> Release | None:
    """Newest non-draft release, ordered by ``published_at`` then ``created_at``."""

    def when(rel: ReleaseResponse) -> datetime:
        return rel.published_at or rel.created_at or _EPOCH

    candidates = [r for r in responses if r.draft is not True]
    if not candidates:
        return None
    rel = max(candidates, key=when)
    return Release(
        name=rel.name or rel.tag_name,
        tag=rel.tag_name,
        published_at=when(rel),
        url=rel.html_url,
    )


def web_host_url(api_host: str) -> str:
    """``https://api.github.com`` → ``https://github.com``; Enterprise hosts map to themselves."""
    parts = urlsplit(api_host)
    host = parts.hostname or "github.com"
    if host == "api.github.com":
        host = "github.com"
    return f"{parts.scheme or 'https'}://{host}"


def _event_title(event: RepoEvent) -> str:
    payload = event.payload
    kind = event.type.removesuffix("Event")
    if payload.comment is not None and payload.comment.body_preview:
        return payload.comment.body_preview
    if payload.pull_request is not None and payload.pull_request.title:
        return payload.pull_request.title
    if payload.issue is not None and payload.issue.title:
        return payload.issue.title
    if event.type == "PushEvent":
        return "Pushed commits"
    if event.type == "CreateEvent" and payload.ref_type:
        return f"Created {payload.ref_type}"
    if payload.action:
        return f"{kind} {payload.action}"
    return kind


def activity_event(event: RepoEvent, owner: str, name: str, web_host: str) -> ActivityEvent:
    payload = event.payload
    url = (
        (payload.comment.html_url if payload.comment else None)
        or (payload.pull_request.html_url if payload.pull_request else None)
        or (payload.issue.html_url if payload.issue else None)
        or f"{web_host}/{owner}/{name}"
    )
    return ActivityEvent(
        title=_event_title(event),
        actor=event.actor.login,
        date=event.created_at,
        url=url,
    )


def repo_search_query(query: str) -> str:
    """Shape free text into a ``/search/repositories`` query.

    ``owner/name`` searches by name within the owner, ``owner/`` lists the
    owner's repos, anything else is a name search; empty text lists popular repos.
    """
    trimmed = query.strip()
    if not trimmed:
        return "stars:>0"
    if "/" in trimmed:
        owner, _, name = trimmed.partition("/")
        owner, name = owner.strip(), name.strip()
        if owner and name:
            return f"{name} in:name user:{owner}"
        if owner:
            return f"user:{owner}"
    return f"{trimmed} in:name"


# ── Adapter ─────────────────────────────────────────────────────────────────


class GitHubRestAdapter:
    """Endpoint methods backed by the GitHub v3 REST API."""

    def __init__(
        self,
        runner: GitHubRequestRunner,
        token_provider: TokenProvider,
        api_host: Callable[[], str],
        diagnostics: DiagnosticsSink,
    ) -> None:
        self._runner = runner
        self._token_provider = token_provider
        self._api_host = api_host
        self._diag = diagnostics

    def api_host(self) -> str:
        return self._api_host()

    def _url(self, path: str, params: dict[str, str] | None = None) -> str:
        base = self._api_host().rstrip("/")
        return str(httpx.URL(f"{base}{path}", params=params))

    async def _get(
        self,
        path: str,
        params: dict[str, str] | None = None,
        allowed_statuses: frozenset[int] = DEFAULT_ALLOWED_STATUSES,
    ) -> FetchResponse:
        token = await self._token_provider()
        return await self._runner.get(
            self._url(path, params), token, allowed_statuses=allowed_statuses
        )

    # ── Repository details ──────────────────────────────────────────────

    async def repo_details(self, owner: str, name: str) -> RepoItem:
        """GET /repos/{owner}/{repo} → RepoItem."""
        resp = await self._get(f"/repos/{owner}/{name}")
        return decode(RepoItem, resp.body)

    async def open_pull_request_count(self, owner: str, name: str) -> int:
        """Open PR count via the last-page trick (``per_page=1``)."""
        resp = await self._get(
            f"/repos/{owner}/{name}/pulls",
            params={"state": "open", "per_page": "1", "page": "1"},
        )
        pulls = decode(list[PullRequestListItem], resp.body)
        last = last_page(resp.links)
        return last if last is not None else len(pulls)

    async def commit_total_count(self, owner: str, name: str) -> int:
        resp = await self._get(f"/repos/{owner}/{name}/commits", params={"per_page": "1"})
        last = last_page(resp.links)
        if last is not None:
            return last
        return len(decode(list[CommitListItem], resp.body))

    async def ci_status(
        self, owner: str, name: str, branch: str | None = "main"
    ) -> CIStatusDetails:
        """Latest workflow run on *branch* → CI state plus the total run count."""
        params = {"per_page": "1"}
        if branch:
            params["branch"] = branch
        resp = await self._get(f"/repos/{owner}/{name}/actions/runs", params=params)
        runs = decode(ActionsRunsResponse, resp.body)
        if not runs.workflow_runs:
            return CIStatusDetails(status=CIStatus.UNKNOWN, run_count=runs.total_count)
        run = runs.workflow_runs[0]
        return CIStatusDetails(
            status=ci_status_from_run(run.status, run.conclusion),
            run_count=runs.total_count,
        )

    async def recent_activity(self, owner: str, name: str, limit: int) -> ActivitySnapshot:
        resp = await self._get(f"/repos/{owner}/{name}/events", params={"per_page": "30"})
        events = decode(list[RepoEvent], resp.body)[: max(limit, 0)]
        web_host = web_host_url(self._api_host())
        mapped = [(e, activity_event(e, owner, name, web_host)) for e in events]
        preferred = next((a for e, a in mapped if e.has_rich_payload), None)
        return ActivitySnapshot(
            events=tuple(a for _, a in mapped),
            latest=preferred or (mapped[0][1] if mapped else None),
        )

    async def traffic_stats(self, owner: str, name: str) -> TrafficStats | None:
        """Views and clones in parallel; ``None`` when traffic is forbidden (no push access)."""
        results = await asyncio.gather(
            self._get(f"/repos/{owner}/{name}/traffic/views"),
            self._get(f"/repos/{owner}/{name}/traffic/clones"),
            return_exceptions=True,
        )
        if any(isinstance(r, BadStatusError) and r.code == HTTP_FORBIDDEN for r in results):
            await self._diag.message(f"Traffic endpoints forbidden for {owner}/{name}; skipping")
            return None
        for result in results:
            if isinstance(result, BaseException):
                raise result
        views_resp, clones_resp = results
        views = decode(TrafficResponse, views_resp.body)
        clones = decode(TrafficResponse, clones_resp.body)
        return TrafficStats(unique_visitors=views.uniques, unique_cloners=clones.uniques)

    async def commit_heatmap(self, owner: str, name: str) -> list[HeatmapCell]:
        """Weekly commit activity flattened to one cell per day, oldest first."""
        try:
            resp = await self._get(f"/repos/{owner}/{name}/stats/commit_activity")
        except BadStatusError as exc:
            if exc.code == HTTP_FORBIDDEN:
                await self._diag.message(
                    f"Commit activity forbidden for {owner}/{name}; skipping heatmap"
                )
                return []
            raise
        weeks = decode(list[CommitActivityWeek], resp.body)
        return [
            HeatmapCell(
                date=datetime.fromtimestamp(week.week + offset * _DAY_SECONDS, tz=timezone.utc).date(),
                count=count,
            )
            for week in weeks
            for offset, count in enumerate(week.days[:7])
        ]

    async def latest_release(self, owner: str, name: str) -> Release | None:
        """Most recent non-draft release (prereleases included); ``None`` when there is none."""
        resp = await self._get(
            f"/repos/{owner}/{name}/releases",
            params={"per_page": "20"},
            allowed_statuses=DEFAULT_ALLOWED_STATUSES | {HTTP_NOT_FOUND},
        )
        if resp.status_code == HTTP_NOT_FOUND:
            return None
        return pick_latest_release(decode(list[ReleaseResponse], resp.body))

    # ── User / search ───────────────────────────────────────────────────

    async def current_user(self) -> CurrentUser:
        resp = await self._get("/user")
        return decode(CurrentUser, resp.body)

    async def search_repositories(self, query: str) -> list[RepoItem]:
        resp = await self._get(
            "/search/repositories",
            params={"q": repo_search_query(query), "per_page": "8"},
        )
        return decode(SearchResponse, resp.body).items

    async def user_repos_sorted(self, limit: int) -> list[RepoItem]:
        params = {"per_page": str(max(1, min(limit, MAX_PAGE_SIZE))), **_USER_REPOS_PARAMS}
        resp = await self._get("/user/repos", params=params)
        return decode(list[RepoItem], resp.body)

    async def user_repos_paginated(self, limit: int | None) -> list[RepoItem]:
        """Pull ``/user/repos`` in 100-item pages until *limit* or a short page."""
        collected: list[RepoItem] = []
        page = 1
        while True:
            params = {**_USER_REPOS_PARAMS, "per_page": str(MAX_PAGE_SIZE), "page": str(page)}
            resp = await self._get("/user/repos", params=params)
            items = decode(list[RepoItem], resp.body)
            collected.extend(items)
            if limit is not None and len(collected) >= limit:
                break
            if len(items) < MAX_PAGE_SIZE:
                break
            page += 1
        return collected[:limit] if limit is not None else collected
