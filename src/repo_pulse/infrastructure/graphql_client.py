"""Minimal GraphQL client (no codegen) for supplemental enrichment.

Independent of the REST runner: its own endpoint resolution, its own
rate-limit snapshot (GraphQL draws from a separate budget), the same token.
Nothing here feeds a repository's error accumulator; callers treat every
failure as "no enrichment available".
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx
from pydantic import BaseModel, Field

from repo_pulse.domain.entities import GraphRepoSnapshot, HeatmapCell, RateLimitSnapshot, Release
from repo_pulse.domain.exceptions import BadStatusError, GitHubAPIError, ResponseDecodingError
from repo_pulse.domain.ports.diagnostics_sink import DiagnosticsSink
from repo_pulse.domain.ports.token_provider import TokenProvider
from repo_pulse.infrastructure.constants import DEFAULT_API_HOST, DEFAULT_USER_AGENT, HTTP_OK
from repo_pulse.infrastructure.diagnostics import LoggingDiagnosticsSink
from repo_pulse.infrastructure.rate_limit import parse_rate_limit
from repo_pulse.infrastructure.wire_models import decode, validate

logger = logging.getLogger(__name__)

_CONTRIBUTIONS_QUERY = """\
query Contributions($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionCalendar {
        weeks { contributionDays { date contributionCount } }
      }
    }
  }
}
"""

_REPO_SNAPSHOT_QUERY = """\
query RepoSnapshot($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    name
    releases(first: 1, orderBy: {field: CREATED_AT, direction: DESC}) {
      nodes { name tagName publishedAt url }
    }
    issues(states: OPEN) { totalCount }
    pullRequests(states: OPEN) { totalCount }
  }
}
"""


# ── Wire models ─────────────────────────────────────────────────────────────


class _GraphQLError(BaseModel):
    message: str = "GraphQL error"


class _Envelope(BaseModel):
    data: dict[str, Any] | None = None
    errors: list[_GraphQLError] = Field(default_factory=list)


class _ContributionDay(BaseModel):
    date: date
    contributionCount: int


class _ContributionWeek(BaseModel):
    contributionDays: list[_ContributionDay]


class _Calendar(BaseModel):
    weeks: list[_ContributionWeek]


class _Collection(BaseModel):
    contributionCalendar: _Calendar


class _User(BaseModel):
    contributionsCollection: _Collection


class _ContributionsData(BaseModel):
    user: _User | None = None


class _ReleaseNode(BaseModel):
    name: str | None = None
    tagName: str
    publishedAt: datetime | None = None
    url: str


class _ReleaseConnection(BaseModel):
    nodes: list[_ReleaseNode] | None = None


class _CountContainer(BaseModel):
    totalCount: int


class _RepositoryNode(BaseModel):
    name: str
    releases: _ReleaseConnection
    issues: _CountContainer
    pullRequests: _CountContainer


class _RepoSnapshotData(BaseModel):
    repository: _RepositoryNode | None = None


# ── Client ──────────────────────────────────────────────────────────────────


def graphql_endpoint(api_host: str) -> str:
    """GraphQL URL for a REST host.

    ``https://api.github.com`` serves GraphQL at ``/graphql``; Enterprise
    hosts (``https://host/api/v3``) serve it at ``/api/graphql``.
    """
    parts = urlsplit(api_host)
    path = "/api/graphql" if "/api/v3" in parts.path else "/graphql"
    return urlunsplit((parts.scheme or "https", parts.netloc, path, "", ""))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GraphQLClient:
    """POSTs GraphQL queries with the shared bearer token."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_provider: TokenProvider,
        api_host: str = DEFAULT_API_HOST,
        diagnostics: DiagnosticsSink | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._token_provider = token_provider
        self._diag: DiagnosticsSink = diagnostics or LoggingDiagnosticsSink()
        self._user_agent = user_agent
        self._clock = clock
        self._lock = threading.Lock()
        self._endpoint = graphql_endpoint(api_host)
        self._latest_rate_limit: RateLimitSnapshot | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def set_endpoint(self, api_host: str) -> None:
        self._endpoint = graphql_endpoint(api_host)

    def set_token_provider(self, token_provider: TokenProvider) -> None:
        self._token_provider = token_provider

    def rate_limit_snapshot(self) -> RateLimitSnapshot | None:
        with self._lock:
            return self._latest_rate_limit

    async def _post(self, query: str, variables: dict[str, str], label: str) -> dict[str, Any]:
        token = await self._token_provider()
        await self._diag.message(f"GraphQL {label}")
        response = await self._client.post(
            self._endpoint,
            json={"query": query, "variables": variables},
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "User-Agent": self._user_agent,
            },
        )

        snapshot = parse_rate_limit(response.headers, self._clock())
        if snapshot is not None:
            with self._lock:
                self._latest_rate_limit = snapshot

        if response.status_code != HTTP_OK:
            await self._diag.message(f"GraphQL status {response.status_code} for {label}")
            raise BadStatusError(response.status_code)

        envelope = decode(_Envelope, response.content)
        if envelope.errors:
            raise GitHubAPIError(f"GraphQL error: {envelope.errors[0].message}")
        if envelope.data is None:
            raise ResponseDecodingError("GraphQL response had no data.", field="data")
        return envelope.data

    async def user_contribution_heatmap(self, login: str) -> list[HeatmapCell]:
        """One cell per day of the user's contribution calendar (about a year)."""
        data = await self._post(_CONTRIBUTIONS_QUERY, {"login": login}, f"Contributions {login}")
        parsed = validate(_ContributionsData, data)
        if parsed.user is None:
            await self._diag.message(f"GraphQL missing user {login}")
            raise ResponseDecodingError(f"GraphQL returned no user {login}.", field="user")
        weeks = parsed.user.contributionsCollection.contributionCalendar.weeks
        return [
            HeatmapCell(date=day.date, count=day.contributionCount)
            for week in weeks
            for day in week.contributionDays
        ]

    async def fetch_repo_snapshot(self, owner: str, name: str) -> GraphRepoSnapshot:
        data = await self._post(
            _REPO_SNAPSHOT_QUERY,
            {"owner": owner, "name": name},
            f"RepoSnapshot {owner}/{name}",
        )
        repo = validate(_RepoSnapshotData, data).repository
        if repo is None:
            await self._diag.message(f"GraphQL missing repository for {owner}/{name}")
            raise ResponseDecodingError(
                f"GraphQL returned no repository {owner}/{name}.", field="repository"
            )

        release = None
        nodes = repo.releases.nodes or []
        if nodes and nodes[0].publishedAt is not None:
            node = nodes[0]
            release = Release(
                name=node.name or node.tagName,
                tag=node.tagName,
                published_at=node.publishedAt,
                url=node.url,
            )
        return GraphRepoSnapshot(
            release=release,
            open_issues=repo.issues.totalCount,
            open_pulls=repo.pullRequests.totalCount,
        )
