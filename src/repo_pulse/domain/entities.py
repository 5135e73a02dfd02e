"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum


class CIStatus(str, Enum):
    """Outcome of the most recent workflow run on the default branch."""

    PASSING = "passing"
    FAILING = "failing"
    PENDING = "pending"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class CIStatusDetails:
    status: CIStatus = CIStatus.UNKNOWN
    run_count: int | None = None


@dataclass(frozen=True, slots=True)
class Release:
    """Newest non-draft release of a repository."""

    name: str
    tag: str
    published_at: datetime
    url: str


@dataclass(frozen=True, slots=True)
class TrafficStats:
    """Unique visitors / cloners over GitHub's 14-day traffic window."""

    unique_visitors: int
    unique_cloners: int


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    title: str
    actor: str
    date: datetime
    url: str


@dataclass(frozen=True, slots=True)
class ActivitySnapshot:
    """Recent events plus the one worth showing first."""

    events: tuple[ActivityEvent, ...] = ()
    latest: ActivityEvent | None = None


@dataclass(frozen=True, slots=True)
class HeatmapCell:
    """Commit (or contribution) count for a single day."""

    date: date
    count: int


@dataclass(frozen=True, slots=True)
class Repository:
    """Aggregated snapshot of one repository.

    Always constructible: when enrichment calls fail the numeric fields stay
    at zero, collections stay empty, ``ci_status`` stays ``unknown`` and
    ``error`` carries the advisory message.  ``sort_order`` is display-only
    and does not take part in equality.
    """

    id: str
    owner: str
    name: str
    sort_order: int | None = field(default=None, compare=False)
    error: str | None = None
    rate_limited_until: datetime | None = None
    ci_status: CIStatus = CIStatus.UNKNOWN
    ci_run_count: int | None = None
    open_issues: int = 0
    open_pulls: int = 0
    stars: int = 0
    forks: int = 0
    is_fork: bool = False
    is_archived: bool = False
    pushed_at: datetime | None = None
    latest_release: Release | None = None
    latest_activity: ActivityEvent | None = None
    activity_events: tuple[ActivityEvent, ...] = ()
    traffic: TrafficStats | None = None
    heatmap: tuple[HeatmapCell, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def with_order(self, order: int | None) -> Repository:
        return replace(self, sort_order=order)

    @classmethod
    def placeholder(
        cls,
        owner: str,
        name: str,
        error: str | None,
        rate_limited_until: datetime | None,
    ) -> Repository:
        """Identity-only repository used when even the details call failed."""
        return cls(
            id=f"{owner}/{name}",
            owner=owner,
            name=name,
            error=error,
            rate_limited_until=rate_limited_until,
        )


@dataclass(frozen=True, slots=True)
class UserIdentity:
    username: str
    host: str


# ── Client state ────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Conditional-request validator plus the body it validates."""

    endpoint: str
    validator: str
    body: bytes
    stored_at: datetime


@dataclass(frozen=True, slots=True)
class CooldownEntry:
    endpoint: str
    until: datetime


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    """Most recently observed quota state for one API surface."""

    limit: int | None = None
    remaining: int | None = None
    used: int | None = None
    reset: datetime | None = None
    resource: str | None = None


@dataclass(frozen=True, slots=True)
class RateLimitState:
    """Consumer view of the global rate limit (both ``None`` when clear)."""

    until: datetime | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class DiagnosticsSummary:
    api_host: str
    rate_limit_reset: datetime | None = None
    last_rate_limit_error: str | None = None
    etag_entries: int = 0
    backoff_entries: int = 0
    rest_rate_limit: RateLimitSnapshot | None = None
    graphql_rate_limit: RateLimitSnapshot | None = None


@dataclass(frozen=True, slots=True)
class GraphRepoSnapshot:
    """Supplemental counts and release read over the GraphQL channel."""

    release: Release | None = None
    open_issues: int | None = None
    open_pulls: int | None = None
