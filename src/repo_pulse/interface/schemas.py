"""Pydantic response DTOs for the API boundary, read straight off the domain dataclasses."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from repo_pulse.domain.entities import CIStatus


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ReleaseSchema(_FromDomain):
    name: str
    tag: str
    published_at: datetime
    url: str


class ActivityEventSchema(_FromDomain):
    title: str
    actor: str
    date: datetime
    url: str


class TrafficSchema(_FromDomain):
    unique_visitors: int
    unique_cloners: int


class HeatmapCellSchema(_FromDomain):
    date: date
    count: int


class RepositoryResponse(_FromDomain):
    """One aggregated repository snapshot.

    ``error`` is advisory: the other fields are still the best data available.
    """

    id: str
    owner: str
    name: str
    full_name: str
    sort_order: int | None = None
    error: str | None = None
    rate_limited_until: datetime | None = None
    ci_status: CIStatus
    ci_run_count: int | None = None
    open_issues: int
    open_pulls: int
    stars: int
    forks: int
    is_fork: bool
    is_archived: bool
    pushed_at: datetime | None = None
    latest_release: ReleaseSchema | None = None
    latest_activity: ActivityEventSchema | None = None
    activity_events: list[ActivityEventSchema]
    traffic: TrafficSchema | None = None
    heatmap: list[HeatmapCellSchema]


class UserResponse(_FromDomain):
    username: str
    host: str


class RateLimitStateResponse(_FromDomain):
    """Global REST rate limit; both fields ``null`` when not limited."""

    until: datetime | None = None
    message: str | None = None


class RateLimitSnapshotSchema(_FromDomain):
    limit: int | None = None
    remaining: int | None = None
    used: int | None = None
    reset: datetime | None = None
    resource: str | None = None


class DiagnosticsResponse(_FromDomain):
    api_host: str
    rate_limit_reset: datetime | None = None
    last_rate_limit_error: str | None = None
    etag_entries: int
    backoff_entries: int
    rest_rate_limit: RateLimitSnapshotSchema | None = None
    graphql_rate_limit: RateLimitSnapshotSchema | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    status: str = "error"
    message: str
