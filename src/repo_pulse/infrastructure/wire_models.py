"""Pydantic models for the GitHub REST payloads we read.

Only the fields the aggregator uses are declared; everything else in the
payload is ignored.  :func:`decode` is the one place JSON bodies become
typed objects, and the one place decoding failures are translated.
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from repo_pulse.domain.exceptions import ResponseDecodingError

T = TypeVar("T")


class Owner(BaseModel):
    login: str


class RepoItem(BaseModel):
    """``GET /repos/{owner}/{repo}`` (also the items of ``/user/repos`` and search)."""

    id: int
    name: str
    full_name: str | None = None
    owner: Owner
    open_issues_count: int = 0
    stargazers_count: int = 0
    forks_count: int = 0
    fork: bool = False
    archived: bool = False
    pushed_at: datetime | None = None
    default_branch: str | None = None


class SearchResponse(BaseModel):
    items: list[RepoItem] = Field(default_factory=list)


class CurrentUser(BaseModel):
    login: str
    html_url: str | None = None


class PullRequestListItem(BaseModel):
    id: int


class CommitListItem(BaseModel):
    sha: str


class WorkflowRun(BaseModel):
    status: str | None = None
    conclusion: str | None = None


class ActionsRunsResponse(BaseModel):
    total_count: int | None = None
    workflow_runs: list[WorkflowRun] = Field(default_factory=list)


class ReleaseResponse(BaseModel):
    name: str | None = None
    tag_name: str
    published_at: datetime | None = None
    created_at: datetime | None = None
    draft: bool | None = None
    prerelease: bool | None = None
    html_url: str


class TrafficResponse(BaseModel):
    uniques: int = 0


class CommitActivityWeek(BaseModel):
    total: int = 0
    week: int
    days: list[int]


class EventActor(BaseModel):
    login: str


class EventComment(BaseModel):
    body: str | None = None
    html_url: str | None = None

    @property
    def body_preview(self) -> str:
        trimmed = (self.body or "").strip()
        return trimmed[:80] + ("…" if len(trimmed) > 80 else "")


class EventLink(BaseModel):
    title: str | None = None
    html_url: str | None = None


class EventPayload(BaseModel):
    action: str | None = None
    ref_type: str | None = None
    comment: EventComment | None = None
    issue: EventLink | None = None
    pull_request: EventLink | None = None


class RepoEvent(BaseModel):
    type: str
    actor: EventActor
    payload: EventPayload = Field(default_factory=EventPayload)
    created_at: datetime

    @property
    def has_rich_payload(self) -> bool:
        p = self.payload
        return p.comment is not None or p.issue is not None or p.pull_request is not None


# ── Decoding ────────────────────────────────────────────────────────────────


@lru_cache(maxsize=None)
def _adapter(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


def _decoding_error(model: Any, exc: ValidationError) -> ResponseDecodingError:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = None
    if first.get("type") == "missing":
        field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ResponseDecodingError(
        f"Could not decode {getattr(model, '__name__', model)}: {exc}",
        field=field,
    )


def decode(model: type[T] | Any, body: bytes | str) -> T:
    """Validate a JSON *body* against *model* (a model class or ``list[Model]``)."""
    try:
        return _adapter(model).validate_json(body)
    except ValidationError as exc:
        raise _decoding_error(model, exc) from exc


def validate(model: type[T] | Any, data: Any) -> T:
    """Like :func:`decode`, for already-parsed JSON (e.g. a GraphQL ``data`` object)."""
    try:
        return _adapter(model).validate_python(data)
    except ValidationError as exc:
        raise _decoding_error(model, exc) from exc
