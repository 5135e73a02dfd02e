"""Repository aggregation — one details call, then six enrichment calls in parallel.

The coordinator never raises for a GitHub failure.  Details failing yields
an identity-only placeholder; an enrichment failing falls back to the last
value stored for that source (or zero / empty / unknown) and the error is
folded into :class:`RepoErrorAccumulator`.

Enrichment results are remembered per source in :class:`RepoDetailStore`.
A source fetched within its TTL is served from the store without a request.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from repo_pulse.domain.entities import (
    ActivitySnapshot,
    CIStatusDetails,
    Repository,
)
from repo_pulse.infrastructure.constants import DEFAULT_DETAIL_TTL
from repo_pulse.infrastructure.github_rest_adapter import GitHubRestAdapter
from repo_pulse.services.error_accumulator import RepoErrorAccumulator

logger = logging.getLogger(__name__)

# ── Sources ─────────────────────────────────────────────────────────────────

OPEN_PULLS = "open_pulls"
CI = "ci"
ACTIVITY = "activity"
TRAFFIC = "traffic"
HEATMAP = "heatmap"
RELEASE = "release"

SOURCES = (OPEN_PULLS, CI, ACTIVITY, TRAFFIC, HEATMAP, RELEASE)

_EMPTY: dict[str, Any] = {
    OPEN_PULLS: 0,
    CI: CIStatusDetails(),
    ACTIVITY: ActivitySnapshot(),
    TRAFFIC: None,
    HEATMAP: (),
    RELEASE: None,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Detail store ────────────────────────────────────────────────────────────


class CacheFreshness(str, Enum):
    MISSING = "missing"
    FRESH = "fresh"
    STALE = "stale"

    @property
    def needs_refresh(self) -> bool:
        return self is not CacheFreshness.FRESH


@dataclass(slots=True)
class RepoDetailCache:
    """Last successful value of each enrichment source and when it was fetched."""

    values: dict[str, Any] = field(default_factory=dict)
    fetched_at: dict[str, datetime] = field(default_factory=dict)

    def value(self, source: str) -> Any:
        return self.values.get(source, _EMPTY[source])

    def record(self, source: str, value: Any, now: datetime) -> None:
        self.values[source] = value
        self.fetched_at[source] = now

    def copy(self) -> RepoDetailCache:
        return RepoDetailCache(values=dict(self.values), fetched_at=dict(self.fetched_at))


@dataclass(frozen=True, slots=True)
class RepoDetailCachePolicy:
    """Per-source time-to-live for stored enrichment values."""

    open_pulls: timedelta = DEFAULT_DETAIL_TTL
    ci: timedelta = DEFAULT_DETAIL_TTL
    activity: timedelta = DEFAULT_DETAIL_TTL
    traffic: timedelta = DEFAULT_DETAIL_TTL
    heatmap: timedelta = DEFAULT_DETAIL_TTL
    release: timedelta = DEFAULT_DETAIL_TTL

    @classmethod
    def uniform(cls, ttl: timedelta) -> RepoDetailCachePolicy:
        return cls(**{f.name: ttl for f in fields(cls)})

    def freshness(self, cache: RepoDetailCache, source: str, now: datetime) -> CacheFreshness:
        fetched = cache.fetched_at.get(source)
        if fetched is None:
            return CacheFreshness.MISSING
        if now - fetched < getattr(self, source):
            return CacheFreshness.FRESH
        return CacheFreshness.STALE


class RepoDetailStore:
    """In-memory detail cache keyed by ``host::owner/name``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._memory: dict[str, RepoDetailCache] = {}

    @staticmethod
    def cache_key(api_host: str, owner: str, name: str) -> str:
        host = urlsplit(api_host).hostname or "api.github.com"
        return f"{host}::{owner}/{name}"

    def load(self, api_host: str, owner: str, name: str) -> RepoDetailCache:
        with self._lock:
            cached = self._memory.get(self.cache_key(api_host, owner, name))
            return cached.copy() if cached is not None else RepoDetailCache()

    def save(self, cache: RepoDetailCache, api_host: str, owner: str, name: str) -> None:
        with self._lock:
            self._memory[self.cache_key(api_host, owner, name)] = cache.copy()

    def count(self) -> int:
        with self._lock:
            return len(self._memory)

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()


# ── Coordinator ─────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result slot of one concurrent sub-fetch: a value or the error it raised."""

    value: Any = None
    error: BaseException | None = None


async def _capture(work: Awaitable[Any]) -> Outcome:
    try:
        return Outcome(value=await work)
    except Exception as exc:
        logger.debug("Sub-fetch failed: %s", exc)
        return Outcome(error=exc)


def _raise_if_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError()


class RepoDetailCoordinator:
    """Builds a full :class:`Repository` from the REST adapter.

    Parameters
    ----------
    rest:
        Endpoint adapter all sub-fetches go through.
    policy:
        Per-source TTLs for the detail store.
    store:
        Detail store; a fresh in-memory one by default.
    activity_limit:
        Number of recent events kept per repository.
    """

    def __init__(
        self,
        rest: GitHubRestAdapter,
        policy: RepoDetailCachePolicy | None = None,
        store: RepoDetailStore | None = None,
        activity_limit: int = 10,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._rest = rest
        self._policy = policy or RepoDetailCachePolicy()
        self._store = store or RepoDetailStore()
        self._activity_limit = activity_limit
        self._clock = clock

    @property
    def store(self) -> RepoDetailStore:
        return self._store

    async def full_repository(
        self,
        owner: str,
        name: str,
        cancel_event: asyncio.Event | None = None,
    ) -> Repository:
        """Aggregate one repository; GitHub failures end up in ``Repository.error``.

        Raises ``asyncio.CancelledError`` when *cancel_event* is set after the
        details call or after the enrichment group.
        """
        accumulator = RepoErrorAccumulator()

        try:
            details = await self._rest.repo_details(owner, name)
        except Exception as exc:
            accumulator.absorb(exc)
            logger.info("Details for %s/%s failed: %s", owner, name, accumulator.message)
            return Repository.placeholder(
                owner, name, accumulator.message, accumulator.rate_limit
            )

        _raise_if_cancelled(cancel_event)

        now = self._clock()
        owner, name = details.owner.login, details.name
        api_host = self._rest.api_host()
        cache = self._store.load(api_host, owner, name)

        fetchers: dict[str, Callable[[], Awaitable[Any]]] = {
            OPEN_PULLS: lambda: self._rest.open_pull_request_count(owner, name),
            CI: lambda: self._rest.ci_status(owner, name, details.default_branch or "main"),
            ACTIVITY: lambda: self._rest.recent_activity(owner, name, self._activity_limit),
            TRAFFIC: lambda: self._rest.traffic_stats(owner, name),
            HEATMAP: lambda: self._rest.commit_heatmap(owner, name),
            RELEASE: lambda: self._rest.latest_release(owner, name),
        }
        to_fetch = [
            source
            for source in SOURCES
            if self._policy.freshness(cache, source, now).needs_refresh
        ]
        outcomes = await asyncio.gather(*(_capture(fetchers[s]()) for s in to_fetch))

        _raise_if_cancelled(cancel_event)

        # Merge in a fixed order so accumulator precedence is deterministic.
        fetched = dict(zip(to_fetch, outcomes))
        values: dict[str, Any] = {}
        updated = False
        for source in SOURCES:
            outcome = fetched.get(source)
            if outcome is None:
                values[source] = cache.value(source)
            elif outcome.error is None:
                values[source] = outcome.value
                cache.record(source, outcome.value, now)
                updated = True
            else:
                accumulator.absorb(outcome.error)
                values[source] = cache.value(source)

        if updated:
            self._store.save(cache, api_host, owner, name)

        open_pulls: int = values[OPEN_PULLS]
        ci: CIStatusDetails = values[CI]
        activity: ActivitySnapshot = values[ACTIVITY]
        return Repository(
            id=str(details.id),
            owner=owner,
            name=name,
            error=accumulator.message,
            rate_limited_until=accumulator.rate_limit,
            ci_status=ci.status,
            ci_run_count=ci.run_count,
            open_issues=max(details.open_issues_count - open_pulls, 0),
            open_pulls=open_pulls,
            stars=details.stargazers_count,
            forks=details.forks_count,
            is_fork=details.fork,
            is_archived=details.archived,
            pushed_at=details.pushed_at,
            latest_release=values[RELEASE],
            latest_activity=activity.latest or (activity.events[0] if activity.events else None),
            activity_events=tuple(activity.events),
            traffic=values[TRAFFIC],
            heatmap=tuple(values[HEATMAP]),
        )

    def clear_cache(self) -> None:
        self._store.clear()
