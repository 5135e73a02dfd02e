"""Conditional GET runner — the single choke point for outbound REST calls.

Every REST request goes through :meth:`GitHubRequestRunner.get`, which:

- refuses to call out while a known global rate limit is active,
- refuses to call an endpoint that is cooling down (202 / 403 / 429),
- attaches the bearer token and the cached ETag,
- classifies the response and updates cache, cooldown and quota state,
- writes one diagnostics line per call.

It never retries; the next scheduled refresh is the retry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlsplit

import httpx

from repo_pulse.domain.entities import CacheEntry, RateLimitSnapshot
from repo_pulse.domain.exceptions import (
    BadStatusError,
    NetworkError,
    RateLimitedError,
    ServiceUnavailableError,
)
from repo_pulse.domain.ports.diagnostics_sink import DiagnosticsSink
from repo_pulse.infrastructure.conditional_cache import BackoffTracker, ConditionalCache
from repo_pulse.infrastructure.constants import (
    DEFAULT_ACCEPTED_BACKOFF,
    DEFAULT_ALLOWED_STATUSES,
    DEFAULT_RATE_LIMIT_BACKOFF,
    DEFAULT_USER_AGENT,
    GITHUB_ACCEPT,
    HTTP_ACCEPTED,
    HTTP_FORBIDDEN,
    HTTP_NOT_MODIFIED,
    HTTP_TOO_MANY_REQUESTS,
)
from repo_pulse.infrastructure.diagnostics import LoggingDiagnosticsSink
from repo_pulse.infrastructure.rate_limit import (
    format_reset,
    parse_rate_limit,
    rate_limit_reset,
    retry_after,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rate_limit_message(until: datetime) -> str:
    return f"GitHub rate limit hit; resets at {format_reset(until)}."


@dataclass(frozen=True, slots=True)
class FetchResponse:
    """Body and metadata of a classified response (possibly served from cache)."""

    status_code: int
    headers: httpx.Headers
    body: bytes
    from_cache: bool = False
    links: dict[str, dict[str, str]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RequestRunnerDiagnostics:
    rate_limit_reset: datetime | None
    last_rate_limit_error: str | None
    etag_entries: int
    backoff_entries: int
    rest_rate_limit: RateLimitSnapshot | None


class GitHubRequestRunner:
    """Conditional-request executor shared by every REST call of a client.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient`` (connection pool, transport timeouts).
    cache / backoff:
        Conditional cache and cooldown tracker; fresh ones by default.
    diagnostics:
        Sink receiving one line per call.
    clock:
        Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: ConditionalCache | None = None,
        backoff: BackoffTracker | None = None,
        diagnostics: DiagnosticsSink | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._cache = cache or ConditionalCache()
        self._backoff = backoff or BackoffTracker()
        self._diag: DiagnosticsSink = diagnostics or LoggingDiagnosticsSink()
        self._user_agent = user_agent
        self._clock = clock

        self._lock = threading.Lock()
        self._rate_limit_reset: datetime | None = None
        self._rate_limit_error: str | None = None
        self._latest_rest_rate_limit: RateLimitSnapshot | None = None

    # ── Global rate-limit state ─────────────────────────────────────────

    def rate_limit_reset(self, now: datetime | None = None) -> datetime | None:
        """Reset time of the active global rate limit; clears itself once passed."""
        now = now or self._clock()
        with self._lock:
            if self._rate_limit_reset is None or self._rate_limit_reset <= now:
                self._rate_limit_reset = None
                self._rate_limit_error = None
                return None
            return self._rate_limit_reset

    def rate_limit_message(self, now: datetime | None = None) -> str | None:
        if self.rate_limit_reset(now) is None:
            return None
        with self._lock:
            return self._rate_limit_error

    def _record_rate_limit(self, until: datetime) -> str:
        message = rate_limit_message(until)
        with self._lock:
            self._rate_limit_reset = until
            self._rate_limit_error = message
        return message

    # ── Conditional GET ─────────────────────────────────────────────────

    async def get(
        self,
        url: str,
        token: str,
        allowed_statuses: Collection[int] = DEFAULT_ALLOWED_STATUSES,
        headers: Mapping[str, str] | None = None,
        use_etag: bool = True,
    ) -> FetchResponse:
        """Issue an authorised GET for *url* and classify the response."""
        started = time.perf_counter()
        now = self._clock()
        await self._diag.message(f"GET {url}")

        until = self.rate_limit_reset(now)
        if until is not None:
            await self._diag.message(f"Blocked by local rate limit until {format_reset(until)}")
            raise RateLimitedError(until, self.rate_limit_message(now) or rate_limit_message(until))

        cooldown = self._backoff.cooldown(url, now)
        if cooldown is not None:
            await self._diag.message(f"Cooldown active for {url} until {format_reset(cooldown)}")
            raise ServiceUnavailableError(
                cooldown, f"Cooling down until {format_reset(cooldown)}."
            )

        request_headers = {
            # OAuth access tokens require "Bearer"; "token" only works for classic PATs.
            "Authorization": f"Bearer {token}",
            "Accept": GITHUB_ACCEPT,
            "User-Agent": self._user_agent,
        }
        if headers:
            request_headers.update(headers)
        cached = self._cache.cached(url) if use_etag else None
        if cached is not None:
            request_headers["If-None-Match"] = cached.validator

        try:
            response = await self._client.get(url, headers=request_headers)
        except httpx.TimeoutException as exc:
            await self._log_response("GET", url, None, started)
            raise NetworkError(f"Request to {url} timed out: {exc}", timed_out=True) from exc
        except httpx.HTTPError as exc:
            await self._log_response("GET", url, None, started)
            raise NetworkError(f"Network error fetching {url}: {exc}") from exc

        await self._log_response("GET", url, response, started)
        return await self._classify(url, response, cached, allowed_statuses)

    async def _classify(
        self,
        url: str,
        response: httpx.Response,
        cached: CacheEntry | None,
        allowed_statuses: Collection[int],
    ) -> FetchResponse:
        status = response.status_code
        name = _last_path_component(url)
        now = self._clock()

        if status == HTTP_NOT_MODIFIED:
            if cached is None:
                await self._diag.message(f"304 for {name} without a cached body")
                raise BadStatusError(status, "Not modified, but no cached body is available.")
            await self._diag.message(f"304 Not Modified for {name}; using cached")
            return FetchResponse(
                status, response.headers, cached.body, from_cache=True, links=response.links
            )

        if status == HTTP_ACCEPTED:
            until = retry_after(response.headers, now) or now + DEFAULT_ACCEPTED_BACKOFF
            self._backoff.set_cooldown(url, until)
            await self._diag.message(f"202 for {name}; cooldown until {format_reset(until)}")
            raise ServiceUnavailableError(
                until,
                "GitHub is generating repository stats; some numbers may be stale. "
                f"Will retry after {format_reset(until)}.",
            )

        if status in (HTTP_FORBIDDEN, HTTP_TOO_MANY_REQUESTS):
            remaining = _int_header(response.headers, "x-ratelimit-remaining")
            # Quota left and no Retry-After: permissions problem, not throttling.
            if (
                status == HTTP_FORBIDDEN
                and remaining is not None
                and remaining > 0
                and "retry-after" not in response.headers
            ):
                await self._diag.message(
                    f"403 with remaining={remaining} on {name}; treating as bad status"
                )
                raise BadStatusError(status)

            until = (
                rate_limit_reset(response.headers)
                or retry_after(response.headers, now)
                or now + DEFAULT_RATE_LIMIT_BACKOFF
            )
            message = self._record_rate_limit(until)
            self._backoff.set_cooldown(url, until)
            await self._diag.message(f"Rate limited on {name}; resets {format_reset(until)}")
            raise RateLimitedError(until, message)

        if status not in allowed_statuses:
            await self._diag.message(f"Unexpected status {status} for {name}")
            raise BadStatusError(status)

        body = response.content
        if response.is_success:
            etag = response.headers.get("etag")
            if etag:
                self._cache.save(url, etag, body)
                await self._diag.message(f"Cached ETag for {name}")
        self._detect_rate_limit(response.headers, now)
        return FetchResponse(status, response.headers, body, links=response.links)

    def _detect_rate_limit(self, headers: httpx.Headers, now: datetime) -> None:
        remaining = _int_header(headers, "x-ratelimit-remaining")
        if remaining is None:
            return
        if remaining <= 0:
            reset = rate_limit_reset(headers)
            if reset is not None:
                self._record_rate_limit(reset)
            return
        with self._lock:
            if self._rate_limit_reset is not None and self._rate_limit_reset <= now:
                self._rate_limit_reset = None
                self._rate_limit_error = None

    # ── Diagnostics ─────────────────────────────────────────────────────

    async def _log_response(
        self,
        method: str,
        url: str,
        response: httpx.Response | None,
        started: float,
    ) -> None:
        """One line per call; *response* is ``None`` when the transport failed."""
        duration_ms = round((time.perf_counter() - started) * 1000)
        snapshot = None if response is None else parse_rate_limit(response.headers, self._clock())
        if snapshot is not None:
            with self._lock:
                self._latest_rest_rate_limit = snapshot

        def show(value: object) -> str:
            return "?" if value is None else str(value)

        reset_text = format_reset(snapshot.reset) if snapshot and snapshot.reset else "n/a"
        resource = (snapshot.resource if snapshot else None) or "rest"
        status = "error" if response is None else response.status_code
        line = (
            f"HTTP {method} {urlsplit(url).path} status={status} "
            f"res={resource} lim={show(snapshot and snapshot.limit)} "
            f"rem={show(snapshot and snapshot.remaining)} used={show(snapshot and snapshot.used)} "
            f"reset={reset_text} dur={duration_ms}ms"
        )
        logger.debug(line)
        await self._diag.message(line)

    def latest_rate_limit(self) -> RateLimitSnapshot | None:
        with self._lock:
            return self._latest_rest_rate_limit

    def diagnostics_snapshot(self) -> RequestRunnerDiagnostics:
        reset = self.rate_limit_reset()
        with self._lock:
            return RequestRunnerDiagnostics(
                rate_limit_reset=reset,
                last_rate_limit_error=self._rate_limit_error,
                etag_entries=self._cache.count(),
                backoff_entries=self._backoff.count(),
                rest_rate_limit=self._latest_rest_rate_limit,
            )

    def clear(self) -> None:
        """Drop cached bodies, cooldowns and the global rate-limit flag."""
        self._cache.clear()
        self._backoff.clear()
        with self._lock:
            self._rate_limit_reset = None
            self._rate_limit_error = None


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _last_path_component(url: str) -> str:
    path = urlsplit(url).path.rstrip("/")
    return path.rsplit("/", 1)[-1] or path
