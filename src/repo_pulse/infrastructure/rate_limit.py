"""Rate-limit metadata parsing.

GitHub reports quota state through ``X-RateLimit-*`` headers (reset as an
epoch timestamp).  Some proxies and Enterprise front-ends only forward the
IETF-style ``RateLimit-*`` headers, where the reset is a delta in seconds;
those are read only when no ``X-RateLimit-*`` header is present.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

import httpx

from repo_pulse.domain.entities import RateLimitSnapshot

_PRIMARY_PREFIX = "x-ratelimit-"
_FALLBACK_PREFIX = "ratelimit-"


def _as_headers(headers: Mapping[str, str] | httpx.Headers) -> httpx.Headers:
    if isinstance(headers, httpx.Headers):
        return headers
    return httpx.Headers(dict(headers))


def _int_or_none(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        try:
            return int(float(value.strip()))
        except ValueError:
            return None


def _epoch_to_datetime(value: int | None) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_rate_limit(
    headers: Mapping[str, str] | httpx.Headers,
    now: datetime | None = None,
) -> RateLimitSnapshot | None:
    """Build a snapshot from response headers, or ``None`` when none are present.

    Never raises; unparsable fields are left as ``None``.
    """
    h = _as_headers(headers)
    names = ("limit", "remaining", "used", "reset")

    if any(f"{_PRIMARY_PREFIX}{n}" in h for n in names):
        reset = _epoch_to_datetime(_int_or_none(h.get("x-ratelimit-reset")))
        prefix = _PRIMARY_PREFIX
    elif any(f"{_FALLBACK_PREFIX}{n}" in h for n in names):
        delta = _int_or_none(h.get("ratelimit-reset"))
        now = now or datetime.now(timezone.utc)
        reset = now + timedelta(seconds=delta) if delta is not None else None
        prefix = _FALLBACK_PREFIX
    else:
        return None

    snapshot = RateLimitSnapshot(
        limit=_int_or_none(h.get(f"{prefix}limit")),
        remaining=_int_or_none(h.get(f"{prefix}remaining")),
        used=_int_or_none(h.get(f"{prefix}used")),
        reset=reset,
        resource=h.get(f"{prefix}resource"),
    )
    if snapshot == RateLimitSnapshot():
        return None
    return snapshot


def rate_limit_reset(headers: Mapping[str, str] | httpx.Headers) -> datetime | None:
    """Return ``X-RateLimit-Reset`` as an aware datetime."""
    return _epoch_to_datetime(_int_or_none(_as_headers(headers).get("x-ratelimit-reset")))


def retry_after(
    headers: Mapping[str, str] | httpx.Headers,
    now: datetime | None = None,
) -> datetime | None:
    """Return the absolute deadline implied by ``Retry-After`` (seconds or HTTP date)."""
    value = _as_headers(headers).get("retry-after")
    if not value:
        return None
    now = now or datetime.now(timezone.utc)

    seconds = _int_or_none(value)
    if seconds is not None:
        return now + timedelta(seconds=max(seconds, 0))

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_reset(when: datetime) -> str:
    """Render a reset time the way every user-facing message shows it."""
    return when.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
