"""Timing defaults and wire constants shared by the REST and GraphQL channels."""

from __future__ import annotations

from datetime import timedelta

# ── Backoff windows ─────────────────────────────────────────────────────────

# Used when a 403/429 carries neither X-RateLimit-Reset nor Retry-After.
DEFAULT_RATE_LIMIT_BACKOFF = timedelta(seconds=60)

# Used when a 202 (stats still being computed) carries no Retry-After.
DEFAULT_ACCEPTED_BACKOFF = timedelta(seconds=90)

# ── Detail store ────────────────────────────────────────────────────────────

DEFAULT_DETAIL_TTL = timedelta(hours=1)

# ── HTTP ────────────────────────────────────────────────────────────────────

DEFAULT_API_HOST = "https://api.github.com"
DEFAULT_USER_AGENT = "repo-pulse/1.0"
GITHUB_ACCEPT = "application/vnd.github+json"

HTTP_OK = 200
HTTP_ACCEPTED = 202
HTTP_NOT_MODIFIED = 304
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429

DEFAULT_ALLOWED_STATUSES = frozenset({HTTP_OK, HTTP_NOT_MODIFIED})

# GitHub maximum page size.
MAX_PAGE_SIZE = 100
