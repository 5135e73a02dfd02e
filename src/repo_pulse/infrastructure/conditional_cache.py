"""ETag cache and per-endpoint cooldown tracker.

Both stores are shared by every concurrent sub-fetch of every repository,
so each guards its dict with a lock.  Neither expires entries on a TTL:
cache entries are superseded by the next successful fetch and cooldowns
simply stop applying once their deadline has passed.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from repo_pulse.domain.entities import CacheEntry, CooldownEntry


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConditionalCache:
    """Endpoint → (validator, body) store used for ``If-None-Match`` revalidation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    def cached(self, endpoint: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(endpoint)

    def save(self, endpoint: str, validator: str | None, body: bytes) -> None:
        """Store *body* under *endpoint*; responses without a validator are not cached."""
        if not validator:
            return
        entry = CacheEntry(
            endpoint=endpoint,
            validator=validator,
            body=body,
            stored_at=_utcnow(),
        )
        with self._lock:
            self._entries[endpoint] = entry

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class BackoffTracker:
    """Endpoint → cooldown deadline; requests before the deadline never leave the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cooldowns: dict[str, CooldownEntry] = {}

    def cooldown(self, endpoint: str, now: datetime | None = None) -> datetime | None:
        """Return the active deadline for *endpoint*, dropping it once it has passed."""
        now = now or _utcnow()
        with self._lock:
            entry = self._cooldowns.get(endpoint)
            if entry is None:
                return None
            if entry.until <= now:
                del self._cooldowns[endpoint]
                return None
            return entry.until

    def set_cooldown(self, endpoint: str, until: datetime) -> None:
        with self._lock:
            self._cooldowns[endpoint] = CooldownEntry(endpoint=endpoint, until=until)

    def count(self) -> int:
        with self._lock:
            return len(self._cooldowns)

    def clear(self) -> None:
        with self._lock:
            self._cooldowns.clear()
