"""Partial-failure policy for one repository aggregation.

Every sub-fetch failure is absorbed here instead of propagating.  A rate
limit always wins the advisory message (it tells the user when data will
come back); among other failures the first message is kept.
"""

from __future__ import annotations

from datetime import datetime

from repo_pulse.domain.exceptions import RateLimitedError, user_facing_message
from repo_pulse.infrastructure.rate_limit import format_reset


class RepoErrorAccumulator:
    """Folds sub-fetch errors into one ``(message, rate_limit)`` pair."""

    def __init__(self) -> None:
        self._message: str | None = None
        self._rate_limit: datetime | None = None

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def rate_limit(self) -> datetime | None:
        return self._rate_limit

    def absorb(self, error: BaseException) -> None:
        """Record *error*; never raises."""
        if isinstance(error, RateLimitedError):
            self._rate_limit = error.until
            if error.until is not None:
                self._message = f"Rate limited; resets at {format_reset(error.until)}."
            else:
                self._message = user_facing_message(error)
            return
        if self._message is None:
            self._message = user_facing_message(error)
