"""Port: diagnostics sink — receives one line per outbound call."""

from __future__ import annotations

from typing import Protocol


class DiagnosticsSink(Protocol):
    """Abstract contract for the diagnostics log.

    Writing to the sink is a side effect only; callers never branch on it.
    """

    async def message(self, line: str) -> None:
        """Record a single diagnostics line."""
        ...
