"""Default diagnostics sink — forwards diagnostics lines to ``logging``."""

from __future__ import annotations

import logging

logger = logging.getLogger("repo_pulse.diagnostics")


class LoggingDiagnosticsSink:
    """Concrete ``DiagnosticsSink`` writing each line at INFO level.

    Disabled sinks drop lines silently.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    async def message(self, line: str) -> None:
        if self.enabled:
            logger.info(line)
