"""Port: bearer-token supplier — implemented outside the sync core."""

from __future__ import annotations

from typing import Protocol

from repo_pulse.domain.exceptions import AuthenticationRequiredError


class TokenProvider(Protocol):
    """Async callable returning a bearer token.

    Raises :class:`AuthenticationRequiredError` when no valid token exists.
    The core never refreshes or stores tokens itself.
    """

    async def __call__(self) -> str: ...


class StaticTokenProvider:
    """Token provider backed by a single configured token (e.g. ``GITHUB_TOKEN``)."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    async def __call__(self) -> str:
        if not self._token:
            raise AuthenticationRequiredError()
        return self._token
