"""Domain exception hierarchy.

Infrastructure raises these; the repository aggregator folds them into a
``Repository.error`` string and the interface layer maps them to HTTP
status codes.
"""

from __future__ import annotations

from datetime import datetime

import httpx


class RepoPulseError(Exception):
    """Base exception for the entire application."""

    @property
    def display_message(self) -> str:
        return str(self)


# ── GitHub API errors ───────────────────────────────────────────────────────


class GitHubAPIError(RepoPulseError):
    """Any classified failure coming back from (or short-circuited before) GitHub."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def rate_limited_until(self) -> datetime | None:
        return None

    @property
    def retry_after(self) -> datetime | None:
        return None


class InvalidHostError(GitHubAPIError):
    """The API host is malformed or not trusted (must be https with a hostname)."""

    def __init__(self, host: str = "") -> None:
        super().__init__("GitHub Enterprise host must use HTTPS and trusted certs.")
        self.host = host


class RateLimitedError(GitHubAPIError):
    """The primary rate budget is exhausted until ``until``."""

    def __init__(self, until: datetime | None, message: str) -> None:
        super().__init__(message)
        self.until = until

    @property
    def rate_limited_until(self) -> datetime | None:
        return self.until


class ServiceUnavailableError(GitHubAPIError):
    """GitHub is computing the resource asynchronously, or the endpoint is cooling down."""

    def __init__(self, retry_after: datetime | None, message: str) -> None:
        super().__init__(message)
        self._retry_after = retry_after

    @property
    def retry_after(self) -> datetime | None:
        return self._retry_after


class BadStatusError(GitHubAPIError):
    """GitHub answered with a status code the caller did not allow."""

    def __init__(self, code: int, message: str | None = None) -> None:
        super().__init__(message or f"GitHub returned {code}.")
        self.code = code
        self.detail = message


# ── Processing errors ───────────────────────────────────────────────────────


class ResponseDecodingError(RepoPulseError):
    """A response body was missing a field or had an unexpected shape."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    @property
    def display_message(self) -> str:
        if self.field:
            return f"Response missing expected field '{self.field}'. Try again or update repo-pulse."
        return "Response could not be decoded. Try again or update repo-pulse."


class InvalidRepositoryNameError(RepoPulseError):
    """A repository reference was not of the form ``owner/name``."""

    def __init__(self, full_name: str) -> None:
        super().__init__(f"Expected 'owner/name', got {full_name!r}.")
        self.full_name = full_name


class AuthenticationRequiredError(RepoPulseError):
    """No usable bearer token is available; the caller should re-authenticate."""

    def __init__(self, message: str = "Authentication required. Please sign in again.") -> None:
        super().__init__(message)


class NetworkError(RepoPulseError):
    """The request never produced an HTTP response (DNS, connect, timeout)."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out

    @property
    def display_message(self) -> str:
        if self.timed_out:
            return "Request timed out."
        return str(self)


# ── Classification helpers ──────────────────────────────────────────────────


def is_authentication_failure(exc: BaseException) -> bool:
    """Return ``True`` when *exc* means the token is invalid or expired."""
    if isinstance(exc, AuthenticationRequiredError):
        return True
    if isinstance(exc, BadStatusError):
        if exc.code == 401:
            return True
        return "authentication refresh failed" in (exc.detail or "").lower()
    return False


def user_facing_message(exc: BaseException) -> str:
    """Human-readable text for any exception surfaced on a repository."""
    if isinstance(exc, RepoPulseError):
        return exc.display_message
    if isinstance(exc, httpx.TimeoutException):
        return "Request timed out."
    if isinstance(exc, httpx.ConnectError):
        return "No internet connection."
    return str(exc) or type(exc).__name__
