"""Exception classification and display text."""

from __future__ import annotations

import httpx

from repo_pulse.domain.exceptions import (
    AuthenticationRequiredError,
    BadStatusError,
    InvalidHostError,
    NetworkError,
    ResponseDecodingError,
    is_authentication_failure,
    user_facing_message,
)


def test_authentication_failures() -> None:
    assert is_authentication_failure(AuthenticationRequiredError())
    assert is_authentication_failure(BadStatusError(401))
    assert is_authentication_failure(BadStatusError(400, "Authentication refresh failed"))
    assert not is_authentication_failure(BadStatusError(500))
    assert not is_authentication_failure(ValueError("x"))


def test_decoding_message_names_field() -> None:
    exc = ResponseDecodingError("boom", field="owner")
    assert user_facing_message(exc) == (
        "Response missing expected field 'owner'. Try again or update repo-pulse."
    )


def test_timeouts() -> None:
    assert user_facing_message(NetworkError("slow", timed_out=True)) == "Request timed out."
    assert user_facing_message(httpx.ReadTimeout("slow")) == "Request timed out."


def test_invalid_host_message() -> None:
    assert "HTTPS" in user_facing_message(InvalidHostError("http://ghe.local"))


def test_fallback_to_str() -> None:
    assert user_facing_message(RuntimeError("weird")) == "weird"
