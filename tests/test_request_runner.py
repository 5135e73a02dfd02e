"""Conditional GET runner: revalidation, cooldowns and the global rate limit."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest
from conftest import API, FIXED_NOW, FakeGitHub, FrozenClock, RecordingSink, epoch

from repo_pulse.domain.exceptions import (
    BadStatusError,
    NetworkError,
    RateLimitedError,
    ServiceUnavailableError,
)
from repo_pulse.infrastructure.request_runner import GitHubRequestRunner

URL = f"{API}/repos/octo/demo"


@pytest.fixture()
def runner(
    http_client: httpx.AsyncClient, sink: RecordingSink, clock: FrozenClock
) -> GitHubRequestRunner:
    return GitHubRequestRunner(http_client, diagnostics=sink, clock=clock)


class TestRevalidation:
    @pytest.mark.asyncio
    async def test_not_modified_returns_cached_body(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            if request.headers.get("if-none-match") == '"v1"':
                return httpx.Response(304, headers={"ETag": '"v1"'})
            return httpx.Response(200, headers={"ETag": '"v1"'}, content=b'{"id": 1}')

        fake.route_handler("/repos/octo/demo", respond)

        first = await runner.get(URL, "tok")
        second = await runner.get(URL, "tok")
        third = await runner.get(URL, "tok")

        assert first.body == second.body == third.body == b'{"id": 1}'
        assert not first.from_cache
        assert second.from_cache and third.from_cache
        assert fake.requests[1].headers["if-none-match"] == '"v1"'

    @pytest.mark.asyncio
    async def test_not_modified_without_cache_is_bad_status(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=304)
        with pytest.raises(BadStatusError) as info:
            await runner.get(URL, "tok")
        assert info.value.code == 304

    @pytest.mark.asyncio
    async def test_etag_disabled(self, runner: GitHubRequestRunner, fake: FakeGitHub) -> None:
        fake.route("/repos/octo/demo", body={"id": 1}, headers={"ETag": '"v1"'})
        await runner.get(URL, "tok")
        await runner.get(URL, "tok", use_etag=False)
        assert "if-none-match" not in fake.requests[1].headers

    @pytest.mark.asyncio
    async def test_request_headers(self, runner: GitHubRequestRunner, fake: FakeGitHub) -> None:
        fake.route("/repos/octo/demo", body={"id": 1})
        await runner.get(URL, "tok")
        sent = fake.requests[0].headers
        assert sent["authorization"] == "Bearer tok"
        assert sent["accept"] == "application/vnd.github+json"
        assert sent["user-agent"].startswith("repo-pulse/")


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_forbidden_uses_reset_header_exactly(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        reset = FIXED_NOW + timedelta(minutes=20)
        fake.route(
            "/repos/octo/demo",
            status=403,
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": epoch(reset)},
        )
        with pytest.raises(RateLimitedError) as info:
            await runner.get(URL, "tok")
        assert info.value.until == reset
        assert runner.rate_limit_reset() == reset
        assert "2026-03-02 12:20:00 UTC" in runner.rate_limit_message()

    @pytest.mark.asyncio
    async def test_too_many_requests_defaults_to_sixty_seconds(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=429)
        with pytest.raises(RateLimitedError) as info:
            await runner.get(URL, "tok")
        assert info.value.until == FIXED_NOW + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_too_many_requests_honours_retry_after(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=429, headers={"Retry-After": "30"})
        with pytest.raises(RateLimitedError) as info:
            await runner.get(URL, "tok")
        assert info.value.until == FIXED_NOW + timedelta(seconds=30)

    @pytest.mark.asyncio
    async def test_active_limit_fails_fast_without_network(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=429)
        fake.route("/repos/octo/other", body={"id": 2})
        with pytest.raises(RateLimitedError):
            await runner.get(URL, "tok")
        with pytest.raises(RateLimitedError):
            await runner.get(f"{API}/repos/octo/other", "tok")
        assert len(fake.requests) == 1

    @pytest.mark.asyncio
    async def test_limit_clears_after_reset(
        self, runner: GitHubRequestRunner, fake: FakeGitHub, clock: FrozenClock
    ) -> None:
        fake.route("/repos/octo/demo", status=429)
        with pytest.raises(RateLimitedError):
            await runner.get(URL, "tok")
        clock.advance(61)
        assert runner.rate_limit_reset() is None
        assert runner.rate_limit_message() is None

    @pytest.mark.asyncio
    async def test_forbidden_with_quota_left_is_permission_problem(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=403, headers={"X-RateLimit-Remaining": "4000"})
        with pytest.raises(BadStatusError) as info:
            await runner.get(URL, "tok")
        assert info.value.code == 403
        assert runner.rate_limit_reset() is None

    @pytest.mark.asyncio
    async def test_exhausted_budget_on_success_sets_limit(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        reset = FIXED_NOW + timedelta(minutes=5)
        fake.route(
            "/repos/octo/demo",
            body={"id": 1},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": epoch(reset)},
        )
        await runner.get(URL, "tok")
        assert runner.rate_limit_reset() == reset


class TestCooldowns:
    @pytest.mark.asyncio
    async def test_accepted_sets_ninety_second_cooldown(
        self, runner: GitHubRequestRunner, fake: FakeGitHub, clock: FrozenClock
    ) -> None:
        fake.route("/repos/octo/demo", status=202)
        with pytest.raises(ServiceUnavailableError) as info:
            await runner.get(URL, "tok")
        assert info.value.retry_after == FIXED_NOW + timedelta(seconds=90)

        with pytest.raises(ServiceUnavailableError):
            await runner.get(URL, "tok")
        assert len(fake.requests) == 1

        clock.advance(91)
        fake.route("/repos/octo/demo", body={"id": 1})
        resp = await runner.get(URL, "tok")
        assert resp.status_code == 200
        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_accepted_honours_retry_after(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=202, headers={"Retry-After": "10"})
        with pytest.raises(ServiceUnavailableError) as info:
            await runner.get(URL, "tok")
        assert info.value.retry_after == FIXED_NOW + timedelta(seconds=10)


class TestFailures:
    @pytest.mark.asyncio
    async def test_disallowed_status(self, runner: GitHubRequestRunner, fake: FakeGitHub) -> None:
        fake.route("/repos/octo/demo", status=500)
        with pytest.raises(BadStatusError) as info:
            await runner.get(URL, "tok")
        assert info.value.code == 500

    @pytest.mark.asyncio
    async def test_extra_allowed_status(self, runner: GitHubRequestRunner, fake: FakeGitHub) -> None:
        resp = await runner.get(URL, "tok", allowed_statuses={200, 304, 404})
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, sink: RecordingSink, clock: FrozenClock) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(boom))
        runner = GitHubRequestRunner(client, diagnostics=sink, clock=clock)
        with pytest.raises(NetworkError):
            await runner.get(URL, "tok")


class TestDiagnostics:
    @pytest.mark.asyncio
    async def test_one_summary_line_per_call(
        self, runner: GitHubRequestRunner, fake: FakeGitHub, sink: RecordingSink
    ) -> None:
        fake.route(
            "/repos/octo/demo",
            body={"id": 1},
            headers={"X-RateLimit-Limit": "5000", "X-RateLimit-Remaining": "4999", "ETag": '"a"'},
        )
        await runner.get(URL, "tok")

        summary = [line for line in sink.lines if line.startswith("HTTP GET")]
        assert len(summary) == 1
        assert "/repos/octo/demo status=200" in summary[0]
        assert "lim=5000 rem=4999" in summary[0]

        snap = runner.diagnostics_snapshot()
        assert snap.etag_entries == 1
        assert snap.rest_rate_limit.remaining == 4999

    @pytest.mark.asyncio
    async def test_transport_failure_still_writes_summary_line(
        self, sink: RecordingSink, clock: FrozenClock
    ) -> None:
        def timeout(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(timeout))
        runner = GitHubRequestRunner(client, diagnostics=sink, clock=clock)
        with pytest.raises(NetworkError) as excinfo:
            await runner.get(URL, "tok")

        assert excinfo.value.timed_out
        summary = [line for line in sink.lines if line.startswith("HTTP GET")]
        assert len(summary) == 1
        assert "/repos/octo/demo status=error" in summary[0]
        assert "dur=" in summary[0]

    @pytest.mark.asyncio
    async def test_clear_resets_everything(
        self, runner: GitHubRequestRunner, fake: FakeGitHub
    ) -> None:
        fake.route("/repos/octo/demo", status=429)
        with pytest.raises(RateLimitedError):
            await runner.get(URL, "tok")
        runner.clear()
        snap = runner.diagnostics_snapshot()
        assert snap.rate_limit_reset is None
        assert snap.backoff_entries == 0
