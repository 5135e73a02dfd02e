"""Shared fixtures: a frozen clock, a recording diagnostics sink and a fake GitHub."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

# Fixed instant so reset / cooldown arithmetic is exact.
FIXED_NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

API = "https://api.github.com"


class FrozenClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    async def message(self, line: str) -> None:
        self.lines.append(line)


Handler = Callable[[httpx.Request], httpx.Response]


class FakeGitHub:
    """Path-routed ``httpx.MockTransport`` handler that records every request.

    Unrouted paths answer 404.  Queries are ignored when matching.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        path: str,
        status: int = 200,
        body: Any = None,
        headers: dict[str, str] | None = None,
        method: str = "GET",
    ) -> None:
        content = b"" if body is None else json.dumps(body).encode()

        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, headers=headers or {}, content=content)

        self.routes[(method, path)] = respond

    def route_handler(self, path: str, handler: Handler, method: str = "GET") -> None:
        self.routes[(method, path)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self.routes.get((request.method, request.url.path))
        if respond is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return respond(request)

    def calls(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


async def static_token() -> str:
    return "test-token"


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def fake() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture()
def http_client(fake: FakeGitHub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))


def repo_payload(
    owner: str = "octo",
    name: str = "demo",
    open_issues_count: int = 0,
    **extra: Any,
) -> dict[str, Any]:
    payload = {
        "id": 42,
        "name": name,
        "full_name": f"{owner}/{name}",
        "owner": {"login": owner},
        "open_issues_count": open_issues_count,
        "stargazers_count": 7,
        "forks_count": 2,
        "fork": False,
        "archived": False,
        "pushed_at": "2026-03-01T10:00:00Z",
        "default_branch": "main",
    }
    payload.update(extra)
    return payload


def epoch(dt: datetime) -> str:
    return str(int(dt.timestamp()))


RUN_WEEK = 1767484800  # 2026-01-04T00:00:00Z


def route_healthy_repo(
    fake: FakeGitHub,
    owner: str = "octo",
    name: str = "demo",
    open_issues_count: int = 12,
    open_pulls: int = 5,
) -> None:
    """Route every endpoint the aggregator reads for *owner/name* with plausible payloads."""
    base = f"/repos/{owner}/{name}"
    fake.route(base, body=repo_payload(owner, name, open_issues_count=open_issues_count))
    fake.route(
        f"{base}/pulls",
        body=[{"id": 1}],
        headers={
            "Link": (
                f'<{API}{base}/pulls?state=open&per_page=1&page=2>; rel="next", '
                f'<{API}{base}/pulls?state=open&per_page=1&page={open_pulls}>; rel="last"'
            )
        },
    )
    fake.route(
        f"{base}/actions/runs",
        body={"total_count": 31, "workflow_runs": [{"status": "completed", "conclusion": "success"}]},
    )
    fake.route(
        f"{base}/events",
        body=[
            {
                "type": "PushEvent",
                "actor": {"login": "alice"},
                "payload": {},
                "created_at": "2026-03-02T11:00:00Z",
            },
            {
                "type": "IssueCommentEvent",
                "actor": {"login": "bob"},
                "payload": {
                    "action": "created",
                    "comment": {
                        "body": "Looks good to me",
                        "html_url": f"https://github.com/{owner}/{name}/issues/3#c1",
                    },
                    "issue": {"title": "Crash on start", "html_url": f"https://github.com/{owner}/{name}/issues/3"},
                },
                "created_at": "2026-03-02T10:00:00Z",
            },
        ],
    )
    fake.route(f"{base}/traffic/views", body={"count": 40, "uniques": 11})
    fake.route(f"{base}/traffic/clones", body={"count": 9, "uniques": 4})
    fake.route(
        f"{base}/stats/commit_activity",
        body=[{"total": 3, "week": RUN_WEEK, "days": [0, 1, 2, 0, 0, 0, 0]}],
    )
    fake.route(
        f"{base}/releases",
        body=[
            {
                "name": "v2 draft",
                "tag_name": "v2.0",
                "draft": True,
                "created_at": "2026-02-20T00:00:00Z",
                "html_url": f"https://github.com/{owner}/{name}/releases/v2.0",
            },
            {
                "name": "v1.1",
                "tag_name": "v1.1",
                "draft": False,
                "prerelease": True,
                "published_at": "2026-02-10T00:00:00Z",
                "html_url": f"https://github.com/{owner}/{name}/releases/v1.1",
            },
            {
                "name": None,
                "tag_name": "v1.0",
                "published_at": "2026-01-10T00:00:00Z",
                "html_url": f"https://github.com/{owner}/{name}/releases/v1.0",
            },
        ],
    )
