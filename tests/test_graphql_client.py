"""GraphQL enrichment channel."""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest
from conftest import FakeGitHub, FrozenClock, RecordingSink, static_token

from repo_pulse.domain.exceptions import BadStatusError, GitHubAPIError, ResponseDecodingError
from repo_pulse.infrastructure.graphql_client import GraphQLClient, graphql_endpoint


@pytest.fixture()
def graphql(http_client: httpx.AsyncClient, sink: RecordingSink, clock: FrozenClock) -> GraphQLClient:
    return GraphQLClient(http_client, static_token, diagnostics=sink, clock=clock)


def test_endpoint_resolution() -> None:
    assert graphql_endpoint("https://api.github.com") == "https://api.github.com/graphql"
    assert graphql_endpoint("https://ghe.example.com/api/v3") == "https://ghe.example.com/api/graphql"


def test_set_endpoint(graphql: GraphQLClient) -> None:
    graphql.set_endpoint("https://ghe.example.com/api/v3")
    assert graphql.endpoint == "https://ghe.example.com/api/graphql"


@pytest.mark.asyncio
async def test_contribution_heatmap(graphql: GraphQLClient, fake: FakeGitHub) -> None:
    body = {
        "data": {
            "user": {
                "contributionsCollection": {
                    "contributionCalendar": {
                        "weeks": [
                            {
                                "contributionDays": [
                                    {"date": "2026-02-01", "contributionCount": 0},
                                    {"date": "2026-02-02", "contributionCount": 5},
                                ]
                            }
                        ]
                    }
                }
            }
        }
    }
    fake.route(
        "/graphql",
        body=body,
        method="POST",
        headers={"X-RateLimit-Limit": "5000", "X-RateLimit-Remaining": "4990", "X-RateLimit-Resource": "graphql"},
    )

    cells = await graphql.user_contribution_heatmap("octo")

    assert [(c.date, c.count) for c in cells] == [(date(2026, 2, 1), 0), (date(2026, 2, 2), 5)]
    sent = json.loads(fake.requests[0].content)
    assert sent["variables"] == {"login": "octo"}
    assert fake.requests[0].headers["authorization"] == "Bearer test-token"
    snap = graphql.rate_limit_snapshot()
    assert snap is not None and snap.resource == "graphql"


@pytest.mark.asyncio
async def test_repo_snapshot(graphql: GraphQLClient, fake: FakeGitHub) -> None:
    body = {
        "data": {
            "repository": {
                "name": "demo",
                "releases": {
                    "nodes": [
                        {
                            "name": None,
                            "tagName": "v3.0",
                            "publishedAt": "2026-02-28T09:00:00Z",
                            "url": "https://github.com/octo/demo/releases/v3.0",
                        }
                    ]
                },
                "issues": {"totalCount": 9},
                "pullRequests": {"totalCount": 2},
            }
        }
    }
    fake.route("/graphql", body=body, method="POST")

    snapshot = await graphql.fetch_repo_snapshot("octo", "demo")

    assert snapshot.open_issues == 9
    assert snapshot.open_pulls == 2
    assert snapshot.release is not None
    assert snapshot.release.name == "v3.0"


@pytest.mark.asyncio
async def test_graphql_errors_raise(graphql: GraphQLClient, fake: FakeGitHub) -> None:
    fake.route("/graphql", body={"errors": [{"message": "Bad credentials"}]}, method="POST")
    with pytest.raises(GitHubAPIError, match="Bad credentials"):
        await graphql.user_contribution_heatmap("octo")


@pytest.mark.asyncio
async def test_non_200_raises_bad_status(graphql: GraphQLClient, fake: FakeGitHub) -> None:
    fake.route("/graphql", status=502, method="POST")
    with pytest.raises(BadStatusError) as info:
        await graphql.fetch_repo_snapshot("octo", "demo")
    assert info.value.code == 502


@pytest.mark.asyncio
async def test_missing_repository(graphql: GraphQLClient, fake: FakeGitHub) -> None:
    fake.route("/graphql", body={"data": {"repository": None}}, method="POST")
    with pytest.raises(ResponseDecodingError):
        await graphql.fetch_repo_snapshot("octo", "nope")


@pytest.mark.asyncio
async def test_malformed_repository_is_decoding_error(
    graphql: GraphQLClient, fake: FakeGitHub
) -> None:
    fake.route("/graphql", body={"data": {"repository": {"name": "demo"}}}, method="POST")
    with pytest.raises(ResponseDecodingError) as info:
        await graphql.fetch_repo_snapshot("octo", "demo")
    assert info.value.field == "repository.releases"


@pytest.mark.asyncio
async def test_malformed_contributions_is_decoding_error(
    graphql: GraphQLClient, fake: FakeGitHub
) -> None:
    body = {"data": {"user": {"contributionsCollection": {"contributionCalendar": {"weeks": "x"}}}}}
    fake.route("/graphql", body=body, method="POST")
    with pytest.raises(ResponseDecodingError):
        await graphql.user_contribution_heatmap("octo")
