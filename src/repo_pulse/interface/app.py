"""FastAPI application factory — one shared GitHub client per process."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from repo_pulse.interface.dependencies import get_github_client, shutdown, startup
from repo_pulse.interface.error_handlers import register_error_handlers
from repo_pulse.interface.routes import router

logger = logging.getLogger(__name__)

_DESCRIPTION = (
    "Aggregates CI status, issue and PR counts, releases, activity, "
    "traffic and commit heatmaps for GitHub repositories, staying "
    "inside GitHub's rate limits through conditional requests."
)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the GitHub client for the app's lifetime and close it on exit."""
    await startup()
    github = get_github_client()
    logger.info("repo-pulse serving GitHub API host %s", github.api_host)
    try:
        yield
    finally:
        await shutdown()
        logger.info("repo-pulse closed GitHub client for %s", github.api_host)


def create_app() -> FastAPI:
    """Build and wire the FastAPI application."""
    app = FastAPI(
        title="repo-pulse",
        version="1.0.0",
        description=_DESCRIPTION,
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.include_router(router)

    # Liveness only; GitHub reachability shows up under /rate-limit and /diagnostics.
    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
