"""FastAPI dependencies that wire the progress service per request.

Long-lived collaborators (in-memory gateway, cache, per-key locks, write
counter, rate limiter) live on ``app.state`` and are built once by
``app.main``; the PostgreSQL gateway is built per request
around a fresh session.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request

from app.core.config import SETTINGS
from app.db import engine as db_engine
from app.repos.pg_progress_repo import PgProgressRepo
from app.repos.progress_repo import ProgressRepo
from app.services.progress_service import ProgressService


async def get_progress_repo(request: Request) -> AsyncGenerator[ProgressRepo, None]:
    if db_engine.async_session_factory is None:
        yield request.app.state.progress_repo
        return

    async with db_engine.async_session_factory() as session:
        yield PgProgressRepo(session)


def get_progress_service(
    request: Request,
    repo: Annotated[ProgressRepo, Depends(get_progress_repo)],
) -> ProgressService:
    state = request.app.state
    return ProgressService(
        repo,
        state.cache,
        state.progress_locks,
        state.progress_writes,
        threshold=SETTINGS.completion_threshold,
        cache_ttl=SETTINGS.progress_cache_ttl,
    )
