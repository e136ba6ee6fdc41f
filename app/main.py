from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.errors import register_exception_handlers
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.progress import router as progress_router
from app.core.config import SETTINGS
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis, redis_pool
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.repos.progress_repo import InMemoryProgressRepo
from app.services.cache import build_cache_service
from app.services.progress_service import KeyedLocks, WriteCounter
from app.services.rate_limiter import build_rate_limiter

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order (LIFO), Redis before the database.
    async with lifespan_db():
        async with lifespan_redis():
            yield


def init_state(app: FastAPI) -> None:
    """(Re)build the long-lived collaborators handed to request handlers.

    The in-memory gateway is only used when DATABASE_URL is unset.
    """
    app.state.progress_repo = InMemoryProgressRepo()
    app.state.cache = build_cache_service(redis_pool)
    app.state.rate_limiter = build_rate_limiter(redis_pool)
    app.state.progress_locks = KeyedLocks()
    app.state.progress_writes = WriteCounter()


app = FastAPI(
    title="watch-progress",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)
init_state(app)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → CORS → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(progress_router)

logger.info(
    "watch-progress started  env=%s log_level=%s port=%d store=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "postgres" if SETTINGS.database_url else "memory",
    "on" if SETTINGS.is_dev else "off",
)
