"""Health and readiness endpoints.

  /health (liveness): is the process up?  Always 200; "status" reports
    "degraded" when a configured backing service is unreachable.
  /ready (readiness): can this instance take traffic?  503 when a
    configured database is unreachable: without the progress store every
    write would fail.  Redis is optional (in-memory fallbacks exist), so it
    never fails readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.db.engine import ping_database
from app.db.redis import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await ping_database(),
        "redis": await ping_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await ping_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
