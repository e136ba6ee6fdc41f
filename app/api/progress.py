"""Video progress endpoints.

  POST   /progress                 record one observation
  POST   /progress/bulk            record many, each succeeding or failing alone
  GET    /progress/{video_id}      full record (zero state when none exists)
  GET    /progress                 all records for a user
  GET    /progress/stats/summary   aggregate stats (one user or everyone)
  DELETE /progress/{video_id}      administrative removal

Bodies and responses use camelCase keys; percentages and totals are
rounded to 2 decimals in responses only.
"""

from __future__ import annotations

import datetime
import logging
import math
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    ValidationError,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from app.api.dependencies import get_progress_service
from app.api.ratelimit import require_rate_limit
from app.models.progress import ObservationError, ProgressStats, VideoProgress
from app.repos.progress_repo import StorageError
from app.services.intervals import Interval
from app.services.progress_service import ProgressService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/progress", tags=["progress"])

ServiceDep = Annotated[ProgressService, Depends(get_progress_service)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _coerce_interval(value: Any) -> Interval | None:
    """Malformed intervals are treated as absent, never as a 400."""
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
        return None
    start, end = float(value[0]), float(value[1])
    if not (math.isfinite(start) and math.isfinite(end)):
        return None
    return (start, end)


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must be a non-empty string")
    return value


UserIdQuery = Annotated[str, Query(alias="userId"), AfterValidator(_non_blank)]


class ObservationIn(_CamelModel):
    video_id: str
    current_time: float = Field(ge=0, allow_inf_nan=False)
    duration: float = Field(gt=0, allow_inf_nan=False)
    interval: Interval | None = None

    @field_validator("video_id")
    @classmethod
    def _video_id_non_blank(cls, v: str) -> str:
        return _non_blank(v)

    @field_validator("interval", mode="before")
    @classmethod
    def _interval_or_none(cls, v: Any) -> Interval | None:
        if v is None:
            return None
        coerced = _coerce_interval(v)
        if coerced is None:
            logger.info("Ignoring malformed interval=%r", v)
        return coerced


class ProgressUpdateIn(ObservationIn):
    user_id: str

    @field_validator("user_id")
    @classmethod
    def _user_id_non_blank(cls, v: str) -> str:
        return _non_blank(v)


class BulkUpdateItemIn(ObservationIn):
    user_id: str | None = None


class BulkUpdateIn(_CamelModel):
    user_id: str | None = None
    updates: list[Any]


class ObservationOut(_CamelModel):
    percentage: float
    last_position: float
    is_completed: bool
    watched_time: float
    updated_at: datetime.datetime | None = None


class ProgressOut(_CamelModel):
    last_position: float = 0
    percentage: float = 0
    watched_intervals: list[Interval] = []
    is_completed: bool = False
    watched_time: float = 0
    duration: float = 0
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None


class ProgressListItemOut(_CamelModel):
    video_id: str
    last_position: float
    percentage: float
    is_completed: bool
    duration: float
    watched_time: float
    updated_at: datetime.datetime | None = None


class ProgressListOut(BaseModel):
    progress: list[ProgressListItemOut]


class StatsOut(_CamelModel):
    total_videos: int
    total_watch_time: float
    average_completion: float
    completed_videos: int


class StatsEnvelopeOut(BaseModel):
    stats: StatsOut


class BulkResultOut(_CamelModel):
    video_id: str | None
    success: bool
    progress: ProgressOut | None = None
    error: str | None = None

    @model_serializer(mode="wrap")
    def _progress_or_error(
        self, handler: SerializerFunctionWrapHandler
    ) -> dict[str, Any]:
        data = handler(self)
        data.pop("error" if self.success else "progress", None)
        return data


class BulkOut(BaseModel):
    results: list[BulkResultOut]


def _round(value: float) -> float:
    return round(value, 2)


def _observation_out(p: VideoProgress) -> ObservationOut:
    summary = p.to_summary()
    return ObservationOut(
        percentage=_round(summary.percentage),
        last_position=summary.last_position,
        is_completed=summary.is_completed,
        watched_time=summary.watched_time,
        updated_at=summary.updated_at,
    )


def _progress_out(p: VideoProgress) -> ProgressOut:
    return ProgressOut(
        last_position=p.last_position,
        percentage=_round(p.percentage),
        watched_intervals=list(p.watched_intervals),
        is_completed=p.is_completed,
        watched_time=p.watched_time,
        duration=p.duration,
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


def _stats_out(stats: ProgressStats) -> StatsOut:
    return StatsOut(
        total_videos=stats.total_videos,
        total_watch_time=_round(stats.total_watch_time),
        average_completion=_round(stats.average_completion),
        completed_videos=stats.completed_videos,
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ObservationOut,
    dependencies=[Depends(require_rate_limit())],
)
async def record_progress(body: ProgressUpdateIn, service: ServiceDep) -> ObservationOut:
    progress = await service.record_observation(
        body.user_id, body.video_id, body.current_time, body.duration, body.interval
    )
    return _observation_out(progress)


@router.post(
    "/bulk",
    response_model=BulkOut,
    dependencies=[Depends(require_rate_limit())],
)
async def record_progress_bulk(body: BulkUpdateIn, service: ServiceDep) -> BulkOut:
    results: list[BulkResultOut] = []
    for raw in body.updates:
        if not isinstance(raw, dict):
            results.append(
                BulkResultOut(
                    video_id=None, success=False, error="Invalid or missing update"
                )
            )
            continue

        video_id = raw.get("videoId") if isinstance(raw.get("videoId"), str) else None
        try:
            item = BulkUpdateItemIn.model_validate(raw)
        except ValidationError as e:
            field = next(
                (str(err["loc"][-1]) for err in e.errors() if err["loc"]), "update"
            )
            results.append(
                BulkResultOut(
                    video_id=video_id,
                    success=False,
                    error=f"Invalid or missing {field}",
                )
            )
            continue

        user_id = (item.user_id or "").strip() or (body.user_id or "").strip()
        if not user_id:
            results.append(
                BulkResultOut(
                    video_id=item.video_id,
                    success=False,
                    error="Invalid or missing userId",
                )
            )
            continue

        try:
            progress = await service.record_observation(
                user_id, item.video_id, item.current_time, item.duration, item.interval
            )
        except (ObservationError, StorageError) as e:
            logger.warning(
                "Bulk update failed user=%s video=%s: %s", user_id, item.video_id, e
            )
            results.append(
                BulkResultOut(video_id=item.video_id, success=False, error=str(e))
            )
            continue

        results.append(
            BulkResultOut(
                video_id=item.video_id, success=True, progress=_progress_out(progress)
            )
        )

    return BulkOut(results=results)


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_progress(
    video_id: str,
    user_id: UserIdQuery,
    service: ServiceDep,
) -> Response:
    if not await service.delete_progress(user_id, video_id):
        raise HTTPException(status_code=404, detail="progress not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/stats/summary", response_model=StatsEnvelopeOut)
async def progress_stats(
    service: ServiceDep,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
) -> StatsEnvelopeOut:
    stats = await service.stats((user_id or "").strip() or None)
    return StatsEnvelopeOut(stats=_stats_out(stats))


@router.get("/{video_id}", response_model=ProgressOut)
async def get_progress(
    video_id: str,
    user_id: UserIdQuery,
    service: ServiceDep,
    duration: Annotated[float | None, Query(gt=0, allow_inf_nan=False)] = None,
) -> ProgressOut:
    progress = await service.get_progress(user_id, video_id, duration)
    if progress is None:
        return ProgressOut(duration=duration or 0)
    return _progress_out(progress)


@router.get("", response_model=ProgressListOut)
async def list_progress(
    user_id: UserIdQuery,
    service: ServiceDep,
) -> ProgressListOut:
    progresses = await service.list_progress(user_id)
    return ProgressListOut(
        progress=[
            ProgressListItemOut(
                video_id=p.video_id,
                last_position=p.last_position,
                percentage=_round(p.percentage),
                is_completed=p.is_completed,
                duration=p.duration,
                watched_time=p.watched_time,
                updated_at=p.updated_at,
            )
            for p in progresses
        ]
    )
