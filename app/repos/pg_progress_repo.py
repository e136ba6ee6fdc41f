"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.metrics import STORAGE_ERRORS
from app.db.tables import VideoProgressRow
from app.models.progress import ProgressStats, VideoProgress
from app.repos.progress_repo import StorageError

logger = logging.getLogger(__name__)

_IMMUTABLE_COLUMNS = ("user_id", "video_id", "created_at")


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy.

    One instance per request session.  fetch_or_create locks the row
    (SELECT ... FOR UPDATE) so a concurrent writer for the same
    (user_id, video_id) waits until save() commits.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str, video_id: str) -> VideoProgress | None:
        stmt = select(VideoProgressRow).where(
            VideoProgressRow.user_id == user_id,
            VideoProgressRow.video_id == video_id,
        )
        row = await self._scalar_one_or_none(stmt, "get")
        if row is None:
            return None
        return _row_to_progress(row)

    async def fetch_or_create(self, user_id: str, video_id: str) -> VideoProgress:
        stmt = (
            select(VideoProgressRow)
            .where(
                VideoProgressRow.user_id == user_id,
                VideoProgressRow.video_id == video_id,
            )
            .with_for_update()
        )
        row = await self._scalar_one_or_none(stmt, "fetch_or_create")
        if row is None:
            return VideoProgress.new(user_id=user_id, video_id=video_id)
        return _row_to_progress(row)

    async def save(self, progress: VideoProgress) -> None:
        values = {
            "user_id": progress.user_id,
            "video_id": progress.video_id,
            "duration": progress.duration,
            "watched_intervals": [[s, e] for s, e in progress.watched_intervals],
            "last_position": progress.last_position,
            "percentage": progress.percentage,
            "is_completed": progress.is_completed,
            "created_at": progress.created_at,
            "updated_at": progress.updated_at,
        }
        stmt = insert(VideoProgressRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_video_progress_user_video",
            set_={k: v for k, v in values.items() if k not in _IMMUTABLE_COLUMNS},
        )
        try:
            await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._rollback_quietly()
            STORAGE_ERRORS.labels(operation="save").inc()
            raise StorageError(f"failed to save progress: {e}") from e

    async def delete(self, user_id: str, video_id: str) -> bool:
        stmt = delete(VideoProgressRow).where(
            VideoProgressRow.user_id == user_id,
            VideoProgressRow.video_id == video_id,
        )
        try:
            result = await self._session.execute(stmt)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._rollback_quietly()
            STORAGE_ERRORS.labels(operation="delete").inc()
            raise StorageError(f"failed to delete progress: {e}") from e
        return result.rowcount > 0

    async def list_by_user(self, user_id: str) -> list[VideoProgress]:
        stmt = (
            select(VideoProgressRow)
            .where(VideoProgressRow.user_id == user_id)
            .order_by(VideoProgressRow.updated_at.desc())
        )
        return await self._list(stmt)

    async def list_all(self) -> list[VideoProgress]:
        return await self._list(select(VideoProgressRow))

    async def aggregate_stats(self, user_id: str | None = None) -> ProgressStats:
        if user_id is None:
            progresses = await self.list_all()
        else:
            progresses = await self.list_by_user(user_id)
        return ProgressStats.from_progress(progresses)

    async def _list(self, stmt) -> list[VideoProgress]:
        try:
            rows = (await self._session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            STORAGE_ERRORS.labels(operation="list").inc()
            raise StorageError(f"failed to list progress: {e}") from e
        return [_row_to_progress(r) for r in rows]

    async def _scalar_one_or_none(self, stmt, operation: str):
        try:
            return (await self._session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            STORAGE_ERRORS.labels(operation=operation).inc()
            raise StorageError(f"failed to read progress: {e}") from e

    async def _rollback_quietly(self) -> None:
        try:
            await self._session.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback failed after storage error", exc_info=True)


def _row_to_progress(row: VideoProgressRow) -> VideoProgress:
    return VideoProgress(
        user_id=row.user_id,
        video_id=row.video_id,
        duration=row.duration,
        watched_intervals=tuple(
            (float(s), float(e)) for s, e in (row.watched_intervals or [])
        ),
        last_position=row.last_position,
        percentage=row.percentage,
        is_completed=row.is_completed,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
