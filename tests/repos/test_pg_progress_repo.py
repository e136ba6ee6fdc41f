"""PgProgressRepo without a live database.

A stub session records the statements it is given (compiled for the
PostgreSQL dialect) or fails like a dropped connection would.
"""

from __future__ import annotations

import asyncio
import datetime

import pytest
from prometheus_client import REGISTRY
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.db.tables import VideoProgressRow
from app.models.progress import VideoProgress
from app.repos.pg_progress_repo import PgProgressRepo, _row_to_progress
from app.repos.progress_repo import StorageError


class _Result:
    def __init__(self, row=None) -> None:
        self._row = row
        self.rowcount = 1 if row is not None else 0

    def scalar_one_or_none(self):
        return self._row


class _StubSession:
    def __init__(self, *, fail: bool = False, row=None) -> None:
        self.fail = fail
        self.row = row
        self.sql: list[str] = []
        self.commits = 0
        self.rollbacks = 0

    async def execute(self, stmt):
        if self.fail:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        self.sql.append(str(stmt.compile(dialect=postgresql.dialect())))
        return _Result(self.row)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


def _get_sample(name: str, labels: dict) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels)
    return value if value is not None else 0.0


def _progress() -> VideoProgress:
    return VideoProgress.new(user_id="u1", video_id="v1").record_observation(
        10, 100, (0, 10)
    )


def test_fetch_or_create_locks_the_row() -> None:
    session = _StubSession()
    progress = asyncio.run(PgProgressRepo(session).fetch_or_create("u1", "v1"))
    assert progress.watched_intervals == ()
    assert "FOR UPDATE" in session.sql[0]


def test_save_upserts_on_unique_key_and_commits() -> None:
    session = _StubSession()
    asyncio.run(PgProgressRepo(session).save(_progress()))
    sql = session.sql[0]
    assert "ON CONFLICT ON CONSTRAINT uq_video_progress_user_video DO UPDATE" in sql
    update_clause = sql.split("DO UPDATE")[1]
    assert "created_at" not in update_clause
    assert "watched_intervals" in update_clause
    assert session.commits == 1


def test_delete_reports_missing_row() -> None:
    assert asyncio.run(PgProgressRepo(_StubSession()).delete("u1", "v1")) is False


def test_save_failure_raises_storage_error_and_rolls_back() -> None:
    session = _StubSession(fail=True)
    before = _get_sample("progress_storage_errors_total", {"operation": "save"})

    with pytest.raises(StorageError, match="failed to save progress"):
        asyncio.run(PgProgressRepo(session).save(_progress()))

    assert session.rollbacks == 1
    after = _get_sample("progress_storage_errors_total", {"operation": "save"})
    assert after - before == 1


def test_read_failure_raises_storage_error() -> None:
    with pytest.raises(StorageError):
        asyncio.run(PgProgressRepo(_StubSession(fail=True)).get("u1", "v1"))


def test_row_to_progress() -> None:
    now = datetime.datetime.now(datetime.UTC)
    row = VideoProgressRow(
        user_id="u1",
        video_id="v1",
        duration=100.0,
        watched_intervals=[[0, 10], [20, 30]],
        last_position=30.0,
        percentage=20.0,
        is_completed=False,
        created_at=now,
        updated_at=now,
    )
    progress = _row_to_progress(row)
    assert progress.watched_intervals == ((0.0, 10.0), (20.0, 30.0))
    assert progress.watched_time == 20
    assert progress.key == ("u1", "v1")
