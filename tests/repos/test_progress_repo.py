from __future__ import annotations

import asyncio

from app.repos.progress_repo import InMemoryProgressRepo


def _run(coro):
    return asyncio.run(coro)


def test_fetch_or_create_returns_zero_state_without_persisting() -> None:
    repo = InMemoryProgressRepo()
    progress = _run(repo.fetch_or_create("u1", "v1"))
    assert progress.watched_intervals == ()
    assert progress.percentage == 0
    assert _run(repo.get("u1", "v1")) is None


def test_save_then_fetch_returns_saved_state() -> None:
    repo = InMemoryProgressRepo()
    progress = _run(repo.fetch_or_create("u1", "v1")).record_observation(
        10, 100, (0, 10)
    )
    _run(repo.save(progress))
    assert _run(repo.fetch_or_create("u1", "v1")) == progress


def test_save_replaces_existing_record() -> None:
    repo = InMemoryProgressRepo()
    first = _run(repo.fetch_or_create("u1", "v1")).record_observation(10, 100, (0, 10))
    _run(repo.save(first))
    second = first.record_observation(30, 100, (10, 30))
    _run(repo.save(second))
    assert _run(repo.get("u1", "v1")).watched_intervals == ((0.0, 30.0),)
    assert len(_run(repo.list_all())) == 1


def test_list_by_user_only_returns_that_user() -> None:
    repo = InMemoryProgressRepo()
    for user_id, video_id in [("u1", "a"), ("u1", "b"), ("u2", "a")]:
        _run(repo.save(_run(repo.fetch_or_create(user_id, video_id))))
    assert sorted(p.video_id for p in _run(repo.list_by_user("u1"))) == ["a", "b"]


def test_delete_reports_whether_record_existed() -> None:
    repo = InMemoryProgressRepo()
    _run(repo.save(_run(repo.fetch_or_create("u1", "v1"))))
    assert _run(repo.delete("u1", "v1")) is True
    assert _run(repo.delete("u1", "v1")) is False


def test_aggregate_stats_scoped_and_global() -> None:
    repo = InMemoryProgressRepo()
    for user_id, end in [("u1", 96), ("u1", 20), ("u2", 50)]:
        progress = _run(repo.fetch_or_create(user_id, f"v{end}"))
        _run(repo.save(progress.record_observation(end, 100, (0, end))))

    mine = _run(repo.aggregate_stats("u1"))
    assert mine.total_videos == 2
    assert mine.average_completion == 58
    assert mine.completed_videos == 1

    everyone = _run(repo.aggregate_stats())
    assert everyone.total_videos == 3
    assert everyone.total_watch_time == 166


def test_aggregate_stats_empty_is_zero() -> None:
    stats = _run(InMemoryProgressRepo().aggregate_stats("nobody"))
    assert stats.total_videos == 0
    assert stats.average_completion == 0
