"""Progress recording and querying.

Write path (one observation):

  lock (user_id, video_id)
  -> gateway.fetch_or_create
  -> VideoProgress.record_observation   (interval merge + recompute)
  -> gateway.save
  -> invalidate cached projections for the user
  -> unlock

The in-process lock serializes writers for the same key inside one API
process; the PostgreSQL gateway's row lock covers writers in other
processes.  Different keys never contend.

Reads never write: GET with a duration override recomputes the
percentage for the response only.

A read only populates the cache if no write for the same user (or, for
global stats, any user) landed while it was loading from the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from app.core.metrics import OBSERVATIONS_RECORDED, VIDEOS_COMPLETED
from app.models.progress import COMPLETION_THRESHOLD, ProgressStats, VideoProgress
from app.repos.progress_repo import ProgressRepo
from app.services.cache import GLOBAL_STATS_KEY, CacheService, user_prefix
from app.services.intervals import Interval, clamp_interval

logger = logging.getLogger(__name__)


class KeyedLocks:
    """asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._refs: dict[tuple[str, str], int] = {}

    @asynccontextmanager
    async def hold(self, key: tuple[str, str]) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class WriteCounter:
    """Counts completed writes per user and overall.

    Shared across requests like KeyedLocks.  A reader notes the count
    before loading from the store and fills the cache only if it is
    unchanged afterwards.
    """

    def __init__(self) -> None:
        self._per_user: dict[str, int] = {}
        self._total = 0

    def bump(self, user_id: str) -> None:
        self._per_user[user_id] = self._per_user.get(user_id, 0) + 1
        self._total += 1

    def current(self, user_id: str | None) -> int:
        if user_id is None:
            return self._total
        return self._per_user.get(user_id, 0)


class ProgressService:
    def __init__(
        self,
        repo: ProgressRepo,
        cache: CacheService,
        locks: KeyedLocks,
        writes: WriteCounter | None = None,
        *,
        threshold: float = COMPLETION_THRESHOLD,
        cache_ttl: int = 300,
    ) -> None:
        self._repo = repo
        self._cache = cache
        self._locks = locks
        self._threshold = threshold
        self._cache_ttl = cache_ttl
        self._writes = writes if writes is not None else WriteCounter()

    async def record_observation(
        self,
        user_id: str,
        video_id: str,
        position: float,
        duration: float,
        interval: Interval | None = None,
    ) -> VideoProgress:
        async with self._locks.hold((user_id, video_id)):
            current = await self._repo.fetch_or_create(user_id, video_id)
            updated = current.record_observation(
                position, duration, interval, threshold=self._threshold
            )
            await self._repo.save(updated)

        if interval is None:
            outcome = "position_only"
        elif clamp_interval(interval, updated.duration) is None:
            outcome = "dropped"
        else:
            outcome = "merged"
        OBSERVATIONS_RECORDED.labels(outcome=outcome).inc()

        logger.debug(
            "Recorded observation user=%s video=%s position=%.1f pct=%.2f",
            user_id,
            video_id,
            updated.last_position,
            updated.percentage,
            extra={"user_id": user_id, "video_id": video_id},
        )
        if updated.is_completed and not current.is_completed:
            VIDEOS_COMPLETED.inc()
            logger.info(
                "Video completed user=%s video=%s pct=%.2f",
                user_id,
                video_id,
                updated.percentage,
                extra={"user_id": user_id, "video_id": video_id},
            )

        await self._invalidate(user_id)
        return updated

    async def get_progress(
        self, user_id: str, video_id: str, duration: float | None = None
    ) -> VideoProgress | None:
        cache_key = f"{user_prefix(user_id)}video:{video_id}"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            progress = VideoProgress.from_dict(json.loads(cached))
        else:
            seen = self._writes.current(user_id)
            progress = await self._repo.get(user_id, video_id)
            if progress is None:
                return None
            await self._populate(
                cache_key, json.dumps(progress.to_dict()), user_id, seen
            )

        if duration is not None and duration > 0 and duration != progress.duration:
            return progress.with_duration(duration, threshold=self._threshold)
        return progress

    async def list_progress(self, user_id: str) -> list[VideoProgress]:
        cache_key = f"{user_prefix(user_id)}list"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return [VideoProgress.from_dict(d) for d in json.loads(cached)]

        seen = self._writes.current(user_id)
        progresses = await self._repo.list_by_user(user_id)
        await self._populate(
            cache_key, json.dumps([p.to_dict() for p in progresses]), user_id, seen
        )
        return progresses

    async def stats(self, user_id: str | None = None) -> ProgressStats:
        if user_id is None:
            cache_key = GLOBAL_STATS_KEY
        else:
            cache_key = f"{user_prefix(user_id)}stats"
        cached = await self._cache.get(cache_key)
        if cached is not None:
            return ProgressStats(**json.loads(cached))

        seen = self._writes.current(user_id)
        stats = await self._repo.aggregate_stats(user_id)
        await self._populate(cache_key, json.dumps(asdict(stats)), user_id, seen)
        return stats

    async def delete_progress(self, user_id: str, video_id: str) -> bool:
        async with self._locks.hold((user_id, video_id)):
            deleted = await self._repo.delete(user_id, video_id)
        if deleted:
            logger.info(
                "Deleted progress user=%s video=%s",
                user_id,
                video_id,
                extra={"user_id": user_id, "video_id": video_id},
            )
            await self._invalidate(user_id)
        return deleted

    async def _populate(
        self, cache_key: str, value: str, user_id: str | None, seen: int
    ) -> None:
        if self._writes.current(user_id) != seen:
            logger.debug("Skipping cache fill for %s: written during read", cache_key)
            return
        await self._cache.set(cache_key, value, self._cache_ttl)

    async def _invalidate(self, user_id: str) -> None:
        self._writes.bump(user_id)
        await self._cache.delete_pattern(f"{user_prefix(user_id)}*")
        await self._cache.delete(GLOBAL_STATS_KEY)
