from __future__ import annotations

from typing import Protocol

from app.models.progress import ProgressStats, VideoProgress


class StorageError(Exception):
    """The progress store is unreachable or rejected the operation.

    Surfaced to the caller as-is; the gateway never retries internally.
    """


class ProgressRepo(Protocol):
    async def get(self, user_id: str, video_id: str) -> VideoProgress | None: ...
    async def fetch_or_create(self, user_id: str, video_id: str) -> VideoProgress: ...
    async def save(self, progress: VideoProgress) -> None: ...
    async def delete(self, user_id: str, video_id: str) -> bool: ...
    async def list_by_user(self, user_id: str) -> list[VideoProgress]: ...
    async def list_all(self) -> list[VideoProgress]: ...
    async def aggregate_stats(self, user_id: str | None = None) -> ProgressStats: ...


class InMemoryProgressRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, str], VideoProgress] = {}

    async def get(self, user_id: str, video_id: str) -> VideoProgress | None:
        return self._store.get((user_id, video_id))

    async def fetch_or_create(self, user_id: str, video_id: str) -> VideoProgress:
        # Not stored until the first save.
        existing = self._store.get((user_id, video_id))
        if existing is not None:
            return existing
        return VideoProgress.new(user_id=user_id, video_id=video_id)

    async def save(self, progress: VideoProgress) -> None:
        self._store[progress.key] = progress

    async def delete(self, user_id: str, video_id: str) -> bool:
        return self._store.pop((user_id, video_id), None) is not None

    async def list_by_user(self, user_id: str) -> list[VideoProgress]:
        return [p for (uid, _), p in self._store.items() if uid == user_id]

    async def list_all(self) -> list[VideoProgress]:
        return list(self._store.values())

    async def aggregate_stats(self, user_id: str | None = None) -> ProgressStats:
        if user_id is None:
            progresses = await self.list_all()
        else:
            progresses = await self.list_by_user(user_id)
        return ProgressStats.from_progress(progresses)
