"""Last-known progress summaries kept on the client.

Used for display and as the resume source when the API can't be reached.
Entries are keyed ``progress_<video_id>_<user_id>``.  With a path the
store is mirrored to a JSON file (written via temp file + rename) so it
survives restarts; without one it lives in memory only.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def cache_key(video_id: str, user_id: str) -> str:
    return f"progress_{video_id}_{user_id}"


class LocalProgressCache:
    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._store: dict[str, dict[str, Any]] = {}
        if self._path is not None and self._path.exists():
            self._store = self._load(self._path)

    def get(self, video_id: str, user_id: str) -> dict[str, Any] | None:
        entry = self._store.get(cache_key(video_id, user_id))
        return dict(entry) if entry is not None else None

    def set(self, video_id: str, user_id: str, summary: dict[str, Any]) -> None:
        self._store[cache_key(video_id, user_id)] = dict(summary)
        self._persist()

    def clear(self) -> None:
        self._store.clear()
        self._persist()

    @staticmethod
    def _load(path: Path) -> dict[str, dict[str, Any]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable progress cache %s", path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self) -> None:
        if self._path is None:
            return
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(self._store, default=str), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError:
            # Display still works from memory; only the copy on disk is stale.
            logger.warning("Could not write progress cache %s", self._path, exc_info=True)
