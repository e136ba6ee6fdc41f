from __future__ import annotations

import json
from pathlib import Path

from app.client.local_cache import LocalProgressCache, cache_key


def test_key_layout() -> None:
    assert cache_key("intro", "u1") == "progress_intro_u1"


def test_get_missing_returns_none() -> None:
    assert LocalProgressCache().get("v1", "u1") is None


def test_set_then_get_returns_copy() -> None:
    cache = LocalProgressCache()
    cache.set("v1", "u1", {"lastPosition": 12, "percentage": 40})
    entry = cache.get("v1", "u1")
    assert entry == {"lastPosition": 12, "percentage": 40}
    entry["percentage"] = 99
    assert cache.get("v1", "u1")["percentage"] == 40


def test_entries_are_per_user_and_video() -> None:
    cache = LocalProgressCache()
    cache.set("v1", "u1", {"lastPosition": 1})
    assert cache.get("v1", "u2") is None
    assert cache.get("v2", "u1") is None


def test_persists_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    LocalProgressCache(path).set("v1", "u1", {"lastPosition": 30})

    assert json.loads(path.read_text())["progress_v1_u1"] == {"lastPosition": 30}
    assert LocalProgressCache(path).get("v1", "u1") == {"lastPosition": 30}


def test_unreadable_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    path.write_text("{not json")
    cache = LocalProgressCache(path)
    assert cache.get("v1", "u1") is None
    cache.set("v1", "u1", {"lastPosition": 2})
    assert LocalProgressCache(path).get("v1", "u1") == {"lastPosition": 2}


def test_clear(tmp_path: Path) -> None:
    cache = LocalProgressCache(tmp_path / "progress.json")
    cache.set("v1", "u1", {"lastPosition": 2})
    cache.clear()
    assert LocalProgressCache(tmp_path / "progress.json").get("v1", "u1") is None
