from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.main import app, init_state

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_app_state() -> None:
    """Fresh in-memory store, cache, rate limiter and locks per test."""
    init_state(app)


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def observation(
    video_id: str = "video-1",
    user_id: str = "user-1",
    *,
    current_time: float = 10,
    duration: float = 100,
    interval: Any = None,
) -> dict[str, Any]:
    """Build a POST /progress body."""
    body: dict[str, Any] = {
        "userId": user_id,
        "videoId": video_id,
        "currentTime": current_time,
        "duration": duration,
    }
    if interval is not None:
        body["interval"] = interval
    return body
