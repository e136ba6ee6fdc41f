"""Per-playback reporting state machine.

One PlaybackSession lives for as long as a single video is open in a
player.  It turns player callbacks into observations and hands them to a
debounced dispatcher:

  LOADING ──on_ready──► READY ──first tick with a known duration──► fetch
        fetched lastPosition > resume_after?
          ├─ auto_resume  → seek the player, PLAYING
          ├─ otherwise    → RESUME_PENDING until resume() / start_over()
          └─ no           → PLAYING
  PLAYING ──on_ended──► ENDED

The debounced _dispatch reads the session fields when it runs, not when
it was scheduled, so the most recent duration and completion flag are
always used.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from app.client.api_client import ProgressApiClient, ProgressApiError
from app.client.debounce import Debouncer
from app.client.local_cache import LocalProgressCache
from app.services.intervals import Interval, IntervalSet, merge_interval, normalize

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    RESUME_PENDING = "resume_pending"
    PLAYING = "playing"
    ENDED = "ended"


@dataclass(frozen=True)
class ReportingConfig:
    sample_threshold: float = 5.0
    seek_min_delta: float = 1.0
    debounce_wait: float = 2.0
    resume_after: float = 10.0
    auto_resume: bool = False
    seek_history: int = 10


class Player(Protocol):
    def seek_to(self, seconds: float) -> None: ...


class SessionStateError(RuntimeError):
    pass


class PlaybackSession:
    def __init__(
        self,
        *,
        user_id: str,
        video_id: str,
        api: ProgressApiClient,
        local_cache: LocalProgressCache | None = None,
        player: Player | None = None,
        config: ReportingConfig | None = None,
        on_completed: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.user_id = user_id
        self.video_id = video_id
        self._api = api
        self._local = local_cache or LocalProgressCache()
        self._player = player
        self._config = config or ReportingConfig()
        self._on_completed = on_completed

        self.state = SessionState.LOADING
        self.duration = 0.0
        self.position = 0.0
        self.resume_position: float | None = None
        self.last_error: ProgressApiError | None = None

        self._ticked = False
        self._resumed = False
        self._completed_notified = False
        self._last_saved_second = 0
        self._summary: dict[str, Any] | None = None
        self._intervals: IntervalSet = ()
        self._watched_seconds: set[int] = set()
        self._seeks: deque[tuple[float, float]] = deque(
            maxlen=self._config.seek_history
        )
        self._debouncer = Debouncer(self._dispatch, self._config.debounce_wait)

    # -- read side --------------------------------------------------------

    @property
    def summary(self) -> dict[str, Any] | None:
        return dict(self._summary) if self._summary is not None else None

    @property
    def recent_seeks(self) -> list[tuple[float, float]]:
        return list(self._seeks)

    @property
    def watched_seconds(self) -> int:
        return len(self._watched_seconds)

    @property
    def is_completed(self) -> bool:
        return bool(self._summary and self._summary.get("isCompleted"))

    def display_percent(self) -> float:
        """Server percentage when known, else the locally sampled estimate."""
        if self._summary is not None and "percentage" in self._summary:
            return float(self._summary["percentage"])
        if self.duration <= 0:
            return 0.0
        return min(100.0, len(self._watched_seconds) / self.duration * 100)

    # -- player callbacks -------------------------------------------------

    async def on_ready(self) -> None:
        if self.state is SessionState.LOADING:
            self.state = SessionState.READY
        await self._maybe_load()

    async def on_duration(self, duration: float) -> None:
        if duration > 0 and math.isfinite(duration):
            self.duration = float(duration)
        await self._maybe_load()

    async def on_progress(self, played_seconds: float) -> None:
        self.position = played_seconds
        self._ticked = True
        await self._maybe_load()
        if self.state is not SessionState.PLAYING:
            return

        current = math.floor(played_seconds)
        if current <= 0:
            return
        if abs(current - self._last_saved_second) < self._config.sample_threshold:
            return

        start = min(self._last_saved_second, current)
        end = max(self._last_saved_second, current)
        self._watched_seconds.update(range(start, end))
        self._last_saved_second = current
        self._debouncer.call(played_seconds, (float(start), float(end)))

    def on_seek(self, from_seconds: float, to_seconds: float) -> None:
        if self.state is not SessionState.PLAYING:
            return
        if abs(to_seconds - from_seconds) < self._config.seek_min_delta:
            return

        self._seeks.append((from_seconds, to_seconds))
        self.position = to_seconds
        self._last_saved_second = math.floor(to_seconds)
        interval = (min(from_seconds, to_seconds), max(from_seconds, to_seconds))
        self._debouncer.call(to_seconds, interval)

    async def on_ended(self) -> None:
        if self.state is SessionState.ENDED:
            return
        self.state = SessionState.ENDED
        if self.duration <= 0:
            return
        end = float(math.floor(self.duration))
        self.position = self.duration
        self._debouncer.call(self.duration, (end, end))
        await self.flush()

    # -- resume choice ----------------------------------------------------

    def resume(self) -> None:
        if self.state is not SessionState.RESUME_PENDING:
            raise SessionStateError(f"Nothing to resume in state {self.state.value}")
        assert self.resume_position is not None
        self._seek_player(self.resume_position)
        self.state = SessionState.PLAYING

    def start_over(self) -> None:
        if self.state is not SessionState.RESUME_PENDING:
            raise SessionStateError(f"Nothing to resume in state {self.state.value}")
        self._resumed = True
        self._seek_player(0.0)
        self.state = SessionState.PLAYING

    async def flush(self) -> None:
        """Send any pending observation now and wait for in-flight ones."""
        await self._debouncer.flush()
        await self._debouncer.wait_idle()

    # -- internals --------------------------------------------------------

    def _seek_player(self, seconds: float) -> None:
        self._resumed = True
        self.position = seconds
        self._last_saved_second = math.floor(seconds)
        if self._player is not None:
            self._player.seek_to(seconds)

    async def _maybe_load(self) -> None:
        if self.state is not SessionState.READY:
            return
        if not self._ticked or self.duration <= 0:
            return

        existing = await self._load_existing()
        if existing is not None:
            self._summary = existing
            self._intervals = normalize(existing.get("watchedIntervals") or ())
            self._completed_notified = bool(existing.get("isCompleted"))

        last_position = float((existing or {}).get("lastPosition") or 0)
        if last_position > self._config.resume_after and not self._resumed:
            self.resume_position = last_position
            if self._config.auto_resume:
                logger.info(
                    "Resuming video_id=%s at %.1fs", self.video_id, last_position
                )
                self._seek_player(last_position)
                self.state = SessionState.PLAYING
            else:
                self.state = SessionState.RESUME_PENDING
            return
        self.state = SessionState.PLAYING

    async def _load_existing(self) -> dict[str, Any] | None:
        try:
            progress = await self._api.fetch_progress(
                user_id=self.user_id, video_id=self.video_id, duration=self.duration
            )
        except ProgressApiError as e:
            self.last_error = e
            logger.warning(
                "Could not load progress for video_id=%s, using local copy: %s",
                self.video_id,
                e,
            )
            return self._local.get(self.video_id, self.user_id)

        self._local.set(self.video_id, self.user_id, progress)
        return progress

    async def _dispatch(self, current_time: float, interval: Interval) -> None:
        if self.duration <= 0:
            logger.debug("Skipping observation for video_id=%s: no duration", self.video_id)
            return
        self._intervals = merge_interval(self._intervals, interval)

        try:
            result = await self._api.record(
                user_id=self.user_id,
                video_id=self.video_id,
                current_time=current_time,
                duration=self.duration,
                interval=interval,
            )
        except ProgressApiError as e:
            self.last_error = e
            logger.warning(
                "Saving progress for video_id=%s failed, kept locally: %s",
                self.video_id,
                e,
            )
            self._local.set(self.video_id, self.user_id, self._fallback(current_time))
            return

        self.last_error = None
        self._summary = {**(self._summary or {}), **result}
        self._local.set(
            self.video_id,
            self.user_id,
            {**self._summary, "watchedIntervals": [list(i) for i in self._intervals]},
        )
        if result.get("isCompleted") and not self._completed_notified:
            self._completed_notified = True
            logger.info("Video completed video_id=%s", self.video_id)
            if self._on_completed is not None:
                self._on_completed(result)

    def _fallback(self, current_time: float) -> dict[str, Any]:
        known = self._summary or {}
        return {
            "lastPosition": current_time,
            "watchedIntervals": [list(i) for i in self._intervals],
            "percentage": known.get("percentage", 0),
            "isCompleted": bool(known.get("isCompleted")),
            "duration": self.duration,
        }
