from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass, replace
from typing import Any

from app.services.intervals import (
    Interval,
    IntervalSet,
    clamp_interval,
    covered_duration,
    merge_interval,
)

logger = logging.getLogger(__name__)

COMPLETION_THRESHOLD = 95.0


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _isoformat(dt: datetime.datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _parse_datetime(raw: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(raw) if raw else None


def compute_percentage(watched_time: float, duration: float) -> float:
    """Coverage as a percentage of duration, capped at 100."""
    if duration <= 0:
        return 0.0
    return min(watched_time / duration * 100, 100.0)


class ObservationError(ValueError):
    """A required scalar (position or duration) is missing or out of range."""


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    """Read projection of a VideoProgress returned to the player."""

    last_position: float
    percentage: float
    is_completed: bool
    watched_time: float
    updated_at: datetime.datetime


@dataclass(frozen=True, slots=True)
class VideoProgress:
    """Per-(user, video) watch progress aggregate.

    ``watched_intervals`` is always a canonical interval set and
    ``percentage``/``is_completed`` are always derived from it and
    ``duration``.  Mutation happens only through record_observation,
    which returns a new instance.
    """

    user_id: str
    video_id: str
    duration: float = 0.0
    watched_intervals: IntervalSet = ()
    last_position: float = 0.0
    percentage: float = 0.0
    is_completed: bool = False
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @staticmethod
    def new(*, user_id: str, video_id: str) -> VideoProgress:
        now = _utcnow()
        return VideoProgress(
            user_id=user_id, video_id=video_id, created_at=now, updated_at=now
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.video_id)

    @property
    def watched_time(self) -> float:
        return covered_duration(self.watched_intervals)

    def record_observation(
        self,
        position: float,
        duration: float,
        interval: Interval | None = None,
        *,
        threshold: float = COMPLETION_THRESHOLD,
    ) -> VideoProgress:
        """Apply one playback observation and recompute derived fields.

        Raises ObservationError for a negative/NaN position or a
        non-positive/NaN duration.  A bad ``interval`` never raises: it
        is clamped into ``[0, duration]`` and dropped if still inverted,
        so position and duration updates always go through.
        """
        if not isinstance(duration, (int, float)) or math.isnan(duration):
            raise ObservationError("duration must be a number")
        if duration <= 0:
            raise ObservationError("duration must be positive")
        if not isinstance(position, (int, float)) or math.isnan(position):
            raise ObservationError("position must be a number")
        if position < 0:
            raise ObservationError("position must be non-negative")

        intervals = self.watched_intervals
        if interval is not None:
            clamped = clamp_interval(interval, duration)
            if clamped is None:
                logger.info(
                    "Dropped malformed interval=%r user=%s video=%s",
                    interval,
                    self.user_id,
                    self.video_id,
                )
            else:
                intervals = merge_interval(intervals, clamped)

        percentage = compute_percentage(covered_duration(intervals), duration)
        return replace(
            self,
            duration=float(duration),
            last_position=float(position),
            watched_intervals=intervals,
            percentage=percentage,
            is_completed=percentage >= threshold,
            created_at=self.created_at or _utcnow(),
            updated_at=_utcnow(),
        )

    def with_duration(
        self, duration: float, *, threshold: float = COMPLETION_THRESHOLD
    ) -> VideoProgress:
        """Derived fields recomputed against another duration (read-only view)."""
        percentage = compute_percentage(self.watched_time, duration)
        return replace(
            self,
            duration=duration,
            percentage=percentage,
            is_completed=percentage >= threshold,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict (used for the read-through cache)."""
        return {
            "user_id": self.user_id,
            "video_id": self.video_id,
            "duration": self.duration,
            "watched_intervals": [[s, e] for s, e in self.watched_intervals],
            "last_position": self.last_position,
            "percentage": self.percentage,
            "is_completed": self.is_completed,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VideoProgress:
        return cls(
            user_id=data["user_id"],
            video_id=data["video_id"],
            duration=data["duration"],
            watched_intervals=tuple(
                (float(s), float(e)) for s, e in data["watched_intervals"]
            ),
            last_position=data["last_position"],
            percentage=data["percentage"],
            is_completed=data["is_completed"],
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )

    def to_summary(self) -> ProgressSummary:
        return ProgressSummary(
            last_position=self.last_position,
            percentage=self.percentage,
            is_completed=self.is_completed,
            watched_time=self.watched_time,
            updated_at=self.updated_at or self.created_at or _utcnow(),
        )


@dataclass(frozen=True, slots=True)
class ProgressStats:
    """Aggregate statistics over a set of VideoProgress records."""

    total_videos: int = 0
    total_watch_time: float = 0.0
    average_completion: float = 0.0
    completed_videos: int = 0

    @staticmethod
    def from_progress(progresses: list[VideoProgress]) -> ProgressStats:
        if not progresses:
            return ProgressStats()
        return ProgressStats(
            total_videos=len(progresses),
            total_watch_time=sum(p.watched_time for p in progresses),
            average_completion=sum(p.percentage for p in progresses) / len(progresses),
            completed_videos=sum(1 for p in progresses if p.is_completed),
        )
