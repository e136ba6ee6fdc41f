"""Watched-interval algebra.

An Interval is a closed range ``(start, end)`` in seconds of a video that
was actually played.  An interval set is a tuple of intervals that is:

  - sorted by start ascending
  - pairwise disjoint, with touching intervals already merged
    (``a.end >= b.start`` never holds for two distinct members)

Every function here is pure: inputs are never mutated and there is no
I/O.  Because members of a canonical set never overlap, summing their
lengths gives the distinct seconds watched with no double counting.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

Interval = tuple[float, float]
IntervalSet = tuple[Interval, ...]


def merge_interval(existing: Sequence[Interval], incoming: Interval) -> IntervalSet:
    """Merge ``incoming`` into a canonical interval set.

    Closed-interval semantics: ``[0, 5]`` and ``[5, 8]`` merge into
    ``[0, 8]``.  The caller clamps ``incoming`` into ``[0, duration]``
    first (see clamp_interval).
    """
    return normalize([*existing, incoming])


def normalize(intervals: Iterable[Interval]) -> IntervalSet:
    """Reduce arbitrary intervals to a canonical set (sort + sweep).

    O(n log n), dominated by the sort.
    """
    ordered = sorted((float(s), float(e)) for s, e in intervals)
    if not ordered:
        return ()

    merged: list[Interval] = []
    cur_start, cur_end = ordered[0]
    for start, end in ordered[1:]:
        if start <= cur_end:
            cur_end = max(cur_end, end)
        else:
            merged.append((cur_start, cur_end))
            cur_start, cur_end = start, end
    merged.append((cur_start, cur_end))
    return tuple(merged)


def covered_duration(intervals: Iterable[Interval]) -> float:
    """Total seconds covered by a canonical interval set."""
    return sum(end - start for start, end in intervals)


def clamp_interval(interval: Interval, duration: float) -> Interval | None:
    """Clamp both endpoints into ``[0, duration]``.

    Returns None when the interval is unusable: non-finite endpoints or
    ``start > end`` after clamping.  Never raises.
    """
    try:
        start, end = (float(v) for v in interval)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(start) and math.isfinite(end)):
        return None

    start = max(0.0, min(start, duration))
    end = max(0.0, min(end, duration))
    if start > end:
        return None
    return (start, end)


def is_canonical(intervals: Sequence[Interval]) -> bool:
    for start, end in intervals:
        if start > end:
            return False
    return all(
        prev[1] < nxt[0] for prev, nxt in zip(intervals, intervals[1:], strict=False)
    )
