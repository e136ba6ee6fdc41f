from __future__ import annotations

import math
import random

import pytest

from app.services.intervals import (
    clamp_interval,
    covered_duration,
    is_canonical,
    merge_interval,
    normalize,
)

# ---- merge scenarios ----


def test_merge_into_empty_set() -> None:
    merged = merge_interval((), (0, 10))
    assert merged == ((0.0, 10.0),)
    assert covered_duration(merged) == 10


def test_merge_overlapping_interval_extends_span() -> None:
    merged = merge_interval(((0, 10),), (8, 20))
    assert merged == ((0.0, 20.0),)
    assert covered_duration(merged) == 20


def test_merge_touching_interval_bridges_gap() -> None:
    merged = merge_interval(((0, 5), (10, 15)), (5, 10))
    assert merged == ((0.0, 15.0),)
    assert covered_duration(merged) == 15


def test_merge_disjoint_interval_keeps_sorted_order() -> None:
    merged = merge_interval(((10, 20),), (0, 5))
    assert merged == ((0.0, 5.0), (10.0, 20.0))


def test_merge_contained_interval_is_noop() -> None:
    merged = merge_interval(((0, 50),), (10, 20))
    assert merged == ((0.0, 50.0),)


def test_merge_zero_length_interval() -> None:
    merged = merge_interval(((0, 10),), (30, 30))
    assert merged == ((0.0, 10.0), (30.0, 30.0))
    assert covered_duration(merged) == 10


def test_merge_does_not_mutate_input() -> None:
    existing = [(0.0, 10.0)]
    merge_interval(existing, (5, 15))
    assert existing == [(0.0, 10.0)]


# ---- properties ----

_SAMPLES = [
    ((), (0, 10)),
    (((0, 10),), (8, 20)),
    (((0, 5), (10, 15)), (5, 10)),
    (((0, 5), (10, 15), (30, 40)), (12, 35)),
    (((2, 3),), (0, 1)),
]


def _random_samples(count: int, seed: int = 7) -> list:
    rng = random.Random(seed)
    samples = []
    for _ in range(count):
        spans = []
        for _ in range(rng.randint(0, 6)):
            start = rng.randint(0, 90)
            spans.append((start, start + rng.randint(0, 15)))
        start = rng.randint(0, 95)
        samples.append((normalize(spans), (start, start + rng.randint(0, 20))))
    return samples


_SAMPLES += _random_samples(40)


@pytest.mark.parametrize(("existing", "incoming"), _SAMPLES)
def test_merge_is_idempotent(existing, incoming) -> None:
    once = merge_interval(existing, incoming)
    assert merge_interval(once, incoming) == once


@pytest.mark.parametrize(("existing", "incoming"), _SAMPLES)
def test_merge_result_is_canonical(existing, incoming) -> None:
    assert is_canonical(merge_interval(existing, incoming))


@pytest.mark.parametrize(("existing", "incoming"), _SAMPLES)
def test_merge_never_reduces_coverage(existing, incoming) -> None:
    before = covered_duration(existing)
    assert covered_duration(merge_interval(existing, incoming)) >= before


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ((0, 10), (5, 25), ((0.0, 25.0),)),
        ((0, 10), (20, 30), ((0.0, 10.0), (20.0, 30.0))),
        ((0, 10), (10, 20), ((0.0, 20.0),)),
        ((0, 50), (10, 20), ((0.0, 50.0),)),
        ((5, 5), (0, 10), ((0.0, 10.0),)),
        ((3, 3), (3, 3), ((3.0, 3.0),)),
    ],
    ids=["overlapping", "disjoint", "touching", "nested", "point-inside", "same-point"],
)
def test_merge_order_does_not_matter(a, b, expected) -> None:
    left = merge_interval(merge_interval((), a), b)
    right = merge_interval(merge_interval((), b), a)
    assert left == right == expected


@pytest.mark.parametrize("seed", range(5))
def test_merge_sequence_order_does_not_matter(seed: int) -> None:
    rng = random.Random(seed)
    spans = []
    for _ in range(12):
        start = rng.randint(0, 100)
        spans.append((start, start + rng.randint(0, 10)))

    def merge_all(items):
        merged = ()
        for item in items:
            merged = merge_interval(merged, item)
        return merged

    shuffled = list(spans)
    rng.shuffle(shuffled)
    assert merge_all(spans) == merge_all(shuffled) == normalize(spans)


def test_normalize_collapses_unsorted_overlaps() -> None:
    assert normalize([(20, 30), (0, 5), (4, 10), (30, 31)]) == (
        (0.0, 10.0),
        (20.0, 31.0),
    )


def test_normalize_empty() -> None:
    assert normalize([]) == ()


def test_is_canonical_rejects_touching_members() -> None:
    assert not is_canonical(((0, 5), (5, 10)))
    assert not is_canonical(((10, 20), (0, 5)))
    assert is_canonical(((0, 5), (6, 10)))


# ---- clamping ----


def test_clamp_keeps_in_range_interval() -> None:
    assert clamp_interval((5, 10), 100) == (5.0, 10.0)


def test_clamp_pulls_endpoints_into_duration() -> None:
    assert clamp_interval((-5, 150), 100) == (0.0, 100.0)


def test_clamp_drops_inverted_interval() -> None:
    assert clamp_interval((15, 5), 100) is None


def test_clamp_interval_entirely_past_end_collapses_to_end() -> None:
    assert clamp_interval((120, 130), 100) == (100.0, 100.0)


@pytest.mark.parametrize(
    "interval",
    [(math.nan, 5), (0, math.inf), ("a", 5), (1, 2, 3), None],
)
def test_clamp_returns_none_for_unusable_input(interval) -> None:
    assert clamp_interval(interval, 100) is None
