from __future__ import annotations

from bisect import bisect_right
from datetime import timedelta
from typing import Iterable, Sequence

from insights.models import EnvironmentalSample, SymptomEntry

DEFAULT_JOIN_TOLERANCE = timedelta(hours=4)

# (source index, sample) sorted by timestamp then source index
_OrderedSamples = list[tuple[int, EnvironmentalSample]]


def _order_samples(samples: Iterable[EnvironmentalSample]) -> _OrderedSamples:
    return sorted(enumerate(samples), key=lambda pair: (pair[1].timestamp, pair[0]))


# index of the first sample in each run of equal timestamps
def _run_starts(ordered: _OrderedSamples) -> list[int]:
    starts: list[int] = []
    for idx, (_, sample) in enumerate(ordered):
        if idx > 0 and sample.timestamp == ordered[idx - 1][1].timestamp:
            starts.append(starts[idx - 1])
        else:
            starts.append(idx)
    return starts


def _closest(
    entry: SymptomEntry,
    ordered: _OrderedSamples,
    starts: Sequence[int],
    cursor: int,
    tolerance: timedelta,
) -> EnvironmentalSample | None:
    # cursor is the first position strictly after the entry timestamp
    best: tuple[timedelta, int, EnvironmentalSample] | None = None
    if cursor > 0:
        source_index, sample = ordered[starts[cursor - 1]]
        best = (entry.timestamp - sample.timestamp, source_index, sample)
    if cursor < len(ordered):
        source_index, sample = ordered[cursor]
        candidate = (sample.timestamp - entry.timestamp, source_index, sample)
        if best is None or candidate[:2] < best[:2]:
            best = candidate
    if best is None or best[0] > tolerance:
        return None
    return best[2]


def nearest_sample(
    entry: SymptomEntry,
    samples: Iterable[EnvironmentalSample],
    tolerance: timedelta = DEFAULT_JOIN_TOLERANCE,
) -> EnvironmentalSample | None:
    ordered = _order_samples(samples)
    if not ordered:
        return None
    starts = _run_starts(ordered)
    cursor = bisect_right([sample.timestamp for _, sample in ordered], entry.timestamp)
    return _closest(entry, ordered, starts, cursor, tolerance)


def join_attacks(
    entries: Iterable[SymptomEntry],
    samples: Iterable[EnvironmentalSample],
    tolerance: timedelta = DEFAULT_JOIN_TOLERANCE,
) -> list[tuple[SymptomEntry, EnvironmentalSample | None]]:
    """Pair every attack entry with its nearest environmental sample.

    Both sides are sorted once and walked together, so the join itself is
    linear in entries + samples. Non-attack entries are skipped. The result
    keeps the attacks in their source order; ties between equally distant
    samples go to the one that appeared first in ``samples``.
    """
    attacks = [(idx, entry) for idx, entry in enumerate(entries) if entry.attack]
    ordered = _order_samples(samples)
    starts = _run_starts(ordered)

    matches: dict[int, EnvironmentalSample | None] = {}
    cursor = 0
    for attack_idx, entry in sorted(attacks, key=lambda pair: (pair[1].timestamp, pair[0])):
        while cursor < len(ordered) and ordered[cursor][1].timestamp <= entry.timestamp:
            cursor += 1
        matches[attack_idx] = _closest(entry, ordered, starts, cursor, tolerance)
    return [(entry, matches[idx]) for idx, entry in attacks]
