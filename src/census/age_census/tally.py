"""Frequency tally: one cursor in, one age -> count table out."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import logging
from typing import Iterable, Mapping

from .cursors import AgeCursor, CursorSource, RegionScope, iter_ages
from .errors import AggregationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegionTally:
    region: str
    counts: Counter[int]
    skipped: int = 0


def tally_ages(cursor: AgeCursor) -> Counter[int]:
    counts, _ = _drain(cursor)
    return counts


def tally_region(source: CursorSource, region: str) -> RegionTally:
    """Open, drain and close one region's cursor.

    Negative ages are skipped. Counts read before an iteration failure are
    discarded; a release-only failure raises with ``partial_counts`` set.
    """
    scope = RegionScope(source, region)
    with scope as cursor:
        counts, skipped = _drain(cursor)
        scope.partial_counts = counts
    logger.debug(
        "Census region tallied region=%s distinct_ages=%s total=%s skipped=%s",
        region,
        len(counts),
        sum(counts.values()),
        skipped,
    )
    return RegionTally(region=region, counts=counts, skipped=skipped)


def merge_tallies(tables: Iterable[Mapping[int, int]]) -> Counter[int]:
    merged: Counter[int] = Counter()
    for table in tables:
        for age, count in table.items():
            if count < 1:
                raise AggregationError(f"non-positive count age={age} count={count}")
            merged[age] += count
    return merged


def _drain(cursor: AgeCursor) -> tuple[Counter[int], int]:
    counts: Counter[int] = Counter()
    skipped = 0
    for age in iter_ages(cursor):
        if age < 0:
            skipped += 1
            continue
        counts[age] += 1
    return counts, skipped
