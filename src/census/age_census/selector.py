"""Top-3 selection over a frequency table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .errors import AggregationError

TOP_N = 3
OUTPUT_FORMAT = "{position}:{age}={count}"  # position:age=total


@dataclass(frozen=True)
class RankedAge:
    position: int
    age: int
    count: int

    def render(self) -> str:
        return OUTPUT_FORMAT.format(position=self.position, age=self.age, count=self.count)

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.position, self.age, self.count)


def select_top_ages(counts: Mapping[int, int], limit: int = TOP_N) -> list[RankedAge]:
    """Rank ages by descending count; equal counts rank the younger age first."""
    if limit < 0 or limit > TOP_N:
        raise AggregationError(f"limit must be within 0..{TOP_N} (got {limit})")
    for age, count in counts.items():
        if count < 1:
            raise AggregationError(f"non-positive count age={age} count={count}")
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        RankedAge(position=position, age=age, count=count)
        for position, (age, count) in enumerate(ordered[:limit], start=1)
    ]


def render_ranking(records: Iterable[RankedAge]) -> list[str]:
    return [record.render() for record in records]
