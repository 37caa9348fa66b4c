"""Region aggregator: single-region ranking and concurrent multi-region fan-out/fan-in."""

from __future__ import annotations

from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
import logging
import os
import time
from typing import Sequence, overload

from .cursors import CursorSource, RegionScope
from .errors import BatchAggregationError, CensusConfigError, RegionError, describe, reason_code
from .selector import RankedAge, render_ranking, select_top_ages
from .tally import RegionTally, merge_tallies, tally_ages, tally_region

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    BEST_EFFORT = "best_effort"
    FAIL_FAST = "fail_fast"

    @classmethod
    def parse(cls, value: "str | FailurePolicy") -> "FailurePolicy":
        if isinstance(value, FailurePolicy):
            return value
        text = str(value or "").strip().lower().replace("-", "_")
        try:
            return cls(text)
        except ValueError as exc:
            known = ",".join(item.value for item in cls)
            raise CensusConfigError(f"unknown failure_policy '{value}' (known: {known})") from exc


@dataclass(frozen=True)
class RegionFailure:
    region: str
    code: str
    detail: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {"region": self.region, "code": self.code, "detail": self.detail}


@dataclass(frozen=True)
class AggregationReport:
    regions: tuple[str, ...]
    merged_counts: Counter[int]
    ranking: list[RankedAge]
    succeeded: tuple[str, ...] = ()
    failures: list[RegionFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures

    def as_dict(self) -> dict[str, object]:
        return {
            "regions": list(self.regions),
            "ranking": render_ranking(self.ranking),
            "failures": [failure.as_dict() for failure in self.failures],
        }


def default_capacity() -> int:
    return os.cpu_count() or 1


class CensusAggregator:
    """Top-3 ages for one region or across many regions.

    Stateless between calls and safe to share across threads; every call
    builds its own tables and, for the multi-region path, its own pool.
    """

    def __init__(
        self,
        cursor_source: CursorSource,
        *,
        max_workers: int | None = None,
        failure_policy: FailurePolicy | str = FailurePolicy.BEST_EFFORT,
    ) -> None:
        if max_workers is not None and int(max_workers) < 1:
            raise CensusConfigError(f"max_workers must be >= 1 (got {max_workers})")
        self.cursor_source = cursor_source
        self.max_workers = int(max_workers) if max_workers is not None else default_capacity()
        self.failure_policy = FailurePolicy.parse(failure_policy)

    @overload
    def top3_ages(self, regions: str) -> list[RankedAge]:
        ...

    @overload
    def top3_ages(self, regions: Sequence[str]) -> list[RankedAge]:
        ...

    def top3_ages(self, regions: str | Sequence[str]) -> list[RankedAge]:
        if isinstance(regions, str):
            return self.top3_for_region(regions)
        return self.top3_for_regions(regions)

    def top3_for_region(self, region: str) -> list[RankedAge]:
        with RegionScope(self.cursor_source, region) as cursor:
            if not cursor.has_next():
                logger.info("Census region empty region=%s", region)
                return []
            counts = tally_ages(cursor)
        return select_top_ages(counts)

    def top3_for_regions(self, regions: Sequence[str]) -> list[RankedAge]:
        return self.aggregate(regions).ranking

    def aggregate(self, regions: Sequence[str]) -> AggregationReport:
        region_list = tuple(str(region) for region in regions)
        if not region_list:
            return AggregationReport(regions=(), merged_counts=Counter(), ranking=[])

        workers = min(self.max_workers, len(region_list))
        started = time.monotonic()
        logger.info(
            "Census batch started regions=%s workers=%s policy=%s",
            len(region_list),
            workers,
            self.failure_policy.value,
        )
        outcomes = self._fan_out(region_list, workers)

        tallies: list[RegionTally] = []
        errors: list[RegionError] = []
        for region, outcome in zip(region_list, outcomes):
            if isinstance(outcome, RegionTally):
                tallies.append(outcome)
                continue
            errors.append(outcome)
            action = "excluded" if self.failure_policy is FailurePolicy.BEST_EFFORT else "failed batch"
            logger.warning(
                "Census region %s region=%s reason=%s error=%s",
                action,
                region,
                outcome.code,
                str(outcome),
            )
        failures = [RegionFailure(region=err.region, code=err.code, detail=err.detail) for err in errors]

        if errors and self.failure_policy is FailurePolicy.FAIL_FAST:
            raise BatchAggregationError(failures) from errors[0]

        merged = merge_tallies(tally.counts for tally in tallies)
        ranking = select_top_ages(merged)
        logger.info(
            "Census batch complete regions=%s succeeded=%s failed=%s distinct_ages=%s elapsed=%.3fs",
            len(region_list),
            len(tallies),
            len(failures),
            len(merged),
            time.monotonic() - started,
        )
        return AggregationReport(
            regions=region_list,
            merged_counts=merged,
            ranking=ranking,
            succeeded=tuple(tally.region for tally in tallies),
            failures=failures,
        )

    def _fan_out(self, regions: tuple[str, ...], workers: int) -> list[RegionTally | RegionError]:
        outcomes: list[RegionTally | RegionError | None] = [None] * len(regions)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="census-tally") as executor:
            futures: dict[Future[RegionTally], int] = {
                executor.submit(tally_region, self.cursor_source, region): index
                for index, region in enumerate(regions)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    outcomes[index] = future.result()
                except RegionError as exc:
                    outcomes[index] = exc
                except Exception as exc:
                    wrapped = RegionError(reason_code(exc), regions[index], describe(exc))
                    wrapped.__cause__ = exc
                    outcomes[index] = wrapped
        return [outcome for outcome in outcomes if outcome is not None]
