"""Age census: top-3 age ranking over per-region cursors."""

from .aggregator import AggregationReport, CensusAggregator, FailurePolicy, RegionFailure
from .cursors import AgeCursor, CursorSource, FileCursorSource
from .errors import AggregationError, BatchAggregationError, CensusConfigError, CensusError, RegionError
from .selector import OUTPUT_FORMAT, TOP_N, RankedAge, render_ranking, select_top_ages
from .tally import merge_tallies, tally_ages, tally_region

__all__ = [
    "AgeCursor",
    "AggregationError",
    "AggregationReport",
    "BatchAggregationError",
    "CensusAggregator",
    "CensusConfigError",
    "CensusError",
    "CursorSource",
    "FailurePolicy",
    "FileCursorSource",
    "OUTPUT_FORMAT",
    "RankedAge",
    "RegionError",
    "RegionFailure",
    "TOP_N",
    "merge_tallies",
    "render_ranking",
    "select_top_ages",
    "tally_ages",
    "tally_region",
]
