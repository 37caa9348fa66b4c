"""CLI entrypoint for the age census."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from census.logging_utils import configure_logging

from .aggregator import CensusAggregator, FailurePolicy
from .config import CensusProfile
from .cursors import FileCursorSource
from .errors import BatchAggregationError, CensusConfigError, RegionError
from .selector import render_ranking


def _parse_regions(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    items = [item.strip() for item in raw.split(",") if item.strip()]
    return items or None


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Top-3 ages across census regions")
    parser.add_argument("--profile", required=True, help="Path to census profile YAML")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--region", help="Single region name")
    group.add_argument("--regions", help="Comma-separated region names (aggregated concurrently)")
    parser.add_argument("--max-workers", type=int, default=None, help="Worker pool size (overrides profile)")
    parser.add_argument("--fail-fast", action="store_true", help="Fail the batch if any region fails")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    try:
        profile = CensusProfile.load(Path(args.profile))
    except (CensusConfigError, OSError) as exc:
        print(json.dumps({"error": "CONFIG_INVALID", "detail": str(exc)}, sort_keys=True))
        raise SystemExit(2)

    configure_logging(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        log_path=profile.wiring.log_path,
    )
    source = FileCursorSource(Path(profile.wiring.region_root), suffix=profile.wiring.region_suffix)
    try:
        aggregator = CensusAggregator(
            source,
            max_workers=args.max_workers if args.max_workers is not None else profile.policy.max_workers,
            failure_policy=FailurePolicy.FAIL_FAST if args.fail_fast else profile.policy.failure_policy,
        )
    except CensusConfigError as exc:
        print(json.dumps({"error": "CONFIG_INVALID", "detail": str(exc)}, sort_keys=True))
        raise SystemExit(2)

    if args.region:
        try:
            ranking = aggregator.top3_ages(args.region)
        except RegionError as exc:
            failure = {"region": exc.region, "code": exc.code, "detail": exc.detail}
            print(json.dumps({"regions": [args.region], "ranking": [], "failures": [failure]}, sort_keys=True))
            raise SystemExit(1)
        print(json.dumps({"regions": [args.region], "ranking": render_ranking(ranking), "failures": []}, sort_keys=True))
        raise SystemExit(0)

    regions = _parse_regions(args.regions) or []
    try:
        report = aggregator.aggregate(regions)
    except BatchAggregationError as exc:
        failures = [failure.as_dict() for failure in exc.failures]
        print(json.dumps({"regions": regions, "ranking": [], "failures": failures}, sort_keys=True))
        raise SystemExit(1)
    print(json.dumps(report.as_dict(), sort_keys=True))
    raise SystemExit(0 if report.complete else 1)


if __name__ == "__main__":
    main()
