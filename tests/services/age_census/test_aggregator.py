from __future__ import annotations

from collections import Counter
import itertools
import logging

import pytest

from census.age_census.aggregator import CensusAggregator, FailurePolicy
from census.age_census.errors import BatchAggregationError, CensusConfigError, RegionError

from _fakes import FakeSource


def _ages(histogram: dict[int, int]) -> list[int]:
    ages: list[int] = []
    for age, count in histogram.items():
        ages.extend([age] * count)
    return ages


def _tuples(ranking) -> list[tuple[int, int, int]]:
    return [record.as_tuple() for record in ranking]


def test_single_region_top_three() -> None:
    source = FakeSource({"r": _ages({20: 100, 25: 75, 30: 200, 35: 50})})
    ranking = CensusAggregator(source).top3_ages("r")
    assert _tuples(ranking) == [(1, 30, 200), (2, 20, 100), (3, 25, 75)]
    assert source.close_calls() == [1]


def test_single_region_without_data_is_empty_not_error() -> None:
    source = FakeSource({"empty": []})
    assert CensusAggregator(source).top3_ages("empty") == []
    assert source.close_calls() == [1]


def test_single_region_of_only_invalid_ages_is_empty() -> None:
    source = FakeSource({"r": [-1, -1]})
    assert CensusAggregator(source).top3_ages("r") == []


def test_single_region_failure_is_wrapped_with_cause() -> None:
    source = FakeSource({"r": [1, 2, 3]}, {"r": {"fail_after": 1}})
    with pytest.raises(RegionError) as excinfo:
        CensusAggregator(source).top3_ages("r")
    assert excinfo.value.region == "r"
    assert excinfo.value.code == "CURSOR_READ_FAILED"
    assert isinstance(excinfo.value.__cause__, OSError)
    assert source.close_calls() == [1]


def test_single_region_unknown_is_open_failure() -> None:
    with pytest.raises(RegionError) as excinfo:
        CensusAggregator(FakeSource({})).top3_ages("missing")
    assert excinfo.value.code == "CURSOR_OPEN_FAILED"
    assert "missing" in str(excinfo.value)


def test_single_region_release_failure_surfaces() -> None:
    source = FakeSource({"r": [4]}, {"r": {"fail_on_close": True}})
    with pytest.raises(RegionError) as excinfo:
        CensusAggregator(source).top3_ages("r")
    assert excinfo.value.code == "CURSOR_RELEASE_FAILED"


def test_two_regions_merge_counts() -> None:
    source = FakeSource({"x": [10, 10, 10], "y": [10, 10, 20]})
    report = CensusAggregator(source, max_workers=2).aggregate(["x", "y"])
    assert report.merged_counts == Counter({10: 5, 20: 1})
    assert _tuples(report.ranking) == [(1, 10, 5), (2, 20, 1)]
    assert report.complete
    assert sorted(source.close_calls()) == [1, 1]


def test_list_overload_matches_aggregate_ranking() -> None:
    source = FakeSource({"x": [10, 10, 10], "y": [10, 10, 20]})
    aggregator = CensusAggregator(source, max_workers=2)
    assert _tuples(aggregator.top3_ages(["x", "y"])) == [(1, 10, 5), (2, 20, 1)]


def test_failing_region_is_excluded_and_others_still_count(caplog) -> None:
    caplog.set_level(logging.WARNING)
    source = FakeSource(
        {"a": [30, 30, 40], "b": [99, 99, 99, 99], "c": [30, 50]},
        {"b": {"fail_after": 2}},
    )
    report = CensusAggregator(source, max_workers=3).aggregate(["a", "b", "c"])
    assert _tuples(report.ranking) == [(1, 30, 3), (2, 40, 1), (3, 50, 1)]
    assert 99 not in report.merged_counts
    assert report.succeeded == ("a", "c")
    assert [(failure.region, failure.code) for failure in report.failures] == [("b", "CURSOR_READ_FAILED")]
    assert sorted(source.close_calls()) == [1, 1, 1]
    assert "region=b" in caplog.text


def test_unknown_region_does_not_abort_batch() -> None:
    source = FakeSource({"a": [7, 7]})
    report = CensusAggregator(source, max_workers=2).aggregate(["a", "ghost"])
    assert _tuples(report.ranking) == [(1, 7, 2)]
    assert report.failures[0].code == "CURSOR_OPEN_FAILED"
    assert report.failures[0].region == "ghost"


def test_all_regions_failing_yields_empty_best_effort_ranking() -> None:
    report = CensusAggregator(FakeSource({}), max_workers=2).aggregate(["p", "q"])
    assert report.ranking == []
    assert len(report.failures) == 2
    assert not report.complete


def test_fail_fast_raises_after_every_cursor_is_closed() -> None:
    source = FakeSource(
        {"a": [1, 1], "b": [2, 2, 2], "c": [3]},
        {"b": {"fail_after": 1}, "c": {"fail_on_close": True}},
    )
    aggregator = CensusAggregator(source, max_workers=2, failure_policy="fail_fast")
    with pytest.raises(BatchAggregationError) as excinfo:
        aggregator.top3_ages(["a", "b", "c"])
    err = excinfo.value
    assert err.code == "BATCH_FAILED"
    assert [(failure.region, failure.code) for failure in err.failures] == [
        ("b", "CURSOR_READ_FAILED"),
        ("c", "CURSOR_RELEASE_FAILED"),
    ]
    assert isinstance(err.__cause__, RegionError)
    assert err.__cause__.region == "b"
    assert sorted(source.close_calls()) == [1, 1, 1]


def test_duplicate_regions_count_independently() -> None:
    source = FakeSource({"x": [10, 10, 20]})
    report = CensusAggregator(source, max_workers=2).aggregate(["x", "x"])
    assert report.merged_counts == Counter({10: 4, 20: 2})
    assert len(source.opened) == 2


def test_result_ignores_region_order_and_capacity() -> None:
    regions = {
        "a": [1, 1, 2, 3, -4],
        "b": [2, 2, 3, 9],
        "c": [3, 3, 1, 9, 9],
        "d": [],
    }
    expected = CensusAggregator(FakeSource(regions), max_workers=1).top3_ages(list(regions))
    assert _tuples(expected) == [(1, 3, 4), (2, 1, 3), (3, 2, 3)]
    for workers in (1, 2, 3, 4, 8):
        for order in itertools.permutations(regions):
            ranking = CensusAggregator(FakeSource(regions), max_workers=workers).top3_ages(list(order))
            assert ranking == expected


def test_worker_capacity_bounds_open_cursors() -> None:
    regions = {f"r{idx}": [idx] * 5 for idx in range(8)}
    options = {name: {"delay": 0.005} for name in regions}
    source = FakeSource(regions, options)
    report = CensusAggregator(source, max_workers=2).aggregate(list(regions))
    assert 1 <= source.peak <= 2
    assert source.active == 0
    assert len(report.merged_counts) == 8


def test_empty_region_list_yields_empty_ranking() -> None:
    assert CensusAggregator(FakeSource({})).top3_ages([]) == []


def test_default_capacity_follows_cpu_count(monkeypatch) -> None:
    monkeypatch.setattr("census.age_census.aggregator.os.cpu_count", lambda: 6)
    assert CensusAggregator(FakeSource({})).max_workers == 6
    monkeypatch.setattr("census.age_census.aggregator.os.cpu_count", lambda: None)
    assert CensusAggregator(FakeSource({})).max_workers == 1


def test_invalid_capacity_and_policy_are_config_errors() -> None:
    with pytest.raises(CensusConfigError):
        CensusAggregator(FakeSource({}), max_workers=0)
    with pytest.raises(CensusConfigError):
        CensusAggregator(FakeSource({}), failure_policy="sometimes")
    assert FailurePolicy.parse("fail-fast") is FailurePolicy.FAIL_FAST


def test_report_serialises_rendered_ranking() -> None:
    source = FakeSource({"x": [10, 10, 10], "y": [10, 10, 20]})
    payload = CensusAggregator(source, max_workers=2).aggregate(["x", "y"]).as_dict()
    assert payload == {"regions": ["x", "y"], "ranking": ["1:10=5", "2:20=1"], "failures": []}


def test_failure_detail_holds_cause_without_region_prefix() -> None:
    source = FakeSource({"a": [1]}, {"a": {"fail_after": 0}})
    report = CensusAggregator(source, max_workers=1).aggregate(["a"])
    failure = report.failures[0]
    assert failure.region == "a"
    assert failure.detail == "OSError: disk read error"
    with pytest.raises(RegionError) as excinfo:
        CensusAggregator(FakeSource({"a": [1]}, {"a": {"fail_after": 0}})).top3_ages("a")
    assert str(excinfo.value) == "CURSOR_READ_FAILED:region=a OSError: disk read error"


def test_warning_wording_follows_failure_policy(caplog) -> None:
    caplog.set_level(logging.WARNING)
    regions = {"a": [1], "b": [2]}
    options = {"b": {"fail_after": 0}}
    CensusAggregator(FakeSource(regions, options), max_workers=2).aggregate(["a", "b"])
    assert "Census region excluded region=b" in caplog.text
    caplog.clear()

    aggregator = CensusAggregator(FakeSource(regions, options), max_workers=2, failure_policy="fail_fast")
    with pytest.raises(BatchAggregationError):
        aggregator.aggregate(["a", "b"])
    assert "Census region failed batch region=b" in caplog.text
    assert "excluded" not in caplog.text
