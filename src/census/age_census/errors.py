"""Age census error taxonomy and helpers."""

from __future__ import annotations

from collections import Counter
from typing import Any

CURSOR_OPEN_FAILED = "CURSOR_OPEN_FAILED"
CURSOR_READ_FAILED = "CURSOR_READ_FAILED"
CURSOR_RELEASE_FAILED = "CURSOR_RELEASE_FAILED"
AGGREGATION_FAILED = "AGGREGATION_FAILED"
BATCH_FAILED = "BATCH_FAILED"


class CensusError(RuntimeError):
    """Stable error surfaced as a reason code."""

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class RegionError(CensusError):
    """A failure scoped to one region's cursor (open, read or release)."""

    def __init__(
        self,
        code: str,
        region: str,
        detail: str | None = None,
        *,
        release_error: BaseException | None = None,
        partial_counts: Counter[int] | None = None,
    ) -> None:
        self.region = region
        self.release_error = release_error
        self.partial_counts = partial_counts
        text = f"region={region}"
        if detail:
            text = f"{text} {detail}"
        super().__init__(code, text)
        self.detail = detail


class AggregationError(CensusError):
    """Merge or selection received input a correct tally can never produce."""

    def __init__(self, detail: str) -> None:
        super().__init__(AGGREGATION_FAILED, detail)


class BatchAggregationError(CensusError):
    """Raised by fail-fast batches once every region task has resolved."""

    def __init__(self, failures: list[Any]) -> None:
        self.failures = list(failures)
        regions = ",".join(failure.region for failure in self.failures)
        super().__init__(BATCH_FAILED, f"failed_regions={regions}")


class CensusConfigError(ValueError):
    """Raised when a census profile or override is invalid."""


def describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def reason_code(exc: BaseException) -> str:
    if isinstance(exc, CensusError):
        return exc.code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"
