"""Cursor Source boundary: cursor protocol, scoped acquisition, file-backed source."""

from __future__ import annotations

from collections import Counter
import logging
from pathlib import Path
from types import TracebackType
from typing import Callable, Iterator, Protocol, TextIO

from .errors import (
    CURSOR_OPEN_FAILED,
    CURSOR_READ_FAILED,
    CURSOR_RELEASE_FAILED,
    RegionError,
    describe,
)

logger = logging.getLogger(__name__)


class AgeCursor(Protocol):
    def has_next(self) -> bool:
        ...

    def read_next(self) -> int:
        ...

    def close(self) -> None:
        ...


CursorSource = Callable[[str], AgeCursor]


def iter_ages(cursor: AgeCursor) -> Iterator[int]:
    while cursor.has_next():
        yield cursor.read_next()


class RegionScope:
    """Owns one region's cursor for the duration of a ``with`` block.

    The cursor is closed exactly once on every exit path. Failures are
    re-raised as :class:`RegionError` tagged with the stage that failed:
    opening, reading (anything raised inside the block) or releasing.
    A release failure that follows a read failure is attached to the read
    error rather than replacing it. Counts stored on ``partial_counts``
    before the block ends travel with a release-only failure.
    """

    def __init__(self, source: CursorSource, region: str) -> None:
        self.source = source
        self.region = region
        self.partial_counts: Counter[int] | None = None
        self._cursor: AgeCursor | None = None

    def __enter__(self) -> AgeCursor:
        try:
            self._cursor = self.source(self.region)
        except Exception as exc:
            raise RegionError(CURSOR_OPEN_FAILED, self.region, describe(exc)) from exc
        if self._cursor is None:
            raise RegionError(CURSOR_OPEN_FAILED, self.region, "source returned no cursor")
        return self._cursor

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        cursor, self._cursor = self._cursor, None
        release_error: Exception | None = None
        if cursor is not None:
            try:
                cursor.close()
            except Exception as close_exc:
                release_error = close_exc

        if exc is not None:
            if not isinstance(exc, Exception):
                return False
            if release_error is not None:
                logger.warning(
                    "Census cursor release failed after read failure region=%s error=%s",
                    self.region,
                    describe(release_error),
                )
            if isinstance(exc, RegionError):
                if release_error is not None and exc.release_error is None:
                    exc.release_error = release_error
                return False
            raise RegionError(
                CURSOR_READ_FAILED,
                self.region,
                describe(exc),
                release_error=release_error,
            ) from exc

        if release_error is not None:
            raise RegionError(
                CURSOR_RELEASE_FAILED,
                self.region,
                describe(release_error),
                partial_counts=self.partial_counts,
            ) from release_error
        return False


class FileAgeCursor:
    """Reads one integer age per line; blank lines and ``#`` comments are ignored."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: TextIO | None = path.open("r", encoding="utf-8")
        self._line_no = 0
        self._pending: str | None = None

    def has_next(self) -> bool:
        if self._pending is not None:
            return True
        if self._handle is None:
            return False
        for line in self._handle:
            self._line_no += 1
            text = line.split("#", 1)[0].strip()
            if text:
                self._pending = text
                return True
        return False

    def read_next(self) -> int:
        if not self.has_next():
            raise EOFError(f"{self.path} exhausted")
        text, self._pending = self._pending, None
        try:
            return int(text)
        except ValueError as exc:
            raise ValueError(f"{self.path}:{self._line_no} is not an integer age: {text!r}") from exc

    def close(self) -> None:
        handle, self._handle = self._handle, None
        self._pending = None
        if handle is not None:
            handle.close()


class FileCursorSource:
    """Maps region ``r`` to ``<root>/<r><suffix>``."""

    def __init__(self, root: Path, suffix: str = ".txt") -> None:
        self.root = Path(root)
        self.suffix = suffix

    def __call__(self, region: str) -> FileAgeCursor:
        name = str(region).strip()
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise ValueError(f"invalid region name {region!r}")
        path = self.root / f"{name}{self.suffix}"
        if not path.is_file():
            raise FileNotFoundError(f"region not found: {region} ({path})")
        return FileAgeCursor(path)
