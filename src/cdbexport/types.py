"""
Type definitions for the visualization export pipeline.

This module provides the result objects returned by the export stages and the
exception hierarchy shared by every component. Per-sub-layer failures are
recorded as results so one bad sub-layer never aborts its siblings; only a
document load failure aborts a whole export.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .domain.enums import ExportState, ExportTarget


# Export exception hierarchy
class ExportError(Exception):
    """Base exception for export operations."""
    pass


class DocumentLoadError(ExportError):
    """The visualization document could not be fetched, read or parsed."""
    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"Could not load visualization from {source}: {message}")


class SqlParseError(ExportError):
    """A sub-layer SQL statement could not be parsed."""
    def __init__(self, sql: str, message: str,
                 line: Optional[int] = None, column: Optional[int] = None):
        self.sql = sql
        self.line = line
        self.column = column
        where = f" at line {line}, column {column}" if line is not None else ""
        super().__init__(f"SQL parse error{where}: {message}")


class FetchError(ExportError):
    """Transport-level failure while downloading sub-layer data."""
    def __init__(self, layer_index: int, sublayer_index: int, message: str):
        self.layer_index = layer_index
        self.sublayer_index = sublayer_index
        super().__init__(f"Fetch failed for layer {layer_index}, sublayer {sublayer_index}: {message}")


class FilesystemError(ExportError):
    """Failure creating directories or writing an export file."""
    def __init__(self, path: Path, message: str,
                 layer_index: Optional[int] = None, sublayer_index: Optional[int] = None):
        self.path = path
        self.layer_index = layer_index
        self.sublayer_index = sublayer_index
        super().__init__(f"Filesystem error at {path}: {message}")


@dataclass(frozen=True)
class SublayerResult:
    """Outcome of one sub-layer download.

    ``error`` is ``None`` on success; otherwise it holds the exception that
    failed the download, one of ``SqlParseError``, ``FetchError`` or
    ``FilesystemError``.
    """
    layer_index: int
    sublayer_index: int
    target: ExportTarget
    path: Path
    bytes_written: int = 0
    error: Optional[ExportError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def coordinates(self) -> tuple[int, int]:
        return (self.layer_index, self.sublayer_index)


@dataclass
class ExportResult:
    """Aggregated outcome of an export run.

    The run succeeded only if every sub-layer download succeeded.
    """
    dest_dir: Path
    state: ExportState = ExportState.IDLE
    results: list[SublayerResult] = field(default_factory=list)
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state == ExportState.COMPLETE and all(r.ok for r in self.results)

    @property
    def failures(self) -> list[SublayerResult]:
        return [r for r in self.results if not r.ok]

    @property
    def failed_coordinates(self) -> list[tuple[int, int]]:
        return sorted({r.coordinates for r in self.failures})

    def raise_for_failures(self) -> None:
        """Raise ``ExportError`` naming every failed sub-layer, if any failed."""
        failures = self.failures
        if not failures:
            return
        details = "; ".join(
            f"layer {r.layer_index} sublayer {r.sublayer_index} ({r.target.value}): {r.error}"
            for r in failures
        )
        raise ExportError(f"{len(failures)} sublayer download(s) failed: {details}")
