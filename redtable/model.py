"""Core value types: operations, cells, keys and compaction settings."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


@dataclass
class Get:
    """A read of one row, optionally limited in versions and time range."""

    row: bytes
    max_versions: Optional[int] = None
    time_range: Optional[Tuple[int, int]] = None

    def set_max_versions(self, max_versions: int) -> "Get":
        self.max_versions = max_versions
        return self

    def set_time_range(self, start_time: int, end_time: int) -> "Get":
        self.time_range = (start_time, end_time)
        return self


@dataclass
class Put:
    """A write of several columns to one row."""

    row: bytes
    columns: dict[bytes, bytes] = field(default_factory=dict)

    def add_column(self, column: bytes, value: bytes) -> "Put":
        self.columns[column] = value
        return self


@dataclass(frozen=True)
class CellPut:
    """A cell holding a value."""

    value: bytes


@dataclass(frozen=True)
class CellDelete:
    """A tombstone; with a TTL it may be dropped by compaction once expired."""

    ttl_ms: Optional[int] = None


CellValue = Union[CellPut, CellDelete]


class CompactionType(Enum):
    """Minor merges some SSTables, major merges all of them."""

    MINOR = "minor"
    MAJOR = "major"


@dataclass
class CompactionOptions:
    """Settings that control a compaction run."""

    compaction_type: CompactionType = CompactionType.MINOR
    max_versions: Optional[int] = None
    max_age_ms: Optional[int] = None
    cleanup_tombstones: bool = True


@dataclass(frozen=True, order=True)
class EntryKey:
    """Key of a versioned cell, ordered by row, column, then timestamp."""

    row: bytes
    column: bytes
    timestamp: int


@dataclass(frozen=True)
class Entry:
    """A key paired with its cell value."""

    key: EntryKey
    value: CellValue