"""Tables and column families: versioned cells over a MemStore and SSTables."""

from __future__ import annotations

import contextlib
import itertools
import logging
import re
import threading
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Union

from .aggregation import AggregationResult, AggregationSet
from .model import (
    CellDelete,
    CellPut,
    CellValue,
    CompactionOptions,
    CompactionType,
    Entry,
    EntryKey,
    Get,
    Put,
    now_millis,
)
from .storage import MemStore, SSTableReader, write_sstable

COMPACTION_INTERVAL_SECONDS = 60.0
MEMSTORE_FLUSH_THRESHOLD = 10_000

_SST_NAME = re.compile(r"([0-9]+)\.sst")

_log = logging.getLogger(__name__)

Versions = list[Tuple[int, bytes]]
RowVersions = dict[bytes, Versions]


def _sst_seq(path: Path) -> Optional[int]:
    match = _SST_NAME.fullmatch(path.name)
    return int(match.group(1)) if match else None


def _puts(versions: Iterable[Tuple[int, CellValue]]) -> Iterator[Tuple[int, bytes]]:
    for ts, cell in versions:
        if isinstance(cell, CellPut):
            yield ts, cell.value


def _prune(entries: list[Entry], options: CompactionOptions, now: int) -> list[Entry]:
    kept_all: list[Entry] = []
    for _, group in itertools.groupby(entries, key=lambda e: (e.key.row, e.key.column)):
        kept: list[Entry] = []
        seen_put = False
        for entry in sorted(group, key=lambda e: e.key.timestamp, reverse=True):
            cell = entry.value
            if isinstance(cell, CellPut):
                keep = (options.max_versions is None or len(kept) < options.max_versions) and (
                    options.max_age_ms is None or now - entry.key.timestamp <= options.max_age_ms
                )
            elif not options.cleanup_tombstones:
                keep = True
            elif cell.ttl_ms is not None:
                keep = entry.key.timestamp + cell.ttl_ms > now
            else:
                keep = not seen_put
            if keep:
                if isinstance(cell, CellPut):
                    seen_put = True
                kept.append(entry)
        kept_all.extend(kept)
    return kept_all


class ColumnFamily:
    """One column family of a table, with versioned reads and background compaction."""

    def __init__(self, table_path: Union[str, Path], name: str) -> None:
        self.name = name
        self.path = Path(table_path) / name
        self.path.mkdir(parents=True, exist_ok=True)
        self._mem_lock = threading.Lock()
        self._sst_lock = threading.Lock()
        self._compact_lock = threading.Lock()
        self._memstore = MemStore(self.path / "wal.log")
        paths = sorted(p for p in self.path.iterdir() if p.suffix == ".sst" and p.is_file())
        self._tables = [SSTableReader(p) for p in paths]
        seqs = [seq for seq in map(_sst_seq, paths) if seq is not None]
        self._next_seq = max(seqs, default=0) + 1
        self._stop = threading.Event()
        self._compactor = threading.Thread(
            target=self._compact_periodically, name=f"compactor-{name}", daemon=True
        )
        self._compactor.start()

    def _compact_periodically(self) -> None:
        while not self._stop.wait(COMPACTION_INTERVAL_SECONDS):
            try:
                self.compact()
            except (OSError, ValueError) as exc:
                _log.error("compaction failed in column family %r: %s", self.name, exc)

    def close(self) -> None:
        """Stop the background compactor."""
        self._stop.set()
        if self._compactor.is_alive() and self._compactor is not threading.current_thread():
            self._compactor.join()

    def __enter__(self) -> "ColumnFamily":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def sstable_paths(self) -> list[Path]:
        """Paths of the SSTable files currently in use."""
        return [table.path for table in self._snapshot_tables()]

    def _snapshot_tables(self) -> list[SSTableReader]:
        with self._sst_lock:
            return list(self._tables)

    def _allocate_path(self) -> Path:
        with self._sst_lock:
            seq = self._next_seq
            self._next_seq += 1
        return self.path / f"{seq:010d}.sst"

    def _write(self, entries: Iterable[Entry]) -> None:
        with self._mem_lock:
            for entry in entries:
                self._memstore.append(entry)
            needs_flush = len(self._memstore) > MEMSTORE_FLUSH_THRESHOLD
        if needs_flush:
            self.flush()

    def put(self, row: bytes, column: bytes, value: bytes) -> None:
        """Write a new version of the cell, stamped with the current time."""
        key = EntryKey(bytes(row), bytes(column), now_millis())
        self._write([Entry(key, CellPut(bytes(value)))])

    def execute_put(self, put: Put) -> None:
        """Write every column of the Put with one shared timestamp."""
        ts = now_millis()
        row = bytes(put.row)
        self._write(
            Entry(EntryKey(row, bytes(column), ts), CellPut(bytes(value)))
            for column, value in put.columns.items()
        )

    def delete(self, row: bytes, column: bytes) -> None:
        """Write a tombstone that never expires."""
        self.delete_with_ttl(row, column, None)

    def delete_with_ttl(self, row: bytes, column: bytes, ttl_ms: Optional[int]) -> None:
        """Write a tombstone; with a TTL, compaction may drop it once it expires."""
        key = EntryKey(bytes(row), bytes(column), now_millis())
        self._write([Entry(key, CellDelete(ttl_ms))])

    def get(self, row: bytes, column: bytes) -> Optional[bytes]:
        """The latest value of the cell, or None when absent or deleted."""
        with self._mem_lock:
            found = self._memstore.latest(row, column)
        if found is None:
            candidates = [
                hit
                for table in reversed(self._snapshot_tables())
                if (hit := table.latest(row, column)) is not None
            ]
            if not candidates:
                return None
            found = max(candidates, key=lambda hit: hit[0])
        cell = found[1]
        return cell.value if isinstance(cell, CellPut) else None

    def _all_versions(self, row: bytes, column: bytes) -> list[Tuple[int, CellValue]]:
        with self._mem_lock:
            versions = list(self._memstore.versions(row, column))
        for table in self._snapshot_tables():
            versions.extend(table.versions(row, column))
        versions.sort(key=lambda item: item[0], reverse=True)
        return versions

    def get_versions(self, row: bytes, column: bytes, max_versions: int) -> Versions:
        """Up to max_versions (timestamp, value) pairs, newest first, tombstones skipped."""
        return list(itertools.islice(_puts(self._all_versions(row, column)), max_versions))

    def get_versions_with_time_range(
        self, row: bytes, column: bytes, max_versions: int, start_time: int, end_time: int
    ) -> Versions:
        """Like get_versions, limited to timestamps in [start_time, end_time]."""
        in_range = (
            (ts, cell)
            for ts, cell in self._all_versions(row, column)
            if start_time <= ts <= end_time
        )
        return list(itertools.islice(_puts(in_range), max_versions))

    def execute_get(self, get: Get) -> RowVersions:
        """Run a Get over every column of its row."""
        max_versions = get.max_versions if get.max_versions is not None else 1
        if get.time_range is None:
            return self.scan_row_versions(get.row, max_versions)
        start_time, end_time = get.time_range
        result: RowVersions = {}
        for column, versions in self.scan_row_versions(get.row, max_versions * 10).items():
            kept = [(ts, v) for ts, v in versions if start_time <= ts <= end_time][:max_versions]
            if kept:
                result[column] = kept
        return result

    def execute_get_column(self, get: Get, column: bytes) -> Versions:
        """Run a Get for a single column."""
        max_versions = get.max_versions if get.max_versions is not None else 1
        if get.time_range is None:
            return self.get_versions(get.row, column, max_versions)
        start_time, end_time = get.time_range
        return self.get_versions_with_time_range(
            get.row, column, max_versions, start_time, end_time
        )

    def scan_row_versions(
        self, row: bytes, max_versions_per_column: Optional[int]
    ) -> RowVersions:
        """Per column, up to max_versions_per_column values newest first (None: all)."""
        per_column: dict[bytes, list[Tuple[int, CellValue]]] = {}
        for table in self._snapshot_tables():
            for column, ts, cell in table.scan_row(row):
                per_column.setdefault(column, []).append((ts, cell))
        with self._mem_lock:
            scanned = self._memstore.scan_row(row)
        for key, cell in scanned:
            per_column.setdefault(key.column, []).append((key.timestamp, cell))
        result: RowVersions = {}
        for column in sorted(per_column):
            versions = sorted(per_column[column], key=lambda item: item[0], reverse=True)
            kept = list(itertools.islice(_puts(versions), max_versions_per_column))
            if kept:
                result[column] = kept
        return result

    def row_keys_in_range(self, start_row: bytes, end_row: bytes) -> list[bytes]:
        """Sorted row keys between start_row and end_row, inclusive."""
        with self._mem_lock:
            rows = set(self._memstore.row_keys_in_range(start_row, end_row))
        for table in self._snapshot_tables():
            rows.update(table.row_keys_in_range(start_row, end_row))
        return sorted(rows)

    def aggregate(
        self, row: bytes, aggregation_set: AggregationSet
    ) -> dict[bytes, AggregationResult]:
        """Apply the aggregations to every version of the row."""
        return aggregation_set.apply(self.scan_row_versions(row, None))

    def aggregate_range(
        self, start_row: bytes, end_row: bytes, aggregation_set: AggregationSet
    ) -> dict[bytes, dict[bytes, AggregationResult]]:
        """Aggregate each row in the inclusive range, leaving out empty results."""
        result = {}
        for row in self.row_keys_in_range(start_row, end_row):
            row_result = self.aggregate(row, aggregation_set)
            if row_result:
                result[row] = row_result
        return result

    def flush(self) -> None:
        """Write the MemStore into a new SSTable and empty it with its WAL."""
        with self._mem_lock:
            if not len(self._memstore):
                return
            path = self._allocate_path()
            entries = self._memstore.drain()
            try:
                write_sstable(path, entries)
                reader = SSTableReader(path)
            except BaseException:
                for entry in entries:
                    self._memstore.append(entry)
                raise
            with self._sst_lock:
                self._tables.append(reader)

    def compact(self) -> None:
        """Minor compaction with default options."""
        self.compact_with_options(CompactionOptions())

    def major_compact(self) -> None:
        """Merge every SSTable into one."""
        self.compact_with_options(CompactionOptions(compaction_type=CompactionType.MAJOR))

    def compact_with_max_versions(self, max_versions: int) -> None:
        """Minor compaction keeping at most max_versions per cell."""
        self.compact_with_options(CompactionOptions(max_versions=max_versions))

    def compact_with_max_age(self, max_age_ms: int) -> None:
        """Minor compaction dropping values older than max_age_ms."""
        self.compact_with_options(CompactionOptions(max_age_ms=max_age_ms))

    def compact_with_options(self, options: CompactionOptions) -> None:
        """Merge SSTables as the options say and replace them with one new file."""
        with self._compact_lock:
            tables = self._snapshot_tables()
            if len(tables) <= 1 and options.compaction_type is CompactionType.MINOR:
                return
            if options.compaction_type is CompactionType.MAJOR:
                chosen = tables
            else:
                ordered = sorted(tables, key=lambda t: t.path)
                count = min(max(len(ordered) // 2, 2), len(ordered))
                chosen = ordered[:count]
            if not chosen:
                return

            merged = sorted(
                (entry for table in chosen for entry in table.scan_all()),
                key=lambda entry: entry.key,
            )
            if (
                options.max_versions is not None
                or options.max_age_ms is not None
                or options.cleanup_tombstones
            ):
                merged = _prune(merged, options, now_millis())

            new_path = self._allocate_path()
            write_sstable(new_path, merged)
            reader = SSTableReader(new_path)

            chosen_paths = {table.path for table in chosen}
            with self._sst_lock:
                for old_path in chosen_paths:
                    with contextlib.suppress(OSError):
                        old_path.unlink()
                remaining = [t for t in self._tables if t.path not in chosen_paths]
                self._tables = sorted(remaining + [reader], key=lambda t: t.path)


class Table:
    """A directory holding one sub-directory per column family."""

    def __init__(self, table_dir: Union[str, Path]) -> None:
        self.path = Path(table_dir)
        self.path.mkdir(parents=True, exist_ok=True)
        self._column_families: dict[str, ColumnFamily] = {}
        for child in sorted(self.path.iterdir()):
            if child.is_dir():
                self._column_families[child.name] = ColumnFamily(self.path, child.name)

    @property
    def column_families(self) -> list[str]:
        """Names of the column families, sorted."""
        return sorted(self._column_families)

    def create_cf(self, cf_name: str) -> ColumnFamily:
        """Create a new column family; raises FileExistsError if it exists."""
        if cf_name in self._column_families:
            raise FileExistsError(f"ColumnFamily {cf_name} already exists")
        cf = ColumnFamily(self.path, cf_name)
        self._column_families[cf_name] = cf
        return cf

    def cf(self, cf_name: str) -> Optional[ColumnFamily]:
        """The named column family, or None."""
        return self._column_families.get(cf_name)

    def close(self) -> None:
        """Stop the background work of every column family."""
        for cf in self._column_families.values():
            cf.close()

    def __enter__(self) -> "Table":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()