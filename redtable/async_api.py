"""Asynchronous facade over tables and column families.

Every call runs the blocking storage work in a worker thread, so the event
loop is never held up by disk access.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union

from .aggregation import AggregationResult, AggregationSet
from .api import ColumnFamily, RowVersions, Table, Versions
from .model import CompactionOptions, Get, Put


class AsyncColumnFamily:
    """Awaitable wrapper around a ColumnFamily."""

    def __init__(self, cf: ColumnFamily) -> None:
        self.inner = cf

    @property
    def name(self) -> str:
        return self.inner.name

    async def put(self, row: bytes, column: bytes, value: bytes) -> None:
        """Write a new version of the cell, stamped with the current time."""
        await asyncio.to_thread(self.inner.put, row, column, value)

    async def execute_put(self, put: Put) -> None:
        """Write every column of the Put with one shared timestamp."""
        await asyncio.to_thread(self.inner.execute_put, put)

    async def delete(self, row: bytes, column: bytes) -> None:
        """Write a tombstone that never expires."""
        await asyncio.to_thread(self.inner.delete, row, column)

    async def delete_with_ttl(
        self, row: bytes, column: bytes, ttl_ms: Optional[int]
    ) -> None:
        """Write a tombstone with an optional TTL in milliseconds."""
        await asyncio.to_thread(self.inner.delete_with_ttl, row, column, ttl_ms)

    async def get(self, row: bytes, column: bytes) -> Optional[bytes]:
        """The latest value of the cell, or None when absent or deleted."""
        return await asyncio.to_thread(self.inner.get, bytes(row), bytes(column))

    async def get_versions(
        self, row: bytes, column: bytes, max_versions: int
    ) -> Versions:
        """Up to max_versions (timestamp, value) pairs, newest first."""
        return await asyncio.to_thread(
            self.inner.get_versions, bytes(row), bytes(column), max_versions
        )

    async def get_versions_with_time_range(
        self,
        row: bytes,
        column: bytes,
        max_versions: int,
        start_time: int,
        end_time: int,
    ) -> Versions:
        """Like get_versions, limited to timestamps in [start_time, end_time]."""
        return await asyncio.to_thread(
            self.inner.get_versions_with_time_range,
            bytes(row),
            bytes(column),
            max_versions,
            start_time,
            end_time,
        )

    async def execute_get(self, get: Get) -> RowVersions:
        """Run a Get over every column of its row."""
        return await asyncio.to_thread(self.inner.execute_get, get)

    async def execute_get_column(self, get: Get, column: bytes) -> Versions:
        """Run a Get for a single column."""
        return await asyncio.to_thread(self.inner.execute_get_column, get, bytes(column))

    async def scan_row_versions(
        self, row: bytes, max_versions_per_column: Optional[int]
    ) -> RowVersions:
        """Per column, up to max_versions_per_column values newest first."""
        return await asyncio.to_thread(
            self.inner.scan_row_versions, bytes(row), max_versions_per_column
        )

    async def aggregate(
        self, row: bytes, aggregation_set: AggregationSet
    ) -> dict[bytes, AggregationResult]:
        """Apply the aggregations to every version of the row."""
        return await asyncio.to_thread(self.inner.aggregate, bytes(row), aggregation_set)

    async def aggregate_range(
        self, start_row: bytes, end_row: bytes, aggregation_set: AggregationSet
    ) -> dict[bytes, dict[bytes, AggregationResult]]:
        """Aggregate each row in the inclusive range."""
        return await asyncio.to_thread(
            self.inner.aggregate_range, bytes(start_row), bytes(end_row), aggregation_set
        )

    async def flush(self) -> None:
        """Write the MemStore into a new SSTable."""
        await asyncio.to_thread(self.inner.flush)

    async def compact(self) -> None:
        """Minor compaction with default options."""
        await asyncio.to_thread(self.inner.compact)

    async def major_compact(self) -> None:
        """Merge every SSTable into one."""
        await asyncio.to_thread(self.inner.major_compact)

    async def compact_with_max_versions(self, max_versions: int) -> None:
        """Minor compaction keeping at most max_versions per cell."""
        await asyncio.to_thread(self.inner.compact_with_max_versions, max_versions)

    async def compact_with_max_age(self, max_age_ms: int) -> None:
        """Minor compaction dropping values older than max_age_ms."""
        await asyncio.to_thread(self.inner.compact_with_max_age, max_age_ms)

    async def compact_with_options(self, options: CompactionOptions) -> None:
        """Compact SSTables as the options say."""
        await asyncio.to_thread(self.inner.compact_with_options, options)


class AsyncTable:
    """Awaitable wrapper around a Table directory."""

    def __init__(self, path: Path, inner: Table) -> None:
        self.path = path
        self.inner = inner
        self._discovered: dict[str, ColumnFamily] = {}

    @classmethod
    async def open(cls, table_dir: Union[str, Path]) -> "AsyncTable":
        """Open (or create) a table directory."""
        path = Path(table_dir)
        inner = await asyncio.to_thread(Table, path)
        return cls(path, inner)

    async def create_cf(self, cf_name: str) -> AsyncColumnFamily:
        """Create a column family; raises FileExistsError if it already exists."""
        cf = await asyncio.to_thread(self.inner.create_cf, cf_name)
        return AsyncColumnFamily(cf)

    def _find_cf(self, cf_name: str) -> Optional[ColumnFamily]:
        cf = self.inner.cf(cf_name) or self._discovered.get(cf_name)
        if cf is not None:
            return cf
        # The family may have been created on disk by another handle.
        fresh = Table(self.path)
        found = None
        for name in fresh.column_families:
            candidate = fresh.cf(name)
            if name == cf_name:
                found = candidate
            else:
                candidate.close()
        if found is not None:
            self._discovered[cf_name] = found
        return found

    async def cf(self, cf_name: str) -> Optional[AsyncColumnFamily]:
        """The named column family, or None if it does not exist."""
        cf = await asyncio.to_thread(self._find_cf, cf_name)
        return AsyncColumnFamily(cf) if cf is not None else None

    async def close(self) -> None:
        """Stop the background work of every column family."""

        def _close() -> None:
            self.inner.close()
            for cf in self._discovered.values():
                cf.close()
            self._discovered.clear()

        await asyncio.to_thread(_close)

    async def __aenter__(self) -> "AsyncTable":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()