"""Batches of writes and row reads run against a column family in order."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional, Tuple, Union

from .api import ColumnFamily, RowVersions
from .async_api import AsyncColumnFamily
from .model import Get, Put


@dataclass
class BatchGet:
    """A row read queued in a batch."""

    row: bytes
    max_versions: Optional[int] = None
    time_range: Optional[Tuple[int, int]] = None

    def set_max_versions(self, max_versions: int) -> "BatchGet":
        self.max_versions = max_versions
        return self

    def set_time_range(self, start_time: int, end_time: int) -> "BatchGet":
        self.time_range = (start_time, end_time)
        return self

    def to_get(self) -> Get:
        """The equivalent Get operation."""
        return Get(bytes(self.row), self.max_versions, self.time_range)


@dataclass
class BatchPut:
    """A multi-column row write queued in a batch."""

    row: bytes
    columns: dict[bytes, bytes] = field(default_factory=dict)

    def add_column(self, column: bytes, value: bytes) -> "BatchPut":
        self.columns[bytes(column)] = bytes(value)
        return self

    def to_put(self) -> Put:
        """The equivalent Put operation."""
        return Put(bytes(self.row), dict(self.columns))


@dataclass(frozen=True)
class _PutCell:
    row: bytes
    column: bytes
    value: bytes


@dataclass(frozen=True)
class _DeleteCell:
    row: bytes
    column: bytes
    ttl_ms: Optional[int] = None
    with_ttl: bool = False


BatchOperation = Union[_PutCell, _DeleteCell, BatchGet, BatchPut]


class Batch:
    """An ordered list of operations; each adder returns the batch for chaining."""

    def __init__(self) -> None:
        self._operations: list[BatchOperation] = []

    def put(self, row: bytes, column: bytes, value: bytes) -> "Batch":
        self._operations.append(_PutCell(bytes(row), bytes(column), bytes(value)))
        return self

    def delete(self, row: bytes, column: bytes) -> "Batch":
        self._operations.append(_DeleteCell(bytes(row), bytes(column)))
        return self

    def delete_with_ttl(
        self, row: bytes, column: bytes, ttl_ms: Optional[int]
    ) -> "Batch":
        self._operations.append(
            _DeleteCell(bytes(row), bytes(column), ttl_ms, with_ttl=True)
        )
        return self

    def get_row(self, row: bytes) -> "Batch":
        self._operations.append(BatchGet(bytes(row)))
        return self

    def get_row_with_max_versions(self, row: bytes, max_versions: int) -> "Batch":
        self._operations.append(BatchGet(bytes(row)).set_max_versions(max_versions))
        return self

    def get_row_with_time_range(
        self, row: bytes, start_time: int, end_time: int
    ) -> "Batch":
        self._operations.append(
            BatchGet(bytes(row)).set_time_range(start_time, end_time)
        )
        return self

    def put_row(self, row: bytes, columns: Mapping[bytes, bytes]) -> "Batch":
        batch_put = BatchPut(bytes(row))
        for column, value in columns.items():
            batch_put.add_column(column, value)
        self._operations.append(batch_put)
        return self

    def clear(self) -> None:
        self._operations.clear()

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[BatchOperation]:
        return iter(self._operations)


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one operation: a plain success, or the data of a row read."""

    row_data: Optional[RowVersions] = None

    @property
    def is_success(self) -> bool:
        return self.row_data is None


_SUCCESS = BatchResult()


def _run(cf: ColumnFamily, op: BatchOperation, read: bool) -> Optional[BatchResult]:
    match op:
        case _PutCell(row, column, value):
            cf.put(row, column, value)
        case _DeleteCell(row, column, ttl_ms, with_ttl):
            if with_ttl:
                cf.delete_with_ttl(row, column, ttl_ms)
            else:
                cf.delete(row, column)
        case BatchGet():
            return BatchResult(cf.execute_get(op.to_get())) if read else None
        case BatchPut():
            cf.execute_put(op.to_put())
    return _SUCCESS


async def _run_async(
    cf: AsyncColumnFamily, op: BatchOperation, read: bool
) -> Optional[BatchResult]:
    match op:
        case _PutCell(row, column, value):
            await cf.put(row, column, value)
        case _DeleteCell(row, column, ttl_ms, with_ttl):
            if with_ttl:
                await cf.delete_with_ttl(row, column, ttl_ms)
            else:
                await cf.delete(row, column)
        case BatchGet():
            if not read:
                return None
            return BatchResult(await cf.execute_get(op.to_get()))
        case BatchPut():
            await cf.execute_put(op.to_put())
    return _SUCCESS


def execute_batch(cf: ColumnFamily, batch: Batch) -> None:
    """Apply the batch's writes in order; row reads are skipped."""
    for op in batch:
        _run(cf, op, read=False)


def execute_batch_with_results(cf: ColumnFamily, batch: Batch) -> list[BatchResult]:
    """Run every operation in order and return one result per operation."""
    return [_run(cf, op, read=True) for op in batch]


async def execute_batch_async(cf: AsyncColumnFamily, batch: Batch) -> None:
    """Apply the batch's writes in order; row reads are skipped."""
    for op in batch:
        await _run_async(cf, op, read=False)


async def execute_batch_with_results_async(
    cf: AsyncColumnFamily, batch: Batch
) -> list[BatchResult]:
    """Run every operation in order and return one result per operation."""
    return [await _run_async(cf, op, read=True) for op in batch]