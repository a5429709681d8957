"""Storage layers: the write-ahead-logged MemStore and immutable SSTable files."""

from __future__ import annotations

import bisect
import io
import os
import struct
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional, Tuple, Union

from .model import CellDelete, CellPut, CellValue, Entry, EntryKey

SSTABLE_MAGIC = b"RTSSTBL1"

_LEN = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_U8 = struct.Struct(">B")
_TAG_PUT = 0
_TAG_DELETE = 1

PathLike = Union[str, "os.PathLike[str]"]


class CorruptDataError(ValueError):
    """Raised when a storage file cannot be decoded."""


def _encode_entry(entry: Entry) -> bytes:
    key = entry.key
    parts = [
        _LEN.pack(len(key.row)),
        key.row,
        _LEN.pack(len(key.column)),
        key.column,
        _U64.pack(key.timestamp),
    ]
    cell = entry.value
    if isinstance(cell, CellPut):
        parts += [_U8.pack(_TAG_PUT), _LEN.pack(len(cell.value)), cell.value]
    elif cell.ttl_ms is None:
        parts += [_U8.pack(_TAG_DELETE), _U8.pack(0), _U64.pack(0)]
    else:
        parts += [_U8.pack(_TAG_DELETE), _U8.pack(1), _U64.pack(cell.ttl_ms)]
    return b"".join(parts)


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise EOFError("unexpected end of data")
    return data


def _read_sized(stream: BinaryIO) -> bytes:
    (size,) = _LEN.unpack(_read_exact(stream, _LEN.size))
    return _read_exact(stream, size)


def _decode_entry(stream: BinaryIO) -> Entry:
    row = _read_sized(stream)
    column = _read_sized(stream)
    (timestamp,) = _U64.unpack(_read_exact(stream, _U64.size))
    (tag,) = _U8.unpack(_read_exact(stream, _U8.size))
    cell: CellValue
    if tag == _TAG_PUT:
        cell = CellPut(_read_sized(stream))
    elif tag == _TAG_DELETE:
        (has_ttl,) = _U8.unpack(_read_exact(stream, _U8.size))
        (ttl,) = _U64.unpack(_read_exact(stream, _U64.size))
        cell = CellDelete(ttl if has_ttl else None)
    else:
        raise CorruptDataError(f"unknown cell tag {tag}")
    return Entry(EntryKey(row, column, timestamp), cell)


class MemStore:
    """In-memory versioned cells backed by an append-only write-ahead log."""

    def __init__(self, wal_path: PathLike) -> None:
        self.wal_path = Path(wal_path)
        self._rows: dict[bytes, dict[bytes, dict[int, CellValue]]] = {}
        self._count = 0
        self.wal_path.parent.mkdir(parents=True, exist_ok=True)
        if self.wal_path.exists():
            self._replay()
        else:
            self.wal_path.touch()

    def _replay(self) -> None:
        with self.wal_path.open("r+b") as wal:
            good_end = 0
            while True:
                try:
                    entry = _decode_entry(wal)
                except (EOFError, CorruptDataError):
                    break
                self._insert(entry)
                good_end = wal.tell()
            wal.seek(0, io.SEEK_END)
            if wal.tell() != good_end:
                # Drop a partially written record so later appends stay readable.
                wal.truncate(good_end)

    def _insert(self, entry: Entry) -> None:
        key = entry.key
        versions = self._rows.setdefault(key.row, {}).setdefault(key.column, {})
        if key.timestamp not in versions:
            self._count += 1
        versions[key.timestamp] = entry.value

    def append(self, entry: Entry) -> None:
        """Log the entry to the WAL, then make it visible in memory."""
        with self.wal_path.open("ab") as wal:
            wal.write(_encode_entry(entry))
            wal.flush()
        self._insert(entry)

    def latest(self, row: bytes, column: bytes) -> Optional[Tuple[int, CellValue]]:
        """The newest (timestamp, cell) for the cell, or None."""
        versions = self._rows.get(row, {}).get(column)
        if not versions:
            return None
        newest = max(versions)
        return newest, versions[newest]

    def versions(self, row: bytes, column: bytes) -> list[Tuple[int, CellValue]]:
        """All (timestamp, cell) pairs for the cell, newest first."""
        versions = self._rows.get(row, {}).get(column, {})
        return sorted(versions.items(), key=lambda item: item[0], reverse=True)

    def scan_row(self, row: bytes) -> list[Tuple[EntryKey, CellValue]]:
        """Every version in the row, ordered by column then timestamp."""
        columns = self._rows.get(row, {})
        return [
            (EntryKey(row, column, ts), columns[column][ts])
            for column in sorted(columns)
            for ts in sorted(columns[column])
        ]

    def row_keys_in_range(self, start_row: bytes, end_row: bytes) -> list[bytes]:
        """Sorted row keys between start_row and end_row, both inclusive."""
        return sorted(row for row in self._rows if start_row <= row <= end_row)

    def _entries(self) -> list[Entry]:
        return [
            Entry(EntryKey(row, column, ts), cell)
            for row, columns in sorted(self._rows.items())
            for column, versions in sorted(columns.items())
            for ts, cell in sorted(versions.items())
        ]

    def drain(self) -> list[Entry]:
        """Remove and return every entry in key order, emptying the WAL."""
        entries = self._entries()
        self._rows.clear()
        self._count = 0
        with self.wal_path.open("wb"):
            pass
        return entries

    def __len__(self) -> int:
        return self._count


def write_sstable(path: PathLike, entries: Iterable[Entry]) -> None:
    """Write the entries, sorted by key, to a new SSTable file at path."""
    target = Path(path)
    ordered = sorted(entries, key=lambda entry: entry.key)
    tmp = target.with_name(target.name + ".tmp")
    with tmp.open("wb") as out:
        out.write(SSTABLE_MAGIC)
        out.write(_U64.pack(len(ordered)))
        for entry in ordered:
            out.write(_encode_entry(entry))
        out.flush()
        os.fsync(out.fileno())
    os.replace(tmp, target)


class SSTableReader:
    """Read access to one immutable SSTable file."""

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)
        data = self.path.read_bytes()
        if not data.startswith(SSTABLE_MAGIC):
            raise CorruptDataError(f"not an SSTable: {self.path}")
        stream = io.BytesIO(data)
        stream.seek(len(SSTABLE_MAGIC))
        try:
            (count,) = _U64.unpack(_read_exact(stream, _U64.size))
            entries = [_decode_entry(stream) for _ in range(count)]
        except EOFError:
            raise CorruptDataError(f"truncated SSTable: {self.path}") from None
        if stream.read(1):
            raise CorruptDataError(f"trailing data in SSTable: {self.path}")
        self._entries = sorted(entries, key=lambda entry: entry.key)
        self._keys = [(e.key.row, e.key.column, e.key.timestamp) for e in self._entries]

    def _cell_range(self, row: bytes, column: bytes) -> Iterator[Entry]:
        start = bisect.bisect_left(self._keys, (row, column))
        for entry in self._entries[start:]:
            if entry.key.row != row or entry.key.column != column:
                break
            yield entry

    def latest(self, row: bytes, column: bytes) -> Optional[Tuple[int, CellValue]]:
        """The newest (timestamp, cell) for the cell, or None."""
        newest = None
        for entry in self._cell_range(row, column):
            newest = entry
        if newest is None:
            return None
        return newest.key.timestamp, newest.value

    def versions(self, row: bytes, column: bytes) -> list[Tuple[int, CellValue]]:
        """All (timestamp, cell) pairs for the cell, newest first."""
        found = [(e.key.timestamp, e.value) for e in self._cell_range(row, column)]
        found.reverse()
        return found

    def scan_row(self, row: bytes) -> list[Tuple[bytes, int, CellValue]]:
        """Every (column, timestamp, cell) in the row, in key order."""
        start = bisect.bisect_left(self._keys, (row,))
        found = []
        for entry in self._entries[start:]:
            if entry.key.row != row:
                break
            found.append((entry.key.column, entry.key.timestamp, entry.value))
        return found

    def scan_all(self) -> list[Entry]:
        """Every entry in key order."""
        return list(self._entries)

    def row_keys_in_range(self, start_row: bytes, end_row: bytes) -> list[bytes]:
        """Sorted distinct row keys between start_row and end_row, inclusive."""
        start = bisect.bisect_left(self._keys, (start_row,))
        rows: list[bytes] = []
        for entry in self._entries[start:]:
            row = entry.key.row
            if row > end_row:
                break
            if not rows or rows[-1] != row:
                rows.append(row)
        return rows