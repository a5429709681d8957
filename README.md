# redtable

`redtable` is a small, embeddable wide-column store written in plain Python with no third-party dependencies.

A table is a directory. Each column family is a sub-directory inside it. Every cell is identified by a row key, a column and a timestamp in milliseconds, and all of these are `bytes`.

Writes are handled in three stages:

1. A write is appended to a write-ahead log (`wal.log`) and kept in an in-memory `MemStore`.
2. The store is flushed to an immutable sorted file (`NNNNNNNNNN.sst`).
3. Compaction merges those files.

## Features

- **Versioned cells.** You can read the latest value, the newest *n* versions, or the versions within a time range.
- **Deletes are tombstones.** A tombstone can carry an optional time-to-live, in milliseconds.
- **Automatic flush.** The `MemStore` is flushed by itself once it holds more than 10,000 versions. You can also call `flush()` yourself.
- **Minor and major compaction.** Versions can be trimmed by count (`max_versions`) or by age (`max_age_ms`). Expired or shadowed tombstones can be dropped. Each column family also runs a minor compaction in a background thread every 60 seconds, until it is closed.
- **Aggregations** over one row or a range of rows: count, sum, average, min and max.
- **Batches** of puts, deletes, multi-column row puts and row reads, executed in order.
- **An asyncio wrapper.** Each call runs in a worker thread, so the event loop is not blocked.

## Install

```
pip install .
```

## Usage

```python
from redtable.api import Table
from redtable.model import Get, Put
from redtable.aggregation import AggregationSet, AggregationType

table = Table("/tmp/mytable")
cf = table.create_cf("metrics")     # raises FileExistsError if it exists
cf = table.cf("metrics")            # or None if there is no such family

cf.put(b"row1", b"temp", b"21")
cf.put(b"row1", b"temp", b"23")
print(cf.get(b"row1", b"temp"))                 # b"23"
print(cf.get_versions(b"row1", b"temp", 10))    # [(ts, b"23"), (ts, b"21")], newest first

put = Put(b"row2")
put.add_column(b"temp", b"19").add_column(b"humidity", b"40")
cf.execute_put(put)                 # all columns share one timestamp

get = Get(b"row1").set_max_versions(2)
print(cf.execute_get(get))          # {b"temp": [(ts, b"23"), (ts, b"21")]}

aggs = AggregationSet()
aggs.add_aggregation(b"temp", AggregationType.AVERAGE)
result = cf.aggregate(b"row1", aggs)
print(str(result[b"temp"]))         # "22"

cf.delete(b"row1", b"temp")         # cf.get(...) now returns None
cf.flush()
cf.major_compact()
table.close()
```

Timestamps are taken from the wall clock in milliseconds. Two writes to the same cell within the same millisecond get the same timestamp, and the later write replaces the earlier one.

`Table` and `ColumnFamily` can both be used as context managers. Leaving the context closes them, which stops the background compaction.

### Reading

The following `ColumnFamily` methods read data:

- `get(row, column)` returns the latest value. It returns `None` if the cell is absent or its newest version is a tombstone.
- `get_versions(row, column, max_versions)` and `get_versions_with_time_range(row, column, max_versions, start_time, end_time)` return lists of `(timestamp, value)`, newest first. Tombstones are skipped, and the time range is inclusive.
- `scan_row_versions(row, max_versions_per_column)` returns `{column: [(timestamp, value), ...]}`. Passing `None` returns every version.
- `execute_get(get)` and `execute_get_column(get, column)` run a `Get`. A `Get` reads one version unless `set_max_versions` was called. `set_time_range` limits the timestamps.
- `row_keys_in_range(start_row, end_row)` returns the sorted row keys. Both ends of the range are inclusive.

### Compaction

Compaction is controlled by `CompactionOptions` from `redtable.model`:

```python
from redtable.model import CompactionOptions, CompactionType

cf.compact_with_options(CompactionOptions(
    compaction_type=CompactionType.MAJOR,
    max_versions=3,
    max_age_ms=24 * 3600 * 1000,
    cleanup_tombstones=True,
))
```

There are two kinds of compaction:

- **Minor compaction** (`compact()`) merges the oldest half of the SSTables, and at least two of them. It does nothing when there is one file or none.
- **Major compaction** (`major_compact()`) merges every file.

The shortcuts `compact_with_max_versions(n)` and `compact_with_max_age(ms)` run a minor compaction with the given limit.

When `cleanup_tombstones` is set, tombstones are dropped as follows:

- A tombstone with a TTL is dropped once its TTL has passed.
- A tombstone without a TTL is dropped if a newer value exists for the same cell.

### Aggregations

`AggregationSet.apply` returns `{column: AggregationResult}`. Each `AggregationResult` has a `kind` and a `value`. `str(result)` renders it as text.

Problems such as a missing column or no values are reported as results of kind `ERROR`, not raised as exceptions. Each aggregation type behaves as follows:

- **Sum** gives an integer result while every value parses as a 64-bit integer. Otherwise it gives a float result.
- **Average** always works in floats.
- **Min** and **max** compare the raw bytes.
- **A value that is not a number** makes a sum or average stop the whole run. The run then returns only that column's error.

`ColumnFamily.aggregate_range(start_row, end_row, aggregation_set)` aggregates every row in the range.

### Batches

```python
from redtable.batch import Batch, execute_batch, execute_batch_with_results

batch = Batch()
batch.put(b"row1", b"col1", b"value1").put(b"row1", b"col2", b"value2")
batch.delete_with_ttl(b"row2", b"col1", 3600 * 1000)
batch.put_row(b"row3", {b"a": b"1", b"b": b"2"})
batch.get_row(b"row1")

execute_batch(cf, batch)                        # writes only; row reads are skipped
results = execute_batch_with_results(cf, batch) # one BatchResult per operation
print(results[-1].row_data)                     # {b"col1": [...], b"col2": [...]}
```

`BatchResult.is_success` is true for write operations. For a row read, the data is in `row_data`.

`execute_batch_async` and `execute_batch_with_results_async` do the same work against an `AsyncColumnFamily`.

### Async

```python
import asyncio
from redtable.async_api import AsyncTable

async def main():
    async with await AsyncTable.open("/tmp/mytable") as table:
        await table.create_cf("events")
        cf = await table.cf("events")
        await cf.put(b"row1", b"col1", b"value1")
        print(await cf.get(b"row1", b"col1"))

asyncio.run(main())
```

`AsyncTable.cf` also finds column families that were created on disk after the table was opened.

## What it does not do

`redtable` is a library only. It has no command-line tool and no network server. It has no value filters for reads or scans: rows and columns are returned as stored, and any filtering is left to the caller.

## Tests

```
pip install ".[test]"
pytest
```