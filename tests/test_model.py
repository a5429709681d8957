import time

from redtable.model import (
    CellDelete,
    CellPut,
    CompactionOptions,
    CompactionType,
    Entry,
    EntryKey,
    Get,
    Put,
    now_millis,
)


def test_get_defaults_and_chaining():
    get = Get(b"row1")
    assert get.max_versions is None
    assert get.time_range is None
    returned = get.set_max_versions(3).set_time_range(10, 20)
    assert returned is get
    assert get.row == b"row1"
    assert get.max_versions == 3
    assert get.time_range == (10, 20)


def test_put_add_column_overwrites_same_column():
    put = Put(b"row1")
    returned = put.add_column(b"c1", b"v1").add_column(b"c2", b"v2")
    put.add_column(b"c1", b"v3")
    assert returned is put
    assert put.columns == {b"c1": b"v3", b"c2": b"v2"}


def test_put_columns_not_shared_between_instances():
    first = Put(b"a").add_column(b"c", b"v")
    second = Put(b"b")
    assert second.columns == {}
    assert first.columns == {b"c": b"v"}


def test_entry_key_orders_by_row_column_timestamp():
    keys = [
        EntryKey(b"b", b"a", 1),
        EntryKey(b"a", b"b", 1),
        EntryKey(b"a", b"a", 5),
        EntryKey(b"a", b"a", 2),
    ]
    assert sorted(keys) == [
        EntryKey(b"a", b"a", 2),
        EntryKey(b"a", b"a", 5),
        EntryKey(b"a", b"b", 1),
        EntryKey(b"b", b"a", 1),
    ]


def test_cells_compare_by_value():
    assert CellPut(b"x") == CellPut(b"x")
    assert CellPut(b"x") != CellPut(b"y")
    assert CellDelete() == CellDelete(None)
    assert CellDelete(5) != CellDelete()


def test_entry_holds_key_and_value():
    key = EntryKey(b"r", b"c", 7)
    entry = Entry(key, CellDelete(100))
    assert entry.key.timestamp == 7
    assert entry.value.ttl_ms == 100


def test_compaction_options_defaults_and_override():
    default = CompactionOptions()
    assert default.compaction_type is CompactionType.MINOR
    assert default.cleanup_tombstones is True
    assert default.max_versions is None and default.max_age_ms is None
    major = CompactionOptions(compaction_type=CompactionType.MAJOR, max_versions=2)
    assert major.compaction_type is CompactionType.MAJOR
    assert major.max_versions == 2


def test_now_millis_tracks_wall_clock():
    before = int(time.time() * 1000)
    value = now_millis()
    after = int(time.time() * 1000)
    assert before - 1 <= value <= after + 1
    assert now_millis() >= value