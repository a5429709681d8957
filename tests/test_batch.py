import pytest

from redtable.api import Table
from redtable.async_api import AsyncTable
from redtable.batch import (
    Batch,
    BatchGet,
    BatchPut,
    BatchResult,
    execute_batch,
    execute_batch_async,
    execute_batch_with_results,
    execute_batch_with_results_async,
)
from redtable.model import Get, Put


@pytest.fixture
def cf(tmp_path):
    table = Table(tmp_path)
    table.create_cf("test_cf")
    try:
        yield table.cf("test_cf")
    finally:
        table.close()


def test_sync_batch_operations(cf):
    batch = Batch()
    batch.put(b"row1", b"col1", b"value1").put(b"row1", b"col2", b"value2").put(
        b"row2", b"col1", b"value3"
    )
    execute_batch(cf, batch)

    assert cf.get(b"row1", b"col1") == b"value1"
    assert cf.get(b"row1", b"col2") == b"value2"
    assert cf.get(b"row2", b"col1") == b"value3"

    batch = Batch()
    batch.delete(b"row1", b"col1").delete_with_ttl(b"row1", b"col2", 3600 * 1000)
    execute_batch(cf, batch)

    assert cf.get(b"row1", b"col1") is None
    assert cf.get(b"row1", b"col2") is None
    assert cf.get(b"row2", b"col1") == b"value3"


def test_sync_batch_get_row(cf):
    cf.put(b"row1", b"col1", b"value1")
    cf.put(b"row1", b"col2", b"value2")
    cf.put(b"row2", b"col1", b"value3")

    batch = Batch()
    batch.get_row(b"row1")
    results = execute_batch_with_results(cf, batch)

    assert len(results) == 1
    row_data = results[0].row_data
    assert not results[0].is_success
    assert set(row_data) == {b"col1", b"col2"}
    assert len(row_data[b"col1"]) == 1
    assert row_data[b"col1"][0][1] == b"value1"
    assert len(row_data[b"col2"]) == 1
    assert row_data[b"col2"][0][1] == b"value2"


def test_sync_batch_put_row(cf):
    batch = Batch()
    batch.put_row(b"row1", {b"col1": b"value1", b"col2": b"value2"})
    execute_batch(cf, batch)

    assert cf.get(b"row1", b"col1") == b"value1"
    assert cf.get(b"row1", b"col2") == b"value2"


def test_results_for_writes_are_successes(cf):
    batch = Batch()
    batch.put(b"r", b"c", b"v").put_row(b"r", {b"d": b"w"}).delete(b"r", b"c")
    results = execute_batch_with_results(cf, batch)
    assert results == [BatchResult(), BatchResult(), BatchResult()]
    assert all(result.is_success for result in results)
    assert cf.get(b"r", b"d") == b"w"
    assert cf.get(b"r", b"c") is None


def test_results_follow_operation_order(cf):
    batch = Batch()
    batch.put(b"r", b"c", b"v").get_row(b"r")
    results = execute_batch_with_results(cf, batch)
    assert results[0].is_success
    assert results[1].row_data[b"c"][0][1] == b"v"


def test_get_row_with_time_range(cf):
    cf.put(b"r", b"c", b"v")
    batch = Batch()
    batch.get_row_with_time_range(b"r", 0, 1).get_row_with_time_range(b"r", 0, 2**62)
    results = execute_batch_with_results(cf, batch)
    assert results[0].row_data == {}
    assert results[1].row_data[b"c"][0][1] == b"v"


def test_get_row_with_max_versions(cf):
    cf.put(b"r", b"c", b"v")
    batch = Batch().get_row_with_max_versions(b"r", 5)
    results = execute_batch_with_results(cf, batch)
    assert [value for _, value in results[0].row_data[b"c"]] == [b"v"]


def test_batch_len_clear_and_iter():
    batch = Batch()
    assert len(batch) == 0
    batch.put(b"r", b"c", b"v").get_row(b"r").put_row(b"r", {b"c": b"v"})
    assert len(batch) == 3
    ops = list(batch)
    assert ops[1] == BatchGet(b"r")
    assert ops[2] == BatchPut(b"r", {b"c": b"v"})
    batch.clear()
    assert len(batch) == 0
    assert list(batch) == []


def test_batch_get_to_get():
    batch_get = BatchGet(b"row").set_max_versions(3).set_time_range(10, 20)
    assert batch_get.to_get() == Get(b"row", 3, (10, 20))
    assert BatchGet(b"row").to_get() == Get(b"row")


def test_batch_put_to_put():
    batch_put = BatchPut(b"row").add_column(b"a", b"1").add_column(b"b", b"2")
    assert batch_put.to_put() == Put(b"row", {b"a": b"1", b"b": b"2"})
    batch_put.add_column(b"a", b"3")
    assert batch_put.to_put().columns[b"a"] == b"3"


@pytest.mark.asyncio
async def test_async_batch_operations(tmp_path):
    async with await AsyncTable.open(tmp_path) as table:
        await table.create_cf("test_cf")
        cf = await table.cf("test_cf")

        batch = Batch()
        batch.put(b"row1", b"col1", b"value1").put(b"row1", b"col2", b"value2").put(
            b"row2", b"col1", b"value3"
        )
        await execute_batch_async(cf, batch)

        assert await cf.get(b"row1", b"col1") == b"value1"
        assert await cf.get(b"row1", b"col2") == b"value2"
        assert await cf.get(b"row2", b"col1") == b"value3"

        batch = Batch()
        batch.delete(b"row1", b"col1").delete_with_ttl(b"row1", b"col2", 3600 * 1000)
        await execute_batch_async(cf, batch)

        assert await cf.get(b"row1", b"col1") is None
        assert await cf.get(b"row1", b"col2") is None
        assert await cf.get(b"row2", b"col1") == b"value3"


@pytest.mark.asyncio
async def test_async_batch_get_row(tmp_path):
    async with await AsyncTable.open(tmp_path) as table:
        await table.create_cf("test_cf")
        cf = await table.cf("test_cf")

        await cf.put(b"row1", b"col1", b"value1")
        await cf.put(b"row1", b"col2", b"value2")
        await cf.put(b"row2", b"col1", b"value3")

        batch = Batch()
        batch.get_row(b"row1")
        results = await execute_batch_with_results_async(cf, batch)

        assert len(results) == 1
        row_data = results[0].row_data
        assert set(row_data) == {b"col1", b"col2"}
        assert len(row_data[b"col1"]) == 1
        assert row_data[b"col1"][0][1] == b"value1"
        assert len(row_data[b"col2"]) == 1
        assert row_data[b"col2"][0][1] == b"value2"


@pytest.mark.asyncio
async def test_async_batch_put_row(tmp_path):
    async with await AsyncTable.open(tmp_path) as table:
        await table.create_cf("test_cf")
        cf = await table.cf("test_cf")

        batch = Batch()
        batch.put_row(b"row1", {b"col1": b"value1", b"col2": b"value2"})
        await execute_batch_async(cf, batch)

        assert await cf.get(b"row1", b"col1") == b"value1"
        assert await cf.get(b"row1", b"col2") == b"value2"