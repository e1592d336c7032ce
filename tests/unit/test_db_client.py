"""Tests for the SQLite record store and its filter syntax."""

import asyncio

import pytest

from src.core import db_client
from src.core.db_client import DatabaseError, RecordNotFoundError, parse_filter, sanitize_param


@pytest.mark.unit
class TestParseFilter:
    def test_empty_filter(self):
        assert parse_filter("") == ("", [])

    def test_and_conditions(self):
        clause, params = parse_filter('current_state = "PENDING" && assignment_date < "2026-10-18"')

        assert clause == "current_state = ? AND assignment_date < ?"
        assert params == ["PENDING", "2026-10-18"]

    def test_numbers_and_booleans_are_typed(self):
        _, params = parse_filter('worker_id = "12" && is_read = "false"')

        assert params == [12, False]

    def test_or_group(self):
        clause, params = parse_filter('(current_state = "PENDING" || current_state = "UNDER_REVIEW")')

        assert clause == "(current_state = ? OR current_state = ?)"
        assert params == ["PENDING", "UNDER_REVIEW"]

    def test_invalid_syntax(self):
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            parse_filter("current_state PENDING")


@pytest.mark.unit
def test_sanitize_param_escapes_quotes() -> None:
    assert sanitize_param('x" || id != "0') == 'x\\" || id != \\"0'


@pytest.mark.unit
class TestRecords:
    async def test_create_and_get(self, db):
        created = await db_client.create_record(collection="procedures", data={"name": "Lockout/tagout"})

        fetched = await db_client.get_record(collection="procedures", record_id=created["id"])

        assert isinstance(created["id"], str)
        assert fetched["name"] == "Lockout/tagout"
        assert fetched["created"] == fetched["updated"]

    async def test_get_missing_record(self, db):
        with pytest.raises(RecordNotFoundError):
            await db_client.get_record(collection="procedures", record_id="42")

    async def test_get_non_numeric_id_is_not_found(self, db):
        with pytest.raises(RecordNotFoundError):
            await db_client.get_record(collection="procedures", record_id="abc")

    async def test_invalid_collection_name(self, db):
        with pytest.raises(ValueError, match="Invalid collection name"):
            await db_client.get_record(collection="procedures; DROP TABLE users", record_id="1")

    async def test_update_missing_record(self, db):
        with pytest.raises(RecordNotFoundError):
            await db_client.update_record(collection="procedures", record_id="42", data={"name": "x"})

    async def test_update_records_returns_count(self, db):
        for name in ("A", "B", "C"):
            await db_client.create_record(collection="procedures", data={"name": name})

        count = await db_client.update_records(
            collection="procedures", filter_query='name != "B"', data={"active": False}
        )

        assert count == 2
        assert await db_client.count_records(collection="procedures", filter_query='active = "true"') == 1

    async def test_delete_records_requires_filter(self, db):
        with pytest.raises(ValueError, match="without a filter"):
            await db_client.delete_records(collection="procedures", filter_query="")

    async def test_list_records_sorted_and_paged(self, db):
        for name in ("Charlie", "Alpha", "Bravo"):
            await db_client.create_record(collection="procedures", data={"name": name})

        first = await db_client.list_records(collection="procedures", sort="name ASC", per_page=2)
        second = await db_client.list_records(collection="procedures", sort="name ASC", per_page=2, page=2)

        assert [r["name"] for r in first] == ["Alpha", "Bravo"]
        assert [r["name"] for r in second] == ["Charlie"]

    async def test_list_all_records_reads_every_page(self, db):
        for i in range(7):
            await db_client.create_record(collection="procedures", data={"name": f"P{i}"})

        records = await db_client.list_all_records(collection="procedures", sort="name DESC", batch_size=3)

        assert [r["name"] for r in records] == [f"P{i}" for i in reversed(range(7))]

    async def test_pages_with_tied_sort_values_do_not_overlap(self, db):
        created = [
            (await db_client.create_record(collection="procedures", data={"name": "Lockout"}))["id"] for _ in range(5)
        ]

        records = await db_client.list_all_records(collection="procedures", sort="name ASC", batch_size=2)

        assert [r["id"] for r in records] == created

    async def test_invalid_sort_falls_back_to_id(self, db):
        for name in ("B", "A"):
            await db_client.create_record(collection="procedures", data={"name": name})

        records = await db_client.list_records(collection="procedures", sort="name; DROP TABLE users")

        assert [r["name"] for r in records] == ["B", "A"]

    async def test_dicts_are_stored_as_json(self, db):
        record = await db_client.create_record(
            collection="notifications",
            data={"recipient_id": "1", "type": "TASK_ASSIGNED", "title": "t", "message": "m", "payload": {"a": 1}},
        )

        assert record["payload"] == '{"a": 1}'

    async def test_missing_table(self, db):
        with pytest.raises(DatabaseError, match="does not exist"):
            await db_client.create_record(collection="equipment", data={"name": "x"})


@pytest.mark.unit
class TestTransaction:
    async def test_commits_on_success(self, db):
        async with db_client.transaction():
            await db_client.create_record(collection="procedures", data={"name": "A"})
            await db_client.create_record(collection="procedures", data={"name": "B"})

        assert await db_client.count_records(collection="procedures") == 2

    async def test_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            async with db_client.transaction():
                await db_client.create_record(collection="procedures", data={"name": "A"})
                raise RuntimeError("boom")

        assert await db_client.count_records(collection="procedures") == 0

    async def test_nested_transaction_joins_outer(self, db):
        with pytest.raises(RuntimeError):
            async with db_client.transaction():
                async with db_client.transaction():
                    await db_client.create_record(collection="procedures", data={"name": "inner"})
                raise RuntimeError("boom")

        assert await db_client.count_records(collection="procedures") == 0

    async def test_open_transaction_is_invisible_to_other_tasks(self, db):
        inserted = asyncio.Event()
        release = asyncio.Event()

        async def writer():
            async with db_client.transaction():
                await db_client.create_record(collection="procedures", data={"name": "A"})
                # Reads inside the transaction see its own rows
                assert await db_client.count_records(collection="procedures") == 1
                inserted.set()
                await release.wait()

        writing = asyncio.create_task(writer())
        await inserted.wait()

        assert await db_client.count_records(collection="procedures") == 0
        assert await db_client.list_records(collection="procedures") == []

        release.set()
        await writing

        assert await db_client.count_records(collection="procedures") == 1

    async def test_rolled_back_rows_never_become_visible(self, db):
        inserted = asyncio.Event()

        async def writer():
            async with db_client.transaction():
                await db_client.create_record(collection="procedures", data={"name": "A"})
                inserted.set()
                await asyncio.sleep(0)
                raise RuntimeError("second half failed")

        writing = asyncio.create_task(writer())
        await inserted.wait()
        assert await db_client.count_records(collection="procedures") == 0

        with pytest.raises(RuntimeError):
            await writing
        assert await db_client.count_records(collection="procedures") == 0
