"""SQLite database client wrapper with CRUD operations and transactions."""

import asyncio
import json
import logging
import re
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.config import settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Raised when a storage operation fails."""


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert integer ID and foreign key fields to strings for Pydantic compatibility."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and not isinstance(value, bool) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _encode_value(val: Any) -> Any:  # noqa: ANN401
    if isinstance(val, datetime):
        return val.isoformat()
    if isinstance(val, dict | list):
        return json.dumps(val)
    return val


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""(\w+)\s*(=|!=|>|<|>=|<=|~)\s*(['"])([^'"]*)\3""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", value
    return f"{field} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _where(filter_query: str) -> tuple[str, list[Any]]:
    if not filter_query:
        return "", []
    where_clause, params = parse_filter(filter_query)
    return f"WHERE {where_clause}", params


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_read_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_write_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()

# Connection of the transaction owned by the current task, if any
_active_transaction: ContextVar[aiosqlite.Connection | None] = ContextVar("_active_transaction", default=None)


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    loop = asyncio.get_running_loop()
    return (threading.get_ident(), id(loop), str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create the cached write connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path = get_db_path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn
        _write_locks[cache_key] = asyncio.Lock()

        logger.info("Created new SQLite connection", extra={"db_path": str(path), "loop_id": cache_key[1]})
        return conn


async def _get_read_connection() -> aiosqlite.Connection:
    """Connection for reads: the current task's transaction, or a read-only connection.

    The read-only connection only sees committed rows, so other tasks never
    observe the writes of a transaction that is still open.
    """
    active = _active_transaction.get()
    if active is not None:
        return active

    # The write connection creates the file and switches it to WAL first
    await get_connection()
    cache_key = _cache_key()
    if cache_key in _read_connections:
        return _read_connections[cache_key]

    async with _db_lock:
        if cache_key in _read_connections:
            return _read_connections[cache_key]

        conn = await aiosqlite.connect(cache_key[2])
        await conn.execute("PRAGMA query_only = ON")
        _read_connections[cache_key] = conn

        logger.info("Created SQLite read connection", extra={"db_path": cache_key[2], "loop_id": cache_key[1]})
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connections for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)

    if cache_key not in _db_connections and cache_key not in _read_connections:
        return

    try:
        async with _db_lock:
            read_conn = _read_connections.pop(cache_key, None)
            if read_conn is not None:
                await read_conn.close()
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                _write_locks.pop(cache_key, None)
                await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": cache_key[2]})
    except Exception as e:
        logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": cache_key[2]})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema  # noqa: PLC0415

    await schema.init_db(db_path=db_path)


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed writes as one atomic unit.

    Commits when the block exits normally and rolls back on any exception.
    Nested use joins the outer transaction. Reads inside the block see its
    own uncommitted writes; reads from other tasks go through the read-only
    connection and see none of them until the commit.
    """
    active = _active_transaction.get()
    if active is not None:
        yield active
        return

    conn = await get_connection()
    async with _write_locks[_cache_key()]:
        await conn.execute("BEGIN")
        token = _active_transaction.set(conn)
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            logger.warning("Transaction rolled back")
            raise
        else:
            await conn.commit()
        finally:
            _active_transaction.reset(token)


@asynccontextmanager
async def _write_scope() -> AsyncIterator[aiosqlite.Connection]:
    """Join the current transaction, or run a single auto-committed write."""
    active = _active_transaction.get()
    if active is not None:
        yield active
        return

    conn = await get_connection()
    async with _write_locks[_cache_key()]:
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        else:
            await conn.commit()


def _rows_to_records(cursor: aiosqlite.Cursor, rows: list[Any]) -> list[dict[str, Any]]:
    columns = [description[0] for description in cursor.description]
    return [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    try:
        _validate_collection_name(collection)
        now = _now_iso()
        payload = {"created": now, "updated": now, **data}

        columns = list(payload.keys())
        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_encode_value(payload[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
        async with _write_scope() as conn:
            cursor = await conn.execute(query, values)
            record_id = cursor.lastrowid

        result = await get_record(collection=collection, record_id=str(record_id))

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result
    except Exception as e:
        if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise DatabaseError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        conn = await _get_read_connection()

        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        # Closing the cursor ends the read so the next one sees fresh commits
        async with conn.execute(query, (int(record_id),)) as cursor:
            row = await cursor.fetchone()
            records = _rows_to_records(cursor, [row]) if row is not None else []

        if not records:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return records[0]
    except RecordNotFoundError:
        raise
    except ValueError as e:
        # Non-numeric ids can never match an INTEGER primary key
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg) from e
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        payload = {**data, "updated": _now_iso()}

        set_clause = ", ".join(f"{key} = ?" for key in payload)
        values = [_encode_value(val) for val in payload.values()]
        values.append(int(record_id))

        query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - collection is validated
        async with _write_scope() as conn:
            cursor = await conn.execute(query, values)
            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return await get_record(collection=collection, record_id=record_id)
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def update_records(*, collection: str, filter_query: str, data: dict[str, Any]) -> int:
    """Update every record matching the filter and return the affected count."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        payload = {**data, "updated": _now_iso()}

        set_clause = ", ".join(f"{key} = ?" for key in payload)
        where_clause, params = _where(filter_query)
        values = [_encode_value(val) for val in payload.values()] + params

        query = f"UPDATE {collection} SET {set_clause} {where_clause}"  # noqa: S608 - collection is validated
        async with _write_scope() as conn:
            cursor = await conn.execute(query, values)
            count = cursor.rowcount

        logger.info("Updated records", extra={"collection": collection, "count": count})
        return count
    except Exception as e:
        logger.error("update_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to update records in {collection}: {e}"
        raise DatabaseError(msg) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)

        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        async with _write_scope() as conn:
            cursor = await conn.execute(query, (int(record_id),))
            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to delete record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every record matching the filter and return the deleted count."""
    if not filter_query:
        msg = "Refusing to delete without a filter"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        where_clause, params = _where(filter_query)

        query = f"DELETE FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        async with _write_scope() as conn:
            cursor = await conn.execute(query, params)
            count = cursor.rowcount

        logger.info("Deleted records", extra={"collection": collection, "count": count})
        return count
    except Exception as e:
        logger.error("delete_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to delete records from {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    try:
        _validate_collection_name(collection)
        conn = await _get_read_connection()

        where_clause, params = _where(filter_query)

        # Only allow: column_name [ASC|DESC]
        safe_sort = "id ASC"
        if sort:
            sort_pattern = re.match(r"^([A-Za-z_][A-Za-z0-9_]*)\s*(ASC|DESC)?$", sort.strip(), re.IGNORECASE)
            if sort_pattern:
                safe_sort = sort.strip()
                # Ties fall back to id so pages never overlap
                if sort_pattern.group(1) != "id":
                    safe_sort = f"{safe_sort}, id ASC"
            else:
                logger.warning("Invalid sort parameter, using default", extra={"sort": sort})

        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        params.extend([per_page, offset])

        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            records = _rows_to_records(cursor, list(rows))

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_all_records(
    *,
    collection: str,
    filter_query: str = "",
    sort: str = "",
    batch_size: int = 200,
) -> list[dict[str, Any]]:
    """List every record matching the filter, fetching one page at a time."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await list_records(
            collection=collection,
            filter_query=filter_query,
            sort=sort,
            page=page,
            per_page=batch_size,
        )
        records.extend(batch)
        if len(batch) < batch_size:
            return records
        page += 1


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    try:
        _validate_collection_name(collection)
        conn = await _get_read_connection()

        where_clause, params = _where(filter_query)
        query = f"SELECT COUNT(*) FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        async with conn.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
    except Exception as e:
        logger.error("count_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to count records in {collection}: {e}"
        raise DatabaseError(msg) from e


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, sort=sort, per_page=1)
    return records[0] if records else None
