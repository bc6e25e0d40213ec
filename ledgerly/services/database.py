"""Database service for SQLite operations."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, List, Optional

from ledgerly.services import ledger
from ledgerly.utils.config import get_config

_db_connection: Optional[sqlite3.Connection] = None

SCHEMA = """
    CREATE TABLE IF NOT EXISTS kv_store (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entity TEXT NOT NULL,
        user_id INTEGER NOT NULL,
        month_id TEXT,
        data TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_records_scope ON records (entity, user_id, month_id);
"""

# Entities served by the record routes; month-less entities ignore month_id
ENTITIES = (
    'income', 'expenses', 'budgets', 'goals', 'debts', 'recommendations',
    'alerts', 'scenarios', 'months', 'user-profile'
)
GLOBAL_ENTITIES = ('goals', 'debts', 'scenarios', 'months', 'user-profile')


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def init_db(conn: sqlite3.Connection) -> None:
    """Create tables if needed.

    Args:
        conn: SQLite connection
    """
    conn.executescript(SCHEMA)
    conn.commit()


def get_connection() -> sqlite3.Connection:
    """Get database connection, creating the schema on first use.

    Returns:
        SQLite connection with row factory set
    """
    global _db_connection

    if _db_connection is not None:
        return _db_connection

    _db_connection = sqlite3.connect(get_config().db_path)
    _db_connection.row_factory = sqlite3.Row
    init_db(_db_connection)

    return _db_connection


def close_db() -> None:
    """Close database connection."""
    global _db_connection

    if _db_connection is not None:
        _db_connection.close()
        _db_connection = None


@contextmanager
def transaction() -> Generator[sqlite3.Connection, None, None]:
    """Context manager for database transactions.

    Yields:
        SQLite connection

    Commits on success, rolls back on exception.
    """
    conn = get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def execute(sql: str, params: tuple = ()) -> sqlite3.Cursor:
    """Execute SQL and return cursor."""
    conn = get_connection()
    return conn.execute(sql, params)


def fetch_one(sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
    """Fetch a single row."""
    cursor = execute(sql, params)
    return cursor.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> List[sqlite3.Row]:
    """Fetch all rows."""
    cursor = execute(sql, params)
    return cursor.fetchall()


# Key/value table

def kv_get(key: str) -> Optional[str]:
    """Get a raw value by key, or None."""
    row = fetch_one("SELECT value FROM kv_store WHERE key = ?", (key,))
    return row['value'] if row else None


def kv_set(key: str, value: str) -> None:
    """Insert or replace a raw value."""
    with transaction():
        execute("""
            INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, value, _now()))


def kv_delete(key: str) -> None:
    with transaction():
        execute("DELETE FROM kv_store WHERE key = ?", (key,))


def kv_keys(prefix: str = '') -> List[str]:
    """List keys starting with prefix."""
    rows = fetch_all(
        "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
        (len(prefix), prefix)
    )
    return [row['key'] for row in rows]


# Entity records

def record_to_dict(row: Optional[sqlite3.Row]) -> Optional[dict]:
    """Merge the JSON payload with the row's scope columns.

    Args:
        row: records row

    Returns:
        Dict or None
    """
    if row is None:
        return None
    data = json.loads(row['data'])
    data['id'] = row['id']
    data['user_id'] = row['user_id']
    if row['month_id'] is not None:
        data['month_id'] = row['month_id']
    return data


def get_records(entity: str, user_id: int, month_id: Optional[str] = None) -> List[dict]:
    """List records for a user, scoped to a month for month-partitioned entities.

    Args:
        entity: Entity name
        user_id: Owner id
        month_id: YYYY-MM; ignored for global entities

    Returns:
        List of record dicts ordered by id
    """
    if entity in GLOBAL_ENTITIES or month_id is None:
        rows = fetch_all(
            "SELECT * FROM records WHERE entity = ? AND user_id = ? ORDER BY id",
            (entity, user_id)
        )
    else:
        rows = fetch_all(
            "SELECT * FROM records WHERE entity = ? AND user_id = ? AND month_id = ? ORDER BY id",
            (entity, user_id, month_id)
        )
    return [record_to_dict(row) for row in rows]


def get_record(entity: str, record_id: int) -> Optional[dict]:
    row = fetch_one("SELECT * FROM records WHERE entity = ? AND id = ?", (entity, record_id))
    return record_to_dict(row)


def create_record(entity: str, user_id: int, month_id: Optional[str], data: dict) -> dict:
    """Insert a record and return it with its new id."""
    payload = {k: v for k, v in data.items() if k not in ('id', 'user_id', 'month_id')}
    now = _now()
    with transaction():
        cursor = execute(
            """INSERT INTO records (entity, user_id, month_id, data, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (entity, user_id, None if entity in GLOBAL_ENTITIES else month_id,
             json.dumps(payload), now, now)
        )
        record_id = cursor.lastrowid
    return get_record(entity, record_id)


def update_record(entity: str, record_id: int, changes: dict) -> Optional[dict]:
    """Merge changes into a record's payload.

    A new date on a month-partitioned record moves it to that date's month.

    Returns:
        Updated record, or None when the id is unknown
    """
    existing = get_record(entity, record_id)
    if existing is None:
        return None

    merged = {k: v for k, v in existing.items() if k not in ('id', 'user_id', 'month_id')}
    merged.update({k: v for k, v in changes.items() if k not in ('id', 'user_id', 'month_id')})

    month_id = existing.get('month_id')
    if entity not in GLOBAL_ENTITIES and changes.get('date'):
        month_id = ledger.month_id_from_date(changes['date'])

    with transaction():
        execute(
            "UPDATE records SET data = ?, month_id = ?, updated_at = ? WHERE entity = ? AND id = ?",
            (json.dumps(merged), month_id, _now(), entity, record_id)
        )
    return get_record(entity, record_id)


def delete_record(entity: str, record_id: int) -> bool:
    """Delete a record. Returns False when the id is unknown."""
    with transaction():
        cursor = execute("DELETE FROM records WHERE entity = ? AND id = ?", (entity, record_id))
    return cursor.rowcount > 0


def delete_records(entity: str, user_id: int, month_id: Optional[str] = None) -> int:
    """Delete every record of an entity in a scope. Returns the count removed."""
    with transaction():
        if entity in GLOBAL_ENTITIES or month_id is None:
            cursor = execute("DELETE FROM records WHERE entity = ? AND user_id = ?", (entity, user_id))
        else:
            cursor = execute(
                "DELETE FROM records WHERE entity = ? AND user_id = ? AND month_id = ?",
                (entity, user_id, month_id)
            )
    return cursor.rowcount
