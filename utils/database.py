"""Database utilities for the food export tools.

Provides reusable functions for:
- Connection setup and pragmas
- Explicit transaction scopes
- Chunked bulk inserts
- Small introspection helpers used by the CLI, API and tests
"""

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path


def init_pragmas(conn: sqlite3.Connection, cache_size: int = -64000) -> None:
    """Initialize SQLite performance pragmas for a bulk load.

    - WAL mode so readers are not blocked while a run commits flushes
    - NORMAL synchronous mode for speed without data loss
    - Memory temp store for the DISTINCT / json_each work of the schema pass
    - Larger page cache

    Args:
        conn: SQLite connection to configure
        cache_size: PRAGMA cache_size value (negative = KiB)
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA temp_store=MEMORY")
    conn.execute(f"PRAGMA cache_size={int(cache_size)}")


def open_database(db_path: Path, cache_size: int = -64000) -> sqlite3.Connection:
    """Open (or create) the export database for writing.

    The connection is put in manual transaction mode (isolation_level=None):
    every write path in the pipeline wraps its statements in
    :func:`transaction`, so the sqlite3 module must not open or commit
    transactions behind its back.

    Raises:
        sqlite3.Error: If the file cannot be opened as a database.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        init_pragmas(conn, cache_size)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one atomic unit.

    Commits when the block exits normally; on any exception issues ROLLBACK
    and re-raises, so nothing from the block is left behind.

    Requires a connection opened with ``isolation_level=None``.

    Example:
        with transaction(conn):
            conn.execute("DROP TABLE IF EXISTS food")
            conn.execute("CREATE TABLE food (...)")
    """
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def iter_chunks(rows: Sequence, size: int) -> Iterator[Sequence]:
    """Yield consecutive slices of ``rows`` holding at most ``size`` items.

    Example:
        [len(c) for c in iter_chunks(range(250), 90)] == [90, 90, 70]
    """
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    for i in range(0, len(rows), size):
        yield rows[i:i + size]


def insert_chunked(conn: sqlite3.Connection, table: str, columns: Sequence[str],
                   rows: Sequence[tuple], max_rows: int) -> int:
    """Insert ``rows`` with one ``executemany`` call per chunk of ``max_rows``.

    Does not open or commit a transaction; callers wrap this in
    :func:`transaction` when the chunks must land together.

    Returns:
        Number of chunks executed.
    """
    cols_str = ", ".join(columns)
    placeholders = ", ".join("?" * len(columns))
    sql = f"INSERT INTO {table} ({cols_str}) VALUES ({placeholders})"

    chunks = 0
    for chunk in iter_chunks(rows, max_rows):
        conn.executemany(sql, chunk)
        chunks += 1
    return chunks


def check_engine_features(conn: sqlite3.Connection) -> None:
    """Fail early when the linked SQLite lacks JSON1 or FTS5.

    The schema pass depends on ``json_each`` and FTS5 external-content
    tables; finding out after a multi-minute load is wasteful.

    Raises:
        sqlite3.NotSupportedError: If either feature is unavailable.
    """
    try:
        conn.execute("SELECT value FROM json_each('[1]')").fetchall()
    except sqlite3.OperationalError as e:
        raise sqlite3.NotSupportedError(f"SQLite JSON1 support is required: {e}") from e
    try:
        conn.execute("CREATE VIRTUAL TABLE IF NOT EXISTS temp.fts5_check USING fts5(x)")
        conn.execute("DROP TABLE temp.fts5_check")
    except sqlite3.OperationalError as e:
        raise sqlite3.NotSupportedError(f"SQLite FTS5 support is required: {e}") from e


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Get row count for a table.

    Args:
        conn: SQLite connection
        table: Table name

    Returns:
        Number of rows in table
    """
    result = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return result[0] if result else 0


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Check if a table (including virtual tables) exists in the database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table,)
    )
    return cursor.fetchone() is not None


def index_exists(conn: sqlite3.Connection, index: str) -> bool:
    """Check if a named index exists in the database."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' AND name=?",
        (index,)
    )
    return cursor.fetchone() is not None
