"""
Read-only access to the exported database for the API.

The export is rebuilt offline by build_food_db.py and never written here, so
every request gets its own ``mode=ro`` connection. The path comes from
APP_DB_PATH (default: food.sqlite); create_app(db_path=...) replaces it.
"""

import os
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from fastapi import HTTPException

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "food.sqlite"))

_MISSING_HINT = "Build it with 'python build_food_db.py --csv ... --sqlite ...'."


def get_db_path() -> Path:
    return _DB_PATH


def open_read_only(db_path: Path) -> sqlite3.Connection:
    """Connect to ``db_path`` read-only with sqlite3.Row rows.

    Raises:
        sqlite3.OperationalError: The file does not exist or is not readable.
    """
    conn = sqlite3.connect(
        f"{db_path.resolve().as_uri()}?mode=ro",
        uri=True,
        check_same_thread=False,
        timeout=10,
    )
    conn.row_factory = sqlite3.Row
    return conn


def get_db() -> Iterator[sqlite3.Connection]:
    """FastAPI dependency yielding a per-request connection.

    A missing database is reported as 503 Service Unavailable, since the API
    itself is healthy and only waiting for an export.
    """
    db_path = get_db_path()
    if not db_path.exists():
        raise HTTPException(
            status_code=503,
            detail=f"Database not found at '{db_path}'. {_MISSING_HINT}",
        )
    conn = open_read_only(db_path)
    try:
        yield conn
    finally:
        conn.close()
