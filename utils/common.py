"""Common utility functions used across the food export tools."""

import os
import sqlite3
import sys
from pathlib import Path


def format_bytes(b: int) -> str:
    """Format bytes into human-readable size string.

    Examples:
        512 KB, 1.5 MB, 2.34 GB
    """
    if b < 1024 * 1024:
        return f"{b / 1024:.0f} KB"
    if b < 1024 * 1024 * 1024:
        return f"{b / (1024 * 1024):.1f} MB"
    return f"{b / (1024 * 1024 * 1024):.2f} GB"


def expand_path(p: str | os.PathLike) -> Path:
    """Expand a leading ``~`` and return the absolute form of ``p``.

    ``~/exports/food.tsv`` -> ``/home/me/exports/food.tsv``;
    relative paths resolve against the current working directory.
    """
    return Path(os.path.abspath(os.path.expanduser(os.fspath(p))))


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open an existing export database for reading.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row for dict-like access.

    Raises:
        SystemExit: If database file does not exist.
    """
    if not db_path.exists():
        print(f"ERROR: Database not found: {db_path}\n"
              "Build it with 'python build_food_db.py --csv ... --sqlite ...'.", file=sys.stderr)
        sys.exit(1)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn
