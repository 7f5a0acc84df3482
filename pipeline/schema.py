"""
Schema Builder — run reset and the post-load lookup/pivot/FTS pass.

Output objects of an export:

    food                                  primary rows (JSON list columns)
    brands / categories / stores          distinct list tokens, one id each
    brand_food / category_food / store_food
                                          (lookup id, food id) membership pairs
    food_fts, brands_fts, categories_fts, stores_fts
                                          FTS5 external-content indexes

``reset_database`` drops all of them and recreates ``food`` before a run.
``build_lookup_schema`` derives everything else from the loaded ``food``
rows in one transaction; a failure at any step leaves none of it behind.

Statements are executed one at a time with ``conn.execute``;
``executescript`` would COMMIT the open transaction first.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import NamedTuple

from utils.database import get_table_count, transaction

logger = logging.getLogger(__name__)


class LookupSpec(NamedTuple):
    """Naming for one multi-valued column and the objects derived from it."""
    table: str        # lookup table, also the food JSON column it is built from
    column: str       # text column of the lookup table
    pivot: str        # membership table
    fk: str           # lookup id column in the pivot table
    fts: str          # FTS5 index over the lookup text


LOOKUP_SPECS: tuple[LookupSpec, ...] = (
    LookupSpec("brands", "brand", "brand_food", "brand_id", "brands_fts"),
    LookupSpec("categories", "category", "category_food", "category_id", "categories_fts"),
    LookupSpec("stores", "store", "store_food", "store_id", "stores_fts"),
)

FOOD_TABLE_SQL = """
CREATE TABLE food (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    url TEXT,
    image_url TEXT,
    brands JSON,
    categories JSON,
    stores JSON,
    fat DOUBLE NOT NULL,
    protein DOUBLE NOT NULL,
    carbs DOUBLE NOT NULL,
    energy DOUBLE NOT NULL,
    protein_fat_index DOUBLE
)
"""

# Search indexes first, then tables that reference food, then food and the
# lookups it is joined against.
DROP_ORDER: tuple[str, ...] = (
    ("food_fts",) + tuple(s.fts for s in LOOKUP_SPECS)
    + tuple(s.pivot for s in LOOKUP_SPECS)
    + ("food",)
    + tuple(s.table for s in LOOKUP_SPECS)
)


def reset_database(conn: sqlite3.Connection) -> None:
    """Drop every output object and create an empty ``food`` table.

    Runs in one transaction and is safe to call on an empty database.
    """
    with transaction(conn):
        for name in DROP_ORDER:
            conn.execute(f"DROP TABLE IF EXISTS {name}")
        conn.execute(FOOD_TABLE_SQL)
    logger.info("Reset database: dropped %d objects, created food", len(DROP_ORDER))


# ── SQL for the schema pass, generated per LookupSpec ────────────────────────


def _lookup_table_sql(s: LookupSpec) -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {s.table} ("
        f" id INTEGER PRIMARY KEY AUTOINCREMENT,"
        f" {s.column} TEXT NOT NULL UNIQUE)"
    )


def _populate_lookup_sql(s: LookupSpec) -> str:
    return f"""
        INSERT OR IGNORE INTO {s.table} ({s.column})
        SELECT DISTINCT trim(value)
        FROM food
        CROSS JOIN json_each(food.{s.table})
        WHERE food.{s.table} IS NOT NULL
          AND value IS NOT NULL
          AND trim(value) <> ''
    """


def _pivot_table_sql(s: LookupSpec) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS {s.pivot} (
            {s.fk} INTEGER NOT NULL,
            food_id INTEGER NOT NULL,
            UNIQUE ({s.fk}, food_id),
            FOREIGN KEY ({s.fk}) REFERENCES {s.table}(id),
            FOREIGN KEY (food_id) REFERENCES food(id)
        )
    """


def _populate_pivot_sql(s: LookupSpec) -> str:
    return f"""
        INSERT INTO {s.pivot} ({s.fk}, food_id)
        SELECT DISTINCT lk.id, food.id
        FROM food
        CROSS JOIN json_each(food.{s.table})
        JOIN {s.table} lk ON lk.{s.column} = trim(value)
        WHERE food.{s.table} IS NOT NULL
          AND value IS NOT NULL
          AND trim(value) <> ''
    """


def _pivot_index_sql(s: LookupSpec) -> list[str]:
    return [
        f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{s.pivot}_unique "
        f"ON {s.pivot}({s.fk}, food_id)",
        f"CREATE INDEX IF NOT EXISTS idx_{s.pivot}_{s.fk} ON {s.pivot}({s.fk})",
        f"CREATE INDEX IF NOT EXISTS idx_{s.pivot}_food_id ON {s.pivot}(food_id)",
    ]


def _fts_sql(fts: str, column: str, content: str, where: str = "") -> list[str]:
    return [
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {fts} USING fts5("
        f"{column}, content='{content}', content_rowid='id')",
        f"INSERT INTO {fts}(rowid, {column}) SELECT id, {column} FROM {content} {where}",
    ]


def schema_steps() -> list[tuple[str, list[str]]]:
    """The schema pass as ``(step label, statements)`` in execution order."""
    return [
        ("create lookup tables", [_lookup_table_sql(s) for s in LOOKUP_SPECS]),
        ("populate lookup tables", [_populate_lookup_sql(s) for s in LOOKUP_SPECS]),
        ("create pivot tables", [_pivot_table_sql(s) for s in LOOKUP_SPECS]),
        ("populate pivot tables", [_populate_pivot_sql(s) for s in LOOKUP_SPECS]),
        ("index pivot tables", [sql for s in LOOKUP_SPECS for sql in _pivot_index_sql(s)]),
        ("build search indexes",
         _fts_sql("food_fts", "name", "food", "WHERE name IS NOT NULL")
         + [sql for s in LOOKUP_SPECS for sql in _fts_sql(s.fts, s.column, s.table)]),
    ]


def build_lookup_schema(conn: sqlite3.Connection) -> dict[str, int]:
    """Derive lookup, pivot and FTS objects from the loaded ``food`` rows.

    All six steps run inside one transaction. Any failure rolls the whole
    pass back and re-raises.

    Returns:
        Row counts of the lookup and pivot tables, keyed by table name.
    """
    with transaction(conn):
        for label, statements in schema_steps():
            logger.info("Schema: %s", label)
            for sql in statements:
                conn.execute(sql)

        counts: dict[str, int] = {}
        for s in LOOKUP_SPECS:
            for table in (s.table, s.pivot):
                counts[table] = get_table_count(conn, table)

    logger.info(
        "Schema built: %s",
        ", ".join(f"{name}={n:,}" for name, n in counts.items()),
    )
    return counts
