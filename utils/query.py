"""Read-side queries over a built food database.

Shared by search_food.py and the API routes: paginated product listing with
FTS prefix search, brand/category/store membership filters and multi-field
sorting, plus lookup-table listings for filter pickers.

All functions expect a connection with ``row_factory = sqlite3.Row``.
"""

import json
import math
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from pipeline.schema import LOOKUP_SPECS, LookupSpec
from utils.database import get_table_count, table_exists
from utils.patterns import SORT_SPEC
from utils.strings import fts5_prefix_query

SORTABLE_FIELDS = ("name", "fat", "protein", "carbs", "energy", "protein_fat_index")

DEFAULT_PAGE_SIZE = 21
DEFAULT_LOOKUP_LIMIT = 100

_FOOD_COLUMNS = """
    f.id, f.name, f.url, f.image_url,
    f.brands, f.categories, f.stores,
    f.fat, f.protein, f.carbs, f.energy, f.protein_fat_index
"""

_JSON_COLUMNS = ("brands", "categories", "stores")


@dataclass(frozen=True)
class SortField:
    """One ORDER BY term; ``field`` is always one of SORTABLE_FIELDS."""
    field: str
    direction: str = "asc"

    def to_sql(self) -> str:
        return f"f.{self.field} {self.direction.upper()} NULLS LAST"


@dataclass
class FoodPage:
    """One page of food rows plus the totals needed for pagination."""
    items: list[dict[str, Any]]
    total: int
    page: int
    limit: int
    search: str | None = None
    filters: dict[str, list[int]] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def parse_sort(spec: str) -> SortField:
    """Parse ``"protein:desc"`` style sort specs.

    Raises:
        ValueError: On malformed specs or fields outside SORTABLE_FIELDS.
    """
    m = SORT_SPEC.match(spec or "")
    if not m:
        raise ValueError(f"Invalid sort spec: {spec!r} (expected field[:asc|desc])")
    name, direction = m.group(1).lower(), (m.group(2) or "asc").lower()
    if name not in SORTABLE_FIELDS:
        raise ValueError(
            f"sort field must be one of: {', '.join(SORTABLE_FIELDS)} (got {name!r})"
        )
    return SortField(name, direction)


def get_lookup_spec(kind: str) -> LookupSpec:
    """Return the LookupSpec for ``brands``, ``categories`` or ``stores``."""
    for spec in LOOKUP_SPECS:
        if spec.table == kind:
            return spec
    raise ValueError(
        f"Unknown lookup kind {kind!r}; expected one of "
        f"{', '.join(s.table for s in LOOKUP_SPECS)}"
    )


def decode_food_row(row: sqlite3.Row | dict) -> dict[str, Any]:
    """Turn a food row into a plain dict with JSON list columns decoded."""
    d = dict(row)
    for col in _JSON_COLUMNS:
        raw = d.get(col)
        d[col] = json.loads(raw) if raw else None
    return d


def query_foods(
    conn: sqlite3.Connection,
    search: str | None = None,
    brand_ids: list[int] | tuple[int, ...] = (),
    category_ids: list[int] | tuple[int, ...] = (),
    store_ids: list[int] | tuple[int, ...] = (),
    sort: list[SortField] | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> FoodPage:
    """Return one page of foods matching the search text and filters.

    Filters of different kinds combine with AND; several ids of one kind
    combine with OR. Without an explicit sort the order is FTS rank when
    searching, otherwise name.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    from_clause = "FROM food f"
    conditions: list[str] = []
    params: list[Any] = []

    match = fts5_prefix_query(search) if search else ""
    if match:
        from_clause = "FROM food_fts JOIN food f ON f.id = food_fts.rowid"
        conditions.append("food_fts MATCH ?")
        params.append(match)

    filters = {"brands": list(brand_ids), "categories": list(category_ids),
               "stores": list(store_ids)}
    for spec in LOOKUP_SPECS:
        ids = filters[spec.table]
        if not ids:
            continue
        placeholders = ", ".join("?" * len(ids))
        conditions.append(
            f"f.id IN (SELECT food_id FROM {spec.pivot} "
            f"WHERE {spec.fk} IN ({placeholders}))"
        )
        params.extend(ids)

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    if sort:
        order = "ORDER BY " + ", ".join(s.to_sql() for s in sort) + ", f.id"
    elif match:
        order = "ORDER BY food_fts.rank, f.id"
    else:
        order = "ORDER BY f.name, f.id"

    total = conn.execute(f"SELECT COUNT(*) {from_clause} {where}", params).fetchone()[0]
    rows = conn.execute(
        f"SELECT {_FOOD_COLUMNS} {from_clause} {where} {order} LIMIT ? OFFSET ?",
        params + [limit, (page - 1) * limit],
    ).fetchall()

    return FoodPage(
        items=[decode_food_row(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        search=search or None,
        filters={k: v for k, v in filters.items() if v},
    )


def get_food(conn: sqlite3.Connection, food_id: int) -> dict[str, Any] | None:
    """Return a single food by id, or None."""
    row = conn.execute(
        f"SELECT {_FOOD_COLUMNS} FROM food f WHERE f.id = ?", (food_id,)
    ).fetchone()
    return decode_food_row(row) if row else None


def list_lookup(
    conn: sqlite3.Connection,
    kind: str,
    search: str | None = None,
    limit: int = DEFAULT_LOOKUP_LIMIT,
) -> list[dict[str, Any]]:
    """List brands, categories or stores as ``{"id", "name"}`` dicts.

    With search text, matches through the lookup's FTS index ordered by rank;
    otherwise returns the first ``limit`` entries alphabetically.
    """
    spec = get_lookup_spec(kind)
    match = fts5_prefix_query(search) if search else ""
    if match:
        rows = conn.execute(
            f"SELECT rowid AS id, {spec.column} AS name FROM {spec.fts} "
            f"WHERE {spec.fts} MATCH ? ORDER BY rank LIMIT ?",
            (match, limit),
        ).fetchall()
    else:
        rows = conn.execute(
            f"SELECT id, {spec.column} AS name FROM {spec.table} "
            f"ORDER BY {spec.column} ASC LIMIT ?",
            (limit,),
        ).fetchall()
    return [{"id": r["id"], "name": r["name"]} for r in rows if r["name"]]


def database_summary(conn: sqlite3.Connection) -> dict[str, int | None]:
    """Row counts for the food, lookup and pivot tables (None if missing)."""
    tables = ["food"] + [s.table for s in LOOKUP_SPECS] + [s.pivot for s in LOOKUP_SPECS]
    summary: dict[str, int | None] = {}
    for table in tables:
        if table_exists(conn, table):
            summary[table] = get_table_count(conn, table)
        else:
            summary[table] = None
    return summary
