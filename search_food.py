"""
Food Database Search Tool

Query the SQLite database built by build_food_db.py: full-text search on
product names, brand/category/store filters, sorting by nutrients, and
listings of the lookup tables.

Usage:
    python search_food.py "dark chocolate"
    python search_food.py "joghurt" --sort protein:desc --limit 10
    python search_food.py --brand 12 --category 40 --sort protein_fat_index:desc
    python search_food.py --list brands --query rit
    python search_food.py --summary
    python search_food.py "muesli" --json
"""

import argparse
import json
import sqlite3
import sys
import textwrap
from pathlib import Path

from utils.common import expand_path, get_connection
from utils.query import (
    DEFAULT_LOOKUP_LIMIT,
    DEFAULT_PAGE_SIZE,
    FoodPage,
    database_summary,
    list_lookup,
    parse_sort,
    query_foods,
)

DEFAULT_DB_PATH = Path("food.sqlite")


def show_summary(conn: sqlite3.Connection) -> None:
    """Show row counts of the food, lookup and pivot tables."""
    print("=" * 50)
    print("  FOOD DATABASE SUMMARY")
    print("=" * 50)
    print(f"\n  {'Table':<20} {'Rows':>12}")
    print(f"  {'-'*20} {'-'*12}")
    for table, count in database_summary(conn).items():
        shown = f"{count:,}" if count is not None else "missing"
        print(f"  {table:<20} {shown:>12}")


def _fmt_nutrient(val: float | None) -> str:
    if val is None:
        return "-"
    return f"{val:.2f}"


def display_food_results(page: FoodPage) -> None:
    """Print one page of food results."""
    label = f"'{page.search}'" if page.search else "all products"
    if not page.items:
        print(f"\n  No products found for: {label}")
        return

    print(f"\n{'='*90}")
    print(f"  PRODUCTS matching {label} "
          f"(page {page.page} of {page.total_pages}, {page.total:,} total)")
    print(f"{'='*90}")

    for r in page.items:
        brands = ", ".join(r["brands"] or [])
        print(f"\n  [{r['id']}] {r['name'] or '(unnamed)'}"
              + (f"  ({brands})" if brands else ""))
        print(f"    fat {_fmt_nutrient(r['fat']):>7}  protein {_fmt_nutrient(r['protein']):>7}"
              f"  carbs {_fmt_nutrient(r['carbs']):>7}  kcal {_fmt_nutrient(r['energy']):>8}"
              f"  protein/fat {_fmt_nutrient(r['protein_fat_index']):>6}")
        if r["stores"]:
            print(f"    Stores: {', '.join(r['stores'])}")
        if r["url"]:
            print(f"    {r['url']}")


def display_lookup_results(kind: str, rows: list[dict]) -> None:
    """Print a brand/category/store listing."""
    if not rows:
        print(f"\n  No {kind} found.")
        return
    print(f"\n  {'ID':>8}  {kind.capitalize()}")
    print(f"  {'-'*8}  {'-'*40}")
    for r in rows:
        print(f"  {r['id']:>8}  {r['name']}")


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search the food database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""
            Examples:
              python search_food.py "dark chocolate"
              python search_food.py "quark" --sort protein:desc --sort name
              python search_food.py --store 3 --sort energy:asc
              python search_food.py --list categories --query milch
              python search_food.py --summary
        """),
    )
    parser.add_argument("query", nargs="?", default=None,
                        help="Search text for product names (prefix match on the last word)")
    parser.add_argument("--db", default=str(DEFAULT_DB_PATH),
                        help=f"Database path (default: {DEFAULT_DB_PATH})")
    parser.add_argument("--brand", type=int, action="append", default=[], metavar="ID",
                        help="Only products of this brand id (repeatable)")
    parser.add_argument("--category", type=int, action="append", default=[], metavar="ID",
                        help="Only products in this category id (repeatable)")
    parser.add_argument("--store", type=int, action="append", default=[], metavar="ID",
                        help="Only products sold at this store id (repeatable)")
    parser.add_argument("--sort", action="append", default=[], metavar="FIELD[:asc|desc]",
                        help="Sort field (repeatable): name, fat, protein, carbs, "
                             "energy, protein_fat_index")
    parser.add_argument("--limit", type=_positive_int, default=None,
                        help=f"Results per page (default: {DEFAULT_PAGE_SIZE}; "
                             f"{DEFAULT_LOOKUP_LIMIT} with --list)")
    parser.add_argument("--page", type=_positive_int, default=1,
                        help="Page number (default: 1)")
    parser.add_argument("--list", choices=["brands", "categories", "stores"], default=None,
                        dest="list_kind",
                        help="List lookup entries instead of products; "
                             "filter them with --query")
    parser.add_argument("--query", dest="list_query", default=None, metavar="TEXT",
                        help="Search text for --list")
    parser.add_argument("--summary", action="store_true",
                        help="Show database summary")
    parser.add_argument("--json", action="store_true",
                        help="Print results as JSON instead of text")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        sort = [parse_sort(s) for s in args.sort]
    except ValueError as e:
        parser.error(str(e))

    conn = get_connection(expand_path(args.db))
    try:
        if args.summary:
            if args.json:
                print(json.dumps(database_summary(conn), indent=2))
            else:
                show_summary(conn)
        elif args.list_kind:
            limit = args.limit or DEFAULT_LOOKUP_LIMIT
            rows = list_lookup(conn, args.list_kind, args.list_query, limit=limit)
            if args.json:
                print(json.dumps(rows, indent=2, ensure_ascii=False))
            else:
                display_lookup_results(args.list_kind, rows)
        elif args.query or args.brand or args.category or args.store:
            page = query_foods(
                conn, args.query,
                brand_ids=args.brand, category_ids=args.category, store_ids=args.store,
                sort=sort, page=args.page, limit=args.limit or DEFAULT_PAGE_SIZE,
            )
            if args.json:
                print(json.dumps({
                    "items": page.items,
                    "total": page.total,
                    "page": page.page,
                    "total_pages": page.total_pages,
                }, indent=2, ensure_ascii=False))
            else:
                display_food_results(page)
        else:
            parser.print_help()
    except sqlite3.Error as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
