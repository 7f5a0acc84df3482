"""
Food Database Builder

Exports an OpenFoodFacts TSV dump into a SQLite database: products sold in
the target country with sufficient completeness go into ``food``; brands,
categories and stores are split out into lookup and pivot tables; names get
FTS5 search indexes. Every run rebuilds the database from scratch.

Usage:
    python build_food_db.py --csv ~/off/products.csv --sqlite ~/off/food.sqlite
    python build_food_db.py --csv products.csv --sqlite food.sqlite --batch 5000
    python build_food_db.py --csv products.csv --sqlite food.sqlite \\
        --config export_config.json --logs-dir logs/export

Exit status: 0 on success, 1 when the run fails, 2 on bad arguments.
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
import sys
from pathlib import Path

from pipeline.builder import build_database
from pipeline.logging import DEFAULT_LOGS_DIR, PipelineLogger
from utils.common import format_bytes
from utils.config import ExportConfig


def _print_progress(phase: str, current: int, total: int, detail: str = "",
                    metrics: dict | None = None) -> None:
    if phase == "ingest":
        print(f"  ... {current:,} lines read, {detail}", flush=True)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Export an OpenFoodFacts TSV dump into a SQLite database",
    )
    p.add_argument("--csv", required=True, metavar="PATH",
                   help="Tab-separated OpenFoodFacts export (~ is expanded)")
    p.add_argument("--sqlite", required=True, metavar="PATH",
                   help="SQLite database to (re)build (~ is expanded)")
    p.add_argument("--batch", type=int, default=None, metavar="N",
                   help="Rows per flush transaction (default: 10000)")
    p.add_argument("--config", type=Path, default=None, metavar="JSON",
                   help="JSON file with ExportConfig overrides "
                        "(target_country, min_completeness, ...)")
    p.add_argument("--logs-dir", type=Path, default=Path(DEFAULT_LOGS_DIR), metavar="DIR",
                   help=f"Directory for per-run step logs (default: {DEFAULT_LOGS_DIR})")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the export and return the process exit code."""
    args = _parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        force=True,
    )

    pl = PipelineLogger(logs_dir=args.logs_dir)
    pl.args_dict = {k: str(v) for k, v in vars(args).items() if v is not None}

    print("\nFood database export")
    print(f"  CSV    : {args.csv}")
    print(f"  SQLite : {args.sqlite}")
    print(f"  Logs   : {pl.run_dir}")

    try:
        config = ExportConfig.load_json(args.config) if args.config else ExportConfig()
        summary = build_database(
            args.csv, args.sqlite,
            batch_size=args.batch,
            config=config,
            pipeline_logger=pl,
            progress_callback=_print_progress,
        )
    except (OSError, ValueError, sqlite3.Error) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        pl.write_summary()
        print(f"  Summary: {pl.summary_path}")
        return 1

    pl.write_summary()

    print(f"\n{'=' * 60}")
    print(f"  Lines read      : {summary.lines_read:,}")
    print(f"  Rows inserted   : {summary.rows_inserted:,}")
    print(f"  Rows rejected   : {summary.rows_rejected:,}")
    if summary.malformed_lines:
        print(f"  Malformed lines : {summary.malformed_lines:,}")
    for table, count in summary.schema_counts.items():
        print(f"  {table:<16}: {count:,}")
    db_file = Path(summary.db_path)
    if db_file.exists():
        print(f"  Database size   : {format_bytes(db_file.stat().st_size)}")
    print(f"  Elapsed         : {summary.elapsed_seconds:.1f}s")
    print(f"{'=' * 60}")
    print(f"  Summary: {pl.summary_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
