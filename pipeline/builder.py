"""
Pipeline Driver — runs one export from TSV file to finished database.

    summary = build_database("~/off/en.openfoodfacts.org.products.csv",
                             "~/off/food.sqlite")

Phases, in order:

  1. reset   open the database, check SQLite features, drop all output
             objects and recreate ``food``
  2. ingest  stream records -> filter -> normalize -> batch loader
  3. schema  derive lookups, pivots, indexes and search tables

The input file is opened before the database is touched, so a bad
``--csv`` path fails without wiping the previous export. Every run rebuilds
from scratch; there is no append mode and nothing is retried.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from pipeline.filters import REJECT_COMPLETENESS, REJECT_COUNTRY, RowFilter
from pipeline.loader import BatchLoader, check_loader_limits
from pipeline.logging import (
    SKIP_COMPLETENESS,
    SKIP_COUNTRY,
    SKIP_MALFORMED,
    STEP_INGEST,
    STEP_RESET,
    STEP_SCHEMA,
    PipelineLogger,
    StepReport,
)
from pipeline.normalize import normalize_record
from pipeline.reader import ColumnIndex, ReadStats, open_export
from pipeline.schema import build_lookup_schema, reset_database
from utils.common import expand_path
from utils.config import ExportConfig
from utils.database import check_engine_features, open_database

logger = logging.getLogger(__name__)

# Lines between progress callbacks during ingest
PROGRESS_INTERVAL = 100_000

_SKIP_CATEGORY = {
    REJECT_COUNTRY: SKIP_COUNTRY,
    REJECT_COMPLETENESS: SKIP_COMPLETENESS,
}

ProgressCallback = Callable[[str, int, int, str, dict], None]


@dataclass
class BuildSummary:
    """Outcome of one export run."""

    csv_path: str
    db_path: str
    lines_read: int = 0
    rows_accepted: int = 0
    rejected: dict[str, int] = field(default_factory=dict)
    malformed_lines: int = 0
    missing_columns: list[str] = field(default_factory=list)
    rows_inserted: int = 0
    flush_count: int = 0
    chunk_count: int = 0
    schema_counts: dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def rows_rejected(self) -> int:
        return sum(self.rejected.values())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@contextmanager
def _step(pl: PipelineLogger | None, name: str) -> Iterator[StepReport]:
    report = pl.start_step(name) if pl else StepReport(step_name=name, status="started")
    try:
        yield report
    except BaseException as e:
        report.fail(f"{type(e).__name__}: {e}")
        raise
    finally:
        if pl:
            pl.finish_step(name, report)
        elif report.status == "started":
            report.status = "completed"


def _resolve_config(config: ExportConfig | None, batch_size: int | None) -> ExportConfig:
    # Copy so the caller's object is not mutated by the batch_size override
    cfg = ExportConfig.from_dict(config.to_dict()) if config else ExportConfig()
    if batch_size is not None:
        cfg.batch_size = batch_size
    cfg.validate()
    check_loader_limits(cfg.batch_size, cfg.max_rows_per_insert)
    return cfg


def build_database(
    csv_path: str | os.PathLike,
    db_path: str | os.PathLike,
    batch_size: int | None = None,
    config: ExportConfig | None = None,
    pipeline_logger: PipelineLogger | None = None,
    progress_callback: ProgressCallback | None = None,
) -> BuildSummary:
    """Export ``csv_path`` into a freshly rebuilt database at ``db_path``.

    Args:
        csv_path: Tab-separated export with a header row. ``~`` is expanded.
        db_path: SQLite file to (re)build. Parent directories are created.
        batch_size: Rows per flush; overrides ``config.batch_size``
            (default 10 000).
        config: Filter thresholds and loader limits; defaults to ExportConfig().
        pipeline_logger: When given, each phase gets its own log file and a
            StepReport in the run summary.
        progress_callback: Optional callable(phase, current, total, detail,
            metrics). ``total`` is 0 during ingest, where the line count is
            unknown up front.

    Returns:
        BuildSummary with line, rejection, insert and lookup counts.

    Raises:
        OSError: Input file cannot be opened.
        ValueError: Input has no header row, or the config is invalid.
        sqlite3.Error: Database cannot be opened, reset, loaded or indexed.
            Open transactions are rolled back first.
    """
    started = time.monotonic()
    cfg = _resolve_config(config, batch_size)
    csv_file = expand_path(csv_path)
    db_file = expand_path(db_path)
    summary = BuildSummary(csv_path=str(csv_file), db_path=str(db_file))

    def _progress(phase: str, current: int, total: int, detail: str = "") -> None:
        if progress_callback:
            progress_callback(phase, current, total, detail, {
                "lines_read": summary.lines_read,
                "rows_accepted": summary.rows_accepted,
                "rows_inserted": summary.rows_inserted,
            })

    logger.info("Input:    %s", csv_file)
    logger.info("Database: %s", db_file)

    stats = ReadStats()
    header, records = open_export(csv_file, cfg.field_size_limit, stats)

    conn: sqlite3.Connection | None = None
    try:
        # ── 1. Reset ──────────────────────────────────────────────────────
        with _step(pipeline_logger, STEP_RESET) as report:
            conn = open_database(db_file, cfg.cache_size)
            check_engine_features(conn)
            reset_database(conn)
            report.detail = "food table recreated"
        _progress(STEP_RESET, 1, 1, "database reset")

        # ── 2. Ingest ─────────────────────────────────────────────────────
        with _step(pipeline_logger, STEP_INGEST) as report:
            columns = ColumnIndex.from_header(header)
            summary.missing_columns = columns.missing(cfg.required_columns)
            for name in summary.missing_columns:
                logger.warning("Column %r not found in header; it reads as empty", name)

            row_filter = RowFilter(cfg.target_country, cfg.min_completeness)
            loader = BatchLoader(conn, cfg.batch_size, cfg.max_rows_per_insert)
            rejected = {REJECT_COUNTRY: 0, REJECT_COMPLETENESS: 0}

            for _line_num, record in records:
                reason = row_filter.check(record, columns)
                if reason is not None:
                    rejected[reason] += 1
                else:
                    loader.add(normalize_record(record, columns))
                    summary.rows_accepted += 1
                if stats.lines_read % PROGRESS_INTERVAL == 0:
                    summary.lines_read = stats.lines_read
                    summary.rows_inserted = loader.rows_inserted
                    _progress(STEP_INGEST, stats.lines_read, 0,
                              f"{summary.rows_accepted:,} rows accepted")
            loader.finish()

            summary.lines_read = stats.lines_read
            summary.malformed_lines = stats.malformed_lines
            summary.rejected = rejected
            summary.rows_inserted = loader.rows_inserted
            summary.flush_count = loader.flush_count
            summary.chunk_count = loader.chunk_count

            report.items_processed = summary.rows_inserted
            for reason, n in rejected.items():
                if n:
                    report.add_skip(_SKIP_CATEGORY[reason], n)
            if stats.malformed_lines:
                report.add_skip(SKIP_MALFORMED, stats.malformed_lines)
            report.metrics.update({
                "lines_read": summary.lines_read,
                "flushes": summary.flush_count,
                "insert_chunks": summary.chunk_count,
            })
            if summary.missing_columns:
                report.metrics["missing_columns"] = summary.missing_columns
        logger.info(
            "Read %d lines: %d accepted, %d rejected, %d malformed",
            summary.lines_read, summary.rows_accepted,
            summary.rows_rejected, summary.malformed_lines,
        )

        # ── 3. Schema ─────────────────────────────────────────────────────
        _progress(STEP_SCHEMA, 0, 1, "building lookup tables")
        with _step(pipeline_logger, STEP_SCHEMA) as report:
            summary.schema_counts = build_lookup_schema(conn)
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            # Leave a single self-contained file for readers without WAL support
            conn.execute("PRAGMA journal_mode=DELETE")
            report.items_processed = sum(summary.schema_counts.values())
            report.metrics.update(summary.schema_counts)
        _progress(STEP_SCHEMA, 1, 1, "done")
    finally:
        records.close()
        if conn is not None:
            conn.close()

    summary.elapsed_seconds = round(time.monotonic() - started, 2)
    logger.info("Export finished in %.1fs: %d food rows", summary.elapsed_seconds,
                summary.rows_inserted)
    return summary
