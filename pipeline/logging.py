"""
Export run logging — one log file per step, counted skips, run summary.

An export run has three steps:

    reset    drop every output object and recreate the ``food`` table
    ingest   stream the export, filter, normalize and load ``food``
    schema   derive lookups, pivots, indexes and FTS tables

``PipelineLogger`` attaches a file handler to the root logger for the
duration of each step, so ordinary ``logger.info(...)`` calls inside the
pipeline land in ``logs/export/<run-id>/<step>.log``. ``StepReport`` keeps
skip counts per category instead of one record per skipped line; an export
of a few million rows rejects most of them.

    pl = PipelineLogger("logs/export")
    report = pl.start_step("ingest")
    report.add_skip(SKIP_COUNTRY)
    pl.finish_step("ingest", report)
    pl.write_summary()

Skip categories:
    country_filter       row outside the target country
    completeness_filter  completeness missing, unparseable or below threshold
    malformed_line       line the TSV reader could not parse
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SKIP_COUNTRY = "country_filter"
SKIP_COMPLETENESS = "completeness_filter"
SKIP_MALFORMED = "malformed_line"

STEP_RESET = "reset"
STEP_INGEST = "ingest"
STEP_SCHEMA = "schema"

DEFAULT_LOGS_DIR = "logs/export"

# Only the first few error messages are repeated in a step log
_MAX_LOGGED_ERRORS = 20


# ── Step report ───────────────────────────────────────────────────────────────


@dataclass
class StepReport:
    """Counters and metrics for one export step."""

    step_name: str
    status: str = "not_started"               # started | completed | failed
    elapsed_seconds: float = 0.0
    items_processed: int = 0
    skip_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    detail: str = ""                           # free-form human note

    @property
    def items_skipped(self) -> int:
        return sum(self.skip_counts.values())

    @property
    def items_errored(self) -> int:
        return len(self.errors)

    def add_skip(self, category: str, count: int = 1) -> None:
        self.skip_counts[category] = self.skip_counts.get(category, 0) + count

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def fail(self, message: str) -> None:
        self.add_error(message)
        self.status = "failed"

    def console_summary(self) -> str:
        """One-line summary for the terminal."""
        parts: list[str] = []
        if self.items_processed:
            parts.append(f"{self.items_processed:,} processed")
        if self.skip_counts:
            cats = ", ".join(
                f"{v:,} {k.replace('_', ' ')}" for k, v in sorted(self.skip_counts.items())
            )
            parts.append(f"{self.items_skipped:,} skipped ({cats})")
        if self.errors:
            parts.append(f"{self.items_errored:,} errors")
        if self.detail:
            parts.append(self.detail)
        for key, val in self.metrics.items():
            if isinstance(val, bool):
                continue
            if isinstance(val, int):
                parts.append(f"{key}: {val:,}")
            elif isinstance(val, float):
                parts.append(f"{key}: {val:.1f}")
        return " | ".join(parts) if parts else "no activity"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "step_name": self.step_name,
            "status": self.status,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "items_processed": self.items_processed,
            "items_skipped": self.items_skipped,
            "items_errored": self.items_errored,
            "metrics": self.metrics,
        }
        if self.detail:
            d["detail"] = self.detail
        if self.skip_counts:
            d["skips"] = dict(sorted(self.skip_counts.items()))
        if self.errors:
            d["errors"] = self.errors
        return d


# ── PipelineLogger ────────────────────────────────────────────────────────────


class PipelineLogger:
    """Per-run directory of step logs under ``logs/export/``::

        logs/export/2026-02-22T14-30-00/
            reset.log
            ingest.log
            schema.log
            summary.json
    """

    def __init__(self, logs_dir: Path | str = DEFAULT_LOGS_DIR) -> None:
        self.logs_root = Path(logs_dir)
        self.run_id = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
        self.run_dir = self.logs_root / self.run_id
        # Two runs in the same second get distinct directories
        suffix = 1
        while self.run_dir.exists():
            suffix += 1
            self.run_dir = self.logs_root / f"{self.run_id}-{suffix}"
        self.run_dir.mkdir(parents=True)

        self._handlers: dict[str, logging.FileHandler] = {}
        self._started: dict[str, float] = {}
        self._reports: dict[str, StepReport] = {}

        self.run_start = time.monotonic()
        self.args_dict: dict[str, Any] = {}

    def start_step(self, step_name: str) -> StepReport:
        """Attach ``<step_name>.log`` to the root logger and return a fresh report."""
        handler = logging.FileHandler(self.run_dir / f"{step_name}.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        ))
        logging.getLogger().addHandler(handler)
        self._handlers[step_name] = handler
        self._started[step_name] = time.monotonic()

        report = StepReport(step_name=step_name, status="started")
        self._reports[step_name] = report
        return report

    def finish_step(self, step_name: str, report: StepReport | None = None) -> StepReport:
        """Close the step's log file, appending its summary block."""
        elapsed = time.monotonic() - self._started.pop(step_name, self.run_start)
        if report is None:
            report = self._reports.get(step_name, StepReport(step_name=step_name))
        report.elapsed_seconds = elapsed
        if report.status == "started":
            report.status = "completed"
        self._reports[step_name] = report

        handler = self._handlers.pop(step_name, None)
        if handler is not None:
            logging.getLogger().removeHandler(handler)
            handler.stream.write(self._summary_block(report))
            handler.close()
        return report

    @staticmethod
    def _summary_block(report: StepReport) -> str:
        lines = [
            "",
            "=" * 60,
            f"STEP SUMMARY: {report.step_name}",
            f"  Status:    {report.status}",
            f"  Elapsed:   {report.elapsed_seconds:.1f}s",
            f"  Processed: {report.items_processed}",
            f"  Skipped:   {report.items_skipped}",
            f"  Errors:    {report.items_errored}",
        ]
        if report.skip_counts:
            lines.append("  Skip breakdown:")
            lines.extend(f"    {cat}: {n}" for cat, n in sorted(report.skip_counts.items()))
        if report.metrics:
            lines.append("  Metrics:")
            lines.extend(f"    {key}: {val}" for key, val in report.metrics.items())
        if report.errors:
            lines.append("  Error details:")
            lines.extend(f"    - {e}" for e in report.errors[:_MAX_LOGGED_ERRORS])
            if len(report.errors) > _MAX_LOGGED_ERRORS:
                lines.append(f"    ... and {len(report.errors) - _MAX_LOGGED_ERRORS} more")
        lines.append("=" * 60)
        return "\n".join(lines) + "\n"

    def write_summary(self) -> Path:
        """Write ``summary.json`` for the whole run and return its path."""
        summary = {
            "run_id": self.run_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_elapsed_seconds": round(time.monotonic() - self.run_start, 2),
            "args": self.args_dict,
            "steps": {name: rpt.to_dict() for name, rpt in self._reports.items()},
        }
        path = self.summary_path
        with open(path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        return path

    def get_reports(self) -> dict[str, StepReport]:
        return dict(self._reports)

    @property
    def summary_path(self) -> Path:
        return self.run_dir / "summary.json"
