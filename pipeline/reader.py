"""
Streaming reader for OpenFoodFacts-style TSV exports.

The export is one very large tab-separated file whose first line is the
header. Records are yielded one at a time, so memory use does not depend
on file size.

    header, records = open_export(path)        # header read eagerly
    columns = ColumnIndex.from_header(header)
    for line_num, record in records:
        name = columns.get(record, "product_name")

Quoting is lenient: quotes may appear inside unquoted fields, rows may be
shorter or longer than the header, and a line the csv module rejects
outright is skipped with a warning instead of aborting the run.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

DEFAULT_FIELD_SIZE_LIMIT = 10 * 1024 * 1024


class _ExportDialect(csv.Dialect):
    delimiter = "\t"
    quotechar = '"'
    doublequote = True
    skipinitialspace = False
    lineterminator = "\n"
    quoting = csv.QUOTE_MINIMAL
    strict = False


@dataclass(frozen=True)
class ColumnIndex:
    """Immutable header name -> position mapping, built once per run."""

    positions: Mapping[str, int]

    @classmethod
    def from_header(cls, header: Sequence[str]) -> ColumnIndex:
        # Duplicate header names: the last occurrence wins
        return cls(MappingProxyType({name: i for i, name in enumerate(header)}))

    def get(self, record: Sequence[str], name: str) -> str:
        """Return the raw value of ``name`` in ``record``.

        Absent columns and short records both read as ``""``; this never
        raises.
        """
        idx = self.positions.get(name)
        if idx is None or idx >= len(record):
            return ""
        return record[idx]

    def missing(self, names: Sequence[str]) -> list[str]:
        """Names from ``names`` that are not in the header, in order."""
        return [n for n in names if n not in self.positions]

    def __contains__(self, name: object) -> bool:
        return name in self.positions

    def __len__(self) -> int:
        return len(self.positions)


@dataclass
class ReadStats:
    """Line accounting filled in while records are consumed."""
    lines_read: int = 0
    malformed_lines: int = 0


def _clean_lines(lines: Iterable[str]) -> Iterator[str]:
    r"""Drop the "\r" of CRLF endings and turn stray "\r" inside a line into spaces.

    The csv module reads a bare "\r" in an unquoted field as a line break and
    then rejects the rest of the line.
    """
    for line in lines:
        if "\r" in line:
            end = "\n" if line.endswith("\n") else ""
            body = line[:-1] if end else line
            if body.endswith("\r"):
                body = body[:-1]
            line = body.replace("\r", " ") + end
        yield line


def _iter_rows(reader, stats: ReadStats) -> Iterator[tuple[int, list[str]]]:
    while True:
        try:
            record = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            stats.malformed_lines += 1
            logger.warning("Skipping malformed line %d: %s", reader.line_num, e)
            continue
        stats.lines_read += 1
        yield reader.line_num, record


def iter_records(
    path: Path,
    field_size_limit: int = DEFAULT_FIELD_SIZE_LIMIT,
    stats: ReadStats | None = None,
) -> Iterator[tuple[int, list[str]]]:
    """Yield ``(line_number, fields)`` for every line, header included.

    The file is opened lazily on first iteration; use :func:`open_export`
    when the open error should surface immediately.
    """
    if stats is None:
        stats = ReadStats()
    # Process-wide setting in the csv module; set per run so a previous
    # caller's value never leaks in.
    csv.field_size_limit(field_size_limit)
    # Split on "\n" only; a lone "\r" inside a field must not end the record
    with open(path, "r", encoding="utf-8", errors="replace", newline="\n") as f:
        yield from _iter_rows(csv.reader(_clean_lines(f), dialect=_ExportDialect), stats)


def open_export(
    path: Path,
    field_size_limit: int = DEFAULT_FIELD_SIZE_LIMIT,
    stats: ReadStats | None = None,
) -> tuple[list[str], Iterator[tuple[int, list[str]]]]:
    """Open ``path`` and read its header row.

    Returns:
        ``(header, records)`` where ``records`` yields the remaining
        ``(line_number, fields)`` pairs.

    Raises:
        OSError: If the file cannot be opened.
        ValueError: If the file has no header row.
    """
    records = iter_records(path, field_size_limit, stats)
    try:
        _, header = next(records)
    except StopIteration:
        raise ValueError(f"Input file has no header row: {path}") from None
    if stats is not None:
        # The header is not a data line
        stats.lines_read -= 1
    return header, records
