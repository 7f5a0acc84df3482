"""
Row Filter — decides which export lines become food rows.

Two gates, checked in this order so the cheap substring test rejects most
of a worldwide export before any number parsing:

  1. country       ``countries_en`` contains the target country as a
                   case-sensitive substring. The field is free text, not a
                   parsed list, so "Germany" also matches "East Germany".
  2. completeness  ``completeness`` parses as a plain decimal >= the threshold.

Rejected rows are dropped silently; the returned reason only feeds the
step counters.
"""

from __future__ import annotations

from collections.abc import Sequence

from pipeline.reader import ColumnIndex
from utils.strings import parse_decimal

REJECT_COUNTRY = "country"
REJECT_COMPLETENESS = "completeness"


class RowFilter:
    """Geography + completeness gate for source records."""

    def __init__(self, target_country: str = "Germany",
                 min_completeness: float = 0.8) -> None:
        self.target_country = target_country
        self.min_completeness = float(min_completeness)

    def check(self, record: Sequence[str], columns: ColumnIndex) -> str | None:
        """Return the rejection reason for ``record``, or None if it passes."""
        if self.target_country not in columns.get(record, "countries_en"):
            return REJECT_COUNTRY
        try:
            completeness = parse_decimal(columns.get(record, "completeness"))
        except ValueError:
            return REJECT_COMPLETENESS
        # NaN compares False, so it is rejected here too
        if not completeness >= self.min_completeness:
            return REJECT_COMPLETENESS
        return None

    def accepts(self, record: Sequence[str], columns: ColumnIndex) -> bool:
        return self.check(record, columns) is None
