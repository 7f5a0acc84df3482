"""
Batch Loader — buffers normalized rows and writes them to ``food``.

Each flush is one transaction holding the whole batch, written as several
``executemany`` calls of at most ``max_rows_per_insert`` rows. With 11
bound parameters per row, 90 rows keeps a statement under SQLite's
999-variable ceiling.
"""

from __future__ import annotations

import logging
import sqlite3

from pipeline.normalize import FOOD_COLUMNS, NormalizedFoodRow
from utils.config import SQLITE_MAX_VARIABLES
from utils.database import insert_chunked, transaction

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10_000
DEFAULT_MAX_ROWS_PER_INSERT = SQLITE_MAX_VARIABLES // len(FOOD_COLUMNS)  # 90


def check_loader_limits(batch_size: int, max_rows_per_insert: int) -> None:
    """Raise ValueError unless both limits are usable for the food insert."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    if not 1 <= max_rows_per_insert <= DEFAULT_MAX_ROWS_PER_INSERT:
        raise ValueError(
            f"max_rows_per_insert must be between 1 and "
            f"{DEFAULT_MAX_ROWS_PER_INSERT}, got {max_rows_per_insert}"
        )


class BatchLoader:
    """Accumulates rows and persists them in transactional flushes."""

    def __init__(self, conn: sqlite3.Connection,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 max_rows_per_insert: int = DEFAULT_MAX_ROWS_PER_INSERT) -> None:
        check_loader_limits(batch_size, max_rows_per_insert)
        self.conn = conn
        self.batch_size = batch_size
        self.max_rows_per_insert = max_rows_per_insert
        self._batch: list[NormalizedFoodRow] = []

        self.rows_inserted = 0
        self.flush_count = 0
        self.chunk_count = 0

    @property
    def pending(self) -> int:
        """Rows buffered but not yet committed."""
        return len(self._batch)

    def add(self, row: NormalizedFoodRow) -> None:
        """Buffer ``row``; flush once the batch reaches ``batch_size``."""
        self._batch.append(row)
        if len(self._batch) >= self.batch_size:
            self.flush()

    def flush(self) -> int:
        """Write the buffered rows in one transaction.

        On failure the transaction is rolled back, the batch is kept and the
        error propagates.

        Returns:
            Number of rows written (0 for an empty batch).
        """
        if not self._batch:
            return 0
        params = [row.as_params() for row in self._batch]
        with transaction(self.conn):
            chunks = insert_chunked(self.conn, "food", FOOD_COLUMNS, params,
                                    self.max_rows_per_insert)
        n = len(self._batch)
        self._batch.clear()
        self.rows_inserted += n
        self.flush_count += 1
        self.chunk_count += chunks
        logger.info("Inserted %d rows (batch %d, %d chunks)", n, self.flush_count, chunks)
        return n

    def finish(self) -> int:
        """Flush whatever is left at end of stream."""
        return self.flush()
