"""
Tests for pipeline/loader.py — batched, chunked, transactional inserts.
"""
import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from pipeline.loader import DEFAULT_MAX_ROWS_PER_INSERT, BatchLoader
from pipeline.normalize import NormalizedFoodRow
from pipeline.schema import reset_database


class _RecordingConnection(sqlite3.Connection):
    """Connection that records executemany chunk sizes and can fail on a given call."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chunk_sizes: list[int] = []
        self.fail_on_call: int | None = None

    def executemany(self, sql, seq_of_params):
        rows = list(seq_of_params)
        self.chunk_sizes.append(len(rows))
        if self.fail_on_call == len(self.chunk_sizes):
            raise sqlite3.OperationalError("simulated write failure")
        return super().executemany(sql, rows)


def _row(i: int) -> NormalizedFoodRow:
    return NormalizedFoodRow(
        name=f"Product {i}", url=None, image_url=None,
        brands=("Brand",), categories=None, stores=None,
        fat=1.0, protein=2.0, carbs=3.0, energy=40.0, protein_fat_index=2.0,
    )


@pytest.fixture()
def conn(tmp_path):
    c = sqlite3.connect(str(tmp_path / "load.sqlite"), isolation_level=None,
                        factory=_RecordingConnection)
    reset_database(c)
    yield c
    c.close()


def _count(conn) -> int:
    return conn.execute("SELECT COUNT(*) FROM food").fetchone()[0]


class TestChunking:
    def test_default_chunk_fits_variable_limit(self):
        assert DEFAULT_MAX_ROWS_PER_INSERT == 90

    def test_250_rows_in_three_chunks(self, conn):
        loader = BatchLoader(conn, batch_size=10_000)
        for i in range(250):
            loader.add(_row(i))
        assert loader.finish() == 250
        assert conn.chunk_sizes == [90, 90, 70]
        assert loader.flush_count == 1
        assert loader.chunk_count == 3
        assert _count(conn) == 250

    def test_ids_assigned_in_order(self, conn):
        loader = BatchLoader(conn)
        for i in range(3):
            loader.add(_row(i))
        loader.finish()
        rows = conn.execute("SELECT id, name FROM food ORDER BY id").fetchall()
        assert rows == [(1, "Product 0"), (2, "Product 1"), (3, "Product 2")]

    def test_json_columns_stored(self, conn):
        loader = BatchLoader(conn)
        loader.add(_row(0))
        loader.finish()
        assert conn.execute("SELECT brands, categories FROM food").fetchone() == ('["Brand"]', None)


class TestBatching:
    def test_auto_flush_at_batch_size(self, conn):
        loader = BatchLoader(conn, batch_size=100)
        for i in range(250):
            loader.add(_row(i))
        assert loader.flush_count == 2
        assert loader.pending == 50
        assert _count(conn) == 200
        loader.finish()
        assert loader.flush_count == 3
        assert loader.rows_inserted == 250

    def test_empty_finish_is_noop(self, conn):
        loader = BatchLoader(conn)
        assert loader.finish() == 0
        assert loader.flush_count == 0
        assert conn.chunk_sizes == []

    @pytest.mark.parametrize("kwargs", [
        {"batch_size": 0},
        {"max_rows_per_insert": 0},
        {"max_rows_per_insert": 91},
    ])
    def test_invalid_limits(self, conn, kwargs):
        with pytest.raises(ValueError):
            BatchLoader(conn, **kwargs)


class TestFlushFailure:
    def test_failure_in_third_chunk_rolls_back_flush(self, conn):
        conn.fail_on_call = 3
        loader = BatchLoader(conn)
        for i in range(250):
            loader.add(_row(i))
        with pytest.raises(sqlite3.OperationalError, match="simulated"):
            loader.finish()
        assert _count(conn) == 0
        assert not conn.in_transaction
        assert loader.rows_inserted == 0
        assert loader.pending == 250

    def test_earlier_flushes_survive(self, conn):
        loader = BatchLoader(conn, batch_size=10)
        for i in range(10):
            loader.add(_row(i))
        conn.fail_on_call = len(conn.chunk_sizes) + 1
        for i in range(5):
            loader.add(_row(i))
        with pytest.raises(sqlite3.OperationalError):
            loader.finish()
        assert _count(conn) == 10

    def test_constraint_violation_rolls_back(self, conn):
        loader = BatchLoader(conn)
        rows = [_row(i) for i in range(200)]
        rows[195] = NormalizedFoodRow(
            name="bad", url=None, image_url=None, brands=None, categories=None,
            stores=None, fat=None, protein=0.0, carbs=0.0, energy=0.0,  # type: ignore[arg-type]
            protein_fat_index=None,
        )
        for r in rows:
            loader.add(r)
        with pytest.raises(sqlite3.IntegrityError):
            loader.finish()
        assert _count(conn) == 0
