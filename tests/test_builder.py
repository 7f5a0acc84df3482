"""
End-to-end tests for pipeline/builder.py — build_database().
"""
import json
import logging
import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from conftest import SAMPLE_HEADER, SAMPLE_ROWS, make_row
from pipeline.builder import build_database
from pipeline.logging import PipelineLogger
from utils.config import ExportConfig


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def _lookup_snapshot(db_path: Path) -> dict:
    conn = _connect(db_path)
    try:
        return {
            table: [tuple(r) for r in conn.execute(f"SELECT * FROM {table} ORDER BY 1, 2")]
            for table in ("brands", "categories", "stores",
                          "brand_food", "category_food", "store_food")
        }
    finally:
        conn.close()


# ── Three-line scenario ───────────────────────────────────────────────────────

class TestMinimalExport:
    """One accepted row, one rejected by country, one by completeness."""

    @pytest.fixture()
    def db(self, tsv_writer, tmp_path):
        path = tsv_writer("three.tsv", SAMPLE_HEADER, [
            make_row(product_name="Quark", brands="A, B", countries_en="Germany",
                     completeness="0.9",
                     **{"fat_100g": "103", "proteins_100g": "10.3"}),
            make_row(product_name="Fromage", countries_en="France", completeness="0.9"),
            make_row(product_name="Saft", countries_en="Germany", completeness="0.5"),
        ])
        db_path = tmp_path / "three.sqlite"
        summary = build_database(path, db_path)
        return db_path, summary

    def test_one_food_row(self, db):
        db_path, summary = db
        conn = _connect(db_path)
        rows = conn.execute("SELECT * FROM food").fetchall()
        conn.close()
        assert len(rows) == 1
        row = rows[0]
        assert row["name"] == "Quark"
        assert row["fat"] == pytest.approx(10.3)
        assert row["protein"] == pytest.approx(10.3)
        assert row["protein_fat_index"] == pytest.approx(1.0)
        assert json.loads(row["brands"]) == ["A", "B"]
        assert summary.rows_inserted == 1

    def test_lookup_and_pivot_counts(self, db):
        db_path, summary = db
        assert summary.schema_counts["brands"] == 2
        assert summary.schema_counts["brand_food"] == 2
        assert summary.schema_counts["categories"] == 0
        assert summary.schema_counts["stores"] == 0

    def test_rejections_counted(self, db):
        _, summary = db
        assert summary.lines_read == 3
        assert summary.rows_accepted == 1
        assert summary.rejected == {"country": 1, "completeness": 1}


# ── Sample export ─────────────────────────────────────────────────────────────

class TestSampleExport:
    def test_accepted_rows_in_file_order(self, db_conn):
        names = [r["name"] for r in db_conn.execute("SELECT name FROM food ORDER BY id")]
        assert names == ["Vollmilch Schokolade", "Müller", "Dark chocolate bar"]

    def test_name_fallback_and_ocr_fix(self, db_conn):
        row = db_conn.execute("SELECT * FROM food WHERE id = 2").fetchone()
        assert row["name"] == "Müller"
        assert row["fat"] == pytest.approx(10.3)
        assert row["protein"] == pytest.approx(3.46)
        assert row["carbs"] == 0.0
        assert row["energy"] == 120.0

    def test_zero_fat_has_no_index(self, db_conn):
        row = db_conn.execute("SELECT protein_fat_index FROM food WHERE id = 3").fetchone()
        assert row[0] is None

    def test_non_ascii_kept_in_json(self, db_conn):
        raw = db_conn.execute("SELECT brands FROM food WHERE id = 2").fetchone()[0]
        assert raw == '["Müller"]'

    def test_lookup_tables(self, db_conn):
        brands = sorted(r[0] for r in db_conn.execute("SELECT brand FROM brands"))
        assert brands == ["Alfred Ritter", "Müller", "Ritter Sport"]
        cats = sorted(r[0] for r in db_conn.execute("SELECT category FROM categories"))
        assert cats == ["Chocolates", "Dairies", "Snacks", "Yogurts"]
        stores = sorted(r[0] for r in db_conn.execute("SELECT store FROM stores"))
        assert stores == ["Edeka", "Rewe"]

    def test_pivot_counts(self, db_conn):
        def count(t):
            return db_conn.execute(f"SELECT COUNT(*) FROM {t}").fetchone()[0]
        assert count("brand_food") == 4
        assert count("category_food") == 5
        assert count("store_food") == 3

    def test_every_pivot_edge_matches_json(self, db_conn):
        rows = db_conn.execute("""
            SELECT f.brands, b.brand FROM brand_food bf
            JOIN food f ON f.id = bf.food_id
            JOIN brands b ON b.id = bf.brand_id
        """).fetchall()
        for r in rows:
            assert r["brand"] in json.loads(r["brands"])


class TestRebuild:
    def test_rebuild_is_idempotent(self, sample_export, tmp_path):
        db_path = tmp_path / "twice.sqlite"
        build_database(sample_export, db_path)
        first = _lookup_snapshot(db_path)
        build_database(sample_export, db_path)
        second = _lookup_snapshot(db_path)
        assert first == second
        conn = _connect(db_path)
        assert conn.execute("SELECT COUNT(*) FROM food").fetchone()[0] == 3
        assert conn.execute("SELECT MIN(id) FROM food").fetchone()[0] == 1
        conn.close()

    def test_missing_input_leaves_database_untouched(self, sample_export, tmp_path):
        db_path = tmp_path / "keep.sqlite"
        build_database(sample_export, db_path)
        with pytest.raises(FileNotFoundError):
            build_database(tmp_path / "typo.csv", db_path)
        conn = _connect(db_path)
        assert conn.execute("SELECT COUNT(*) FROM food").fetchone()[0] == 3
        conn.close()

    def test_empty_input_is_fatal(self, tmp_path):
        empty = tmp_path / "empty.csv"
        empty.write_text("", encoding="utf-8")
        with pytest.raises(ValueError):
            build_database(empty, tmp_path / "x.sqlite")


class TestRowLevelProblems:
    def test_malformed_line_skipped(self, tsv_writer, tmp_path, caplog):
        rows = list(SAMPLE_ROWS[:1])
        rows.append(make_row(product_name="x" * 300, countries_en="Germany",
                             completeness="0.9"))
        rows.append(make_row(product_name="Kefir", countries_en="Germany",
                             completeness="0.9"))
        path = tsv_writer("bad.tsv", SAMPLE_HEADER, rows)
        cfg = ExportConfig()
        cfg.field_size_limit = 200
        with caplog.at_level(logging.WARNING):
            summary = build_database(path, tmp_path / "bad.sqlite", config=cfg)
        assert summary.malformed_lines == 1
        assert summary.rows_inserted == 2
        assert "Skipping malformed line 3" in caplog.text

    def test_carriage_return_in_name_keeps_row(self, tsv_writer, tmp_path):
        path = tsv_writer("cr.tsv", SAMPLE_HEADER, [
            make_row(product_name="Foo\rBar", countries_en="Germany", completeness="0.9"),
            make_row(product_name="Kefir", countries_en="Germany", completeness="0.9"),
        ])
        db_path = tmp_path / "cr.sqlite"
        summary = build_database(path, db_path)
        assert summary.lines_read == 2
        assert summary.rows_inserted == 2
        assert summary.rows_rejected == 0
        conn = _connect(db_path)
        names = [r[0] for r in conn.execute("SELECT name FROM food ORDER BY id")]
        conn.close()
        assert names == ["Foo Bar", "Kefir"]

    def test_missing_column_warned(self, tsv_writer, tmp_path, caplog):
        header = [h for h in SAMPLE_HEADER if h != "stores"]
        path = tsv_writer("nostores.tsv", header, SAMPLE_ROWS)
        with caplog.at_level(logging.WARNING):
            summary = build_database(path, tmp_path / "nostores.sqlite")
        assert summary.missing_columns == ["stores"]
        assert "'stores'" in caplog.text
        assert summary.rows_inserted == 3
        assert summary.schema_counts["stores"] == 0

    def test_batch_size_controls_flushes(self, sample_export, tmp_path):
        summary = build_database(sample_export, tmp_path / "b.sqlite", batch_size=1)
        assert summary.flush_count == 3
        assert summary.rows_inserted == 3


class TestPathsAndReporting:
    def test_tilde_expanded(self, sample_export, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        summary = build_database("~/products.csv", "~/out/food.sqlite")
        assert summary.db_path == str(tmp_path / "out" / "food.sqlite")
        assert (tmp_path / "out" / "food.sqlite").exists()

    def test_config_not_mutated(self, sample_export, tmp_path):
        cfg = ExportConfig()
        build_database(sample_export, tmp_path / "c.sqlite", batch_size=2, config=cfg)
        assert cfg.batch_size == 10_000

    def test_invalid_config_rejected(self, sample_export, tmp_path):
        with pytest.raises(ValueError):
            build_database(sample_export, tmp_path / "c.sqlite", batch_size=0)

    def test_oversized_insert_chunk_rejected_before_database(self, sample_export, tmp_path):
        db = tmp_path / "d.sqlite"
        with pytest.raises(ValueError, match="max_rows_per_insert"):
            build_database(sample_export, db, config=ExportConfig.from_dict({"max_rows_per_insert": 91}))
        assert not db.exists()

    def test_pipeline_logger_reports(self, sample_export, tmp_path):
        pl = PipelineLogger(logs_dir=tmp_path / "logs")
        build_database(sample_export, tmp_path / "p.sqlite", pipeline_logger=pl)
        reports = pl.get_reports()
        assert list(reports) == ["reset", "ingest", "schema"]
        ingest = reports["ingest"]
        assert ingest.status == "completed"
        assert ingest.items_processed == 3
        assert ingest.skip_counts == {"country_filter": 1, "completeness_filter": 2}
        assert (pl.run_dir / "ingest.log").exists()

    def test_failed_step_marked(self, sample_export, tmp_path, monkeypatch):
        import pipeline.builder as builder_mod

        def _boom(conn):
            raise sqlite3.OperationalError("schema exploded")

        monkeypatch.setattr(builder_mod, "build_lookup_schema", _boom)
        pl = PipelineLogger(logs_dir=tmp_path / "logs")
        with pytest.raises(sqlite3.OperationalError):
            build_database(sample_export, tmp_path / "f.sqlite", pipeline_logger=pl)
        schema = pl.get_reports()["schema"]
        assert schema.status == "failed"
        assert "schema exploded" in schema.errors[0]

    def test_progress_callback_phases(self, sample_export, tmp_path):
        phases = []
        build_database(sample_export, tmp_path / "cb.sqlite",
                       progress_callback=lambda phase, *a: phases.append(phase))
        assert phases[0] == "reset"
        assert phases[-1] == "schema"
