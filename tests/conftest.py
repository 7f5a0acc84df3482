"""
Pytest fixtures for the food export tests.

Provides a TSV writer, a small deterministic OpenFoodFacts-style export,
and a database built from it once per session.

Sample export (``SAMPLE_ROWS``), in file order:

    1  Vollmilch Schokolade   Germany         0.9   accepted  -> food id 1
    2  Croissant              France          0.95  rejected (country)
    3  Apfelschorle           Germany         0.5   rejected (completeness)
    4  (no name, brand Müller) Germany,France 0.85  accepted  -> food id 2
    5  Dark chocolate bar     East Germany    1.0   accepted  -> food id 3
    6  Brezel                 Germany         abc   rejected (completeness)
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# Header of the sample export; "code" and "quantity" are ignored columns
SAMPLE_HEADER = [
    "code", "url", "product_name", "quantity", "brands", "categories",
    "stores", "countries_en", "image_url", "completeness",
    "energy-kcal_100g", "fat_100g", "carbohydrates_100g", "proteins_100g",
]


def make_row(**fields) -> dict:
    """Return a sample row dict with every header column present."""
    row = {name: "" for name in SAMPLE_HEADER}
    row.update(fields)
    return row


SAMPLE_ROWS = [
    make_row(
        code="4000417025005", product_name="Vollmilch Schokolade",
        url="https://world.openfoodfacts.org/product/4000417025005",
        image_url="https://images.openfoodfacts.org/4000417025005.jpg",
        brands="Ritter Sport, Alfred Ritter", categories="Snacks, Chocolates",
        stores="Edeka,Rewe", countries_en="Germany", completeness="0.9",
        **{"energy-kcal_100g": "540", "fat_100g": "30.5",
           "carbohydrates_100g": "55", "proteins_100g": "7.2"},
    ),
    make_row(
        code="3017620422003", product_name="Croissant", brands="Bonne Maman",
        countries_en="France", completeness="0.95",
        **{"fat_100g": "21", "proteins_100g": "8"},
    ),
    make_row(
        code="4001234000001", product_name="Apfelschorle", brands="Lichtenauer",
        countries_en="Germany", completeness="0.5",
    ),
    make_row(
        code="4025500000001", product_name="", brands="Müller",
        categories="Dairies, Yogurts", stores="Rewe",
        countries_en="Germany,France", completeness="0.85",
        **{"energy-kcal_100g": "120", "fat_100g": "103",
           "carbohydrates_100g": "", "proteins_100g": "3.456"},
    ),
    make_row(
        code="4000417030009", product_name="Dark chocolate bar", brands="Ritter Sport",
        categories="Chocolates", countries_en="East Germany", completeness="1.0",
        **{"energy-kcal_100g": "500", "fat_100g": "0",
           "carbohydrates_100g": "40", "proteins_100g": "8"},
    ),
    make_row(
        code="4000000000006", product_name="Brezel", countries_en="Germany",
        completeness="abc",
    ),
]


def write_tsv(path: Path, header: list[str], rows: list) -> Path:
    """Write a tab-separated export.

    ``rows`` items are dicts (keyed by header name), lists of fields, or raw
    strings written verbatim as one line.
    """
    lines = ["\t".join(header)]
    for row in rows:
        if isinstance(row, str):
            lines.append(row)
        elif isinstance(row, dict):
            lines.append("\t".join(row.get(name, "") for name in header))
        else:
            lines.append("\t".join(row))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture()
def tsv_writer(tmp_path):
    """Return a callable(name, header, rows) that writes a TSV under tmp_path."""
    def _write(name: str, header: list[str], rows: list) -> Path:
        return write_tsv(tmp_path / name, header, rows)
    return _write


@pytest.fixture()
def sample_export(tmp_path) -> Path:
    """Path to the six-line sample export."""
    return write_tsv(tmp_path / "products.csv", SAMPLE_HEADER, SAMPLE_ROWS)


@pytest.fixture(scope="session")
def built_db(tmp_path_factory) -> Path:
    """Path to a database built once from the sample export."""
    from pipeline.builder import build_database

    d = tmp_path_factory.mktemp("built_db")
    csv_path = write_tsv(d / "products.csv", SAMPLE_HEADER, SAMPLE_ROWS)
    db_path = d / "food.sqlite"
    build_database(csv_path, db_path)
    return db_path


@pytest.fixture()
def db_conn(built_db):
    """Read connection to the session database with sqlite3.Row rows."""
    import sqlite3

    conn = sqlite3.connect(str(built_db))
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()
