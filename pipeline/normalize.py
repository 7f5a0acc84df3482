"""
Value Normalizer — turns an accepted export line into a NormalizedFoodRow.

Per-field rules:
  - nutrients      parsed, rounded to 2 decimals, defaulted to 0 when
                   missing or malformed
  - fat/protein/carbs values above 100 g per 100 g are divided by 10
                   (decimal-comma misreads: "10,3" stored as 103)
  - energy         parsed and rounded only; kcal routinely exceeds 100
  - lists          brands/categories/stores split on commas into tuples
  - name           falls back to the raw brands text when empty
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from pipeline.reader import ColumnIndex
from utils.strings import encode_json_list, parse_rounded_float, split_multi_value

# Column order of the food table insert; matches NormalizedFoodRow.as_params()
FOOD_COLUMNS = (
    "name", "url", "image_url", "brands", "categories", "stores",
    "fat", "protein", "carbs", "energy", "protein_fat_index",
)

OCR_MAGNITUDE_LIMIT = 100.0


@dataclass(frozen=True)
class NormalizedFoodRow:
    """One food row, ready for insertion."""

    name: str | None
    url: str | None
    image_url: str | None
    brands: tuple[str, ...] | None
    categories: tuple[str, ...] | None
    stores: tuple[str, ...] | None
    fat: float
    protein: float
    carbs: float
    energy: float
    protein_fat_index: float | None

    def as_params(self) -> tuple:
        """Bound parameters in FOOD_COLUMNS order; lists become JSON text."""
        return (
            self.name,
            self.url,
            self.image_url,
            encode_json_list(self.brands),
            encode_json_list(self.categories),
            encode_json_list(self.stores),
            self.fat,
            self.protein,
            self.carbs,
            self.energy,
            self.protein_fat_index,
        )


def fix_ocr_magnitude(value: float | None) -> float | None:
    """Divide macro-nutrient values above 100 by 10.

    103.0 -> 10.3, 55.0 -> 55.0, None -> None.
    """
    if value is not None and value > OCR_MAGNITUDE_LIMIT:
        return value / 10.0
    return value


def protein_fat_index(protein: float | None, fat: float | None) -> float | None:
    """protein / fat, or None when fat is missing or zero or protein is missing."""
    if fat is None or fat == 0 or protein is None:
        return None
    return protein / fat


def parse_nutrient(raw: str, ocr_fix: bool = True) -> float | None:
    """Parse a per-100g nutrient cell; None when missing or malformed."""
    value = parse_rounded_float(raw)
    if ocr_fix:
        value = fix_ocr_magnitude(value)
    return value


def _or_zero(value: float | None) -> float:
    return 0.0 if value is None else value


def _optional_text(value: str) -> str | None:
    return value if value != "" else None


def normalize_record(record: Sequence[str], columns: ColumnIndex) -> NormalizedFoodRow:
    """Build a NormalizedFoodRow from an accepted export line.

    The protein/fat index is derived from the parsed values before the
    default-to-0 policy, so a missing protein cell leaves it absent rather
    than 0.
    """
    brands_raw = columns.get(record, "brands")

    name = columns.get(record, "product_name")
    if name == "":
        name = brands_raw

    fat = parse_nutrient(columns.get(record, "fat_100g"))
    protein = parse_nutrient(columns.get(record, "proteins_100g"))
    carbs = parse_nutrient(columns.get(record, "carbohydrates_100g"))
    energy = parse_nutrient(columns.get(record, "energy-kcal_100g"), ocr_fix=False)

    return NormalizedFoodRow(
        name=_optional_text(name),
        url=_optional_text(columns.get(record, "url")),
        image_url=_optional_text(columns.get(record, "image_url")),
        brands=split_multi_value(brands_raw),
        categories=split_multi_value(columns.get(record, "categories")),
        stores=split_multi_value(columns.get(record, "stores")),
        fat=_or_zero(fat),
        protein=_or_zero(protein),
        carbs=_or_zero(carbs),
        energy=_or_zero(energy),
        protein_fat_index=protein_fat_index(protein, fat),
    )
