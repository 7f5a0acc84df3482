"""String processing utilities for the food export tools.

Optimization: parse_rounded_float() and split_multi_value() run for every
nutrient and list column of every accepted row, so they avoid regex work and
return early on empty input.
"""

import json
import math

from utils.patterns import FTS5_KEYWORDS, FTS5_SPECIAL_CHARS, LIST_SEPARATOR


def round_half_away(value: float, digits: int = 2) -> float:
    """Round to ``digits`` decimals, halves away from zero.

    Python's round() uses banker's rounding (round(0.125, 2) == 0.12);
    this gives 0.125 -> 0.13 and -0.125 -> -0.13.
    """
    scale = 10 ** digits
    return math.copysign(math.floor(abs(value) * scale + 0.5), value) / scale


def parse_decimal(text: str) -> float:
    """float() without its lenient extras.

    Digit-group underscores ("1_000") and surrounding whitespace are
    rejected; export cells never use them for numbers.

    Raises:
        ValueError: ``text`` is not a plain decimal or scientific literal.
    """
    if "_" in text or text != text.strip():
        raise ValueError(f"not a plain number: {text!r}")
    return float(text)


def parse_rounded_float(val: str | None) -> float | None:
    """Parse a numeric cell into a float rounded to 2 decimals.

    Handles:
    - None, empty or whitespace-only strings -> None (missing)
    - Anything parse_decimal() rejects, such as "1_000" -> None (malformed)
    - nan / inf -> None; SQLite stores NaN as NULL, which would break
      the NOT NULL nutrient columns

    Callers that need a hard value apply their own default.

    Args:
        val: Raw cell text.

    Returns:
        float or None
    """
    if val is None:
        return None
    s = val.strip()
    if not s:
        return None
    try:
        f = parse_decimal(s)
    except ValueError:
        return None
    if not math.isfinite(f):
        return None
    return round_half_away(f, 2)


def split_multi_value(val: str | None) -> tuple[str, ...] | None:
    """Split a comma-separated free-text cell into a clean ordered tuple.

    Each part is stripped and empty parts are dropped. When nothing is left
    the field is absent (None), never an empty tuple.

    Example:
        "A, B,, C " -> ("A", "B", "C")
        "   "       -> None
    """
    if not val:
        return None
    parts = tuple(p.strip() for p in val.split(LIST_SEPARATOR))
    parts = tuple(p for p in parts if p)
    return parts or None


def encode_json_list(items: tuple[str, ...] | list[str] | None) -> str | None:
    """Encode a list of strings as a compact JSON array, or None if absent.

    ``&``, ``<`` and ``>`` are written as-is and non-ASCII text is kept
    verbatim so the stored value reads the same as the source cell.
    """
    if not items:
        return None
    return json.dumps(list(items), ensure_ascii=False, separators=(",", ":"))


def fts5_prefix_query(query: str) -> str:
    """Build an FTS5 MATCH expression for search-as-you-type.

    Every term must match (implicit AND) and the last term matches as a
    prefix, so "dark choc" finds "Dark Chocolate".

    Example:
        'dark choc' -> '"dark" "choc"*'
    """
    terms = _fts5_terms(query)
    if not terms:
        return ""
    quoted = [f'"{t}"' for t in terms]
    quoted[-1] += "*"
    return " ".join(quoted)


def _fts5_terms(query: str) -> list[str]:
    cleaned = FTS5_SPECIAL_CHARS.sub(" ", query or "")
    # Drop FTS5 boolean keywords and empty/dash-only terms
    return [t for t in cleaned.split()
            if t.upper() not in FTS5_KEYWORDS and t.strip("-")]
