"""Pre-compiled regex patterns for the food export tools.

All patterns are compiled once at module import. The ingestion loop calls the
string helpers once per field per accepted row, so recompiling there adds up
on multi-million-line exports.

Usage:
    from utils.patterns import FTS5_SPECIAL_CHARS

    cleaned = FTS5_SPECIAL_CHARS.sub(" ", query)
"""

import re

# FTS5 special characters that need stripping in full-text search queries
FTS5_SPECIAL_CHARS = re.compile(r'[\"()*:^+{}\[\]]')

# FTS5 boolean operators that must not reach a MATCH expression unquoted
FTS5_KEYWORDS = frozenset({"AND", "OR", "NOT", "NEAR"})

# Separator for multi-valued free-text columns (brands, categories, stores)
LIST_SEPARATOR = ","

# Sort specification on the CLI / API: "protein:desc", "name", "fat:asc"
SORT_SPEC = re.compile(r'^\s*([a-z_]+)\s*(?::\s*(asc|desc))?\s*$', re.IGNORECASE)
