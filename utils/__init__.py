"""Shared utilities for the food export tools."""

# Common utilities
from utils.common import format_bytes, expand_path, get_connection

# Pattern definitions
from utils.patterns import FTS5_SPECIAL_CHARS, FTS5_KEYWORDS, LIST_SEPARATOR

# String utilities
from utils.strings import (
    round_half_away,
    parse_decimal,
    parse_rounded_float,
    split_multi_value,
    encode_json_list,
    fts5_prefix_query,
)

# Database utilities
from utils.database import (
    init_pragmas,
    open_database,
    transaction,
    iter_chunks,
    insert_chunked,
    check_engine_features,
    get_table_count,
    table_exists,
    index_exists,
)

# Configuration
from utils.config import (
    Config,
    ExportConfig,
    AppConfig,
    REQUIRED_COLUMNS,
)

__all__ = [
    # Common
    "format_bytes",
    "expand_path",
    "get_connection",
    # Patterns
    "FTS5_SPECIAL_CHARS",
    "FTS5_KEYWORDS",
    "LIST_SEPARATOR",
    # Strings
    "round_half_away",
    "parse_decimal",
    "parse_rounded_float",
    "split_multi_value",
    "encode_json_list",
    "fts5_prefix_query",
    # Database
    "init_pragmas",
    "open_database",
    "transaction",
    "iter_chunks",
    "insert_chunked",
    "check_engine_features",
    "get_table_count",
    "table_exists",
    "index_exists",
    # Config
    "Config",
    "ExportConfig",
    "AppConfig",
    "REQUIRED_COLUMNS",
]
