"""Configuration management utilities for the food export tools.

Provides:
- Config: base class with dict / JSON round-tripping
- ExportConfig: knobs for the TSV -> SQLite export
- AppConfig: environment-driven settings for the read API
"""

from pathlib import Path
from typing import Dict, Any
import json
import os as _os


# Columns the export reads from the OpenFoodFacts TSV header. A column missing
# from the header is reported once and then reads as empty for every row.
REQUIRED_COLUMNS = (
    "product_name", "url", "image_url", "brands", "categories", "stores",
    "countries_en", "completeness",
    "fat_100g", "proteins_100g", "carbohydrates_100g", "energy-kcal_100g",
)

# SQLite's historical default for SQLITE_MAX_VARIABLE_NUMBER
SQLITE_MAX_VARIABLES = 999


class Config:
    """Base configuration class for organizing application settings."""

    def __init__(self):
        """Initialize configuration with default values."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary.

        Returns:
            Dictionary of all config attributes
        """
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary; keys must name existing settings

        Returns:
            Config instance with values from dictionary

        Raises:
            ValueError: If ``data`` is not a mapping or has unknown keys
        """
        if not isinstance(data, dict):
            raise ValueError(
                f"{cls.__name__} expects a JSON object, got {type(data).__name__}"
            )
        config = cls()
        unknown = sorted(set(data) - set(config.to_dict()))
        if unknown:
            raise ValueError(f"Unknown {cls.__name__} setting(s): {', '.join(unknown)}")
        for key, value in data.items():
            setattr(config, key, value)
        return config

    def save_json(self, path: Path) -> None:
        """Save configuration to JSON file.

        Args:
            path: Path to save configuration file
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_json(cls, path: Path) -> "Config":
        """Load configuration from JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Config instance loaded from file

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
            ValueError: If the JSON is not an object or names an unknown setting
        """
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


class ExportConfig(Config):
    """Configuration for the TSV -> SQLite export.

    ``max_rows_per_insert`` stays well under SQLITE_MAX_VARIABLES divided by
    the 11 bound parameters of a food row (90 * 11 = 990).
    """

    def __init__(self):
        """Initialize export configuration."""
        super().__init__()
        self.target_country = "Germany"
        self.min_completeness = 0.8
        self.batch_size = 10_000
        self.max_rows_per_insert = 90
        self.field_size_limit = 10 * 1024 * 1024
        self.cache_size = -64000
        self.required_columns = list(REQUIRED_COLUMNS)

    def validate(self) -> None:
        """Coerce numeric settings in place; raise ValueError for unusable ones.

        JSON config files may carry numbers as strings ("5000"); those are
        converted here so later comparisons see real ints and floats. The
        upper bound of ``max_rows_per_insert`` is checked by the loader,
        which knows the width of a food row.
        """
        self.batch_size = _coerce(self, "batch_size", int)
        self.max_rows_per_insert = _coerce(self, "max_rows_per_insert", int)
        self.field_size_limit = _coerce(self, "field_size_limit", int)
        self.cache_size = _coerce(self, "cache_size", int)
        self.min_completeness = _coerce(self, "min_completeness", float)
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_rows_per_insert < 1:
            raise ValueError(
                f"max_rows_per_insert must be >= 1, got {self.max_rows_per_insert}"
            )
        if self.field_size_limit < 1:
            raise ValueError(f"field_size_limit must be >= 1, got {self.field_size_limit}")
        if not 0.0 <= self.min_completeness <= 1.0:
            raise ValueError(
                f"min_completeness must be between 0 and 1, got {self.min_completeness}"
            )
        if not isinstance(self.target_country, str) or not self.target_country:
            raise ValueError("target_country must be a non-empty string")
        if (not isinstance(self.required_columns, list)
                or not all(isinstance(c, str) for c in self.required_columns)):
            raise ValueError("required_columns must be a list of column names")


def _coerce(cfg: Config, name: str, type_: type) -> Any:
    value = getattr(cfg, name)
    # bool is an int subclass; true/false in a config file is a mistake here
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return type_(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


class AppConfig(Config):
    """Read-API configuration loaded from environment variables.

    Environment variables:
        APP_DB_PATH: Path to the SQLite database file (default: food.sqlite)
        APP_PORT: API server port (default: 8000)
        APP_HOST: API server bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: Logging format, "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
    """

    def __init__(self) -> None:
        super().__init__()
        self.db_path = Path(_os.getenv("APP_DB_PATH", "food.sqlite"))
        self.api_port = int(_os.getenv("APP_PORT", "8000"))
        self.api_host = _os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = _os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = _os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
