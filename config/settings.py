"""
Module: settings

Purpose: Centralized configuration management for the engagement engine.

Key Functions:
- get_settings: Load settings from environment variables
- Settings: Pydantic settings model with validation
- load_price_table: Read a tier price table from YAML

Architecture Notes:
- Uses pydantic-settings for type-safe configuration
- All settings have sensible defaults
- Environment variables (prefix ENGAGEMENT_) override defaults
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.analysis.revenue import TierPriceTable
from src.data.schemas import TrendUnit
from src.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="ENGAGEMENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Periods
    lookback_days: Annotated[int, Field(ge=1)] = 90
    cohort_months: Annotated[int, Field(ge=1, le=36)] = 6
    trend_unit: TrendUnit = TrendUnit.WEEK

    # Listings
    top_n_clients: Annotated[int, Field(ge=1)] = 10

    # Revenue
    price_table_path: Path | None = None

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once from the environment."""
    return Settings()


def load_price_table(path: Path | str) -> TierPriceTable:
    """Load a tier price table from YAML.

    Expected YAML format:
    ```yaml
    tier_prices:
      base: 0
      premium: 9.99
      pro: 19.99
      elite: 29.99
    ```

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the file has no valid ``tier_prices`` mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Price table not found: {path}")

    with open(path) as f:
        try:
            data: Any = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in price table {path}: {e}", setting="price_table_path"
            ) from e

    prices = (data or {}).get("tier_prices") if isinstance(data, dict) else None
    if not isinstance(prices, dict):
        raise ConfigurationError(
            f"Price table {path} has no 'tier_prices' mapping", setting="price_table_path"
        )
    return TierPriceTable.from_mapping(prices)


def price_table_from_settings(settings: Settings) -> TierPriceTable:
    """The configured price table, or the default one."""
    if settings.price_table_path is None:
        return TierPriceTable()
    return load_price_table(settings.price_table_path)
