"""Application settings and shared constants."""

from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MATERIAL_UNITS = ("kg", "g", "L", "ml", "pcs", "box", "bottle", "can", "bag")
YIELD_UNITS = ("pcs", "kg", "L", "serving", "batch")
TRANSACTION_TYPES = ("adjustment", "deduction", "restock")
ADJUSTMENT_REASONS = ("purchase", "waste", "damage", "count_adjustment", "production", "sale", "other")

# Scale of the Numeric(14, 3) quantity columns
QUANTITY_STEP = Decimal("0.001")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    app_name: str = "BOM Inventory Service"
    api_prefix: str = "/api/v1"
    database_url: str = Field("sqlite:///./bom_inventory.db")
    log_level: str = Field("INFO")
    host: str = Field("127.0.0.1")
    port: int = Field(8000)

    # Stock status thresholds, relative to a material's reorder level
    critical_stock_ratio: float = Field(0.5)
    excess_stock_ratio: float = Field(3.0)

    alert_dedup_window_hours: int = Field(24)
    usage_window_days: int = Field(30)
    batch_size_candidates: List[int] = Field(default_factory=lambda: [10, 25, 50, 100, 200, 500])
    default_page_size: int = Field(15)

    @field_validator("critical_stock_ratio", "excess_stock_ratio")
    @classmethod
    def validate_ratio(cls, v: float) -> float:
        if v < 0:
            raise ValueError("stock ratios must be zero or positive")
        return v

    @field_validator("usage_window_days")
    @classmethod
    def validate_usage_window(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("usage_window_days must be positive")
        return v


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_quantity(value) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def as_float(value, decimals: int = 3):
    if value is None:
        return None
    return round(float(value), decimals)


@lru_cache
def get_settings() -> Settings:
    return Settings()
