"""
Configuration management using pydantic-settings.
All settings loaded from environment variables (12-factor app).
"""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    db_path: str = Field(
        default="./data/opsmetrics.duckdb", description="DuckDB document store path"
    )

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_reload: bool = Field(default=True, description="Enable hot reload")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="CORS allowed origins (comma-separated)",
    )

    # Logging
    log_level: str = Field(default="info", description="Log level")
    log_format: str = Field(default="json", description="Log format (json|console)")

    # Ranking limits
    top_sellers_limit: int = Field(default=3, ge=1, description="Top/bottom sellers shown")
    top_clients_limit: int = Field(default=5, ge=1, description="Top clients by spend")
    top_products_limit: int = Field(default=5, ge=1, description="Top products by revenue")
    top_stores_limit: int = Field(default=5, ge=1, description="Top stores by revenue")
    recent_sales_limit: int = Field(default=3, ge=0, description="Recent sales listed")
    risk_clients_limit: int = Field(default=5, ge=0, description="At-risk clients listed")
    top_moving_limit: int = Field(default=5, ge=0, description="Top moving stock items")
    slow_moving_limit: int = Field(default=3, ge=0, description="Slow moving stock items")

    # Client risk thresholds
    risk_inactive_months: int = Field(
        default=6, ge=1, description="Months without purchase before a client is at risk"
    )
    risk_spend_ceiling: float = Field(
        default=100000.0, ge=0.0, description="Lifetime spend under which inactivity is a risk"
    )
    risk_no_purchase_spend_ceiling: float = Field(
        default=50000.0,
        ge=0.0,
        description="Spend ceiling for clients with spend but no recorded last purchase",
    )
    recent_client_months: int = Field(
        default=1, ge=1, description="Window defining a recently active client"
    )

    # Stock thresholds
    slow_moving_min_days: int = Field(
        default=14, ge=0, description="Days without movement before an item is slow moving"
    )

    # Engine behavior
    seller_fallback_to_first: bool = Field(
        default=True,
        description="Attribute sales with an unresolved seller to the first known seller",
    )
    bucket_label_locale: str = Field(
        default="fr", description="Locale of time bucket labels (fr|en)"
    )

    # Development
    dev_mode: bool = Field(default=True, description="Development mode")
    testing: bool = Field(default=False, description="Testing mode")

    @field_validator("cors_origins")
    @classmethod
    def parse_cors_origins(cls, v: str) -> List[str]:
        """Parse comma-separated CORS origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("bucket_label_locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        """Only the label tables shipped with the time bucketer are accepted."""
        v = v.lower()
        if v not in ("fr", "en"):
            raise ValueError("bucket_label_locale must be 'fr' or 'en'")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure singleton behavior.
    """
    return Settings()
