"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/reconciliation.db"
    )
    database_echo: bool = Field(default=False)

    # Matching Parameters
    amount_tolerance: Decimal = Field(default=Decimal("0.01"))
    candidate_batch_size: int = Field(default=500)
    consume_matched_candidates: bool = Field(default=False)

    # Manual review
    suggestion_limit: int = Field(default=20)
    search_similarity_threshold: float = Field(default=0.8)

    def within_tolerance(self, left: Decimal, right: Decimal) -> bool:
        """Amounts are equal when they differ by strictly less than the tolerance."""
        return abs(Decimal(left) - Decimal(right)) < self.amount_tolerance


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
