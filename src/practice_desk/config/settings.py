"""Configuration settings for Practice Desk."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted relational store (REST + RPC surface)
    store_url: str | None = Field(default=None, validation_alias="STORE_URL")
    store_key: SecretStr | None = Field(default=None, validation_alias="STORE_KEY")
    store_timeout: float = Field(default=30.0, validation_alias="STORE_TIMEOUT")
    store_max_retries: int = Field(default=3, validation_alias="STORE_MAX_RETRIES")

    # Advisory model
    google_api_key: SecretStr | None = Field(default=None, validation_alias="GOOGLE_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
    llm_max_tokens: int = Field(default=2048, validation_alias="LLM_MAX_TOKENS")
    llm_temperature: float = Field(default=0.4, validation_alias="LLM_TEMPERATURE")

    # Pricing
    vat_rate: float = Field(
        default=0.23,
        validation_alias="VAT_RATE",
        description="VAT added on top of the monthly fee when charged at the cash desk",
    )

    # Cash desk
    cash_expenses_path: Path = Field(
        default=Path(".practice_desk/cash_expenses.json"),
        validation_alias="CASH_EXPENSES_PATH",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
