"""Configuration management for SettleUp."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SETTLEUP_",
        case_sensitive=False,
        extra="ignore",
    )

    # Exchange rate API
    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest"
    exchange_rate_ttl_hours: int = 24
    http_timeout: float = 30.0

    # Currency used when a caller does not ask for one
    default_currency: str = "AUD"

    # Local store for the exchange rate cache
    database_path: Path = Path.home() / ".settleup" / "settleup.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check the SETTLEUP_* variables in your "
            f"environment or .env file.\n"
            f"Error: {e}"
        ) from e
