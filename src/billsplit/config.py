"""Configuration management for BillSplit."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="BILLSPLIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Hosted backend (optional: the CLI works against the local database alone)
    backend_url: str | None = None
    backend_anon_key: str | None = None
    request_timeout: float = 30.0

    # Ledger settings
    currency: str = "NGN"

    # Database path
    database_path: Path = Path.home() / ".billsplit" / "billsplit.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def backend_configured(self) -> bool:
        return bool(self.backend_url and self.backend_anon_key)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your BILLSPLIT_* environment "
            f"variables or .env file. See .env.example for reference.\n"
            f"Error: {e}"
        ) from e
