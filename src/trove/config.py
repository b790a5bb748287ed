"""Configuration management for Trove."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TROVE_",
        extra="ignore",
        populate_by_name=True,
    )

    # OpenAI (only the API server extracts)
    openai_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    openai_model: str = "gpt-5-mini"

    # Server
    host: str = "127.0.0.1"
    port: int = 8430
    db_path: Path = Field(default_factory=lambda: Path.cwd() / ".trove" / "trove.db")
    default_collection: str = "Inbox"

    # Capture client
    api_url: str = "http://127.0.0.1:8430"
    request_timeout: Optional[float] = None
    progress_interval: float = 0.1

    # Extraction
    max_retries: int = 5
    retry_base_delay: float = 1.0
    fetch_timeout: int = 30
    dedup_window_hours: int = 24

    @property
    def dedup_window_seconds(self) -> int:
        return self.dedup_window_hours * 3600


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
