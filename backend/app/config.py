"""
Application Settings

Runtime configuration for the contract annotation backend. Values can be
overridden through environment variables prefixed with ``ANNOTATIONS_`` or
through a ``.env`` file next to the backend.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ANNOTATIONS_", env_file=".env", extra="ignore"
    )

    # App settings
    app_name: str = "Contract Annotation API"
    api_version: str = "1.0.0"

    # Storage
    db_path: str = "data/annotations.db"
    persistence_backend: Literal["sqlite", "memory", "none"] = "sqlite"
    highlights_key: str = "contract-highlights"
    categories_key: str = "contract-highlight-categories"

    # Rendering
    relocate_stale_highlights: bool = True

    # Server
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"


settings = Settings()
