# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: library
paths, chunking, retry policy, AI provider routing, the external
converter, image download limits and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from booknest.core.errors import ConfigurationError
from booknest.core.retry import RetryConfig

_PACKAGE_ASSETS = Path(__file__).resolve().parent.parent / "assets"

__all__ = ["ConfigurationError", "Settings", "load_settings"]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Library paths ===
    source_dir: Path = Path("./source")
    ebooks_dir: Path = Path("./ebooks")
    processed_dir: Path = Path("./processed")
    db_path: Path = Path("./data/booknest.db")
    assets_dir: Path = _PACKAGE_ASSETS

    # === Indexing ===
    batch_size: int = 25
    retry_max_retries: int = 5
    retry_base_delay_s: float = 10.0

    # === LLM providers ===
    llm_default_provider: str = "google"
    llm_default_model: str = "gemini-2.0-flash"
    llm_default_temperature: float = 0.3
    llm_max_tokens: int = 16384

    # Provider credentials
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    openai_base_url: str = ""
    google_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # Per-phase LLM assignment
    llm_phase_resolution: str = ""
    llm_phase_enrichment: str = ""

    # Per-component LLM assignment (highest priority)
    llm_name_resolver: str = ""
    llm_metadata_resolver: str = ""

    # === Conversion (calibre) ===
    conversion_enabled: bool = True
    calibre_path: str = "/usr/bin/ebook-convert"
    conversion_timeout_s: float = 120.0
    conversion_max_retries: int = 2

    # === Images ===
    image_search_base_url: str = "https://openlibrary.org"
    image_covers_base_url: str = "https://covers.openlibrary.org"
    image_max_bytes: int = 5 * 1024 * 1024
    image_min_bytes: int = 1000
    image_timeout_s: float = 15.0
    image_user_agent: str = "BookNest/1.0"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 500:
            raise ValueError("batch_size must be between 1 and 500")
        return v

    @field_validator("retry_max_retries", "conversion_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry counts must be >= 1")
        return v

    @field_validator("retry_base_delay_s", "conversion_timeout_s", "image_timeout_s")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("durations must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency of the library layout."""
        errors: list[str] = []

        source = self.source_dir.expanduser().resolve()
        ebooks = self.ebooks_dir.expanduser().resolve()
        processed = self.processed_dir.expanduser().resolve()

        if source == ebooks:
            errors.append("SOURCE_DIR and EBOOKS_DIR must differ")

        # Moved originals would be crawled again on the next run.
        if processed == source or source in processed.parents:
            errors.append("PROCESSED_DIR must not be inside SOURCE_DIR")

        if self.image_min_bytes >= self.image_max_bytes:
            errors.append("IMAGE_MIN_BYTES must be < IMAGE_MAX_BYTES")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retry_max_retries,
            base_delay_s=self.retry_base_delay_s,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
