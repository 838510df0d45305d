# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: transcription
backend and credential, default OCR parameters, image preparation, export
naming and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scribbledoc.core.models import OCRConfig


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Transcription backend ===
    llm_provider: str = "google"
    llm_model: str = "gemini-3-flash-preview"
    llm_max_tokens: int = 4096
    google_api_key: str = ""
    transcription_max_retries: int = 2

    # === OCR defaults ===
    ocr_language: str = "eng"
    ocr_grayscale: bool = True
    ocr_contrast: float = 1.2
    ocr_threshold: int = 128

    # === Image preparation ===
    image_max_dimension: int = 1536
    image_jpeg_quality: int = 85

    # === Export ===
    output_dir: Path = Path("./output")
    export_title: str = "ScribbleToDoc_Notes"
    export_archive_name: str = "ScribbleToDoc_Batch_Export.zip"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("ocr_contrast")
    @classmethod
    def validate_contrast(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ocr_contrast must be > 0")
        return v

    @field_validator("transcription_max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("transcription_max_retries must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate value ranges that pydantic types cannot express."""
        errors: list[str] = []

        if not 0 <= self.ocr_threshold <= 255:
            errors.append("OCR_THRESHOLD must be within 0..255")

        if not 1 <= self.image_jpeg_quality <= 95:
            errors.append("IMAGE_JPEG_QUALITY must be within 1..95")

        if self.image_max_dimension < 64:
            errors.append("IMAGE_MAX_DIMENSION must be >= 64")

        if not self.export_archive_name.lower().endswith(".zip"):
            errors.append("EXPORT_ARCHIVE_NAME must end with .zip")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def api_key(self) -> str:
        """Credential for the configured provider ("" when absent)."""
        return getattr(self, f"{self.llm_provider}_api_key", "") or ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key.strip())

    def ocr_config(self, **overrides: object) -> OCRConfig:
        """Build the default OCRConfig, with optional field overrides."""
        values: dict[str, object] = {
            "language": self.ocr_language,
            "grayscale": self.ocr_grayscale,
            "contrast": self.ocr_contrast,
            "threshold": self.ocr_threshold,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return OCRConfig(**values)  # type: ignore[arg-type]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
