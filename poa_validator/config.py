"""
Runtime configuration, loaded from ``POA_*`` environment variables or ``.env``.

Rule constants (required witnesses, free-tier limit, phrase lists, the
California jurisdiction) live next to the rules and are not configurable.
"""

from __future__ import annotations

import logging
import sys
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import Tier


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="POA_", env_file=".env", extra="ignore")

    log_level: str = "INFO"

    # Extraction backends
    ocr_language: str = "eng"
    tesseract_cmd: str = ""  # Empty = use tesseract from PATH
    pdf_ocr_dpi: int = 300
    max_upload_bytes: int = 10 * 1024 * 1024

    # State notary registry (disabled when the URL is empty)
    notary_api_url: str = ""
    notary_api_key: str = ""
    notary_api_timeout: float = Field(default=5.0, gt=0)

    # Orchestration
    validator_workers: int = Field(default=4, ge=1)

    # Quota gate
    quota_commit_attempts: int = Field(default=5, ge=1)
    default_user_tier: Tier = Tier.FREE


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(log_level: str) -> None:
    """Attach a stdout handler to the package logger (idempotent)."""
    logger = logging.getLogger("poa_validator")
    logger.setLevel(log_level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        logger.addHandler(handler)
