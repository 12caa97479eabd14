"""Configuration utilities.

Settings are read from environment variables. A ``.env`` file in the working
directory is loaded first so local development does not need exported vars.

Example .env:
    GOOGLE_CLOUD_VISION_API_KEY=...
    OPENAI_API_KEY=sk-...
    USDA_API_KEY=...
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _get_secret(name: str) -> Optional[str]:
    """Return an env secret, treating blank values as unset."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API process.

    Attributes:
        vision_api_key: Google Cloud Vision key (OCR)
        openai_api_key: OpenAI key (verdict analysis)
        openai_model: Chat model used for analysis
        llm_max_tokens: Completion budget per analysis
        llm_max_retries: SDK retries inside one LLM call (each retry costs a
            full ``upstream_timeout_s``)
        upstream_timeout_s: Deadline for each OCR and LLM call. OCR plus LLM
            must stay under the client deadline of 60s
        rate_limit: Accepted scans per client per window
        rate_limit_window_s: Admission window length
        rate_limit_sweep_interval_s: Expired-record sweep period
        usda_api_key: Enables the USDA barcode provider
        nutritionix_app_id: Nutritionix credential (with app key)
        nutritionix_app_key: Nutritionix credential (with app id)
        product_lookup_timeout_s: Per-request timeout for barcode providers
        product_lookup_budget_s: Deadline for the whole provider waterfall
        log_level: Root log level
        log_format: ``console`` or ``json``
        app_version: Reported by /version
    """

    vision_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    llm_max_tokens: int = 1024
    llm_max_retries: int = 0
    upstream_timeout_s: float = 25.0
    rate_limit: int = 50
    rate_limit_window_s: float = 24 * 60 * 60
    rate_limit_sweep_interval_s: float = 60 * 60
    usda_api_key: Optional[str] = None
    nutritionix_app_id: Optional[str] = None
    nutritionix_app_key: Optional[str] = None
    product_lookup_timeout_s: float = 8.0
    product_lookup_budget_s: float = 20.0
    log_level: str = "INFO"
    log_format: str = "console"
    app_version: str = "0.0.0-dev"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> Settings:
        """Build settings from the process environment.

        Args:
            load_env_file: Load ``.env`` before reading (never overrides
                variables that are already set)
        """
        if load_env_file:
            load_dotenv()

        return cls(
            vision_api_key=_get_secret("GOOGLE_CLOUD_VISION_API_KEY"),
            openai_api_key=_get_secret("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            llm_max_tokens=_get_int("LLM_MAX_TOKENS", 1024),
            llm_max_retries=_get_int("LLM_MAX_RETRIES", 0),
            upstream_timeout_s=_get_float("UPSTREAM_TIMEOUT_S", 25.0),
            rate_limit=_get_int("RATE_LIMIT", 50),
            rate_limit_window_s=_get_float("RATE_LIMIT_WINDOW_S", 24 * 60 * 60),
            rate_limit_sweep_interval_s=_get_float("RATE_LIMIT_SWEEP_INTERVAL_S", 60 * 60),
            usda_api_key=_get_secret("USDA_API_KEY"),
            nutritionix_app_id=_get_secret("NUTRITIONIX_APP_ID"),
            nutritionix_app_key=_get_secret("NUTRITIONIX_APP_KEY"),
            product_lookup_timeout_s=_get_float("PRODUCT_LOOKUP_TIMEOUT_S", 8.0),
            product_lookup_budget_s=_get_float("PRODUCT_LOOKUP_BUDGET_S", 20.0),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "console").lower(),
            app_version=os.getenv("APP_VERSION", "0.0.0-dev"),
        )

    @property
    def ocr_configured(self) -> bool:
        return self.vision_api_key is not None

    @property
    def llm_configured(self) -> bool:
        return self.openai_api_key is not None

    @property
    def usda_configured(self) -> bool:
        return self.usda_api_key is not None

    @property
    def nutritionix_configured(self) -> bool:
        return self.nutritionix_app_id is not None and self.nutritionix_app_key is not None
