"""Application configuration using Pydantic Settings.

This project loads configuration from environment variables.

Optionally, you may point `ENV_FILE` at a local env file (for development).
Leave it unset in deployed environments so injected variables are the single
source of truth.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from importlib import resources
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from segment_builder.domain.enums import EmptyGroupPolicy
from segment_builder.filters.dimensions import DimensionCatalog, load_dimension_catalog
from segment_builder.filters.limits import (
    DEFAULT_MAX_CONDITIONS,
    DEFAULT_MAX_DEPTH,
    FilterLimits,
)

logger = logging.getLogger(__name__)


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Application settings with type validation.

    Configuration is loaded from environment variables, with support
    for .env files in development.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "segment-builder"
    app_log_level: str = "INFO"

    # Observability
    observability_enabled: bool = True
    observability_structured_logs: bool = True
    observability_request_id_header: str = "X-Request-ID"

    # Metrics token for protecting /metrics endpoint
    metrics_token: str | None = None

    # CORS Configuration
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Request body limit enforced by RequestSizeLimitMiddleware
    max_request_size_mb: float = 1.0

    # Filter engine
    filter_max_conditions: int = Field(default=DEFAULT_MAX_CONDITIONS, ge=1)
    filter_max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    filter_empty_group_policy: EmptyGroupPolicy = EmptyGroupPolicy.RETAIN

    # Dimension catalog JSON file; the packaged visitor dimensions when unset
    dimension_catalog_path: str | None = None

    # Visitor-count preview backend; previews are disabled when unset
    preview_endpoint_url: str | None = None
    preview_timeout_seconds: float = 5.0
    preview_debounce_ms: int = Field(default=300, ge=0)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def filter_limits(self) -> FilterLimits:
        return FilterLimits(
            max_conditions=self.filter_max_conditions, max_depth=self.filter_max_depth
        )

    @property
    def preview_debounce_seconds(self) -> float:
        return self.preview_debounce_ms / 1000

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(v.lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("filter_empty_group_policy", mode="before")
    @classmethod
    def validate_empty_group_policy(cls, v: str | EmptyGroupPolicy) -> EmptyGroupPolicy:
        if isinstance(v, EmptyGroupPolicy):
            return v
        try:
            return EmptyGroupPolicy(v.strip().lower())
        except ValueError:
            raise ValueError(
                "filter_empty_group_policy must be one of "
                f"{[p.value for p in EmptyGroupPolicy]}, got '{v}'"
            )

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        """
        Validate production-specific settings.

        These checks prevent insecure configurations from being deployed to production.
        """
        if self.app_env == AppEnvironment.PROD:
            if not self.metrics_token:
                raise ValueError("METRICS_TOKEN must be set in production")

            # CORS must not allow localhost in production
            for origin in self.cors_origins_list:
                if "localhost" in origin or "127.0.0.1" in origin:
                    raise ValueError(
                        f"CORS origins must not contain localhost in production: {origin}"
                    )

        return self


def load_catalog(config: Settings) -> DimensionCatalog:
    """Load the configured dimension catalog, falling back to the packaged one."""
    if config.dimension_catalog_path:
        return load_dimension_catalog(Path(config.dimension_catalog_path))

    packaged = resources.files("segment_builder").joinpath("data/dimensions.json")
    with resources.as_file(packaged) as path:
        return load_dimension_catalog(path)


settings = Settings()
