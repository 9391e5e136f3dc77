"""Configuration management using pydantic-settings."""
import logging
import sys
from functools import lru_cache
from typing import Any, Literal, Optional

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingSettings(BaseSettings):
    """Fuzzy matching configuration loaded from environment variables.

    All settings prefixed with MATCH_ (e.g., MATCH_HIGH_THRESHOLD=0.85)

    Scores are in the 0-1 range. A suggestion is assigned the highest tier
    whose threshold it reaches; anything below ``low_threshold`` is dropped.
    """

    # Confidence tier thresholds
    exact_threshold: float = Field(
        default=0.95,
        ge=0,
        le=1,
        description="Score >= this is an EXACT match"
    )
    high_threshold: float = Field(
        default=0.80,
        ge=0,
        le=1,
        description="Score >= this is a HIGH confidence match (auto-match floor)"
    )
    medium_threshold: float = Field(
        default=0.60,
        ge=0,
        le=1,
        description="Score >= this is a MEDIUM confidence match"
    )
    low_threshold: float = Field(
        default=0.35,
        ge=0,
        le=1,
        description="Score >= this is a LOW confidence match, below is discarded"
    )

    max_suggestions: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum suggestions kept per query item"
    )

    # Scorer weights
    character_weight: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Weight of the edit-distance signal"
    )
    token_weight: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Weight of the token-overlap signal"
    )
    multi_token_character_weight: float = Field(
        default=0.4,
        ge=0,
        le=1,
        description="Edit-distance weight when both names have 2+ tokens"
    )
    multi_token_token_weight: float = Field(
        default=0.6,
        ge=0,
        le=1,
        description="Token-overlap weight when both names have 2+ tokens"
    )

    # Batch processing
    max_workers: Optional[int] = Field(
        default=None,
        ge=1,
        le=64,
        description="Worker threads for batch matching (None = CPU count)"
    )
    parallel_threshold: int = Field(
        default=50,
        ge=1,
        description="Batches smaller than this are matched sequentially"
    )

    model_config = SettingsConfigDict(
        env_prefix="MATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "MatchingSettings":
        """Ensure tier thresholds are strictly descending."""
        ordered = [
            self.exact_threshold,
            self.high_threshold,
            self.medium_threshold,
            self.low_threshold,
        ]
        if any(a <= b for a, b in zip(ordered, ordered[1:])):
            raise ValueError(
                "thresholds must be strictly descending: exact > high > medium > low"
            )
        return self


class ComparisonSettings(BaseSettings):
    """Price comparison configuration.

    All settings prefixed with COMPARE_ (e.g., COMPARE_SUGGESTED_TOLERANCE_PERCENT=5)

    Two tolerance bands are kept on purpose: pairings that come from an
    explicit catalogue link and pairings accepted from fuzzy suggestions.
    """

    linked_tolerance_percent: float = Field(
        default=2.0,
        ge=0,
        le=100,
        description="Tolerance band for catalogue-linked pairings (percent)"
    )
    suggested_tolerance_percent: float = Field(
        default=5.0,
        ge=0,
        le=100,
        description="Tolerance band for auto-matched fuzzy pairings (percent)"
    )
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency assumed when a document does not declare one"
    )

    model_config = SettingsConfigDict(
        env_prefix="COMPARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class CurrencySettings(BaseSettings):
    """Exchange rate provider configuration.

    All settings prefixed with RATES_ (e.g., RATES_CACHE_TTL_SECONDS=600)
    """

    api_base_url: str = Field(
        default="https://api.exchangerate-api.com/v4",
        description="Live exchange rate API base URL"
    )
    cache_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How long fetched rates stay fresh"
    )
    timeout: float = Field(
        default=10.0,
        ge=1.0,
        le=120.0,
        description="HTTP request timeout in seconds"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Fetch attempts before falling back"
    )

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application-level settings loaded from environment variables."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


@lru_cache
def get_matching_settings() -> MatchingSettings:
    """Get cached matching settings."""
    return MatchingSettings()


@lru_cache
def get_comparison_settings() -> ComparisonSettings:
    """Get cached comparison settings."""
    return ComparisonSettings()


@lru_cache
def get_currency_settings() -> CurrencySettings:
    """Get cached exchange rate settings."""
    return CurrencySettings()


def configure_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog.

    JSON output in production, colored console output otherwise.

    Args:
        log_level: Overrides ``Settings.log_level`` when given
    """
    settings = get_settings()
    level_name = (log_level or settings.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_production:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
