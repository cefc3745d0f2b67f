"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env file.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    ALWAYS_INCLUDED_LEAGUES,
    BALL_DONT_LIE_BASE_URL,
    DEFAULT_BASKETBALL_LEAGUES,
    DEFAULT_SHARP_BOOK,
    DEFAULT_SOCCER_LEAGUES,
    DEFAULT_TARGET_SPORTSBOOKS,
    FIXTURE_BATCH_SIZE,
    MAX_CONCURRENT_REQUESTS,
    MAX_DECIMAL_ODDS,
    MAX_SPORTSBOOKS_PER_REQUEST,
    MIN_BOOKS_FOR_FAIR_ODDS,
    MIN_DECIMAL_ODDS,
    MIN_EV_PERCENT,
    ODDS_TTL_SECONDS,
    OPTIC_ODDS_BASE_URL,
    OUTLIER_MAD_THRESHOLD,
    REFRESH_INTERVAL_SECONDS,
    RUN_TIMEOUT_SECONDS,
    SHARP_BOOK_OVERROUND,
    SHARP_BOOK_WEIGHT,
    SPORTMONKS_BASE_URL,
    SPORTSBOOKS_TTL_SECONDS,
    VALIDATION_BATCH_DELAY_SECONDS,
    VALIDATION_BATCH_SIZE,
    VALIDATION_MATCH_COUNT,
)


class OpticOddsSettings(BaseSettings):
    """Settings for the OpticOdds aggregator API."""

    model_config = SettingsConfigDict(env_prefix="OPTICODDS_")

    api_key: str = Field(
        default="",
        description="API key from opticodds.com",
    )
    base_url: str = Field(
        default=OPTIC_ODDS_BASE_URL,
        description="Base URL for the API",
    )
    max_concurrent_requests: int = Field(
        default=MAX_CONCURRENT_REQUESTS,
        description="Global limit on in-flight requests",
    )
    max_sportsbooks_per_request: int = Field(
        default=MAX_SPORTSBOOKS_PER_REQUEST,
        description="Provider cap on sportsbooks per odds request",
    )
    min_request_interval_seconds: float = Field(
        default=0.2,
        description="Minimum spacing between requests",
    )
    cache_ttl_seconds: int = Field(
        default=ODDS_TTL_SECONDS,
        description="TTL for cached fixtures and odds",
    )
    sportsbooks_cache_ttl_seconds: int = Field(
        default=SPORTSBOOKS_TTL_SECONDS,
        description="TTL for the active sportsbook list",
    )


class BallDontLieSettings(BaseSettings):
    """Settings for the Ball Don't Lie NBA stats API."""

    model_config = SettingsConfigDict(env_prefix="BALLDONTLIE_")

    api_key: str = Field(default="")
    base_url: str = Field(default=BALL_DONT_LIE_BASE_URL)
    min_request_interval_seconds: float = Field(
        default=0.1,
        description="Minimum spacing between requests (600 req/min tier)",
    )
    cache_ttl_seconds: int = Field(default=1800)


class SportMonksSettings(BaseSettings):
    """Settings for the SportMonks football API."""

    model_config = SettingsConfigDict(env_prefix="SPORTMONKS_")

    api_key: str = Field(default="")
    base_url: str = Field(default=SPORTMONKS_BASE_URL)
    min_request_interval_seconds: float = Field(default=0.2)
    cache_ttl_seconds: int = Field(
        default=3600,
        description="TTL for player and team searches",
    )
    short_cache_ttl_seconds: int = Field(
        default=300,
        description="TTL for recent fixture statistics",
    )


class EVSettings(BaseSettings):
    """Settings for fair-odds and EV calculation."""

    model_config = SettingsConfigDict(env_prefix="")

    min_ev_percent: float = Field(
        default=MIN_EV_PERCENT,
        description="Minimum EV% for a selection to count as an opportunity",
    )
    min_books_for_fair_odds: int = Field(
        default=MIN_BOOKS_FOR_FAIR_ODDS,
        description="Minimum quotes needed for a consensus price",
    )
    min_decimal_odds: float = Field(default=MIN_DECIMAL_ODDS)
    max_decimal_odds: float = Field(
        default=MAX_DECIMAL_ODDS,
        description="Quotes above this decimal price are dropped",
    )
    outlier_threshold: float = Field(
        default=OUTLIER_MAD_THRESHOLD,
        description="Modified z-score beyond which a quote is an outlier",
    )
    sharp_overround: float = Field(
        default=SHARP_BOOK_OVERROUND,
        description="Assumed overround removed from the sharp book price",
    )
    sharp_weight: float = Field(
        default=SHARP_BOOK_WEIGHT,
        description="Weight of the sharp book in the weighted average",
    )
    target_sportsbooks: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TARGET_SPORTSBOOKS),
        description="Sportsbooks the user can bet at",
    )
    sharp_book: str = Field(
        default=DEFAULT_SHARP_BOOK,
        description="Reference sportsbook for the sharp method",
    )

    @field_validator("sharp_overround")
    @classmethod
    def validate_sharp_overround(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError("sharp_overround must be >= 1.0")
        return v

    @field_validator("min_decimal_odds")
    @classmethod
    def validate_min_decimal_odds(cls, v: float) -> float:
        if v <= 1.0:
            raise ValueError("min_decimal_odds must be > 1.0")
        return v


class LeagueSettings(BaseSettings):
    """Enabled leagues per sport."""

    model_config = SettingsConfigDict(env_prefix="")

    soccer_leagues: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SOCCER_LEAGUES)
    )
    basketball_leagues: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BASKETBALL_LEAGUES)
    )
    always_included_leagues: list[str] = Field(
        default_factory=lambda: list(ALWAYS_INCLUDED_LEAGUES),
        description="Basketball leagues fetched regardless of configuration",
    )


class ValidationSettings(BaseSettings):
    """Settings for background historical validation."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    enabled: bool = Field(default=True)
    match_count: int = Field(
        default=VALIDATION_MATCH_COUNT,
        description="Recent games checked per opportunity",
    )
    batch_size: int = Field(default=VALIDATION_BATCH_SIZE)
    batch_delay_seconds: float = Field(
        default=VALIDATION_BATCH_DELAY_SECONDS,
        description="Pause between validation batches",
    )
    team_markets: bool = Field(
        default=False,
        description="Also validate spreads, moneylines and team totals",
    )


class SchedulerSettings(BaseSettings):
    """Settings for the periodic pipeline driver."""

    model_config = SettingsConfigDict(env_prefix="")

    refresh_interval_seconds: int = Field(
        default=REFRESH_INTERVAL_SECONDS,
        description="Seconds between pipeline runs",
    )
    run_timeout_seconds: int = Field(
        default=RUN_TIMEOUT_SECONDS,
        description="Abort a run that takes longer than this",
    )
    fixture_batch_size: int = Field(default=FIXTURE_BATCH_SIZE)
    store_all_bets: bool = Field(
        default=False,
        description="Persist every selection's best bet instead of only +EV ones",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///ev_bets.db",
        description="Database connection URL",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default=None)
    debug: bool = Field(default=False)

    # Sub-settings
    optic_odds: OpticOddsSettings = Field(default_factory=OpticOddsSettings)
    ball_dont_lie: BallDontLieSettings = Field(default_factory=BallDontLieSettings)
    sportmonks: SportMonksSettings = Field(default_factory=SportMonksSettings)
    ev: EVSettings = Field(default_factory=EVSettings)
    leagues: LeagueSettings = Field(default_factory=LeagueSettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def project_root(self) -> Path:
        """Get project root directory."""
        return Path(__file__).parent.parent.parent


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
