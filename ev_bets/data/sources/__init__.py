"""
Provider clients for the EV betting engine.

Available sources:
- OpticOddsClient: fixtures, sportsbooks and odds from the aggregator
- BallDontLieClient: NBA player game logs and season averages
- SportMonksClient: soccer player and team match statistics
"""
from .base import (
    BaseDataSource,
    CachedDataSource,
    HTTPDataSource,
    DataSourceError,
    DataSourceHealth,
    DataSourceStatus,
    RateLimitError,
    AuthenticationError,
    DataNotAvailableError,
    RetryConfig,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from .optic_odds import (
    Fixture,
    FixtureOdds,
    OpticOddsClient,
    OpticOddsClientFactory,
    TeamResult,
    filter_prematch_fixtures,
    get_required_sportsbooks,
    transform_fixture,
)
from .ball_dont_lie import (
    BallDontLieClient,
    BallDontLieClientFactory,
    NBAGameLog,
    current_season,
    parse_minutes,
)
from .sportmonks import (
    STAT_TYPE_IDS,
    PlayerFixtureStats,
    SportMonksClient,
    SportMonksClientFactory,
    TeamMatchResult,
)

__all__ = [
    # Base classes
    "BaseDataSource",
    "CachedDataSource",
    "HTTPDataSource",
    "DataSourceError",
    "DataSourceHealth",
    "DataSourceStatus",
    "RateLimitError",
    "AuthenticationError",
    "DataNotAvailableError",
    "RetryConfig",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    # Aggregator
    "Fixture",
    "FixtureOdds",
    "OpticOddsClient",
    "OpticOddsClientFactory",
    "TeamResult",
    "filter_prematch_fixtures",
    "get_required_sportsbooks",
    "transform_fixture",
    # NBA stats
    "BallDontLieClient",
    "BallDontLieClientFactory",
    "NBAGameLog",
    "current_season",
    "parse_minutes",
    # Soccer stats
    "STAT_TYPE_IDS",
    "PlayerFixtureStats",
    "SportMonksClient",
    "SportMonksClientFactory",
    "TeamMatchResult",
]
