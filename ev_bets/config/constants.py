"""
Constants for the EV betting engine.

Contains method and sport enums, default sportsbook and league lists,
provider endpoints and engine thresholds.
"""
from enum import Enum
from typing import Final


# =============================================================================
# ENUMS
# =============================================================================
class FairOddsMethod(str, Enum):
    """Fair-odds methods, in tie-break order (first wins)."""

    TRIMMED_MEAN_PROB = "TRIMMED_MEAN_PROB"
    SHARP_BOOK_REFERENCE = "SHARP_BOOK_REFERENCE"
    WEIGHTED_AVERAGE = "WEIGHTED_AVERAGE"


class Sport(str, Enum):
    """Sports covered by the aggregator feed."""

    SOCCER = "soccer"
    BASKETBALL = "basketball"


class Direction(str, Enum):
    """Side of an over/under line."""

    OVER = "over"
    UNDER = "under"


# Declaration order is the tie-break order for equal EV%.
FAIR_ODDS_METHODS: Final[tuple[FairOddsMethod, ...]] = (
    FairOddsMethod.TRIMMED_MEAN_PROB,
    FairOddsMethod.SHARP_BOOK_REFERENCE,
    FairOddsMethod.WEIGHTED_AVERAGE,
)


# =============================================================================
# ENGINE THRESHOLDS
# =============================================================================
MIN_EV_PERCENT: Final[float] = 5.0
MIN_BOOKS_FOR_FAIR_ODDS: Final[int] = 3
MIN_DECIMAL_ODDS: Final[float] = 1.01
MAX_DECIMAL_ODDS: Final[float] = 10.0
OUTLIER_MAD_THRESHOLD: Final[float] = 3.5
MAD_SCALE_FACTOR: Final[float] = 1.4826
SHARP_BOOK_OVERROUND: Final[float] = 1.025
SHARP_BOOK_WEIGHT: Final[float] = 2.0

# EV% outside this open interval is treated as a stale or mispriced quote
EV_SANITY_BAND: Final[tuple[float, float]] = (-50.0, 200.0)

SELECTION_KEY_SEPARATOR: Final[str] = "||"
OPPORTUNITY_ID_LENGTH: Final[int] = 16


# =============================================================================
# SPORTSBOOKS
# =============================================================================
DEFAULT_TARGET_SPORTSBOOKS: Final[list[str]] = ["betano", "unibet", "betway"]
DEFAULT_SHARP_BOOK: Final[str] = "pinnacle"

# Books fetched for consensus in addition to the targets and the sharp book
COMMON_SPORTSBOOKS: Final[list[str]] = [
    "bet365",
    "betano",
    "unibet",
    "betway",
    "pinnacle",
    "bet99",
    "betfair",
    "betmgm",
    "draftkings",
    "fanduel",
    "caesars",
    "bovada",
    "betonline",
    "888sport",
    "bwin",
    "william_hill",
    "ladbrokes",
    "betsson",
    "betcris",
    "betrivers",
    "circa_sports",
    "sbobet",
    "bookmaker",
]


# =============================================================================
# LEAGUES
# =============================================================================
DEFAULT_SOCCER_LEAGUES: Final[list[str]] = [
    "england_-_premier_league",
    "spain_-_la_liga",
    "italy_-_serie_a",
    "germany_-_bundesliga",
    "france_-_ligue_1",
]
DEFAULT_BASKETBALL_LEAGUES: Final[list[str]] = ["nba"]
ALWAYS_INCLUDED_LEAGUES: Final[list[str]] = ["nba"]


# =============================================================================
# PROVIDERS
# =============================================================================
OPTIC_ODDS_BASE_URL: Final[str] = "https://api.opticodds.com/api/v3"
BALL_DONT_LIE_BASE_URL: Final[str] = "https://api.balldontlie.io"
SPORTMONKS_BASE_URL: Final[str] = "https://api.sportmonks.com/v3/football"

MAX_SPORTSBOOKS_PER_REQUEST: Final[int] = 5
MAX_CONCURRENT_REQUESTS: Final[int] = 5
ODDS_TTL_SECONDS: Final[int] = 300
SPORTSBOOKS_TTL_SECONDS: Final[int] = 3600


# =============================================================================
# PIPELINE
# =============================================================================
REFRESH_INTERVAL_SECONDS: Final[int] = 120
RUN_TIMEOUT_SECONDS: Final[int] = 600
FIXTURE_BATCH_SIZE: Final[int] = 20
VALIDATION_BATCH_SIZE: Final[int] = 10
VALIDATION_BATCH_DELAY_SECONDS: Final[float] = 2.0
VALIDATION_MATCH_COUNT: Final[int] = 10

# Market substrings that mark a player prop
PLAYER_PROP_KEYWORDS: Final[tuple[str, ...]] = (
    "points",
    "rebounds",
    "assists",
    "steals",
    "blocks",
    "threes",
    "turnovers",
)
