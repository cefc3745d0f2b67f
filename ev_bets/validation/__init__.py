"""
Historical validation of opportunities.

Provides:
- NBA player-prop validation (single and combined box score stats)
- Soccer player props, team markets, BTTS and match result
- Spread and moneyline validation from completed team results
- The background runner the pipeline hands persisted ids to
"""

from .results import (
    BTTSValidation,
    MatchResultValidation,
    RecentGame,
    ValidationResult,
    build_result,
    hit_rate,
    is_hit,
    round_half_up,
)

from .nba import NBAValidator, parse_nba_market

from .soccer import SoccerMarket, SoccerValidator, parse_soccer_market, parse_team_market

from .spread import SpreadValidator, covered

from .runner import ValidationRunner

__all__ = [
    # Results
    "BTTSValidation",
    "MatchResultValidation",
    "RecentGame",
    "ValidationResult",
    "build_result",
    "hit_rate",
    "is_hit",
    "round_half_up",
    # NBA
    "NBAValidator",
    "parse_nba_market",
    # Soccer
    "SoccerMarket",
    "SoccerValidator",
    "parse_soccer_market",
    "parse_team_market",
    # Spread / moneyline
    "SpreadValidator",
    "covered",
    # Runner
    "ValidationRunner",
]
