"""
Historical validation results.

Results are plain dataclasses serialized with to_dict() so they can be
attached to stored opportunities as JSON.
"""
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from ev_bets.config.constants import Direction


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round half away from zero on positive values, as rates are shown.

    Examples:
        >>> round_half_up(62.5)
        63.0
        >>> round_half_up(1.005, 2)
        1.01
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5 + 1e-9) / factor


def hit_rate(hits: int, total: int) -> int:
    """Hit rate as an integer percent."""
    if total <= 0:
        return 0
    return int(round_half_up(hits / total * 100))


def is_hit(value: float, line: float, direction: Direction) -> bool:
    """Over hits strictly above the line, under strictly below; pushes miss."""
    if direction == Direction.OVER:
        return value > line
    return value < line


@dataclass
class RecentGame:
    """One historical game checked against the line."""

    date: str
    opponent: str
    value: float
    hit: bool
    home_away: Optional[str] = None
    result: Optional[str] = None


@dataclass
class ValidationResult:
    """
    How a line would have fared over a subject's recent games.

    The subject is a player (player props) or a team (team markets,
    spreads, moneylines).
    """

    kind: str
    market: str
    line: float
    direction: Direction
    matches_checked: int
    hits: int
    hit_rate: int
    avg_value: float
    recent_games: list[RecentGame] = field(default_factory=list)
    market_name: Optional[str] = None
    player_id: Optional[Any] = None
    player_name: Optional[str] = None
    team_id: Optional[Any] = None
    team_name: Optional[str] = None
    season_avg: Optional[float] = None
    home_avg: Optional[float] = None
    away_avg: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data

    def summary(self) -> str:
        subject = self.player_name or self.team_name or "?"
        return (
            f"{subject} {self.direction.value} {self.line:g} {self.market_name or self.market}: "
            f"{self.hits}/{self.matches_checked} ({self.hit_rate}%), avg {self.avg_value}"
        )


def build_result(
    kind: str,
    market: str,
    line: float,
    direction: Direction,
    games: list[RecentGame],
    avg_digits: int = 2,
    **subject,
) -> Optional[ValidationResult]:
    """Aggregate checked games into a result; None when there are none."""
    if not games:
        return None
    hits = sum(1 for g in games if g.hit)
    total = sum(g.value for g in games)
    return ValidationResult(
        kind=kind,
        market=market,
        line=line,
        direction=direction,
        matches_checked=len(games),
        hits=hits,
        hit_rate=hit_rate(hits, len(games)),
        avg_value=round_half_up(total / len(games), avg_digits),
        recent_games=games,
        **subject,
    )


@dataclass
class BTTSValidation:
    """Both-teams-to-score rates of each side's recent matches."""

    home_team: str
    away_team: str
    selection: str
    home_rate: int
    away_rate: int
    combined_rate: int
    home_matches: list[RecentGame] = field(default_factory=list)
    away_matches: list[RecentGame] = field(default_factory=list)
    kind: str = "btts"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        return (
            f"BTTS {self.home_team} vs {self.away_team}: "
            f"{self.home_rate}% / {self.away_rate}% (combined {self.combined_rate}%)"
        )


@dataclass
class MatchResultValidation:
    """Win/draw rates and recent form for a 1X2 market."""

    home_team: str
    away_team: str
    selection: str
    home_win_rate: int
    draw_rate: int
    away_win_rate: int
    home_form: str
    away_form: str
    kind: str = "match_result"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        return (
            f"{self.home_team} vs {self.away_team}: home {self.home_win_rate}%, "
            f"draw {self.draw_rate}%, away {self.away_win_rate}%"
        )
