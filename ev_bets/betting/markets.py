"""Market and selection-text helpers."""
import re
from typing import Optional

from ev_bets.config.constants import PLAYER_PROP_KEYWORDS, Direction

_PLAYER_SELECTION = re.compile(r"^(.+?)\s+(over|under)\s+[\d.]+$", re.IGNORECASE)


def is_player_prop(market: str) -> bool:
    """
    Whether a market is a player prop.

    Examples:
        >>> is_player_prop("player_points")
        True
        >>> is_player_prop("Player Rebounds + Assists")
        True
        >>> is_player_prop("moneyline")
        False
    """
    market = market.lower()
    if market.startswith("player_"):
        return True
    return any(keyword in market for keyword in PLAYER_PROP_KEYWORDS)


def extract_player_name(selection: str) -> Optional[str]:
    """
    Player name from a "<name> Over|Under <line>" selection.

    Examples:
        >>> extract_player_name("LeBron James Over 25.5")
        'LeBron James'
        >>> extract_player_name("Over 215.5") is None
        True
    """
    match = _PLAYER_SELECTION.match(selection.strip())
    if not match:
        return None
    return match.group(1).strip()


def infer_direction(selection: str) -> Direction:
    """Over if the selection mentions "over", under otherwise."""
    return Direction.OVER if "over" in selection.lower() else Direction.UNDER


def is_spread_market(market: str) -> bool:
    m = market.lower()
    return "spread" in m or "handicap" in m


def is_moneyline_market(market: str) -> bool:
    """Moneyline, 1X2 or match result."""
    m = market.lower().replace(" ", "_")
    return m in ("moneyline", "1x2", "match_result", "full_time_result")


def is_btts_market(market: str) -> bool:
    m = market.lower()
    return "btts" in m or "both_teams" in m or "both teams" in m


def selection_team(
    selection: str, home_team: Optional[str], away_team: Optional[str]
) -> Optional[str]:
    """
    Which side of a fixture a selection backs, if it names one.

    Examples:
        >>> selection_team("Arsenal -1.5", "Arsenal", "Chelsea")
        'Arsenal'
        >>> selection_team("Away", "Arsenal", "Chelsea")
        'Chelsea'
        >>> selection_team("Over 2.5", "Arsenal", "Chelsea") is None
        True
    """
    text = selection.strip().lower()
    if text in ("home", "1"):
        return home_team
    if text in ("away", "2"):
        return away_team
    for team in (home_team, away_team):
        if team and team.lower() in text:
            return team
    return None
