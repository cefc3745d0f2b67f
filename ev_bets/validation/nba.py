"""NBA player-prop validation against recent box scores."""
import logging
from typing import Optional

from ev_bets.config.constants import Direction
from ev_bets.data.sources.ball_dont_lie import BallDontLieClient

from .results import RecentGame, ValidationResult, build_result, is_hit, round_half_up

logger = logging.getLogger(__name__)


def parse_nba_market(market: str) -> tuple[str, ...]:
    """
    Box score fields a market sums over; empty if unsupported.

    Combined markets are checked before single stats.

    Examples:
        >>> parse_nba_market("player_points_rebounds_assists")
        ('pts', 'reb', 'ast')
        >>> parse_nba_market("Player Steals + Blocks")
        ('stl', 'blk')
        >>> parse_nba_market("player_threes")
        ('fg3m',)
    """
    m = market.lower()
    points = "point" in m or "pts" in m
    rebounds = "rebound" in m or "reb" in m
    assists = "assist" in m or "ast" in m
    steals = "steal" in m or "stl" in m
    blocks = "block" in m or "blk" in m

    if points and rebounds and assists:
        return ("pts", "reb", "ast")
    if points and rebounds:
        return ("pts", "reb")
    if points and assists:
        return ("pts", "ast")
    if rebounds and assists:
        return ("reb", "ast")
    if steals and blocks:
        return ("stl", "blk")

    if points:
        return ("pts",)
    if assists:
        return ("ast",)
    if rebounds:
        return ("reb",)
    if steals:
        return ("stl",)
    if blocks:
        return ("blk",)
    if "turnover" in m or "to_" in m:
        return ("turnover",)
    if "three" in m or "3p" in m or "fg3" in m:
        return ("fg3m",)
    return ()


class NBAValidator:
    """
    Checks an NBA player prop against the player's recent games.

    Example:
        >>> validator = NBAValidator(BallDontLieClient(api_key="..."))
        >>> result = await validator.validate("Jaylen Brown", "player_points", 24.5, Direction.OVER)
    """

    def __init__(self, client: BallDontLieClient):
        self.client = client

    async def validate(
        self,
        player_name: str,
        market: str,
        line: float,
        direction: Direction,
        match_count: int = 10,
        team_hint: Optional[str] = None,
        source_player_id: Optional[str] = None,
    ) -> Optional[ValidationResult]:
        stat_fields = parse_nba_market(market)
        if not stat_fields:
            logger.debug(f"Unsupported NBA market: {market}")
            return None

        player = await self.client.search_player(
            player_name, team_hint=team_hint, source_player_id=source_player_id
        )
        if player is None:
            return None

        logs = await self.client.get_player_game_stats(player.id, limit=match_count)
        if not logs:
            logger.debug(f"No recent games for {player.name}")
            return None

        games = []
        for log in logs:
            value = log.total(stat_fields)
            games.append(
                RecentGame(
                    date=log.date or "N/A",
                    opponent="HOME" if log.is_home else "AWAY",
                    value=value,
                    hit=is_hit(value, line, direction),
                    home_away="home" if log.is_home else "away",
                )
            )

        season_avg = None
        averages = await self.client.get_season_averages(player.id)
        if averages:
            total = sum(
                averages[f] for f in stat_fields if isinstance(averages.get(f), (int, float))
            )
            season_avg = round_half_up(total, 2) if total else None

        return build_result(
            "nba_player_prop",
            market,
            line,
            direction,
            games,
            player_id=player.id,
            player_name=player.name,
            season_avg=season_avg,
        )
