"""Spread and moneyline validation against a team's completed games."""
import logging
from typing import Optional

from ev_bets.config.constants import Direction
from ev_bets.data.sources.optic_odds import OpticOddsClient, TeamResult
from ev_bets.identity import IdentityResolver, TeamCandidate

from .results import RecentGame, ValidationResult, build_result, round_half_up

logger = logging.getLogger(__name__)


def covered(margin: float, line: float, direction: Direction) -> bool:
    """
    Whether a final margin covers the spread.

    Over (cover) needs a margin above |line|; under needs the team to
    lose by more than |line|.

    Examples:
        >>> covered(7, -5.5, Direction.OVER)
        True
        >>> covered(-7, 5.5, Direction.UNDER)
        True
        >>> covered(3, -5.5, Direction.OVER)
        False
    """
    if direction == Direction.OVER:
        return margin > abs(line)
    return margin < -abs(line)


def _recent(result: TeamResult, value: float, hit: bool) -> RecentGame:
    return RecentGame(
        date=result.date,
        opponent=result.opponent,
        value=value,
        hit=hit,
        home_away="home" if result.is_home else "away",
    )


class SpreadValidator:
    """
    Spread and moneyline checks using the aggregator's team results.

    Team names are resolved against the aggregator's team list for the
    sport and league.
    """

    def __init__(
        self,
        client: OpticOddsClient,
        resolver: Optional[IdentityResolver] = None,
    ):
        self.client = client
        self.resolver = resolver or IdentityResolver()

    async def resolve_team(
        self, team_name: str, sport: str, league: Optional[str] = None
    ) -> Optional[TeamCandidate]:
        teams = await self.client.search_teams(sport, league)
        candidates = [
            TeamCandidate(
                id=t["id"],
                name=t.get("name") or "",
                short_code=t.get("abbreviation"),
                raw=t,
            )
            for t in teams
            if "id" in t
        ]
        match = self.resolver.resolve_team(team_name, candidates)
        return match.candidate if match else None

    async def validate_spread(
        self,
        team_id: str,
        team_name: str,
        line: float,
        direction: Direction,
        match_count: int = 10,
    ) -> Optional[ValidationResult]:
        results = await self.client.get_team_results(team_id, match_count)
        if not results:
            logger.debug(f"No completed games for team {team_name}")
            return None

        games = [
            _recent(r, r.margin, covered(r.margin, line, direction)) for r in results
        ]
        return build_result(
            "spread",
            "spread",
            line,
            direction,
            games,
            avg_digits=1,
            team_id=team_id,
            team_name=team_name,
        )

    async def validate_moneyline(
        self,
        team_id: str,
        team_name: str,
        match_count: int = 10,
    ) -> Optional[ValidationResult]:
        """Win rate over recent games; avg_value is the win percent."""
        results = await self.client.get_team_results(team_id, match_count)
        if not results:
            return None

        games = [_recent(r, 1 if r.won else 0, r.won) for r in results]
        result = build_result(
            "moneyline",
            "moneyline",
            0,
            Direction.OVER,
            games,
            team_id=team_id,
            team_name=team_name,
        )
        result.avg_value = round_half_up(result.hits / result.matches_checked * 100)
        return result
