"""
Soccer validation: player props, team markets, BTTS and match result.
"""
import asyncio
import logging
from typing import Callable, NamedTuple, Optional

from ev_bets.config.constants import Direction
from ev_bets.data.sources.sportmonks import (
    STAT_TYPE_IDS,
    SportMonksClient,
    TeamMatchResult,
)

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

logger = logging.getLogger(__name__)


class SoccerMarket(NamedTuple):
    type_ids: tuple[int, ...]
    name: str

    @property
    def combined(self) -> bool:
        return len(self.type_ids) > 1


def _market(name: str, *stats: str) -> SoccerMarket:
    return SoccerMarket(tuple(STAT_TYPE_IDS[s] for s in stats), name)


# Keyword rules, first match wins
_PLAYER_MARKET_RULES: list[tuple[tuple[str, ...], SoccerMarket]] = [
    (("shot", "target"), _market("Shots on Target", "shots_on_target")),
    (("shot",), _market("Shots", "shots_total")),
    (("goal", "assist"), _market("Goals + Assists", "goals", "assists")),
    (("goal",), _market("Goals", "goals")),
    (("assist",), _market("Assists", "assists")),
    (("tackle",), _market("Tackles", "tackles")),
    (("foul",), _market("Fouls", "fouls")),
    (("clearance",), _market("Clearances", "clearances")),
    (("intercept",), _market("Interceptions", "interceptions")),
    (("block",), _market("Blocked Shots", "blocked_shots")),
    (("save",), _market("Saves", "saves")),
    (("key", "pass"), _market("Key Passes", "key_passes")),
    (("pass",), _market("Passes", "passes")),
    (("cross",), _market("Crosses", "crosses")),
    (("dribble",), _market("Dribbles", "successful_dribbles")),
    (("duel",), _market("Duels Won", "duels_won")),
    (("aerial",), _market("Aerial Duels Won", "aerial_duels_won")),
    (("yellow", "card"), _market("Yellow Cards", "yellow_cards")),
    (("red", "card"), _market("Red Cards", "red_cards")),
    (("card",), _market("Cards", "yellow_cards", "red_cards")),
    (("touch",), _market("Touches", "touches")),
    (("corner",), _market("Corners", "corners")),
    (("offside",), _market("Offsides", "offsides")),
]

_TEAM_MARKET_RULES: list[tuple[tuple[str, ...], str, Callable[[TeamMatchResult], float]]] = [
    (("total", "goal"), "Total Goals", lambda m: m.total_goals),
    (("team", "goal"), "Team Goals", lambda m: m.goals_scored),
    (("total", "corner"), "Total Corners", lambda m: m.total_corners),
    (("corner",), "Corners", lambda m: m.corners),
    (("shot", "target"), "Shots on Target", lambda m: m.shots_on_target),
    (("shot",), "Shots", lambda m: m.shots),
]


def parse_soccer_market(market: str) -> Optional[SoccerMarket]:
    """
    Stat type ids a player market sums over, or None if unsupported.

    Examples:
        >>> parse_soccer_market("player_shots_on_target").name
        'Shots on Target'
        >>> parse_soccer_market("Player Goals + Assists").combined
        True
    """
    m = market.lower()
    for keywords, parsed in _PLAYER_MARKET_RULES:
        if all(k in m for k in keywords):
            return parsed
    return None


def parse_team_market(
    market: str,
) -> Optional[tuple[str, Callable[[TeamMatchResult], float]]]:
    m = market.lower()
    for keywords, name, getter in _TEAM_MARKET_RULES:
        if all(k in m for k in keywords):
            return name, getter
    return None


def _avg(values: list[float]) -> Optional[float]:
    if not values:
        return None
    return round_half_up(sum(values) / len(values), 2)


class SoccerValidator:
    """Checks soccer markets against recent SportMonks match data."""

    def __init__(self, client: SportMonksClient):
        self.client = client

    async def validate_player_bet(
        self,
        player_name: str,
        market: str,
        line: float,
        direction: Direction,
        match_count: int = 10,
        source_player_id: Optional[str] = None,
    ) -> Optional[ValidationResult]:
        """
        Player prop over the player's recent appearances.

        Matches without any recorded stats for the player are skipped.
        """
        parsed = parse_soccer_market(market)
        if parsed is None:
            logger.debug(f"Unsupported soccer market: {market}")
            return None

        player = await self.client.search_player(
            player_name, source_player_id=source_player_id
        )
        if player is None:
            return None

        fixtures = await self.client.get_player_recent_fixtures(player.id, match_count)
        games = []
        for fixture in fixtures:
            if not fixture.stats:
                continue
            value = fixture.total(parsed.type_ids)
            games.append(
                RecentGame(
                    date=fixture.date,
                    opponent=fixture.opponent,
                    value=value,
                    hit=is_hit(value, line, direction),
                    home_away=fixture.home_away,
                )
            )

        if not games:
            logger.debug(f"No stat data for {player.name} in {len(fixtures)} fixtures")
        return build_result(
            "soccer_player_prop",
            market,
            line,
            direction,
            games,
            market_name=parsed.name,
            player_id=player.id,
            player_name=player.name,
        )

    async def validate_team_bet(
        self,
        team_name: str,
        market: str,
        line: float,
        direction: Direction,
        match_count: int = 10,
    ) -> Optional[ValidationResult]:
        """Team goals, corners or shots over the team's recent matches."""
        parsed = parse_team_market(market)
        if parsed is None:
            logger.debug(f"Unsupported team market: {market}")
            return None
        market_name, getter = parsed

        team = await self.client.search_team(team_name)
        if team is None:
            return None

        matches = await self.client.get_team_recent_matches(team.id, match_count)
        games = []
        home_values, away_values = [], []
        for match in matches:
            value = getter(match)
            (home_values if match.home_away == "home" else away_values).append(value)
            games.append(
                RecentGame(
                    date=match.date,
                    opponent=match.opponent,
                    value=value,
                    hit=is_hit(value, line, direction),
                    home_away=match.home_away,
                    result=f"{match.result} {match.score}",
                )
            )

        return build_result(
            "soccer_team",
            market,
            line,
            direction,
            games,
            market_name=market_name,
            team_id=team.id,
            team_name=team.name,
            home_avg=_avg(home_values),
            away_avg=_avg(away_values),
        )

    async def _both_sides(
        self, home_team: str, away_team: str, match_count: int
    ) -> Optional[tuple[list[TeamMatchResult], list[TeamMatchResult]]]:
        home, away = await asyncio.gather(
            self.client.search_team(home_team), self.client.search_team(away_team)
        )
        if home is None or away is None:
            logger.debug(f"Teams not found: {home_team} / {away_team}")
            return None

        home_matches, away_matches = await asyncio.gather(
            self.client.get_team_recent_matches(home.id, match_count),
            self.client.get_team_recent_matches(away.id, match_count),
        )
        if not home_matches or not away_matches:
            return None
        return home_matches, away_matches

    async def validate_btts(
        self,
        home_team: str,
        away_team: str,
        selection: str,
        match_count: int = 10,
    ) -> Optional[BTTSValidation]:
        sides = await self._both_sides(home_team, away_team, match_count)
        if sides is None:
            return None
        home_matches, away_matches = sides

        home_rate = hit_rate(sum(m.btts for m in home_matches), len(home_matches))
        away_rate = hit_rate(sum(m.btts for m in away_matches), len(away_matches))

        def recent(matches):
            return [
                RecentGame(date=m.date, opponent=m.opponent, value=int(m.btts), hit=m.btts)
                for m in matches
            ]

        return BTTSValidation(
            home_team=home_team,
            away_team=away_team,
            selection=selection,
            home_rate=home_rate,
            away_rate=away_rate,
            combined_rate=int(round_half_up((home_rate + away_rate) / 2)),
            home_matches=recent(home_matches),
            away_matches=recent(away_matches),
        )

    async def validate_match_result(
        self,
        home_team: str,
        away_team: str,
        selection: str,
        match_count: int = 10,
    ) -> Optional[MatchResultValidation]:
        """
        Win and draw rates for a 1X2 market.

        The home side's rate uses its home matches and the away side's its
        away matches when there are any.
        """
        sides = await self._both_sides(home_team, away_team, match_count)
        if sides is None:
            return None
        home_matches, away_matches = sides

        def win_rate(matches: list[TeamMatchResult], venue: str) -> int:
            at_venue = [m for m in matches if m.home_away == venue] or matches
            return hit_rate(sum(m.result == "W" for m in at_venue), len(at_venue))

        draws = sum(m.result == "D" for m in home_matches + away_matches)
        return MatchResultValidation(
            home_team=home_team,
            away_team=away_team,
            selection=selection,
            home_win_rate=win_rate(home_matches, "home"),
            draw_rate=hit_rate(draws, len(home_matches) + len(away_matches)),
            away_win_rate=win_rate(away_matches, "away"),
            home_form="".join(m.result for m in home_matches[:5]),
            away_form="".join(m.result for m in away_matches[:5]),
        )
