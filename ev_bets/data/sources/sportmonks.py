"""
SportMonks client for soccer player and team statistics.

Provides access to:
- Player search resolved through the soccer matcher passes
- A player's recent fixtures with per-match stats (lineup details plus
  goal, assist and card events)
- Team search over simplified name variants
- A team's recent completed matches (goals, corners, shots, BTTS, W/D/L)
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

from ev_bets.config.constants import SPORTMONKS_BASE_URL, Sport
from ev_bets.identity import (
    SOCCER_PLAYER_MATCHERS,
    IdentityResolver,
    PlayerCandidate,
    PlayerIdentityMap,
    TeamCandidate,
    team_search_variants,
)

from .base import HTTPDataSource, Params

DEFAULT_RETRY_AFTER_SECONDS = 60.0

FINISHED_STATE_ID = 5
# Lineup type ids for starters and bench appearances
LINEUP_TYPE_IDS = (11, 12)
# Premier League, La Liga, Serie A, Bundesliga, Ligue 1
PRIORITY_LEAGUE_IDS = (8, 564, 384, 82, 301)
TEAM_HISTORY_DAYS = 90
# Prefer the current club's lineups when at least this many exist
MIN_CURRENT_TEAM_LINEUPS = 5

STAT_TYPE_IDS = {
    "corners": 34,
    "shots_off_target": 41,
    "shots_total": 42,
    "offsides": 51,
    "goals": 52,
    "fouls": 56,
    "saves": 57,
    "blocked_shots": 97,
    "tackles": 78,
    "assists": 79,
    "passes": 80,
    "yellow_cards": 84,
    "red_cards": 83,
    "shots_on_target": 86,
    "crosses": 99,
    "clearances": 101,
    "interceptions": 102,
    "total_duels": 105,
    "duels_won": 106,
    "aerial_duels": 107,
    "dribble_attempts": 108,
    "successful_dribbles": 109,
    "aerial_duels_won": 115,
    "accurate_passes": 116,
    "key_passes": 117,
    "touches": 120,
}

EVENT_TYPES = {
    "goal": 14,
    "assist": 19,
    "yellow_card": 84,
    "red_card": 83,
    "yellow_red_card": 85,
}


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _stat_value(stat: dict) -> float:
    data = stat.get("data") or {}
    if isinstance(data.get("value"), (int, float)):
        return float(data["value"])
    value = stat.get("value")
    if isinstance(value, dict):
        value = value.get("total")
    return float(value) if isinstance(value, (int, float)) else 0.0


def _home_away(participants: list[dict]) -> tuple[dict, dict]:
    home = next(
        (p for p in participants if (p.get("meta") or {}).get("location") == "home"),
        participants[0],
    )
    away = next(
        (p for p in participants if (p.get("meta") or {}).get("location") == "away"),
        participants[1],
    )
    return home, away


@dataclass
class PlayerFixtureStats:
    """A player's stats in one match, keyed by stat type id."""

    fixture_id: int
    date: str
    opponent: str
    home_away: str
    stats: dict[int, float] = field(default_factory=dict)

    def total(self, type_ids: tuple[int, ...]) -> float:
        return sum(self.stats.get(type_id, 0.0) for type_id in type_ids)


@dataclass
class TeamMatchResult:
    """One completed match from a team's point of view."""

    fixture_id: int
    date: str
    opponent: str
    home_away: str
    goals_scored: int = 0
    goals_conceded: int = 0
    corners: float = 0
    total_corners: float = 0
    shots: float = 0
    shots_on_target: float = 0

    @property
    def total_goals(self) -> int:
        return self.goals_scored + self.goals_conceded

    @property
    def btts(self) -> bool:
        return self.goals_scored > 0 and self.goals_conceded > 0

    @property
    def result(self) -> str:
        if self.goals_scored > self.goals_conceded:
            return "W"
        if self.goals_scored < self.goals_conceded:
            return "L"
        return "D"

    @property
    def score(self) -> str:
        return f"{self.goals_scored}-{self.goals_conceded}"


def player_candidate(raw: dict) -> PlayerCandidate:
    return PlayerCandidate(
        id=raw["id"],
        first_name=raw.get("firstname") or "",
        last_name=raw.get("lastname") or "",
        display_name=raw.get("display_name") or raw.get("common_name") or raw.get("name"),
        raw=raw,
    )


def team_candidate(raw: dict) -> TeamCandidate:
    return TeamCandidate(
        id=raw["id"],
        name=raw.get("name") or "",
        short_code=raw.get("short_code"),
        raw=raw,
    )


def build_player_fixture_stats(
    fixture: dict, player_id: int, player_team_id: Optional[int] = None
) -> PlayerFixtureStats:
    """Extract one player's stats from a fixture with lineups and events."""
    stats: dict[int, float] = {}

    lineup = next(
        (l for l in fixture.get("lineups") or [] if l.get("player_id") == player_id),
        None,
    )
    for detail in (lineup or {}).get("details") or []:
        value = (detail.get("data") or {}).get("value")
        if isinstance(value, (int, float)) and value > 0:
            stats[detail["type_id"]] = float(value)

    events = fixture.get("events") or []
    own = [e for e in events if e.get("player_id") == player_id]
    goals = sum(1 for e in own if e.get("type_id") == EVENT_TYPES["goal"])
    assists = sum(1 for e in own if e.get("type_id") == EVENT_TYPES["assist"])
    assists += sum(
        1
        for e in events
        if e.get("type_id") == EVENT_TYPES["goal"] and e.get("related_player_id") == player_id
    )
    yellows = sum(1 for e in own if e.get("type_id") == EVENT_TYPES["yellow_card"])
    reds = sum(
        1
        for e in own
        if e.get("type_id") in (EVENT_TYPES["red_card"], EVENT_TYPES["yellow_red_card"])
    )

    if goals:
        stats[STAT_TYPE_IDS["goals"]] = goals
    if assists:
        stats[STAT_TYPE_IDS["assists"]] = assists
    if yellows:
        stats[STAT_TYPE_IDS["yellow_cards"]] = yellows
    if reds:
        stats[STAT_TYPE_IDS["red_cards"]] = reds

    opponent, home_away = "Unknown", "home"
    participants = fixture.get("participants") or []
    if len(participants) >= 2:
        home, away = _home_away(participants)
        team_id = (lineup or {}).get("team_id") or player_team_id
        if team_id == home.get("id"):
            opponent = away.get("name") or "Unknown"
        elif team_id == away.get("id"):
            opponent, home_away = home.get("name") or "Unknown", "away"
        else:
            opponent = f"{home.get('name')} vs {away.get('name')}"

    return PlayerFixtureStats(
        fixture_id=fixture.get("id", 0),
        date=fixture.get("starting_at") or "",
        opponent=opponent,
        home_away=home_away,
        stats=stats,
    )


def build_team_match(fixture: dict, team_id: int) -> Optional[TeamMatchResult]:
    """Summarize a completed fixture for one participant."""
    participants = fixture.get("participants") or []
    if len(participants) < 2:
        return None

    home, away = _home_away(participants)
    is_home = home.get("id") == team_id
    match = TeamMatchResult(
        fixture_id=fixture.get("id", 0),
        date=fixture.get("starting_at") or "",
        opponent=(away if is_home else home).get("name") or "Unknown",
        home_away="home" if is_home else "away",
    )

    for score in fixture.get("scores") or []:
        if score.get("description") not in ("CURRENT", "FULLTIME"):
            continue
        goals = (score.get("score") or {}).get("goals") or 0
        if score.get("participant_id") == team_id:
            match.goals_scored = goals
        else:
            match.goals_conceded = goals

    for stat in fixture.get("statistics") or []:
        value = _stat_value(stat)
        type_id = stat.get("type_id")
        if stat.get("participant_id") == team_id:
            if type_id == STAT_TYPE_IDS["corners"]:
                match.corners = value
            elif type_id == STAT_TYPE_IDS["shots_total"]:
                match.shots = value
            elif type_id == STAT_TYPE_IDS["shots_on_target"]:
                match.shots_on_target = value
        if type_id == STAT_TYPE_IDS["corners"]:
            match.total_corners += value

    return match


class SportMonksClient(HTTPDataSource):
    """
    Async client for the SportMonks football v3 API.

    Example:
        >>> client = SportMonksClient(api_key="...")
        >>> player = await client.search_player("Erling Haaland")
        >>> fixtures = await client.get_player_recent_fixtures(player.id)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = SPORTMONKS_BASE_URL,
        min_request_interval_seconds: float = 0.2,
        cache_ttl_seconds: int = 3600,
        short_cache_ttl_seconds: int = 300,
        resolver: Optional[IdentityResolver] = None,
        identity_map: Optional[PlayerIdentityMap] = None,
        **kwargs,
    ):
        super().__init__(
            source_name="sportmonks",
            base_url=base_url,
            api_key=api_key,
            min_request_interval_seconds=min_request_interval_seconds,
            cache_ttl_seconds=cache_ttl_seconds,
            **kwargs,
        )
        self.resolver = resolver or IdentityResolver(player_matchers=SOCCER_PLAYER_MATCHERS)
        self.identity_map = identity_map if identity_map is not None else PlayerIdentityMap()
        self.cache.ttls.update(
            {
                "player_search": cache_ttl_seconds,
                "team_search": cache_ttl_seconds,
                "player_stats": short_cache_ttl_seconds,
                "recent_fixtures": short_cache_ttl_seconds,
            }
        )

    def _auth_params(self) -> dict[str, str]:
        return {"api_token": self.api_key}

    def _encode_params(self, params: Params) -> list[tuple[str, str]]:
        """SportMonks takes arrays as comma-joined values."""
        joined = {
            key: ",".join(str(v) for v in value) if isinstance(value, (list, tuple)) else value
            for key, value in (params or {}).items()
        }
        return super()._encode_params(joined)

    def _retry_after(self, headers) -> Optional[float]:
        return super()._retry_after(headers) or DEFAULT_RETRY_AFTER_SECONDS

    async def _get_data(
        self, path: str, params: Params = None, data_type: str = "default"
    ) -> Any:
        payload = await self.get_json(path, params, data_type=data_type)
        if isinstance(payload, dict):
            return payload.get("data")
        return None

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    async def find_player_candidates(self, name: str) -> list[PlayerCandidate]:
        """Full-name search, then last-name search when that finds nothing."""
        players = await self._get_data(
            f"/players/search/{quote(name, safe='')}", data_type="player_search"
        )
        if not players and " " in name.strip():
            last_name = name.strip().split()[-1]
            if len(last_name) > 2:
                players = await self._get_data(
                    f"/players/search/{quote(last_name, safe='')}",
                    data_type="player_search",
                )
        return [player_candidate(p) for p in players or [] if "id" in p]

    async def search_player(
        self,
        name: str,
        team_hint: Optional[str] = None,
        source_player_id: Optional[str] = None,
    ) -> Optional[PlayerCandidate]:
        """
        Resolve a free-text name to a player record, or None.

        Given the aggregator's player id, an earlier confident resolution
        is reused without searching, and a new one is remembered.
        """
        if source_player_id:
            known = self.identity_map.provider_player(
                Sport.SOCCER, source_player_id, self.source_name
            )
            if known is not None:
                player_id, player_name = known
                return PlayerCandidate(id=player_id, display_name=player_name)

        candidates = await self.find_player_candidates(name)
        if not candidates:
            self.logger.info(f"Player not found: {name}")
            return None

        match = self.resolver.resolve_player(name, candidates, team_hint=team_hint)
        if match is None:
            self.logger.info(f"No confident match for '{name}' in {len(candidates)} results")
            return None

        self.logger.debug(
            f"Found player '{match.candidate.name}' ({match.candidate.id}) "
            f"for '{name}' via {match.matcher} ({match.confidence:.2f})"
        )
        if source_player_id:
            self.identity_map.link(
                Sport.SOCCER,
                source_player_id,
                name,
                self.source_name,
                match.candidate.id,
                match.candidate.name,
                team_name=team_hint,
                confidence=match.confidence,
            )
        return match.candidate

    async def get_player_recent_fixtures(
        self, player_id: int, limit: int = 10
    ) -> list[PlayerFixtureStats]:
        """
        Per-match stats for a player's most recent appearances.

        Lineups come from the player record; each fixture is then fetched
        with lineup details and events. Lineups for the player's current
        club are preferred when there are enough of them.
        """
        player = await self._get_data(
            f"/players/{player_id}",
            {"include": "lineups.fixture;teams"},
            data_type="player_stats",
        )
        if not player or not player.get("lineups"):
            self.logger.debug(f"No lineups for player {player_id}")
            return []

        now = datetime.now(timezone.utc)
        team_id = self._current_team_id(player.get("teams") or [], now)

        played = []
        for lineup in player["lineups"]:
            fixture = lineup.get("fixture") or {}
            starts = _parse_date(fixture.get("starting_at"))
            if starts is None or starts >= now:
                continue
            if lineup.get("type_id") not in LINEUP_TYPE_IDS:
                continue
            played.append((starts, lineup))

        current = [(s, l) for s, l in played if l.get("team_id") == team_id]
        selected = current if len(current) >= MIN_CURRENT_TEAM_LINEUPS else played
        selected.sort(key=lambda item: item[0], reverse=True)

        fixture_ids = list(dict.fromkeys(l["fixture_id"] for _, l in selected))[:limit]

        results = []
        for fixture_id in fixture_ids:
            fixture = await self._get_data(
                f"/fixtures/{fixture_id}",
                {"include": "participants;lineups.details;events"},
                data_type="recent_fixtures",
            )
            if not fixture:
                self.logger.debug(f"Fixture {fixture_id} unavailable")
                continue
            results.append(build_player_fixture_stats(fixture, player_id, team_id))

        results.sort(key=lambda r: r.date, reverse=True)
        self.logger.debug(f"Player {player_id}: {len(results)} recent fixtures")
        return results

    @staticmethod
    def _current_team_id(teams: list[dict], now: datetime) -> Optional[int]:
        if not teams:
            return None
        for entry in teams:
            ends = _parse_date(entry.get("end"))
            if ends is None or ends > now:
                return entry.get("team_id")
        return teams[0].get("team_id")

    # -------------------------------------------------------------------------
    # Teams
    # -------------------------------------------------------------------------

    async def search_team(self, name: str) -> Optional[TeamCandidate]:
        """
        Resolve a team name, trying each simplified variant in turn.

        Variants that return results but no confident match are skipped.
        """
        for variant in team_search_variants(name):
            teams = await self._get_data(
                f"/teams/search/{quote(variant, safe='')}", data_type="team_search"
            )
            candidates = [team_candidate(t) for t in teams or [] if "id" in t]
            if not candidates:
                continue

            match = self.resolver.resolve_team(name, candidates)
            if match is not None:
                self.logger.debug(
                    f"Found team '{match.candidate.name}' for '{name}' via '{variant}'"
                )
                return match.candidate

        self.logger.info(f"Team not found after trying all variants: {name}")
        return None

    async def get_team_recent_matches(
        self, team_id: int, limit: int = 10
    ) -> list[TeamMatchResult]:
        """
        Completed matches of the last 90 days, newest first.

        Priority leagues are scanned in order and the first league in
        which the team appears is used.
        """
        end = datetime.now(timezone.utc).date()
        start = end - timedelta(days=TEAM_HISTORY_DAYS)

        fixtures: list[dict] = []
        for league_id in PRIORITY_LEAGUE_IDS:
            league_fixtures = await self._get_data(
                f"/fixtures/between/{start.isoformat()}/{end.isoformat()}",
                {
                    "include": "participants;scores;statistics",
                    "filters": f"fixtureLeagues:{league_id}",
                    "per_page": 100,
                },
                data_type="recent_fixtures",
            )
            team_fixtures = [
                f
                for f in league_fixtures or []
                if any(p.get("id") == team_id for p in f.get("participants") or [])
            ]
            if team_fixtures:
                fixtures = team_fixtures
                break

        completed = [f for f in fixtures if f.get("state_id") == FINISHED_STATE_ID]
        completed.sort(key=lambda f: f.get("starting_at") or "", reverse=True)

        results = []
        for fixture in completed[:limit]:
            match = build_team_match(fixture, team_id)
            if match is not None:
                results.append(match)

        if not results:
            self.logger.debug(f"No completed fixtures for team {team_id}")
        return results


class SportMonksClientFactory:
    """Factory for creating SportMonks clients from settings."""

    @staticmethod
    def create_from_settings(settings, identity_map=None) -> SportMonksClient:
        sm = settings.sportmonks
        return SportMonksClient(
            api_key=sm.api_key,
            base_url=sm.base_url,
            min_request_interval_seconds=sm.min_request_interval_seconds,
            cache_ttl_seconds=sm.cache_ttl_seconds,
            short_cache_ttl_seconds=sm.short_cache_ttl_seconds,
            identity_map=identity_map,
        )
