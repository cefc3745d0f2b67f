"""
Ball Don't Lie client for NBA player statistics.

Provides access to:
- Player search with name-resolution fallbacks
- Per-game stats for the current season
- Season averages

The API searches first OR last name, never both, so player lookup runs
several searches and resolves the merged candidate list with the
identity resolver.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from ev_bets.config.constants import BALL_DONT_LIE_BASE_URL, Sport
from ev_bets.identity import (
    NBA_PLAYER_MATCHERS,
    IdentityResolver,
    PlayerCandidate,
    PlayerIdentityMap,
    normalize_player_name,
    split_name,
)

from .base import HTTPDataSource

SEARCH_PAGE_SIZE = 50
DEFAULT_RETRY_AFTER_SECONDS = 10.0

# Box score fields usable as market stats
STAT_FIELDS = ("pts", "reb", "ast", "stl", "blk", "turnover", "fg3m", "oreb", "dreb")


def current_season(today: Optional[date] = None) -> int:
    """NBA season year: seasons start in October and are named by start year."""
    today = today or date.today()
    return today.year if today.month >= 10 else today.year - 1


def parse_minutes(value: Any) -> float:
    """
    Minutes played from a "MM:SS" or plain number string.

    Examples:
        >>> parse_minutes("32:15")
        32.25
        >>> parse_minutes("28")
        28.0
        >>> parse_minutes(None)
        0.0
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        if ":" in text:
            minutes, seconds = text.split(":", 1)
            return int(minutes) + int(seconds) / 60
        return float(text)
    except ValueError:
        return 0.0


@dataclass
class NBAGameLog:
    """One player's box score line for one game."""

    game_id: int
    date: str
    is_home: bool
    minutes: float
    stats: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: dict) -> "NBAGameLog":
        game = raw.get("game") or {}
        team = raw.get("team") or {}
        return cls(
            game_id=game.get("id", 0),
            date=game.get("date", ""),
            is_home=game.get("home_team_id") == team.get("id"),
            minutes=parse_minutes(raw.get("min")),
            stats={
                name: float(raw[name])
                for name in STAT_FIELDS
                if isinstance(raw.get(name), (int, float))
            },
        )

    def total(self, stat_names: tuple[str, ...]) -> float:
        return sum(self.stats.get(name, 0.0) for name in stat_names)


def player_candidate(raw: dict) -> PlayerCandidate:
    team = raw.get("team") or {}
    return PlayerCandidate(
        id=raw["id"],
        first_name=raw.get("first_name") or "",
        last_name=raw.get("last_name") or "",
        team=team.get("full_name") or team.get("name"),
        raw=raw,
    )


class BallDontLieClient(HTTPDataSource):
    """
    Async client for the Ball Don't Lie NBA API.

    Example:
        >>> client = BallDontLieClient(api_key="...")
        >>> player = await client.search_player("P.J. Washington")
        >>> games = await client.get_player_game_stats(player.id, limit=10)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = BALL_DONT_LIE_BASE_URL,
        min_request_interval_seconds: float = 0.1,
        cache_ttl_seconds: int = 1800,
        resolver: Optional[IdentityResolver] = None,
        identity_map: Optional[PlayerIdentityMap] = None,
        **kwargs,
    ):
        super().__init__(
            source_name="ball_dont_lie",
            base_url=base_url,
            api_key=api_key,
            min_request_interval_seconds=min_request_interval_seconds,
            cache_ttl_seconds=cache_ttl_seconds,
            **kwargs,
        )
        self.resolver = resolver or IdentityResolver(player_matchers=NBA_PLAYER_MATCHERS)
        self.identity_map = identity_map if identity_map is not None else PlayerIdentityMap()
        self.cache.ttls.update(
            {
                "player_search": cache_ttl_seconds,
                "player_stats": cache_ttl_seconds,
                "season_averages": cache_ttl_seconds,
            }
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": self.api_key}

    def _retry_after(self, headers) -> Optional[float]:
        return super()._retry_after(headers) or DEFAULT_RETRY_AFTER_SECONDS

    async def _get_data(self, path: str, params: dict, data_type: str) -> list[dict]:
        payload = await self.get_json(path, params, data_type=data_type)
        if isinstance(payload, dict):
            return payload.get("data") or []
        return []

    async def _search(self, term: str) -> list[dict]:
        if not term:
            return []
        return await self._get_data(
            "/v1/players",
            {"search": term, "per_page": SEARCH_PAGE_SIZE},
            data_type="player_search",
        )

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    async def find_player_candidates(self, name: str) -> list[PlayerCandidate]:
        """
        Candidate records for a name.

        Searches the first name without periods ("P.J." -> "PJ"), then with
        them, then the last name. When the first-name results contain no
        exact first+last hit, last-name results are merged in.
        """
        parts = name.strip().split()
        if not parts:
            return []
        first_name = parts[0]
        last_name = parts[-1] if len(parts) > 1 else ""

        players = await self._search(first_name.replace(".", ""))
        if not players and "." in first_name:
            players = await self._search(first_name)
        if not players and last_name:
            players = await self._search(last_name)

        if players and last_name:
            first_norm, last_norm = split_name(normalize_player_name(name))
            has_exact = any(
                normalize_player_name(p.get("first_name") or "") == first_norm
                and normalize_player_name(p.get("last_name") or "") == last_norm
                for p in players
            )
            if not has_exact:
                seen = {p["id"] for p in players}
                players = players + [
                    p for p in await self._search(last_name) if p["id"] not in seen
                ]

        return [player_candidate(p) for p in players if "id" in p]

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
                Sport.BASKETBALL, source_player_id, self.source_name
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
            sample = ", ".join(c.name for c in candidates[:3])
            self.logger.info(f"No confident match for '{name}' among: {sample}")
            return None

        self.logger.debug(
            f"Found player '{match.candidate.name}' ({match.candidate.id}) "
            f"for '{name}' via {match.matcher}"
        )
        if source_player_id:
            self.identity_map.link(
                Sport.BASKETBALL,
                source_player_id,
                name,
                self.source_name,
                match.candidate.id,
                match.candidate.name,
                team_name=team_hint,
                confidence=match.confidence,
            )
        return match.candidate

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def get_player_game_stats(
        self,
        player_id: int,
        limit: int = 10,
        season: Optional[int] = None,
    ) -> list[NBAGameLog]:
        """Most recent games of the season, newest first."""
        season = season or current_season()
        rows = await self._get_data(
            "/v1/stats",
            {
                "player_ids[]": [player_id],
                "seasons[]": [season],
                "per_page": limit,
            },
            data_type="player_stats",
        )

        games = [
            NBAGameLog.from_api(row)
            for row in rows
            if isinstance(row, dict) and (row.get("game") or {}).get("date")
        ]
        games.sort(key=lambda g: g.date, reverse=True)
        return games[:limit]

    async def get_season_averages(
        self, player_id: int, season: Optional[int] = None
    ) -> Optional[dict]:
        season = season or current_season()
        rows = await self._get_data(
            "/v1/season_averages",
            {"season": season, "player_id": player_id},
            data_type="season_averages",
        )
        if not rows:
            self.logger.debug(f"No season averages for player {player_id} ({season})")
            return None
        return rows[0]


class BallDontLieClientFactory:
    """Factory for creating Ball Don't Lie clients from settings."""

    @staticmethod
    def create_from_settings(settings, identity_map=None) -> BallDontLieClient:
        bdl = settings.ball_dont_lie
        return BallDontLieClient(
            api_key=bdl.api_key,
            base_url=bdl.base_url,
            min_request_interval_seconds=bdl.min_request_interval_seconds,
            cache_ttl_seconds=bdl.cache_ttl_seconds,
            identity_map=identity_map,
        )
