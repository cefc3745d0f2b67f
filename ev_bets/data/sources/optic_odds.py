"""
OpticOdds client for fixtures, sportsbooks and pre-match odds.

Provides access to:
- Active sportsbooks per sport (cached for an hour)
- Leagues and active fixtures per sport/league
- Per-fixture odds, batched by the per-request sportsbook cap and merged
- Team search and completed team results for spread validation

Every public method degrades to an empty result when the provider fails.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ev_bets.betting.odds_normalizer import parse_timestamp
from ev_bets.config.constants import (
    COMMON_SPORTSBOOKS,
    DEFAULT_SHARP_BOOK,
    DEFAULT_TARGET_SPORTSBOOKS,
    MAX_CONCURRENT_REQUESTS,
    MAX_SPORTSBOOKS_PER_REQUEST,
    ODDS_TTL_SECONDS,
    OPTIC_ODDS_BASE_URL,
    SPORTSBOOKS_TTL_SECONDS,
)

from .base import DataSourceError, HTTPDataSource

SPORTSBOOK_SPORTS = ("soccer", "basketball", "esports")


@dataclass
class Fixture:
    """A scheduled fixture as reported by the aggregator."""

    id: str
    sport: str
    league: str
    starts_at: datetime
    home_team: str
    away_team: str
    league_name: Optional[str] = None
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    status: str = "unplayed"
    is_live: bool = False

    @property
    def is_prematch(self) -> bool:
        return not self.is_live and self.starts_at > datetime.now(timezone.utc)


@dataclass
class FixtureOdds:
    """All odds entries fetched for one fixture."""

    fixture_id: str
    odds: list[dict] = field(default_factory=list)


@dataclass
class TeamResult:
    """One completed game from a team's point of view."""

    fixture_id: str
    date: str
    opponent: str
    is_home: bool
    team_score: float
    opponent_score: float

    @property
    def margin(self) -> float:
        return self.team_score - self.opponent_score

    @property
    def won(self) -> bool:
        return self.team_score > self.opponent_score


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _first_competitor(raw: dict, side: str) -> dict:
    competitors = raw.get(f"{side}_competitors") or []
    return competitors[0] if competitors else {}


def transform_fixture(raw: dict) -> Fixture:
    """Build a Fixture from a raw aggregator fixture record."""
    home = _first_competitor(raw, "home")
    away = _first_competitor(raw, "away")
    sport = raw.get("sport") or {}
    league = raw.get("league") or {}

    return Fixture(
        id=str(raw["id"]),
        sport=sport.get("id", "") if isinstance(sport, dict) else str(sport),
        league=league.get("id", "") if isinstance(league, dict) else str(league),
        league_name=league.get("name") if isinstance(league, dict) else None,
        starts_at=_as_utc(parse_timestamp(raw.get("start_date"))),
        home_team=raw.get("home_team_display") or home.get("name") or "",
        away_team=raw.get("away_team_display") or away.get("name") or "",
        home_team_id=home.get("id"),
        away_team_id=away.get("id"),
        status=raw.get("status") or "unplayed",
        is_live=bool(raw.get("is_live", False)),
    )


def filter_prematch_fixtures(fixtures: Sequence[Fixture]) -> list[Fixture]:
    """Keep fixtures that have not started and are not live."""
    return [f for f in fixtures if f.is_prematch]


def get_required_sportsbooks(
    target_books: Sequence[str] = DEFAULT_TARGET_SPORTSBOOKS,
    sharp_book: str = DEFAULT_SHARP_BOOK,
    common_books: Sequence[str] = COMMON_SPORTSBOOKS,
) -> list[str]:
    """
    Every sportsbook needed for a run: targets, the sharp book, then the
    common consensus books, de-duplicated in that order.
    """
    seen: dict[str, None] = {}
    for book in [*target_books, sharp_book, *common_books]:
        seen.setdefault(book, None)
    return list(seen)


def _batched(items: Sequence[str], size: int) -> list[list[str]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class OpticOddsClient(HTTPDataSource):
    """
    Async client for the OpticOdds v3 API.

    Example:
        >>> async with OpticOddsClient(api_key="...") as client:
        ...     fixtures = await client.get_fixtures("basketball", "nba")
        ...     odds = await client.get_fixture_odds(fixtures[0].id, ["pinnacle"])
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = OPTIC_ODDS_BASE_URL,
        max_sportsbooks_per_request: int = MAX_SPORTSBOOKS_PER_REQUEST,
        max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS,
        min_request_interval_seconds: float = 0.2,
        cache_ttl_seconds: int = ODDS_TTL_SECONDS,
        sportsbooks_cache_ttl_seconds: int = SPORTSBOOKS_TTL_SECONDS,
        **kwargs,
    ):
        super().__init__(
            source_name="optic_odds",
            base_url=base_url,
            api_key=api_key,
            min_request_interval_seconds=min_request_interval_seconds,
            max_concurrent_requests=max_concurrent_requests,
            cache_ttl_seconds=cache_ttl_seconds,
            **kwargs,
        )
        self.max_sportsbooks_per_request = max_sportsbooks_per_request
        self.cache.ttls.update(
            {
                "odds": cache_ttl_seconds,
                "fixtures": cache_ttl_seconds,
                "sportsbooks": sportsbooks_cache_ttl_seconds,
                "leagues": sportsbooks_cache_ttl_seconds,
            }
        )

    def _auth_headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key}

    @staticmethod
    def _data(payload: Any) -> list[dict]:
        if isinstance(payload, dict):
            return payload.get("data") or []
        return []

    # -------------------------------------------------------------------------
    # Sportsbooks and leagues
    # -------------------------------------------------------------------------

    async def get_sportsbooks(self, sport: str) -> list[dict]:
        """Active sportsbooks for one sport."""
        payload = await self.get_json(
            "/sportsbooks/active", {"sport": sport}, data_type="sportsbooks"
        )
        return self._data(payload)

    async def get_all_sportsbooks(self) -> list[dict]:
        """Active sportsbooks across all supported sports, sorted by name."""
        cached = await self.cache.get("all_sportsbooks")
        if cached is not None:
            return cached

        by_id: dict[str, dict] = {}
        for sport in SPORTSBOOK_SPORTS:
            for book in await self.get_sportsbooks(sport):
                book_id = book.get("id")
                if book_id and book_id not in by_id:
                    by_id[book_id] = book

        books = sorted(by_id.values(), key=lambda b: b.get("name") or b["id"])
        if books:
            await self.cache.set("all_sportsbooks", books, data_type="sportsbooks")
        self.logger.info(f"Fetched {len(books)} active sportsbooks")
        return books

    async def get_leagues(self, sport: str) -> list[dict]:
        """Leagues the aggregator carries for one sport."""
        payload = await self.get_json("/leagues", {"sport": sport}, data_type="leagues")
        return self._data(payload)

    # -------------------------------------------------------------------------
    # Fixtures and odds
    # -------------------------------------------------------------------------

    async def get_fixtures(self, sport: str, league: str) -> list[Fixture]:
        """
        Active fixtures for a sport and league.

        Raises:
            DataSourceError: When the league could not be fetched, so a dead
                feed is not mistaken for an empty fixture list
        """
        payload = await self.get_json(
            "/fixtures/active",
            {"sport": sport, "league": league},
            data_type="fixtures",
            raise_errors=True,
        )
        fixtures = []
        for raw in self._data(payload):
            try:
                fixtures.append(transform_fixture(raw))
            except KeyError as e:
                self.logger.warning(f"Skipping fixture without {e}")
        return fixtures

    async def get_prematch_fixtures(self, sport: str, league: str) -> list[Fixture]:
        return filter_prematch_fixtures(await self.get_fixtures(sport, league))

    async def _get_odds_batch(
        self,
        fixture_id: str,
        sportsbooks: list[str],
        markets: Optional[Sequence[str]],
    ) -> list[dict]:
        params: dict[str, Any] = {"fixture_id": fixture_id, "sportsbook": sportsbooks}
        if markets:
            params["market"] = list(markets)
        payload = await self.get_json(
            "/fixtures/odds", params, data_type="odds", raise_errors=True
        )

        entries: list[dict] = []
        for item in self._data(payload):
            if str(item.get("id")) == str(fixture_id):
                entries.extend(item.get("odds") or [])
        return entries

    async def get_fixture_odds(
        self,
        fixture_id: str,
        sportsbooks: Sequence[str],
        markets: Optional[Sequence[str]] = None,
    ) -> FixtureOdds:
        """
        Odds for one fixture from every requested sportsbook.

        Sportsbooks are split into batches of at most
        `max_sportsbooks_per_request`; batches run concurrently under the
        client's request limiter and are merged into one result. A failed
        batch is skipped.

        Raises:
            DataSourceError: When every batch failed
        """
        batches = _batched(list(sportsbooks), self.max_sportsbooks_per_request)
        results = await asyncio.gather(
            *(self._get_odds_batch(fixture_id, batch, markets) for batch in batches),
            return_exceptions=True,
        )

        merged = FixtureOdds(fixture_id=fixture_id)
        failures = []
        for batch, entries in zip(batches, results):
            if isinstance(entries, DataSourceError):
                self.logger.warning(f"Fixture {fixture_id}: odds batch {batch} failed: {entries}")
                failures.append(entries)
            elif isinstance(entries, BaseException):
                raise entries
            else:
                merged.odds.extend(entries)

        if failures and len(failures) == len(batches):
            raise failures[0]

        self.logger.debug(
            f"Fixture {fixture_id}: {len(merged.odds)} odds from "
            f"{len(batches)} sportsbook batches"
        )
        return merged

    # -------------------------------------------------------------------------
    # Teams and results
    # -------------------------------------------------------------------------

    async def search_teams(self, sport: str, league: Optional[str] = None) -> list[dict]:
        params = {"sport": sport}
        if league:
            params["league"] = league
        payload = await self.get_json("/teams", params, data_type="team_search")
        return self._data(payload)

    async def get_team_results(self, team_id: str, last_n: int = 10) -> list[TeamResult]:
        """Most recent completed games for a team, newest first."""
        payload = await self.get_json(
            "/fixtures/results",
            {"team_id": team_id, "status": "Completed"},
            data_type="recent_fixtures",
        )

        results = []
        for item in self._data(payload)[:last_n]:
            fixture = item.get("fixture") or {}
            scores = item.get("scores") or {}
            home = _first_competitor(fixture, "home")
            away = _first_competitor(fixture, "away")

            is_home = str(home.get("id")) == str(team_id)
            home_total = (scores.get("home") or {}).get("total") or 0
            away_total = (scores.get("away") or {}).get("total") or 0
            opponent = away.get("name") if is_home else home.get("name")

            results.append(
                TeamResult(
                    fixture_id=str(fixture.get("id", "")),
                    date=fixture.get("start_date", ""),
                    opponent=opponent or "Unknown",
                    is_home=is_home,
                    team_score=home_total if is_home else away_total,
                    opponent_score=away_total if is_home else home_total,
                )
            )
        return results


class OpticOddsClientFactory:
    """Factory for creating OpticOdds clients from settings."""

    @staticmethod
    def create_from_settings(settings) -> OpticOddsClient:
        """
        Args:
            settings: Root Settings object

        Returns:
            Configured OpticOddsClient
        """
        optic = settings.optic_odds
        return OpticOddsClient(
            api_key=optic.api_key,
            base_url=optic.base_url,
            max_sportsbooks_per_request=optic.max_sportsbooks_per_request,
            max_concurrent_requests=optic.max_concurrent_requests,
            min_request_interval_seconds=optic.min_request_interval_seconds,
            cache_ttl_seconds=optic.cache_ttl_seconds,
            sportsbooks_cache_ttl_seconds=optic.sportsbooks_cache_ttl_seconds,
        )
