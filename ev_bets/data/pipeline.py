"""
EV pipeline orchestrator.

One run walks every enabled league:
1. Fetch upcoming pre-match fixtures
2. Fetch odds for each fixture across all required sportsbooks
3. Normalize, group by selection and flag outliers
4. Compute fair odds and EV, keeping opportunities (or every best bet)
5. Persist fixtures and opportunities
6. Hand persisted ids to background validation
7. Delete opportunities for fixtures that have started

Failures for one league or one fixture are recorded on the run result
and never stop the rest of the run.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Sequence

from loguru import logger

from ev_bets.betting.ev_calculator import EVOpportunity, EVSynthesizer, FixtureContext
from ev_bets.betting.fair_odds import FairOddsEngine
from ev_bets.betting.odds_normalizer import group_odds_by_selection, normalize_entries
from ev_bets.config.constants import (
    ALWAYS_INCLUDED_LEAGUES,
    COMMON_SPORTSBOOKS,
    DEFAULT_BASKETBALL_LEAGUES,
    DEFAULT_SHARP_BOOK,
    DEFAULT_SOCCER_LEAGUES,
    DEFAULT_TARGET_SPORTSBOOKS,
    FIXTURE_BATCH_SIZE,
    MAX_DECIMAL_ODDS,
    MIN_DECIMAL_ODDS,
    OUTLIER_MAD_THRESHOLD,
    Sport,
)
from ev_bets.database.repository import OpportunityStore

from .sources.base import DataSourceHealth, DataSourceStatus
from .sources.optic_odds import (
    Fixture,
    OpticOddsClient,
    OpticOddsClientFactory,
    get_required_sportsbooks,
)

if TYPE_CHECKING:
    from ev_bets.validation.runner import ValidationRunner


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    fixtures_processed: int = 0
    opportunities_found: int = 0
    errors: list[str] = field(default_factory=list)
    opportunity_ids: list[str] = field(default_factory=list)
    deleted: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


def leagues_to_fetch(
    soccer_leagues: Sequence[str],
    basketball_leagues: Sequence[str],
    always_included: Sequence[str] = ALWAYS_INCLUDED_LEAGUES,
) -> list[tuple[str, str]]:
    """
    (sport, league) pairs for a run.

    Soccer leagues come first, then basketball leagues with the always
    included ones added; duplicates are dropped keeping first position.

    Examples:
        >>> leagues_to_fetch(["england_-_premier_league"], [])
        [('soccer', 'england_-_premier_league'), ('basketball', 'nba')]
        >>> leagues_to_fetch([], ["nba", "euroleague"])
        [('basketball', 'nba'), ('basketball', 'euroleague')]
    """
    pairs: dict[tuple[str, str], None] = {}
    for league in soccer_leagues:
        pairs.setdefault((Sport.SOCCER.value, league), None)
    for league in [*basketball_leagues, *always_included]:
        pairs.setdefault((Sport.BASKETBALL.value, league), None)
    return list(pairs)


def fixture_context(fixture: Fixture) -> FixtureContext:
    return FixtureContext(
        sport=fixture.sport,
        league=fixture.league,
        starts_at=fixture.starts_at,
        league_name=fixture.league_name,
        home_team=fixture.home_team,
        away_team=fixture.away_team,
    )


class EVPipeline:
    """
    Periodic +EV discovery over the aggregator feed.

    Example:
        >>> pipeline = EVPipeline.from_settings(settings, store)
        >>> result = await pipeline.run()
        >>> print(result.opportunities_found, result.errors)
    """

    def __init__(
        self,
        optic_odds: OpticOddsClient,
        store: OpportunityStore,
        synthesizer: Optional[EVSynthesizer] = None,
        validation_runner: Optional["ValidationRunner"] = None,
        soccer_leagues: Sequence[str] = DEFAULT_SOCCER_LEAGUES,
        basketball_leagues: Sequence[str] = DEFAULT_BASKETBALL_LEAGUES,
        always_included_leagues: Sequence[str] = ALWAYS_INCLUDED_LEAGUES,
        target_books: Sequence[str] = DEFAULT_TARGET_SPORTSBOOKS,
        sharp_book: str = DEFAULT_SHARP_BOOK,
        common_books: Sequence[str] = COMMON_SPORTSBOOKS,
        fixture_batch_size: int = FIXTURE_BATCH_SIZE,
        store_all_bets: bool = False,
        outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
        min_decimal_odds: float = MIN_DECIMAL_ODDS,
        max_decimal_odds: float = MAX_DECIMAL_ODDS,
    ):
        self.optic_odds = optic_odds
        self.store = store
        self.target_books = list(target_books)
        self.sharp_book = sharp_book
        self.synthesizer = synthesizer or EVSynthesizer(
            self.target_books, FairOddsEngine(sharp_book_id=sharp_book)
        )
        self.validation_runner = validation_runner
        self.leagues = leagues_to_fetch(
            soccer_leagues, basketball_leagues, always_included_leagues
        )
        self.required_books = get_required_sportsbooks(
            self.target_books, sharp_book, common_books
        )
        self.fixture_batch_size = fixture_batch_size
        self.store_all_bets = store_all_bets
        self.outlier_threshold = outlier_threshold
        self.min_decimal_odds = min_decimal_odds
        self.max_decimal_odds = max_decimal_odds

        self.logger = logger.bind(component="pipeline")
        self.last_result: Optional[PipelineResult] = None

    @classmethod
    def from_settings(
        cls,
        settings,
        store: OpportunityStore,
        validation_runner: Optional["ValidationRunner"] = None,
        optic_odds: Optional[OpticOddsClient] = None,
    ) -> "EVPipeline":
        """
        Create a pipeline from application settings.

        Args:
            settings: Application settings object
            store: Where opportunities are persisted
            validation_runner: Optional background validator
            optic_odds: Optional pre-built aggregator client

        Returns:
            Configured EVPipeline
        """
        ev = settings.ev
        engine = FairOddsEngine.from_settings(ev)
        synthesizer = EVSynthesizer(
            ev.target_sportsbooks, engine, min_ev_percent=ev.min_ev_percent
        )

        return cls(
            optic_odds=optic_odds or OpticOddsClientFactory.create_from_settings(settings),
            store=store,
            synthesizer=synthesizer,
            validation_runner=validation_runner,
            soccer_leagues=settings.leagues.soccer_leagues,
            basketball_leagues=settings.leagues.basketball_leagues,
            always_included_leagues=settings.leagues.always_included_leagues,
            target_books=ev.target_sportsbooks,
            sharp_book=ev.sharp_book,
            fixture_batch_size=settings.scheduler.fixture_batch_size,
            store_all_bets=settings.scheduler.store_all_bets,
            outlier_threshold=ev.outlier_threshold,
            min_decimal_odds=ev.min_decimal_odds,
            max_decimal_odds=ev.max_decimal_odds,
        )

    async def health_check(self) -> DataSourceHealth:
        """Health of the aggregator client; the only source a run needs."""
        try:
            return await self.optic_odds.health_check()
        except Exception as e:
            return DataSourceHealth(
                source_name="optic_odds",
                status=DataSourceStatus.UNHEALTHY,
                error_message=str(e),
            )

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def fetch_fixtures(self, result: PipelineResult) -> list[Fixture]:
        """
        Pre-match fixtures for every league.

        A failing league is recorded; when every league fails the feed is
        treated as unreachable and a run-level error is added as well.
        """
        fixtures: list[Fixture] = []
        failed = 0
        for sport, league in self.leagues:
            try:
                league_fixtures = await self.optic_odds.get_prematch_fixtures(sport, league)
                self.logger.info(f"Found {len(league_fixtures)} fixtures for {sport}/{league}")
                fixtures.extend(league_fixtures)
            except Exception as e:
                failed += 1
                message = f"Failed to fetch fixtures for {sport}/{league}: {e}"
                self.logger.error(message)
                result.errors.append(message)

        if self.leagues and failed == len(self.leagues):
            message = f"Fixture feed unreachable: all {failed} leagues failed"
            self.logger.error(message)
            result.errors.append(message)
        return fixtures

    async def process_fixture(self, fixture: Fixture) -> list[EVOpportunity]:
        """Odds through synthesis and persistence for one fixture."""
        fixture_odds = await self.optic_odds.get_fixture_odds(
            fixture.id, self.required_books
        )
        if not fixture_odds.odds:
            self.logger.debug(f"No odds for fixture {fixture.id}")
            return []

        normalized = normalize_entries(
            fixture_odds.odds,
            fixture.id,
            max_decimal_odds=self.max_decimal_odds,
            min_decimal_odds=self.min_decimal_odds,
        )
        if normalized.dropped:
            self.logger.debug(
                f"Fixture {fixture.id}: dropped {normalized.dropped} of "
                f"{len(fixture_odds.odds)} quotes"
            )

        groups = group_odds_by_selection(
            normalized.odds,
            self.target_books,
            self.sharp_book,
            self.outlier_threshold,
        )
        opportunities = self.synthesizer.synthesize(
            groups, fixture_context(fixture), all_bets=self.store_all_bets
        )
        if not opportunities:
            return []

        await asyncio.to_thread(self.persist, opportunities)

        self.logger.info(
            f"{fixture.home_team} vs {fixture.away_team}: "
            f"{len(opportunities)} of {len(groups)} selections stored"
        )
        return opportunities

    def persist(self, opportunities: Sequence[EVOpportunity]) -> None:
        """Upsert the shared fixture row, then each opportunity."""
        self.store.upsert_fixture(opportunities[0])
        for opportunity in opportunities:
            self.store.upsert_opportunity(opportunity)

    async def _process_batch(
        self, fixtures: Sequence[Fixture], result: PipelineResult
    ) -> None:
        for fixture in fixtures:
            try:
                opportunities = await self.process_fixture(fixture)
                result.opportunity_ids.extend(o.id for o in opportunities)
                result.opportunities_found += len(opportunities)
            except Exception as e:
                message = f"Error processing fixture {fixture.id}: {e}"
                self.logger.error(message)
                result.errors.append(message)
            result.fixtures_processed += 1

    def start_validation(self, opportunity_ids: list[str]) -> None:
        """Hand ids to the background runner without waiting for it."""
        if self.validation_runner is None or not opportunity_ids:
            return
        self.validation_runner.schedule(opportunity_ids)
        self.logger.info(f"Background validation started for {len(opportunity_ids)} ids")

    def cleanup(self, now: Optional[datetime] = None) -> int:
        deleted = self.store.delete_started(now)
        if deleted:
            self.logger.info(f"Deleted {deleted} opportunities for started fixtures")
        return deleted

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(self) -> PipelineResult:
        """
        Execute one full pipeline run.

        Returns:
            PipelineResult with counts and every recorded error
        """
        result = PipelineResult()
        self.logger.info("Starting EV pipeline run...")

        try:
            fixtures = await self.fetch_fixtures(result)
            self.logger.info(f"Processing {len(fixtures)} fixtures")

            for start in range(0, len(fixtures), self.fixture_batch_size):
                batch = fixtures[start : start + self.fixture_batch_size]
                await self._process_batch(batch, result)

            self.start_validation(result.opportunity_ids)
            result.deleted = await asyncio.to_thread(self.cleanup)
        except Exception as e:
            message = f"Pipeline error: {e}"
            self.logger.exception(message)
            result.errors.append(message)

        result.finished_at = datetime.now(timezone.utc)
        self.last_result = result
        self.logger.info(
            f"Pipeline run complete: {result.fixtures_processed} fixtures, "
            f"{result.opportunities_found} opportunities, {len(result.errors)} errors "
            f"in {result.duration_seconds:.1f}s"
        )
        return result

    async def close(self) -> None:
        """Close the aggregator client and stop background validation."""
        if self.validation_runner is not None:
            await self.validation_runner.cancel()
        await self.optic_odds.close()
        self.logger.info("EV pipeline closed")


async def create_pipeline(
    settings,
    store: Optional[OpportunityStore] = None,
    validation_runner: Optional["ValidationRunner"] = None,
) -> EVPipeline:
    """
    Create a pipeline with a database-backed store unless one is given.

    Args:
        settings: Application settings object
        store: Optional opportunity store
        validation_runner: Optional background validator

    Returns:
        Configured EVPipeline
    """
    if store is None:
        from ev_bets.database.repository import SqlAlchemyOpportunityStore

        store = SqlAlchemyOpportunityStore.from_url(settings.database_url)

    return EVPipeline.from_settings(settings, store, validation_runner)
