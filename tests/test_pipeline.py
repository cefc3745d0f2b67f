import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from ev_bets.config.settings import EVSettings, LeagueSettings, Settings
from ev_bets.data.pipeline import EVPipeline, PipelineResult, leagues_to_fetch
from ev_bets.data.sources.base import DataSourceError, DataSourceStatus, RetryConfig
from ev_bets.data.sources.optic_odds import Fixture, FixtureOdds, OpticOddsClient
from ev_bets.database.repository import InMemoryOpportunityStore

from factories import make_opportunity, raw_entry

EPL = "england_-_premier_league"

# Home: Betano far above the market. Away: Betano slightly below it.
ODDS = [
    raw_entry("Bet365", 2.00),
    raw_entry("William Hill", 1.95),
    raw_entry("Pinnacle", 2.02),
    raw_entry("Betano", 2.30),
    raw_entry("Unibet", 2.05),
    raw_entry("Bet365", 1.80, name="Away"),
    raw_entry("William Hill", 1.82, name="Away"),
    raw_entry("Pinnacle", 1.81, name="Away"),
    raw_entry("Betano", 1.78, name="Away"),
    raw_entry("Unibet", 1.80, name="Away"),
]


def make_fixture(fixture_id: str = "fx-1", league: str = EPL) -> Fixture:
    return Fixture(
        id=fixture_id,
        sport="soccer",
        league=league,
        starts_at=datetime.now(timezone.utc) + timedelta(hours=6),
        home_team="Arsenal",
        away_team="Chelsea",
    )


@pytest.fixture
def optic() -> MagicMock:
    client = MagicMock()
    client.get_prematch_fixtures = AsyncMock(return_value=[make_fixture()])
    client.get_fixture_odds = AsyncMock(
        side_effect=lambda fixture_id, books: FixtureOdds(fixture_id, list(ODDS))
    )
    client.health_check = AsyncMock()
    client.close = AsyncMock()
    return client


def build_pipeline(optic, store, **kwargs) -> EVPipeline:
    options = dict(
        target_books=["betano"],
        soccer_leagues=[EPL],
        basketball_leagues=[],
        always_included_leagues=[],
    )
    options.update(kwargs)
    return EVPipeline(optic, store, **options)


# =============================================================================
# Helpers
# =============================================================================


def test_leagues_soccer_first_then_basketball() -> None:
    assert leagues_to_fetch(["italy_-_serie_a"], ["euroleague"]) == [
        ("soccer", "italy_-_serie_a"),
        ("basketball", "euroleague"),
        ("basketball", "nba"),
    ]


def test_leagues_deduplicated() -> None:
    assert leagues_to_fetch([EPL, EPL], ["nba"]) == [
        ("soccer", EPL),
        ("basketball", "nba"),
    ]


def test_pipeline_result_success_and_duration() -> None:
    result = PipelineResult()
    assert result.success
    assert result.duration_seconds is None

    result.errors.append("boom")
    result.finished_at = result.started_at + timedelta(seconds=3)
    assert not result.success
    assert result.duration_seconds == 3.0


# =============================================================================
# Runs
# =============================================================================


@pytest.mark.asyncio
async def test_run_stores_positive_ev_selection(optic, store) -> None:
    pipeline = build_pipeline(optic, store)
    result = await pipeline.run()

    assert result.success
    assert result.fixtures_processed == 1
    assert result.opportunities_found == 1
    assert result.finished_at is not None
    assert pipeline.last_result is result

    (opportunity,) = store.get_opportunities(result.opportunity_ids)
    assert opportunity.selection == "Home"
    assert opportunity.best_ev.target_book_id == "betano"
    assert opportunity.ev_percent > 10
    assert opportunity.home_team == "Arsenal"
    assert "fx-1" in store.fixtures


@pytest.mark.asyncio
async def test_odds_requested_for_required_books(optic, store) -> None:
    pipeline = build_pipeline(optic, store, common_books=["bet365"])
    await pipeline.run()

    optic.get_fixture_odds.assert_awaited_once_with("fx-1", ["betano", "pinnacle", "bet365"])


@pytest.mark.asyncio
async def test_all_bets_mode_keeps_every_selection(optic, store) -> None:
    pipeline = build_pipeline(optic, store, store_all_bets=True)
    result = await pipeline.run()

    assert result.opportunities_found == 2
    selections = {o.selection: o for o in store.get_opportunities(result.opportunity_ids)}
    assert set(selections) == {"Home", "Away"}
    assert selections["Away"].ev_percent < 0


@pytest.mark.asyncio
async def test_league_failure_is_recorded_and_run_continues(optic, store) -> None:
    async def fixtures(sport, league):
        if league == "broken":
            raise RuntimeError("503")
        return [make_fixture()]

    optic.get_prematch_fixtures = AsyncMock(side_effect=fixtures)
    pipeline = build_pipeline(optic, store, soccer_leagues=["broken", EPL])
    result = await pipeline.run()

    assert not result.success
    assert result.errors == ["Failed to fetch fixtures for soccer/broken: 503"]
    assert result.opportunities_found == 1


@pytest.mark.asyncio
async def test_fixture_failure_is_recorded_and_run_continues(optic, store) -> None:
    optic.get_prematch_fixtures = AsyncMock(
        return_value=[make_fixture("fx-1"), make_fixture("fx-2")]
    )
    optic.get_fixture_odds = AsyncMock(
        side_effect=[RuntimeError("timeout"), FixtureOdds("fx-2", list(ODDS))]
    )
    pipeline = build_pipeline(optic, store)
    result = await pipeline.run()

    assert result.errors == ["Error processing fixture fx-1: timeout"]
    assert result.fixtures_processed == 2
    assert result.opportunities_found == 1


# =============================================================================
# Provider failures through the real client
# =============================================================================


def failing_client(fixture_feed=None) -> OpticOddsClient:
    """Client whose transport returns `fixture_feed` for fixtures and fails otherwise."""
    client = OpticOddsClient(
        api_key="key",
        min_request_interval_seconds=0,
        retry_config=RetryConfig(max_attempts=2, initial_delay_seconds=0, jitter=False),
    )

    async def request(path, params=None):
        if path == "/fixtures/active" and fixture_feed is not None:
            return fixture_feed
        raise DataSourceError("HTTP 503", "optic_odds")

    client._make_request = AsyncMock(side_effect=request)
    return client


@pytest.mark.asyncio
async def test_unreachable_fixture_feed_is_recorded(store) -> None:
    client = failing_client()
    pipeline = build_pipeline(client, store, soccer_leagues=[EPL, "italy_-_serie_a"])
    result = await pipeline.run()

    assert not result.success
    assert result.fixtures_processed == 0
    assert client._make_request.await_count == 4
    assert result.errors[0].startswith(f"Failed to fetch fixtures for soccer/{EPL}")
    assert result.errors[1].startswith("Failed to fetch fixtures for soccer/italy_-_serie_a")
    assert result.errors[2] == "Fixture feed unreachable: all 2 leagues failed"


@pytest.mark.asyncio
async def test_failed_odds_fetch_is_recorded(store) -> None:
    starts = (datetime.now(timezone.utc) + timedelta(hours=6)).isoformat()
    feed = {
        "data": [
            {
                "id": "fx-1",
                "sport": {"id": "soccer"},
                "league": {"id": EPL},
                "start_date": starts,
                "home_competitors": [{"id": "T1", "name": "Arsenal"}],
                "away_competitors": [{"id": "T2", "name": "Chelsea"}],
                "is_live": False,
            }
        ]
    }
    pipeline = build_pipeline(failing_client(feed), store, common_books=[])
    result = await pipeline.run()

    assert result.fixtures_processed == 1
    assert result.opportunities_found == 0
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Error processing fixture fx-1: All 2 attempts failed")


@pytest.mark.asyncio
async def test_fixture_without_odds_yields_nothing(optic, store) -> None:
    optic.get_fixture_odds = AsyncMock(return_value=FixtureOdds("fx-1"))
    pipeline = build_pipeline(optic, store)
    result = await pipeline.run()

    assert result.success
    assert result.fixtures_processed == 1
    assert result.opportunities_found == 0
    assert len(store) == 0


@pytest.mark.asyncio
async def test_fixtures_processed_in_batches(optic, store) -> None:
    optic.get_prematch_fixtures = AsyncMock(
        return_value=[make_fixture(f"fx-{i}") for i in range(3)]
    )
    pipeline = build_pipeline(optic, store, fixture_batch_size=2)
    result = await pipeline.run()

    assert result.fixtures_processed == 3
    assert result.opportunities_found == 3


@pytest.mark.asyncio
async def test_validation_scheduled_with_new_ids(optic, store) -> None:
    runner = MagicMock()
    pipeline = build_pipeline(optic, store, validation_runner=runner)
    result = await pipeline.run()

    runner.schedule.assert_called_once_with(result.opportunity_ids)


@pytest.mark.asyncio
async def test_validation_not_scheduled_without_opportunities(optic, store) -> None:
    optic.get_fixture_odds = AsyncMock(return_value=FixtureOdds("fx-1"))
    runner = MagicMock()
    pipeline = build_pipeline(optic, store, validation_runner=runner)
    await pipeline.run()

    runner.schedule.assert_not_called()


@pytest.mark.asyncio
async def test_run_deletes_started_opportunities(optic, store) -> None:
    past = datetime.now(timezone.utc) - timedelta(minutes=5)
    store.upsert_opportunity(make_opportunity("old", starts_at=past))
    pipeline = build_pipeline(optic, store)
    result = await pipeline.run()

    assert result.deleted == 1
    assert not store.exists("old")


@pytest.mark.asyncio
async def test_store_writes_run_off_the_event_loop(optic) -> None:
    class ThreadRecordingStore(InMemoryOpportunityStore):
        def __init__(self):
            super().__init__()
            self.threads = set()

        def upsert_opportunity(self, opportunity) -> None:
            self.threads.add(threading.get_ident())
            super().upsert_opportunity(opportunity)

        def delete_started(self, now=None) -> int:
            self.threads.add(threading.get_ident())
            return super().delete_started(now)

    store = ThreadRecordingStore()
    result = await build_pipeline(optic, store).run()

    assert result.opportunities_found == 1
    assert store.threads
    assert threading.get_ident() not in store.threads


def test_cleanup_at_kickoff_is_inclusive(optic, store) -> None:
    kickoff = datetime(2024, 3, 1, 18, tzinfo=timezone.utc)
    store.upsert_opportunity(make_opportunity("a", starts_at=kickoff))
    store.upsert_opportunity(make_opportunity("b", starts_at=kickoff + timedelta(seconds=1)))
    pipeline = build_pipeline(optic, store)

    assert pipeline.cleanup(now=kickoff) == 1
    assert store.exists("b")


# =============================================================================
# Lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_health_check_failure_reported_unhealthy(optic, store) -> None:
    optic.health_check = AsyncMock(side_effect=RuntimeError("dns"))
    pipeline = build_pipeline(optic, store)
    health = await pipeline.health_check()

    assert health.status == DataSourceStatus.UNHEALTHY
    assert health.error_message == "dns"


@pytest.mark.asyncio
async def test_close_stops_validation_and_client(optic, store) -> None:
    runner = MagicMock()
    runner.cancel = AsyncMock()
    pipeline = build_pipeline(optic, store, validation_runner=runner)
    await pipeline.close()

    runner.cancel.assert_awaited_once()
    optic.close.assert_awaited_once()


def test_from_settings(optic, store) -> None:
    settings = Settings(
        ev=EVSettings(target_sportsbooks=["betano"], min_ev_percent=3.0, sharp_book="betfair"),
        leagues=LeagueSettings(soccer_leagues=[EPL], basketball_leagues=[]),
    )
    pipeline = EVPipeline.from_settings(settings, store, optic_odds=optic)

    assert pipeline.optic_odds is optic
    assert pipeline.synthesizer.min_ev_percent == 3.0
    assert pipeline.sharp_book == "betfair"
    assert pipeline.leagues == [("soccer", EPL), ("basketball", "nba")]
    assert pipeline.required_books[:2] == ["betano", "betfair"]
