"""Shared fixtures for the test suite."""
from datetime import datetime, timedelta, timezone

import pytest

from ev_bets.betting.ev_calculator import EVSynthesizer, FixtureContext
from ev_bets.betting.odds_normalizer import GroupedOdds
from ev_bets.database.repository import InMemoryOpportunityStore

from factories import make_group


@pytest.fixture
def kickoff() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=6)


@pytest.fixture
def fixture_context(kickoff) -> FixtureContext:
    return FixtureContext(
        sport="soccer",
        league="england_-_premier_league",
        starts_at=kickoff,
        league_name="England - Premier League",
        home_team="Arsenal",
        away_team="Chelsea",
    )


@pytest.fixture
def consensus_group() -> GroupedOdds:
    """Five books around 2.10; betano offers the best price at 2.20."""
    return make_group(
        {
            "bet365": 2.10,
            "william_hill": 2.05,
            "betano": 2.20,
            "unibet": 2.15,
            "betway": 2.00,
        }
    )


@pytest.fixture
def value_group() -> GroupedOdds:
    """Betano is far off-market at 2.30 and flagged as an outlier."""
    return make_group(
        {
            "bet365": 2.00,
            "william_hill": 1.95,
            "pinnacle": 2.02,
            "betano": 2.30,
            "unibet": 2.05,
        }
    )


@pytest.fixture
def synthesizer() -> EVSynthesizer:
    return EVSynthesizer(target_book_ids=["betano"])


@pytest.fixture
def store() -> InMemoryOpportunityStore:
    return InMemoryOpportunityStore()
