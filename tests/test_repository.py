from datetime import datetime, timedelta, timezone

import pytest

from ev_bets.database.repository import InMemoryOpportunityStore, SqlAlchemyOpportunityStore

from factories import make_opportunity


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryOpportunityStore()
    return SqlAlchemyOpportunityStore.from_url(f"sqlite:///{tmp_path / 'ev.db'}")


@pytest.fixture
def sql_store(tmp_path) -> SqlAlchemyOpportunityStore:
    return SqlAlchemyOpportunityStore.from_url(f"sqlite:///{tmp_path / 'ev.db'}")


# =============================================================================
# Shared semantics
# =============================================================================


def test_upsert_and_get(any_store) -> None:
    opportunity = make_opportunity("a", ev_percent=7.5)
    any_store.upsert_opportunity(opportunity)

    loaded = any_store.get_opportunity("a")
    assert loaded.id == "a"
    assert loaded.ev_percent == 7.5
    assert loaded.selection == "LeBron James Over 25.5"
    assert loaded.line == 25.5
    assert any_store.exists("a")
    assert any_store.get_opportunity("missing") is None


def test_upsert_replaces_by_id(any_store) -> None:
    any_store.upsert_opportunity(make_opportunity("a", ev_percent=7.5))
    any_store.upsert_opportunity(make_opportunity("a", ev_percent=9.0))

    assert any_store.get_opportunity("a").ev_percent == 9.0


def test_get_opportunities_skips_unknown_ids(any_store) -> None:
    any_store.upsert_opportunity(make_opportunity("a"))
    any_store.upsert_opportunity(make_opportunity("b"))

    loaded = any_store.get_opportunities(["a", "zzz", "b"])
    assert sorted(o.id for o in loaded) == ["a", "b"]
    assert any_store.get_opportunities([]) == []


def test_attach_validation_and_validated_ids(any_store) -> None:
    any_store.upsert_opportunity(make_opportunity("a"))
    any_store.upsert_opportunity(make_opportunity("b"))
    any_store.attach_validation("a", {"hits": 4, "matches": 5})

    assert any_store.get_opportunity("a").validation == {"hits": 4, "matches": 5}
    assert any_store.get_opportunity("b").validation is None
    assert any_store.validated_ids(["a", "b", "c"]) == {"a"}


def test_attach_validation_to_missing_id_is_ignored(any_store) -> None:
    any_store.attach_validation("gone", {"hits": 1})
    assert not any_store.exists("gone")


def test_reupsert_keeps_validation(any_store) -> None:
    any_store.upsert_opportunity(make_opportunity("a", ev_percent=7.5))
    any_store.attach_validation("a", {"hits": 4})
    any_store.upsert_opportunity(make_opportunity("a", ev_percent=6.0))

    loaded = any_store.get_opportunity("a")
    assert loaded.ev_percent == 6.0
    assert loaded.validation == {"hits": 4}


def test_delete_started_is_inclusive(any_store) -> None:
    now = datetime(2024, 3, 1, 18, tzinfo=timezone.utc)
    any_store.upsert_opportunity(make_opportunity("past", starts_at=now - timedelta(hours=1)))
    any_store.upsert_opportunity(make_opportunity("now", starts_at=now))
    any_store.upsert_opportunity(make_opportunity("later", starts_at=now + timedelta(minutes=1)))

    assert any_store.delete_started(now) == 2
    assert not any_store.exists("past")
    assert not any_store.exists("now")
    assert any_store.exists("later")


def test_delete_started_compares_in_utc(any_store) -> None:
    cet = timezone(timedelta(hours=1))
    kickoff = datetime(2024, 3, 1, 19, tzinfo=cet)  # 18:00 UTC
    any_store.upsert_opportunity(make_opportunity("a", starts_at=kickoff))

    assert any_store.delete_started(datetime(2024, 3, 1, 17, 59, tzinfo=timezone.utc)) == 0
    assert any_store.delete_started(datetime(2024, 3, 1, 18, 0, tzinfo=timezone.utc)) == 1


# =============================================================================
# SQL store
# =============================================================================


def test_fixture_row_written_once(sql_store) -> None:
    from sqlalchemy import func, select
    from sqlalchemy.orm import Session

    from ev_bets.database.models import Fixture

    opportunity = make_opportunity("a", sport="soccer", market="player_shots")
    sql_store.upsert_fixture(opportunity)
    sql_store.upsert_fixture(opportunity)

    with Session(sql_store.engine) as session:
        assert session.scalar(select(func.count()).select_from(Fixture)) == 1
        row = session.get(Fixture, "fx-1")
        assert row.sport == "soccer"
        assert row.starts_at.tzinfo is None


def test_list_opportunities_highest_ev_first(sql_store) -> None:
    sql_store.upsert_opportunity(make_opportunity("low", ev_percent=5.5))
    sql_store.upsert_opportunity(make_opportunity("high", ev_percent=12.0))
    sql_store.upsert_opportunity(
        make_opportunity("soccer", sport="soccer", market="player_shots", ev_percent=8.0)
    )

    assert [o.id for o in sql_store.list_opportunities()] == ["high", "soccer", "low"]
    assert [o.id for o in sql_store.list_opportunities(sport="soccer")] == ["soccer"]
    assert len(sql_store.list_opportunities(limit=1)) == 1


def test_payload_round_trip_keeps_headline(sql_store) -> None:
    opportunity = make_opportunity("a")
    sql_store.upsert_opportunity(opportunity)

    loaded = sql_store.get_opportunity("a")
    assert loaded.best_ev == opportunity.best_ev
    assert loaded.starts_at == opportunity.starts_at
    assert loaded.book_count == 5
