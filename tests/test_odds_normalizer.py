import math
from datetime import datetime, timezone

import pytest

from ev_bets.betting.odds_normalizer import (
    BookQuote,
    generate_selection_key,
    group_odds_by_selection,
    normalize_entries,
    normalize_odds_entry,
    parse_timestamp,
    sportsbook_id_from_name,
)

from factories import raw_entry


# =============================================================================
# Selection keys and ids
# =============================================================================


def test_selection_key_parts() -> None:
    assert generate_selection_key("f1", "moneyline", "Home") == "f1||moneyline||Home"
    assert (
        generate_selection_key("f1", "player_points", "Over", 24.5, "p9")
        == "f1||player_points||Over||24.5||p9"
    )


def test_selection_key_line_formatting_is_stable() -> None:
    assert generate_selection_key("f1", "spread", "Home", 2.0) == generate_selection_key(
        "f1", "spread", "Home", 2
    )


def test_sportsbook_id_from_name() -> None:
    assert sportsbook_id_from_name("William Hill") == "william_hill"
    assert sportsbook_id_from_name("  Bet  365 ") == "bet_365"


def test_parse_timestamp_formats() -> None:
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    parsed = parse_timestamp("2024-03-01T18:00:00Z")
    assert parsed == datetime(2024, 3, 1, 18, tzinfo=timezone.utc)
    assert parse_timestamp(None).tzinfo is not None


# =============================================================================
# Normalization
# =============================================================================


def test_normalize_entry_fields() -> None:
    entry = raw_entry(
        "Betano", 1.90, market="player_points", name="LeBron James Over",
        points=25.5, player_id=23, player_name="LeBron James",
    )
    odds = normalize_odds_entry(entry, "fx-1", "betano", "Betano")

    assert odds is not None
    assert odds.decimal_odds == 1.90
    assert odds.implied_probability == pytest.approx(1 / 1.90)
    assert odds.line == 25.5
    assert odds.player_id == "23"
    assert odds.selection_key == "fx-1||player_points||LeBron James Over||25.5||23"


def test_american_price_is_converted() -> None:
    entry = {"market": "moneyline", "name": "Home", "price": 150}
    odds = normalize_odds_entry(entry, "fx-1", "betano", "Betano")
    assert odds.decimal_odds == pytest.approx(2.5)


def test_odds_above_band_are_dropped() -> None:
    entry = raw_entry("Betano", 15.0)
    assert normalize_odds_entry(entry, "fx-1", "betano", "Betano") is None


def test_odds_below_minimum_are_raised() -> None:
    entry = raw_entry("Betano", 1.001)
    odds = normalize_odds_entry(entry, "fx-1", "betano", "Betano")
    assert odds.decimal_odds == 1.01


def test_entry_without_price_is_dropped() -> None:
    assert normalize_odds_entry({"market": "moneyline"}, "fx-1", "b", "B") is None

@pytest.mark.parametrize("price", ["n/a", "", float("nan"), float("inf"), [2.0]])
def test_unusable_decimal_price_is_dropped(price) -> None:
    entry = raw_entry("Betano", price)
    assert normalize_odds_entry(entry, "fx-1", "betano", "Betano") is None


def test_unusable_american_price_is_dropped() -> None:
    entry = {"market": "moneyline", "name": "Home", "price": "EVEN"}
    assert normalize_odds_entry(entry, "fx-1", "betano", "Betano") is None


def test_unusable_line_is_dropped() -> None:
    entry = raw_entry("Betano", 1.9, market="total_points", name="Over", points="TBD")
    assert normalize_odds_entry(entry, "fx-1", "betano", "Betano") is None


def test_bad_prices_never_reach_groups() -> None:
    entries = [
        raw_entry("Betano", 2.0),
        raw_entry("Unibet", "n/a"),
        raw_entry("Pinnacle", float("nan")),
        raw_entry("Bet365", 2.1),
        raw_entry("Betway", 2.05),
    ]
    result = normalize_entries(entries, "fx-1")

    assert result.dropped == 2
    assert [o.sportsbook_id for o in result.odds] == ["betano", "bet365", "betway"]
    (group,) = group_odds_by_selection(result.odds, ["betano"], "pinnacle")
    assert all(math.isfinite(quote.implied_probability) for quote in group.odds)



def test_normalize_entries_counts_drops() -> None:
    entries = [
        raw_entry("Betano", 2.0),
        raw_entry("Unibet", 15.0),
        raw_entry("Bet365", 2.1),
    ]
    result = normalize_entries(entries, "fx-1")

    assert result.dropped == 1
    assert [o.sportsbook_id for o in result.odds] == ["betano", "bet365"]


# =============================================================================
# Grouping
# =============================================================================


def test_grouping_partitions_by_selection_key() -> None:
    entries = [
        raw_entry("Betano", 2.0, name="Home"),
        raw_entry("Pinnacle", 1.95, name="Home"),
        raw_entry("Betano", 3.4, name="Draw"),
        raw_entry("Unibet", 2.05, name="Home"),
    ]
    odds = normalize_entries(entries, "fx-1").odds
    groups = group_odds_by_selection(odds, ["betano"], "pinnacle")

    assert [g.selection for g in groups] == ["Home", "Draw"]
    home = groups[0]
    assert home.book_count == 3
    assert [q.sportsbook_id for q in home.target_quotes] == ["betano"]
    assert home.sharp_quote.sportsbook_id == "pinnacle"


def test_every_quote_lands_in_exactly_one_group() -> None:
    entries = [
        raw_entry(book, 2.0 + i * 0.01, name=name, points=points)
        for i, (book, name, points) in enumerate(
            [
                ("A", "Over", 2.5),
                ("B", "Over", 2.5),
                ("A", "Over", 3.5),
                ("C", "Under", 2.5),
                ("B", "Under", 2.5),
            ]
        )
    ]
    odds = normalize_entries(entries, "fx-1").odds
    groups = group_odds_by_selection(odds, [], "pinnacle")

    assert sum(g.book_count for g in groups) == len(odds)
    assert len({g.selection_key for g in groups}) == len(groups) == 3


def test_grouping_flags_outliers() -> None:
    prices = {"A": 2.0, "B": 2.0, "C": 1.98, "D": 2.02, "E": 3.5}
    entries = [raw_entry(book, price) for book, price in prices.items()]
    odds = normalize_entries(entries, "fx-1").odds
    (group,) = group_odds_by_selection(odds, [], "pinnacle")

    flagged = [q.sportsbook_id for q in group.odds if q.is_outlier]
    assert flagged == ["e"]


def test_book_quote_dict_round_trip() -> None:
    quote = BookQuote("betano", "Betano", 2.2, 1 / 2.2, is_target=True)
    assert BookQuote.from_dict(quote.to_dict()) == quote
