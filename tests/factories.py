"""Builders for odds groups, raw aggregator entries and opportunities."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from ev_bets.betting.ev_calculator import BestEV, EVOpportunity
from ev_bets.betting.odds_converter import decimal_to_implied_probability
from ev_bets.betting.odds_normalizer import BookQuote, GroupedOdds
from ev_bets.config.constants import FairOddsMethod


def make_group(
    prices: dict[str, float],
    targets: tuple[str, ...] = ("betano",),
    sharp: str = "pinnacle",
    market: str = "moneyline",
    selection: str = "Home",
    line: Optional[float] = None,
    fixture_id: str = "fx-1",
    player_name: Optional[str] = None,
) -> GroupedOdds:
    """A group with one quote per sportsbook id, in dict order."""
    key = f"{fixture_id}||{market}||{selection}"
    if line is not None:
        key += f"||{line:g}"
    return GroupedOdds(
        fixture_id=fixture_id,
        market=market,
        selection=selection,
        selection_key=key,
        line=line,
        player_name=player_name,
        odds=[
            BookQuote(
                sportsbook_id=book,
                sportsbook_name=book.title(),
                decimal_odds=price,
                implied_probability=decimal_to_implied_probability(price),
                is_target=book in targets,
                is_sharp=book == sharp,
            )
            for book, price in prices.items()
        ],
    )


def raw_entry(
    sportsbook: str,
    price: float,
    market: str = "moneyline",
    name: str = "Home",
    points: Optional[float] = None,
    **extra,
) -> dict:
    """An aggregator odds entry priced in decimal odds."""
    entry = {"sportsbook": sportsbook, "market": market, "name": name, "decimal_odds": price}
    if points is not None:
        entry["points"] = points
    entry.update(extra)
    return entry


def make_opportunity(
    opp_id: str = "opp-1",
    sport: str = "basketball",
    market: str = "player_points",
    selection: str = "LeBron James Over 25.5",
    line: Optional[float] = 25.5,
    ev_percent: float = 8.0,
    starts_at: Optional[datetime] = None,
    player_name: Optional[str] = "LeBron James",
    fixture_id: str = "fx-1",
    validation: Optional[dict] = None,
    player_id: Optional[str] = None,
    home_team: Optional[str] = None,
    away_team: Optional[str] = None,
) -> EVOpportunity:
    """A stored-shape opportunity with a single headline calculation."""
    return EVOpportunity(
        id=opp_id,
        fixture_id=fixture_id,
        sport=sport,
        league="nba" if sport == "basketball" else "england_-_premier_league",
        starts_at=starts_at or datetime.now(timezone.utc) + timedelta(hours=6),
        market=market,
        selection=selection,
        selection_key=f"{fixture_id}||{market}||{selection}",
        best_ev=BestEV(
            ev_percent=ev_percent,
            target_book_id="betano",
            target_book_name="Betano",
            method=FairOddsMethod.TRIMMED_MEAN_PROB,
            offered_odds=2.10,
            fair_odds=1.95,
        ),
        calculations={},
        fair_odds={},
        book_odds=[],
        book_count=5,
        line=line,
        player_name=player_name,
        player_id=player_id,
        home_team=home_team,
        away_team=away_team,
        validation=validation,
    )
