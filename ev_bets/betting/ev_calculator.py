"""
EV synthesis for grouped selections.

Combines every fair-odds method's result with each target sportsbook's
offered price, keeps the plausible EV figures and picks the single best
(method, target book) pair as the opportunity's headline.

Two policies are supported:

- opportunities: only selections whose best EV clears the minimum
- all bets: the best calculation regardless of sign, used to seed
  historical validation
"""
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from ev_bets.config.constants import (
    EV_SANITY_BAND,
    FAIR_ODDS_METHODS,
    MIN_EV_PERCENT,
    OPPORTUNITY_ID_LENGTH,
    SELECTION_KEY_SEPARATOR,
    FairOddsMethod,
)

from .fair_odds import FairOddsEngine, FairOddsResult
from .odds_normalizer import BookQuote, GroupedOdds

logger = logging.getLogger(__name__)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


@dataclass
class EVCalculation:
    """EV of one target book's price under one fair-odds method."""

    method: FairOddsMethod
    target_book_id: str
    target_book_name: str
    offered_decimal_odds: float
    offered_implied_probability: float
    fair_probability: float
    fair_decimal_odds: float
    ev_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "target_book_id": self.target_book_id,
            "target_book_name": self.target_book_name,
            "offered_decimal_odds": self.offered_decimal_odds,
            "offered_implied_probability": self.offered_implied_probability,
            "fair_probability": self.fair_probability,
            "fair_decimal_odds": self.fair_decimal_odds,
            "ev_percent": self.ev_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EVCalculation":
        return cls(**{**data, "method": FairOddsMethod(data["method"])})


@dataclass
class BestEV:
    """Headline (method, target book) pair of an opportunity."""

    ev_percent: float
    target_book_id: str
    target_book_name: str
    method: FairOddsMethod
    offered_odds: float
    fair_odds: float

    @classmethod
    def from_calculation(cls, calc: EVCalculation) -> "BestEV":
        return cls(
            ev_percent=calc.ev_percent,
            target_book_id=calc.target_book_id,
            target_book_name=calc.target_book_name,
            method=calc.method,
            offered_odds=calc.offered_decimal_odds,
            fair_odds=calc.fair_decimal_odds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ev_percent": self.ev_percent,
            "target_book_id": self.target_book_id,
            "target_book_name": self.target_book_name,
            "method": self.method.value,
            "offered_odds": self.offered_odds,
            "fair_odds": self.fair_odds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BestEV":
        return cls(**{**data, "method": FairOddsMethod(data["method"])})


@dataclass
class FixtureContext:
    """Fixture descriptors copied onto every opportunity."""

    sport: str
    league: str
    starts_at: datetime
    league_name: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None


@dataclass
class EVOpportunity:
    """
    A synthesized selection, persisted and exposed to clients.

    The id is derived from the selection key and best target book, so
    recomputing the same selection yields the same id.
    """

    id: str
    fixture_id: str
    sport: str
    league: str
    starts_at: datetime
    market: str
    selection: str
    selection_key: str
    best_ev: BestEV
    calculations: dict[FairOddsMethod, list[EVCalculation]]
    fair_odds: dict[FairOddsMethod, FairOddsResult]
    book_odds: list[BookQuote]
    book_count: int
    league_name: Optional[str] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    line: Optional[float] = None
    player_id: Optional[str] = None
    player_name: Optional[str] = None
    validation: Optional[dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ev_percent(self) -> float:
        return self.best_ev.ev_percent

    @property
    def is_validated(self) -> bool:
        return self.validation is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "id": self.id,
            "fixture_id": self.fixture_id,
            "sport": self.sport,
            "league": self.league,
            "league_name": self.league_name,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "starts_at": self.starts_at.isoformat(),
            "market": self.market,
            "selection": self.selection,
            "selection_key": self.selection_key,
            "line": self.line,
            "player_id": self.player_id,
            "player_name": self.player_name,
            "best_ev": self.best_ev.to_dict(),
            "calculations": {
                m.value: [c.to_dict() for c in calcs]
                for m, calcs in self.calculations.items()
            },
            "fair_odds": {m.value: r.to_dict() for m, r in self.fair_odds.items()},
            "book_odds": [b.to_dict() for b in self.book_odds],
            "book_count": self.book_count,
            "validation": self.validation,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EVOpportunity":
        """Rebuild an opportunity from its to_dict() form."""
        return cls(
            id=data["id"],
            fixture_id=data["fixture_id"],
            sport=data["sport"],
            league=data["league"],
            league_name=data.get("league_name"),
            home_team=data.get("home_team"),
            away_team=data.get("away_team"),
            starts_at=_parse_datetime(data["starts_at"]),
            market=data["market"],
            selection=data["selection"],
            selection_key=data["selection_key"],
            line=data.get("line"),
            player_id=data.get("player_id"),
            player_name=data.get("player_name"),
            best_ev=BestEV.from_dict(data["best_ev"]),
            calculations={
                FairOddsMethod(m): [EVCalculation.from_dict(c) for c in calcs]
                for m, calcs in (data.get("calculations") or {}).items()
            },
            fair_odds={
                FairOddsMethod(m): FairOddsResult.from_dict(r)
                for m, r in (data.get("fair_odds") or {}).items()
            },
            book_odds=[BookQuote.from_dict(b) for b in data.get("book_odds") or []],
            book_count=data.get("book_count", 0),
            validation=data.get("validation"),
            timestamp=_parse_datetime(data.get("timestamp")),
        )

    def summary(self) -> str:
        """Get formatted summary string."""
        line = f" {self.line:g}" if self.line is not None else ""
        who = f"{self.player_name} " if self.player_name else ""
        return (
            f"[{self.best_ev.ev_percent:+.1f}%] {who}{self.market}: {self.selection}{line}"
            f" @ {self.best_ev.offered_odds:.2f} ({self.best_ev.target_book_name})"
            f" vs fair {self.best_ev.fair_odds:.2f}"
        )


def calculate_ev(fair_probability: float, offered_decimal_odds: float) -> float:
    """
    Expected value percent of a bet.

    EV% = (fair_probability * offered_decimal_odds - 1) * 100

    Degenerate probabilities (<= 0 or >= 1) yield 0.

    Examples:
        >>> calculate_ev(0.5, 2.0)
        0.0
        >>> round(calculate_ev(0.5, 2.2), 6)
        10.0
    """
    if fair_probability <= 0 or fair_probability >= 1:
        return 0.0
    return (fair_probability * offered_decimal_odds - 1) * 100


def _plausible(ev_percent: float) -> bool:
    low, high = EV_SANITY_BAND
    return low < ev_percent < high


def calculate_ev_for_targets(
    group: GroupedOdds,
    fair_result: FairOddsResult,
    target_book_ids: Iterable[str],
) -> list[EVCalculation]:
    """
    EV of every target book's quote against one fair-odds result.

    Calculations outside the sanity band are dropped as stale or
    mispriced quotes.
    """
    if fair_result.fair_probability <= 0:
        return []

    targets = set(target_book_ids)
    calculations = []

    for quote in group.odds:
        if quote.sportsbook_id not in targets:
            continue

        ev_percent = calculate_ev(fair_result.fair_probability, quote.decimal_odds)
        if not _plausible(ev_percent):
            logger.debug(
                f"Discarding implausible EV {ev_percent:.1f}% for "
                f"{group.selection_key} at {quote.sportsbook_id}"
            )
            continue

        calculations.append(
            EVCalculation(
                method=fair_result.method,
                target_book_id=quote.sportsbook_id,
                target_book_name=quote.sportsbook_name,
                offered_decimal_odds=quote.decimal_odds,
                offered_implied_probability=quote.implied_probability,
                fair_probability=fair_result.fair_probability,
                fair_decimal_odds=fair_result.fair_decimal_odds,
                ev_percent=ev_percent,
            )
        )

    return calculations


def generate_opportunity_id(selection_key: str, target_book_id: str) -> str:
    """Content-derived opportunity id: sha256 of key and book, truncated."""
    data = f"{selection_key}{SELECTION_KEY_SEPARATOR}{target_book_id}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:OPPORTUNITY_ID_LENGTH]


def sort_book_odds(quotes: Iterable[BookQuote]) -> list[BookQuote]:
    """Target books first, then by decimal odds descending."""
    return sorted(quotes, key=lambda q: (not q.is_target, -q.decimal_odds))


def select_best(
    calculations: dict[FairOddsMethod, list[EVCalculation]],
    min_ev_percent: Optional[float] = None,
) -> Optional[EVCalculation]:
    """
    Highest-EV calculation across the matrix.

    Methods are scanned in declaration order and a later calculation
    must be strictly better to replace the current best, so ties go to
    the earlier method (then the earlier book).
    """
    best: Optional[EVCalculation] = None
    for method in FAIR_ODDS_METHODS:
        for calc in calculations.get(method, []):
            if min_ev_percent is not None and calc.ev_percent < min_ev_percent:
                continue
            if best is None or calc.ev_percent > best.ev_percent:
                best = calc
    return best


class EVSynthesizer:
    """
    Builds EV opportunities from grouped odds.

    Example:
        >>> synthesizer = EVSynthesizer(target_book_ids=["betano"])
        >>> opp = synthesizer.calculate_opportunity(group, fixture)
        >>> if opp:
        ...     print(opp.summary())
    """

    DEFAULT_MIN_EV_PERCENT = MIN_EV_PERCENT

    def __init__(
        self,
        target_book_ids: Iterable[str],
        engine: Optional[FairOddsEngine] = None,
        min_ev_percent: float = DEFAULT_MIN_EV_PERCENT,
    ):
        self.target_book_ids = list(target_book_ids)
        self.engine = engine or FairOddsEngine()
        self.min_ev_percent = min_ev_percent

    def _matrix(
        self, fair_odds: dict[FairOddsMethod, FairOddsResult], group: GroupedOdds
    ) -> dict[FairOddsMethod, list[EVCalculation]]:
        return {
            method: calculate_ev_for_targets(group, fair_odds[method], self.target_book_ids)
            for method in FAIR_ODDS_METHODS
        }

    def _build(
        self,
        group: GroupedOdds,
        fixture: FixtureContext,
        best_ev: BestEV,
        calculations: dict[FairOddsMethod, list[EVCalculation]],
        fair_odds: dict[FairOddsMethod, FairOddsResult],
    ) -> EVOpportunity:
        return EVOpportunity(
            id=generate_opportunity_id(group.selection_key, best_ev.target_book_id),
            fixture_id=group.fixture_id,
            sport=fixture.sport,
            league=fixture.league,
            league_name=fixture.league_name,
            home_team=fixture.home_team,
            away_team=fixture.away_team,
            starts_at=fixture.starts_at,
            market=group.market,
            selection=group.selection,
            selection_key=group.selection_key,
            line=group.line,
            player_id=group.player_id,
            player_name=group.player_name,
            best_ev=best_ev,
            calculations=calculations,
            fair_odds=fair_odds,
            book_odds=sort_book_odds(group.odds),
            book_count=len(group.odds),
        )

    def calculate_opportunity(
        self, group: GroupedOdds, fixture: FixtureContext
    ) -> Optional[EVOpportunity]:
        """
        Opportunity for a group if its best EV clears the minimum.

        Requires at least one method to have produced a primary
        (non-fallback) estimate.
        """
        fair_odds = self.engine.compute_all(group)
        if not any(r.has_signal and not r.is_fallback for r in fair_odds.values()):
            return None

        calculations = self._matrix(fair_odds, group)
        best = select_best(calculations, self.min_ev_percent)
        if best is None:
            return None

        return self._build(
            group, fixture, BestEV.from_calculation(best), calculations, fair_odds
        )

    def calculate_all_bets(
        self, group: GroupedOdds, fixture: FixtureContext
    ) -> Optional[EVOpportunity]:
        """
        Best bet for a group regardless of EV sign.

        None when every calculation fell outside the sanity band.
        """
        fair_odds = self.engine.compute_all(group)
        if not any(r.has_signal for r in fair_odds.values()):
            return None

        calculations = self._matrix(fair_odds, group)
        best = select_best(calculations)
        if best is None:
            return None

        return self._build(
            group, fixture, BestEV.from_calculation(best), calculations, fair_odds
        )

    def synthesize(
        self,
        groups: Iterable[GroupedOdds],
        fixture: FixtureContext,
        all_bets: bool = False,
    ) -> list[EVOpportunity]:
        """Apply one policy to every group of a fixture."""
        calculate = self.calculate_all_bets if all_bets else self.calculate_opportunity
        opportunities = []
        for group in groups:
            opportunity = calculate(group, fixture)
            if opportunity is not None:
                opportunities.append(opportunity)
        return opportunities


def calculate_opportunities(
    group: GroupedOdds,
    fixture: FixtureContext,
    target_book_ids: Iterable[str],
    min_ev_percent: float = MIN_EV_PERCENT,
    engine: Optional[FairOddsEngine] = None,
) -> Optional[EVOpportunity]:
    """Opportunities-policy synthesis for one group."""
    return EVSynthesizer(target_book_ids, engine, min_ev_percent).calculate_opportunity(
        group, fixture
    )


def calculate_all_bets(
    group: GroupedOdds,
    fixture: FixtureContext,
    target_book_ids: Iterable[str],
    engine: Optional[FairOddsEngine] = None,
) -> Optional[EVOpportunity]:
    """All-bets-policy synthesis for one group."""
    return EVSynthesizer(target_book_ids, engine).calculate_all_bets(group, fixture)


def generate_explanation(opportunity: EVOpportunity) -> list[str]:
    """
    Human-readable bullets explaining an opportunity.

    Derived only from the opportunity's own fields, so the same
    opportunity always yields the same bullets.
    """
    best = opportunity.best_ev
    fair_result = opportunity.fair_odds.get(best.method)
    method_name = best.method.value.replace("_", " ").lower()

    bullets = [
        f"This bet has {best.ev_percent:.1f}% expected value at {best.target_book_name}.",
        f"Fair odds calculated using {method_name} method across "
        f"{opportunity.book_count} sportsbooks.",
        f"{best.target_book_name} offers {best.offered_odds:.2f} decimal odds "
        f"vs fair odds of {best.fair_odds:.2f}.",
    ]

    offered_prob = 100 / best.offered_odds if best.offered_odds > 0 else 0.0
    fair_prob = 100 / best.fair_odds if best.fair_odds > 0 else 0.0
    bullets.append(
        f"The market implies {offered_prob:.1f}% probability, but true probability "
        f"is estimated at {fair_prob:.1f}%."
    )

    if fair_result is not None and fair_result.books_excluded > 0:
        n = fair_result.books_excluded
        if n > 1:
            bullets.append(f"{n} sportsbooks were excluded as outliers.")
        else:
            bullets.append(f"{n} sportsbook was excluded as outlier.")

    if fair_result is not None and fair_result.is_fallback:
        bullets.append(f"Note: {fair_result.fallback_reason}")

    return bullets
