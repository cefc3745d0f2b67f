"""
Fair-odds engine.

Computes a consensus "true" probability for a grouped selection under a
fixed set of independent methods:

- TRIMMED_MEAN_PROB: mean implied probability after MAD outlier removal
- SHARP_BOOK_REFERENCE: the sharp book's price with its margin removed
- WEIGHTED_AVERAGE: outlier-free mean with the sharp book up-weighted

Every method returns a FairOddsResult. A probability of 0 means there was
no usable data at all; otherwise the result is a primary estimate or a
flagged fallback.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ev_bets.config.constants import (
    DEFAULT_SHARP_BOOK,
    FAIR_ODDS_METHODS,
    MIN_BOOKS_FOR_FAIR_ODDS,
    OUTLIER_MAD_THRESHOLD,
    SHARP_BOOK_OVERROUND,
    SHARP_BOOK_WEIGHT,
    FairOddsMethod,
)

from .odds_converter import implied_probability_to_decimal
from .odds_normalizer import BookQuote, GroupedOdds
from .outlier_detection import detect_outliers_mad, mean

logger = logging.getLogger(__name__)


@dataclass
class FairOddsResult:
    """Consensus price for one selection under one method."""

    method: FairOddsMethod
    fair_probability: float
    fair_decimal_odds: float
    books_used: int
    books_excluded: int = 0
    is_fallback: bool = False
    fallback_reason: Optional[str] = None
    outlier_book_ids: list[str] = field(default_factory=list)

    @property
    def has_signal(self) -> bool:
        return self.fair_probability > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "fair_probability": self.fair_probability,
            "fair_decimal_odds": self.fair_decimal_odds,
            "books_used": self.books_used,
            "books_excluded": self.books_excluded,
            "is_fallback": self.is_fallback,
            "fallback_reason": self.fallback_reason,
            "outlier_book_ids": list(self.outlier_book_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FairOddsResult":
        return cls(
            method=FairOddsMethod(data["method"]),
            fair_probability=data["fair_probability"],
            fair_decimal_odds=data["fair_decimal_odds"],
            books_used=data["books_used"],
            books_excluded=data.get("books_excluded", 0),
            is_fallback=data.get("is_fallback", False),
            fallback_reason=data.get("fallback_reason"),
            outlier_book_ids=list(data.get("outlier_book_ids", [])),
        )


def _result(
    method: FairOddsMethod,
    probability: float,
    books_used: int,
    books_excluded: int = 0,
    fallback_reason: Optional[str] = None,
    outlier_book_ids: Optional[list[str]] = None,
) -> FairOddsResult:
    return FairOddsResult(
        method=method,
        fair_probability=probability,
        fair_decimal_odds=implied_probability_to_decimal(probability),
        books_used=books_used,
        books_excluded=books_excluded,
        is_fallback=fallback_reason is not None,
        fallback_reason=fallback_reason,
        outlier_book_ids=outlier_book_ids or [],
    )


class FairOddsCalculator(ABC):
    """One fair-odds method. Implementations must be pure."""

    method: FairOddsMethod

    def __init__(
        self,
        min_books: int = MIN_BOOKS_FOR_FAIR_ODDS,
        outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
    ):
        self.min_books = min_books
        self.outlier_threshold = outlier_threshold

    @abstractmethod
    def compute(self, group: GroupedOdds) -> FairOddsResult:
        """Compute this method's fair price for a group."""
        pass

    def insufficient(self, group: GroupedOdds) -> Optional[FairOddsResult]:
        """Zero-signal result when the group has too few quotes in total."""
        n = len(group.odds)
        if n >= self.min_books:
            return None
        return _result(
            self.method,
            0.0,
            books_used=n,
            fallback_reason=f"Insufficient books (n < {self.min_books})",
        )

    def split_outliers(
        self, group: GroupedOdds
    ) -> tuple[list[BookQuote], list[BookQuote]]:
        """Partition a group's quotes into (kept, outliers)."""
        probs = [q.implied_probability for q in group.odds]
        flags = detect_outliers_mad(probs, self.outlier_threshold).is_outlier
        kept = [q for q, flagged in zip(group.odds, flags) if not flagged]
        outliers = [q for q, flagged in zip(group.odds, flags) if flagged]
        return kept, outliers


class TrimmedMeanProb(FairOddsCalculator):
    """Mean implied probability of the non-outlier books."""

    method = FairOddsMethod.TRIMMED_MEAN_PROB

    def compute(self, group: GroupedOdds) -> FairOddsResult:
        empty = self.insufficient(group)
        if empty is not None:
            return empty

        kept, outliers = self.split_outliers(group)
        outlier_ids = [q.sportsbook_id for q in outliers]

        if len(kept) < self.min_books:
            probability = mean([q.implied_probability for q in group.odds])
            return _result(
                self.method,
                probability,
                books_used=len(group.odds),
                fallback_reason=(
                    f"Too few non-outlier books ({len(kept)} < {self.min_books}), "
                    "using unfiltered mean"
                ),
                outlier_book_ids=outlier_ids,
            )

        probability = mean([q.implied_probability for q in kept])
        return _result(
            self.method,
            probability,
            books_used=len(kept),
            books_excluded=len(outliers),
            outlier_book_ids=outlier_ids,
        )


class SharpBookReference(FairOddsCalculator):
    """
    The sharp book's implied probability divided by its assumed overround.

    Falls back to the trimmed mean when the sharp book has not priced the
    selection.
    """

    method = FairOddsMethod.SHARP_BOOK_REFERENCE

    def __init__(
        self,
        min_books: int = MIN_BOOKS_FOR_FAIR_ODDS,
        outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
        sharp_book_id: str = DEFAULT_SHARP_BOOK,
        overround: float = SHARP_BOOK_OVERROUND,
    ):
        super().__init__(min_books, outlier_threshold)
        self.sharp_book_id = sharp_book_id
        self.overround = overround
        self._fallback = TrimmedMeanProb(min_books, outlier_threshold)

    def compute(self, group: GroupedOdds) -> FairOddsResult:
        empty = self.insufficient(group)
        if empty is not None:
            return empty

        sharp = group.sharp_quote
        if sharp is None:
            fallback = self._fallback.compute(group)
            return _result(
                self.method,
                fallback.fair_probability,
                books_used=fallback.books_used,
                books_excluded=fallback.books_excluded,
                fallback_reason=(
                    f"Sharp book ({self.sharp_book_id}) does not have this market"
                ),
                outlier_book_ids=fallback.outlier_book_ids,
            )

        return _result(
            self.method,
            sharp.implied_probability / self.overround,
            books_used=1,
        )


class WeightedAverage(FairOddsCalculator):
    """
    Weighted mean implied probability of the non-outlier books.

    The sharp book counts `sharp_weight` times; every other book once.
    """

    method = FairOddsMethod.WEIGHTED_AVERAGE

    def __init__(
        self,
        min_books: int = MIN_BOOKS_FOR_FAIR_ODDS,
        outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
        sharp_weight: float = SHARP_BOOK_WEIGHT,
    ):
        super().__init__(min_books, outlier_threshold)
        self.sharp_weight = sharp_weight

    def _weighted(self, quotes: list[BookQuote]) -> float:
        weights = [self.sharp_weight if q.is_sharp else 1.0 for q in quotes]
        total = sum(w * q.implied_probability for w, q in zip(weights, quotes))
        return total / sum(weights)

    def compute(self, group: GroupedOdds) -> FairOddsResult:
        empty = self.insufficient(group)
        if empty is not None:
            return empty

        kept, outliers = self.split_outliers(group)
        outlier_ids = [q.sportsbook_id for q in outliers]

        if len(kept) < self.min_books:
            return _result(
                self.method,
                mean([q.implied_probability for q in group.odds]),
                books_used=len(group.odds),
                fallback_reason=(
                    f"Too few non-outlier books ({len(kept)} < {self.min_books}), "
                    "using unfiltered mean"
                ),
                outlier_book_ids=outlier_ids,
            )

        return _result(
            self.method,
            self._weighted(kept),
            books_used=len(kept),
            books_excluded=len(outliers),
            outlier_book_ids=outlier_ids,
        )


class FairOddsEngine:
    """
    Runs every fair-odds method over a group.

    The method set is fixed and ordered as FAIR_ODDS_METHODS; that order
    is also the tie-break order used by the EV synthesizer.
    """

    def __init__(
        self,
        min_books: int = MIN_BOOKS_FOR_FAIR_ODDS,
        outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
        sharp_book_id: str = DEFAULT_SHARP_BOOK,
        sharp_overround: float = SHARP_BOOK_OVERROUND,
        sharp_weight: float = SHARP_BOOK_WEIGHT,
    ):
        calculators: dict[FairOddsMethod, FairOddsCalculator] = {
            FairOddsMethod.TRIMMED_MEAN_PROB: TrimmedMeanProb(
                min_books, outlier_threshold
            ),
            FairOddsMethod.SHARP_BOOK_REFERENCE: SharpBookReference(
                min_books, outlier_threshold, sharp_book_id, sharp_overround
            ),
            FairOddsMethod.WEIGHTED_AVERAGE: WeightedAverage(
                min_books, outlier_threshold, sharp_weight
            ),
        }
        self.calculators = tuple(calculators[m] for m in FAIR_ODDS_METHODS)

    @classmethod
    def from_settings(cls, ev_settings) -> "FairOddsEngine":
        return cls(
            min_books=ev_settings.min_books_for_fair_odds,
            outlier_threshold=ev_settings.outlier_threshold,
            sharp_book_id=ev_settings.sharp_book,
            sharp_overround=ev_settings.sharp_overround,
            sharp_weight=ev_settings.sharp_weight,
        )

    @property
    def methods(self) -> tuple[FairOddsMethod, ...]:
        return tuple(c.method for c in self.calculators)

    def compute_all(self, group: GroupedOdds) -> dict[FairOddsMethod, FairOddsResult]:
        """Fair-odds results for every method, in method order."""
        results = {c.method: c.compute(group) for c in self.calculators}
        if logger.isEnabledFor(logging.DEBUG):
            summary = ", ".join(
                f"{m.value}={r.fair_probability:.4f}{'*' if r.is_fallback else ''}"
                for m, r in results.items()
            )
            logger.debug(f"{group.selection_key}: {summary}")
        return results

    def compute(self, group: GroupedOdds, method: FairOddsMethod) -> FairOddsResult:
        for calculator in self.calculators:
            if calculator.method == method:
                return calculator.compute(group)
        raise ValueError(f"Unknown fair odds method: {method}")


def calculate_all_fair_odds(
    group: GroupedOdds,
    engine: Optional[FairOddsEngine] = None,
) -> dict[FairOddsMethod, FairOddsResult]:
    """Compute every method's fair odds with the default engine settings."""
    return (engine or FairOddsEngine()).compute_all(group)


def calculate_fair_odds(
    group: GroupedOdds,
    method: FairOddsMethod,
    engine: Optional[FairOddsEngine] = None,
) -> FairOddsResult:
    """Compute a single method's fair odds."""
    return (engine or FairOddsEngine()).compute(group, method)
