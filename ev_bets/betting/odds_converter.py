"""
Odds conversion and calculation utilities.

Provides functions for converting between odds formats, implied
probabilities and logits, and for removing the bookmaker margin.
"""
import math


def american_to_decimal(american: float) -> float:
    """
    Convert American odds to decimal odds.

    Args:
        american: American odds (e.g., -110, +150)

    Returns:
        Decimal odds (e.g., 1.909, 2.5)

    Examples:
        >>> american_to_decimal(+150)
        2.5
        >>> round(american_to_decimal(-110), 4)
        1.9091
    """
    if american > 0:
        return american / 100 + 1
    else:
        return 100 / abs(american) + 1


def decimal_to_american(decimal_odds: float) -> int:
    """
    Convert decimal odds to American odds.

    Examples:
        >>> decimal_to_american(2.5)
        150
        >>> decimal_to_american(1.5)
        -200
    """
    if decimal_odds >= 2:
        return round((decimal_odds - 1) * 100)
    else:
        return round(-100 / (decimal_odds - 1))


def decimal_to_implied_probability(decimal_odds: float) -> float:
    """
    Convert decimal odds to implied probability.

    Note: This includes the bookmaker's vig, so probabilities across
    all outcomes of a market won't sum to 1.

    Examples:
        >>> decimal_to_implied_probability(2.0)
        0.5
    """
    return 1 / decimal_odds


def implied_probability_to_decimal(probability: float) -> float:
    """
    Convert a probability to decimal odds.

    A probability of 0 (no signal) maps to 0 rather than infinity.

    Examples:
        >>> implied_probability_to_decimal(0.25)
        4.0
        >>> implied_probability_to_decimal(0)
        0.0
    """
    if probability <= 0:
        return 0.0
    return 1 / probability


def prob_to_logit(probability: float) -> float:
    """
    Convert probability to logit space: ln(p / (1 - p)).

    Probability is clamped to [0.001, 0.999] to keep the result finite.
    """
    clamped = max(0.001, min(0.999, probability))
    return math.log(clamped / (1 - clamped))


def logit_to_prob(logit: float) -> float:
    """Convert a logit back to probability: 1 / (1 + e^-x)."""
    return 1 / (1 + math.exp(-logit))


def devig_two_sided(prob1: float, prob2: float) -> tuple[float, float]:
    """
    Remove the vig from a two-way market proportionally.

    Args:
        prob1: Implied probability of side 1 (with vig)
        prob2: Implied probability of side 2 (with vig)

    Returns:
        Tuple of fair probabilities (side1, side2)

    Examples:
        >>> devig_two_sided(0.5238, 0.5238)
        (0.5, 0.5)
    """
    total = prob1 + prob2
    if total <= 1:
        # No vig (or an underround); nothing to remove
        return prob1, prob2
    return prob1 / total, prob2 / total


def calculate_overround(implied_probs: list[float]) -> float:
    """Total implied probability of a market (1.0 = no margin)."""
    return sum(implied_probs)


def normalize_multi_way(implied_probs: list[float]) -> list[float]:
    """
    Scale a multi-way market's implied probabilities to sum to 1.

    Examples:
        >>> normalize_multi_way([0.5, 0.3, 0.3])
        [0.4545454545454545, 0.2727272727272727, 0.2727272727272727]
    """
    total = calculate_overround(implied_probs)
    if total <= 0:
        return list(implied_probs)
    return [p / total for p in implied_probs]
