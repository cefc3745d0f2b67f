import math

import pytest

from ev_bets.betting.odds_converter import (
    american_to_decimal,
    calculate_overround,
    decimal_to_american,
    decimal_to_implied_probability,
    devig_two_sided,
    implied_probability_to_decimal,
    logit_to_prob,
    normalize_multi_way,
    prob_to_logit,
)


# =============================================================================
# Format conversion
# =============================================================================


def test_american_to_decimal() -> None:
    assert american_to_decimal(150) == pytest.approx(2.5)
    assert american_to_decimal(-200) == pytest.approx(1.5)
    assert american_to_decimal(-110) == pytest.approx(1.909090909)


def test_decimal_to_american_inverts() -> None:
    assert decimal_to_american(2.5) == 150
    assert decimal_to_american(1.5) == -200
    assert decimal_to_american(american_to_decimal(-110)) == -110


def test_implied_probability_round_trip() -> None:
    assert decimal_to_implied_probability(4.0) == pytest.approx(0.25)
    assert implied_probability_to_decimal(0.25) == pytest.approx(4.0)


def test_zero_probability_maps_to_zero_odds() -> None:
    assert implied_probability_to_decimal(0) == 0.0
    assert implied_probability_to_decimal(-0.1) == 0.0


# =============================================================================
# Logits
# =============================================================================


def test_logit_is_symmetric_around_half() -> None:
    assert prob_to_logit(0.5) == pytest.approx(0.0)
    assert logit_to_prob(prob_to_logit(0.7)) == pytest.approx(0.7)


def test_logit_clamps_extremes() -> None:
    assert math.isfinite(prob_to_logit(0.0))
    assert math.isfinite(prob_to_logit(1.0))
    assert prob_to_logit(0.0) == pytest.approx(prob_to_logit(0.001))


# =============================================================================
# Margin removal
# =============================================================================


def test_devig_two_sided_removes_vig() -> None:
    p1, p2 = devig_two_sided(0.55, 0.50)
    assert p1 + p2 == pytest.approx(1.0)
    assert p1 == pytest.approx(0.55 / 1.05)


def test_devig_leaves_underround_untouched() -> None:
    assert devig_two_sided(0.45, 0.5) == (0.45, 0.5)


def test_normalize_multi_way() -> None:
    probs = [0.5, 0.3, 0.3]
    assert calculate_overround(probs) == pytest.approx(1.1)
    assert sum(normalize_multi_way(probs)) == pytest.approx(1.0)
    assert normalize_multi_way([]) == []
