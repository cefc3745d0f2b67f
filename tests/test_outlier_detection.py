import pytest

from ev_bets.betting.outlier_detection import (
    detect_outliers_mad,
    mad,
    mean,
    median,
    trimmed_mean,
)


def test_median_and_mean() -> None:
    assert median([3, 1, 2]) == 2
    assert median([1, 2, 3, 4]) == 2.5
    assert mean([1, 2, 3, 4]) == 2.5


def test_empty_input_raises() -> None:
    with pytest.raises(ValueError):
        median([])
    with pytest.raises(ValueError):
        mean([])


def test_mad() -> None:
    # deviations from median 2.5: 1.5, 0.5, 0.5, 1.5
    assert mad([1, 2, 3, 4]) == pytest.approx(1.0)


def test_detects_far_value() -> None:
    result = detect_outliers_mad([0.50, 0.51, 0.49, 0.50, 0.90])
    assert result.indices == [4]
    assert result.is_outlier == [False, False, False, False, True]


def test_fewer_than_three_values_never_flagged() -> None:
    result = detect_outliers_mad([0.1, 0.9])
    assert result.indices == []
    assert result.is_outlier == [False, False]


def test_zero_mad_flags_nothing() -> None:
    # Most quotes identical: MAD is zero, so even 0.9 is kept
    result = detect_outliers_mad([0.5, 0.5, 0.5, 0.9])
    assert result.indices == []


def test_threshold_controls_sensitivity() -> None:
    values = [0.50, 0.51, 0.49, 0.50, 0.56]
    assert detect_outliers_mad(values, threshold=3.5).indices == [4]
    assert detect_outliers_mad(values, threshold=10.0).indices == []


def test_trimmed_mean_drops_outliers() -> None:
    assert trimmed_mean([0.50, 0.51, 0.49, 0.50, 0.90]) == pytest.approx(0.5)


def test_trimmed_mean_without_outliers_is_mean() -> None:
    assert trimmed_mean([0.4, 0.5, 0.6]) == pytest.approx(0.5)
