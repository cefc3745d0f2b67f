import pytest

from ev_bets.betting.markets import extract_player_name, infer_direction, is_player_prop
from ev_bets.config.constants import Direction


@pytest.mark.parametrize(
    "market, expected",
    [
        ("player_points", True),
        ("Player Rebounds + Assists", True),
        ("player_shots_on_target", True),
        ("moneyline", False),
        ("spread", False),
        ("both_teams_to_score", False),
    ],
)
def test_is_player_prop(market, expected) -> None:
    assert is_player_prop(market) is expected


def test_extract_player_name() -> None:
    assert extract_player_name("LeBron James Over 25.5") == "LeBron James"
    assert extract_player_name("  Nikola Jokić under 11.5 ") == "Nikola Jokić"
    assert extract_player_name("Over 215.5") is None
    assert extract_player_name("Arsenal") is None


def test_infer_direction() -> None:
    assert infer_direction("LeBron James Over 25.5") == Direction.OVER
    assert infer_direction("Under 2.5") == Direction.UNDER
    assert infer_direction("Yes") == Direction.UNDER
