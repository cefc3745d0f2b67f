import pytest
from pydantic import ValidationError

from ev_bets.config.constants import DEFAULT_TARGET_SPORTSBOOKS, MIN_EV_PERCENT
from ev_bets.config.settings import EVSettings, Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.ev.min_ev_percent == MIN_EV_PERCENT
    assert settings.ev.target_sportsbooks == DEFAULT_TARGET_SPORTSBOOKS
    assert settings.ev.sharp_book == "pinnacle"
    assert settings.leagues.always_included_leagues == ["nba"]
    assert settings.scheduler.store_all_bets is False
    assert settings.validation.enabled is True
    assert settings.validation.team_markets is False


def test_log_level_normalized() -> None:
    assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="chatty")


def test_ev_validators() -> None:
    with pytest.raises(ValidationError):
        EVSettings(sharp_overround=0.98)
    with pytest.raises(ValidationError):
        EVSettings(min_decimal_odds=1.0)


def test_provider_keys_from_prefixed_env(monkeypatch) -> None:
    monkeypatch.setenv("OPTICODDS_API_KEY", "optic-key")
    monkeypatch.setenv("SPORTMONKS_API_KEY", "sm-key")
    settings = Settings(_env_file=None)

    assert settings.optic_odds.api_key == "optic-key"
    assert settings.sportmonks.api_key == "sm-key"
    assert settings.ball_dont_lie.api_key == ""


def test_ev_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("MIN_EV_PERCENT", "3.5")
    monkeypatch.setenv("TARGET_SPORTSBOOKS", '["betano", "bwin"]')

    ev = EVSettings()
    assert ev.min_ev_percent == 3.5
    assert ev.target_sportsbooks == ["betano", "bwin"]


def test_team_market_validation_from_env(monkeypatch) -> None:
    monkeypatch.setenv("VALIDATION_TEAM_MARKETS", "true")
    settings = Settings(_env_file=None)

    assert settings.validation.team_markets is True
