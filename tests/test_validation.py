from unittest.mock import AsyncMock, MagicMock

import pytest

from ev_bets.config.constants import Direction
from ev_bets.data.sources.ball_dont_lie import NBAGameLog
from ev_bets.data.sources.optic_odds import TeamResult
from ev_bets.data.sources.sportmonks import STAT_TYPE_IDS, PlayerFixtureStats, TeamMatchResult
from ev_bets.identity import PlayerCandidate, TeamCandidate
from ev_bets.validation import (
    NBAValidator,
    RecentGame,
    SoccerValidator,
    SpreadValidator,
    ValidationRunner,
    build_result,
    covered,
    hit_rate,
    is_hit,
    parse_nba_market,
    parse_soccer_market,
    parse_team_market,
    round_half_up,
)

from factories import make_opportunity

OVER, UNDER = Direction.OVER, Direction.UNDER


def game(value: float, hit: bool) -> RecentGame:
    return RecentGame(date="2024-03-01", opponent="X", value=value, hit=hit)


def team_match(fid: int, venue: str, scored: int, conceded: int) -> TeamMatchResult:
    return TeamMatchResult(fid, f"2024-03-{fid:02d}", "Opp", venue, scored, conceded)


# =============================================================================
# Result arithmetic
# =============================================================================


def test_round_half_up() -> None:
    assert round_half_up(62.5) == 63
    assert round_half_up(2.345, 2) == 2.35
    assert round_half_up(1.004, 2) == 1.0


def test_hit_rate() -> None:
    assert hit_rate(5, 8) == 63
    assert hit_rate(1, 3) == 33
    assert hit_rate(0, 0) == 0


def test_push_is_a_miss() -> None:
    assert is_hit(26, 25.5, OVER)
    assert not is_hit(25.5, 25.5, OVER)
    assert not is_hit(25.5, 25.5, UNDER)
    assert is_hit(2, 2.5, UNDER)


def test_build_result() -> None:
    result = build_result(
        "nba_player_prop", "player_points", 25.5, OVER,
        [game(30, True), game(20, False), game(26, True)],
        player_name="LeBron James",
    )

    assert (result.hits, result.matches_checked, result.hit_rate) == (2, 3, 67)
    assert result.avg_value == 25.33
    data = result.to_dict()
    assert data["direction"] == "over"
    assert data["recent_games"][0]["value"] == 30
    assert result.summary() == "LeBron James over 25.5 player_points: 2/3 (67%), avg 25.33"


def test_build_result_without_games() -> None:
    assert build_result("spread", "spread", -3.5, OVER, []) is None


# =============================================================================
# NBA
# =============================================================================


@pytest.mark.parametrize(
    "market, fields",
    [
        ("player_points", ("pts",)),
        ("player_points_rebounds_assists", ("pts", "reb", "ast")),
        ("player_points_assists", ("pts", "ast")),
        ("player_rebounds_assists", ("reb", "ast")),
        ("Player Steals + Blocks", ("stl", "blk")),
        ("player_turnovers", ("turnover",)),
        ("player_threes", ("fg3m",)),
        ("player_double_double", ()),
    ],
)
def test_parse_nba_market(market, fields) -> None:
    assert parse_nba_market(market) == fields


@pytest.fixture
def bdl_client() -> MagicMock:
    client = MagicMock()
    client.search_player = AsyncMock(return_value=PlayerCandidate(237, "LeBron", "James"))
    client.get_player_game_stats = AsyncMock(
        return_value=[
            NBAGameLog(1, "2024-11-05", True, 36.0, {"pts": 28, "reb": 8}),
            NBAGameLog(2, "2024-11-03", False, 33.0, {"pts": 20, "reb": 5}),
            NBAGameLog(3, "2024-11-01", True, 35.0, {"pts": 25, "reb": 5.5}),
        ]
    )
    client.get_season_averages = AsyncMock(return_value={"pts": 25.0, "reb": 7.5, "ast": 8.1})
    return client


@pytest.mark.asyncio
async def test_nba_combined_market(bdl_client) -> None:
    result = await NBAValidator(bdl_client).validate("LeBron James", "player_points_rebounds", 30.5, OVER)

    assert [g.value for g in result.recent_games] == [36, 25, 30.5]
    assert [g.opponent for g in result.recent_games] == ["HOME", "AWAY", "HOME"]
    assert (result.hits, result.hit_rate, result.avg_value) == (1, 33, 30.5)
    assert result.season_avg == 32.5
    assert result.player_id == 237


@pytest.mark.asyncio
async def test_nba_unsupported_market_skips_lookup(bdl_client) -> None:
    assert await NBAValidator(bdl_client).validate("LeBron James", "player_double_double", 0.5, OVER) is None
    bdl_client.search_player.assert_not_awaited()


@pytest.mark.asyncio
async def test_nba_unknown_player(bdl_client) -> None:
    bdl_client.search_player.return_value = None
    assert await NBAValidator(bdl_client).validate("Nobody", "player_points", 10.5, OVER) is None


# =============================================================================
# Soccer
# =============================================================================


def test_parse_soccer_market() -> None:
    assert parse_soccer_market("player_shots_on_target").name == "Shots on Target"
    assert parse_soccer_market("player_shots").type_ids == (STAT_TYPE_IDS["shots_total"],)
    assert parse_soccer_market("Player Goals + Assists").combined
    assert parse_soccer_market("player_cards").combined
    assert parse_soccer_market("anytime_scorer_to_win") is None


def test_parse_team_market() -> None:
    assert parse_team_market("total_goals")[0] == "Total Goals"
    assert parse_team_market("team_total_corners")[0] == "Total Corners"
    assert parse_team_market("corners")[0] == "Corners"
    assert parse_team_market("moneyline") is None


@pytest.fixture
def sm_client() -> MagicMock:
    client = MagicMock()
    client.search_player = AsyncMock(return_value=PlayerCandidate(7, "Bukayo", "Saka"))
    client.get_player_recent_fixtures = AsyncMock(
        return_value=[
            PlayerFixtureStats(1, "2024-03-09", "Brentford", "home", {STAT_TYPE_IDS["shots_on_target"]: 2}),
            PlayerFixtureStats(2, "2024-03-04", "Sheffield United", "away", {}),
            PlayerFixtureStats(3, "2024-02-24", "Newcastle", "home", {STAT_TYPE_IDS["shots_total"]: 3}),
        ]
    )

    teams = {"Arsenal": TeamCandidate(19, "Arsenal"), "Chelsea": TeamCandidate(18, "Chelsea")}
    client.search_team = AsyncMock(side_effect=lambda name: teams.get(name))

    matches = {
        19: [team_match(1, "home", 2, 1), team_match(2, "home", 1, 1), team_match(3, "away", 0, 2)],
        18: [
            team_match(4, "away", 2, 1),
            team_match(5, "home", 0, 2),
            team_match(6, "away", 1, 1),
            team_match(7, "away", 0, 2),
        ],
    }
    client.get_team_recent_matches = AsyncMock(side_effect=lambda team_id, limit: matches[team_id])
    return client


@pytest.mark.asyncio
async def test_soccer_player_prop_skips_matches_without_stats(sm_client) -> None:
    result = await SoccerValidator(sm_client).validate_player_bet(
        "Bukayo Saka", "player_shots_on_target", 1.5, OVER
    )

    assert result.matches_checked == 2
    assert [g.value for g in result.recent_games] == [2, 0]
    assert (result.hits, result.hit_rate, result.avg_value) == (1, 50, 1.0)
    assert result.market_name == "Shots on Target"


@pytest.mark.asyncio
async def test_soccer_team_market(sm_client) -> None:
    result = await SoccerValidator(sm_client).validate_team_bet("Arsenal", "total_goals", 2.5, OVER)

    assert [g.value for g in result.recent_games] == [3, 2, 2]
    assert result.recent_games[0].result == "W 2-1"
    assert (result.hits, result.home_avg, result.away_avg) == (1, 2.5, 2.0)
    assert result.team_id == 19


@pytest.mark.asyncio
async def test_btts(sm_client) -> None:
    result = await SoccerValidator(sm_client).validate_btts("Arsenal", "Chelsea", "Yes")

    assert (result.home_rate, result.away_rate, result.combined_rate) == (67, 50, 59)
    assert [g.hit for g in result.home_matches] == [True, True, False]
    assert result.to_dict()["kind"] == "btts"


@pytest.mark.asyncio
async def test_match_result(sm_client) -> None:
    result = await SoccerValidator(sm_client).validate_match_result("Arsenal", "Chelsea", "Home")

    assert result.home_win_rate == 50
    assert result.away_win_rate == 33
    assert result.draw_rate == 29
    assert (result.home_form, result.away_form) == ("WDL", "WLDL")


@pytest.mark.asyncio
async def test_two_sided_checks_need_both_teams(sm_client) -> None:
    validator = SoccerValidator(sm_client)
    assert await validator.validate_btts("Arsenal", "Unknown FC", "Yes") is None
    assert await validator.validate_match_result("Unknown FC", "Chelsea", "Away") is None


# =============================================================================
# Spreads and moneylines
# =============================================================================


def test_covered() -> None:
    assert covered(7, -5.5, OVER)
    assert not covered(5, -5.5, OVER)
    assert covered(-7, 5.5, UNDER)
    assert not covered(-5, 5.5, UNDER)


@pytest.fixture
def optic_client() -> MagicMock:
    client = MagicMock()
    client.get_team_results = AsyncMock(
        return_value=[
            TeamResult("G1", "2024-03-05", "Celtics", True, 110, 103),
            TeamResult("G2", "2024-03-03", "Suns", False, 101, 98),
            TeamResult("G3", "2024-03-01", "Heat", True, 95, 97),
        ]
    )
    client.search_teams = AsyncMock(
        return_value=[{"id": "T1", "name": "Los Angeles Lakers"}, {"id": "T2", "name": "Boston Celtics"}]
    )
    return client


@pytest.mark.asyncio
async def test_spread(optic_client) -> None:
    result = await SpreadValidator(optic_client).validate_spread("T1", "Lakers", -5.5, OVER)

    assert [g.value for g in result.recent_games] == [7, 3, -2]
    assert (result.hits, result.hit_rate, result.avg_value) == (1, 33, 2.7)


@pytest.mark.asyncio
async def test_moneyline_average_is_win_percent(optic_client) -> None:
    result = await SpreadValidator(optic_client).validate_moneyline("T1", "Lakers")

    assert (result.hits, result.hit_rate, result.avg_value) == (2, 67, 67)


@pytest.mark.asyncio
async def test_spread_team_resolution(optic_client) -> None:
    team = await SpreadValidator(optic_client).resolve_team("Lakers", "basketball", "nba")
    assert team.id == "T1"
    optic_client.search_teams.assert_awaited_once_with("basketball", "nba")


# =============================================================================
# Background runner
# =============================================================================


def nba_result(player_name: str):
    return build_result("nba_player_prop", "player_points", 25.5, OVER, [game(30, True)], player_name=player_name)


@pytest.fixture
def runner_store(store):
    for opp in [
        make_opportunity("low", ev_percent=6.0),
        make_opportunity("high", ev_percent=12.0, player_name=None, selection="Anthony Davis Over 11.5"),
        make_opportunity("ml", market="moneyline", selection="Home", line=None, player_name=None),
        make_opportunity(
            "soccer", sport="soccer", market="player_shots", player_name="Bukayo Saka", player_id="op-7"
        ),
        make_opportunity("done", validation={"hits": 3}),
    ]:
        store.upsert_opportunity(opp)
    return store


@pytest.fixture
def nba_validator() -> MagicMock:
    validator = MagicMock()
    validator.validate = AsyncMock(side_effect=lambda name, *args, **kwargs: nba_result(name))
    return validator


def test_runner_selects_unvalidated_props_by_ev(runner_store, nba_validator) -> None:
    runner = ValidationRunner(runner_store, nba_validator=nba_validator)
    selected = runner.select(["low", "high", "ml", "soccer", "done", "missing"])
    assert [o.id for o in selected] == ["high", "low"]


@pytest.mark.asyncio
async def test_runner_attaches_results(runner_store, nba_validator) -> None:
    runner = ValidationRunner(runner_store, nba_validator=nba_validator, batch_size=1, batch_delay_seconds=0)

    task = runner.schedule(["low", "high", "ml", "done"])
    assert task is not None
    await runner.wait()

    assert task.result() == 2
    assert not runner.is_running
    assert runner_store.get_opportunity("high").validation["player_name"] == "Anthony Davis"
    assert runner_store.get_opportunity("low").validation["hit_rate"] == 100
    assert runner_store.get_opportunity("done").validation == {"hits": 3}
    assert runner_store.get_opportunity("ml").validation is None


@pytest.mark.asyncio
async def test_runner_survives_validator_errors(runner_store, nba_validator) -> None:
    nba_validator.validate.side_effect = RuntimeError("provider down")
    runner = ValidationRunner(runner_store, nba_validator=nba_validator)

    assert await runner.run(["low", "high"]) == 0
    assert not runner_store.get_opportunity("low").is_validated


@pytest.mark.asyncio
async def test_runner_validates_soccer_props(runner_store) -> None:
    soccer = MagicMock()
    soccer.validate_player_bet = AsyncMock(return_value=nba_result("Bukayo Saka"))
    runner = ValidationRunner(runner_store, soccer_validator=soccer)

    assert await runner.run(["soccer", "low"]) == 1
    soccer.validate_player_bet.assert_awaited_once_with(
        "Bukayo Saka", "player_shots", 25.5, OVER, 10, source_player_id="op-7"
    )


@pytest.mark.asyncio
async def test_schedule_nothing(runner_store) -> None:
    assert ValidationRunner(runner_store).schedule([]) is None


@pytest.fixture
def team_store(store):
    lakers, celtics = "Los Angeles Lakers", "Boston Celtics"
    for opp in [
        make_opportunity(
            "spread", market="point_spread", selection=f"{lakers} -5.5", line=-5.5,
            player_name=None, home_team=lakers, away_team=celtics, ev_percent=9.0,
        ),
        make_opportunity(
            "ml", market="moneyline", selection="Away", line=None,
            player_name=None, home_team=lakers, away_team=celtics, ev_percent=7.0,
        ),
        make_opportunity(
            "btts", sport="soccer", market="btts", selection="Yes", line=None,
            player_name=None, home_team="Arsenal", away_team="Chelsea",
        ),
        make_opportunity(
            "goals", sport="soccer", market="total_goals", selection="Over 2.5", line=2.5,
            player_name=None, home_team="Arsenal", away_team="Chelsea",
        ),
    ]:
        store.upsert_opportunity(opp)
    return store


TEAM_IDS = ["spread", "ml", "btts", "goals"]


def test_team_markets_are_opt_in(team_store, optic_client, sm_client) -> None:
    validators = dict(
        soccer_validator=SoccerValidator(sm_client),
        spread_validator=SpreadValidator(optic_client),
    )

    assert ValidationRunner(team_store, **validators).select(TEAM_IDS) == []

    runner = ValidationRunner(team_store, team_markets=True, **validators)
    assert [o.id for o in runner.select(TEAM_IDS)] == ["spread", "btts", "goals", "ml"]


def test_basketball_team_markets_need_spread_validator(team_store, sm_client) -> None:
    runner = ValidationRunner(
        team_store, soccer_validator=SoccerValidator(sm_client), team_markets=True
    )
    assert [o.id for o in runner.select(TEAM_IDS)] == ["btts", "goals"]


@pytest.mark.asyncio
async def test_runner_validates_team_markets(team_store, optic_client, sm_client) -> None:
    runner = ValidationRunner(
        team_store,
        soccer_validator=SoccerValidator(sm_client),
        spread_validator=SpreadValidator(optic_client),
        team_markets=True,
    )

    assert await runner.run(TEAM_IDS) == 4

    spread = team_store.get_opportunity("spread").validation
    assert (spread["kind"], spread["team_id"], spread["hits"]) == ("spread", "T1", 1)

    moneyline = team_store.get_opportunity("ml").validation
    assert (moneyline["kind"], moneyline["team_name"], moneyline["hits"]) == ("moneyline", "Boston Celtics", 2)

    btts = team_store.get_opportunity("btts").validation
    assert (btts["kind"], btts["combined_rate"]) == ("btts", 59)

    goals = team_store.get_opportunity("goals").validation
    assert (goals["kind"], goals["team_id"], goals["hits"]) == ("soccer_team", 19, 1)
