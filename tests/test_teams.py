import pytest

from paddock.models import RaceResult, RoundConfig, Team
from paddock.teams import team_standings


def _scored(result_id, driver_id, points, race_id=1):
    return RaceResult(result_id=result_id, race_id=race_id, driver_id=driver_id, race_points=points)


def _config(**kw):
    base = dict(
        round_id=3,
        team_championship_enabled=True,
        teams=(Team(1, "Rapid"), Team(2, "Apex"), Team(3, "Zenith")),
        driver_teams={10: 1, 11: 1, 12: 1, 20: 2, 21: 2},
    )
    base.update(kw)
    return RoundConfig(**base)


RESULTS = [
    _scored(1, 10, 25),
    _scored(2, 11, 18),
    _scored(3, 12, 15),
    _scored(4, 20, 12),
    _scored(5, 21, 10),
    _scored(6, 30, 8),
]


def test_every_result_counts_without_a_limit():
    standings = team_standings(_config(), RESULTS)["standings"]
    assert standings == [
        {"position": 1, "team_id": 1, "total_points": 58, "race_result_ids": [1, 2, 3]},
        {"position": 2, "team_id": 2, "total_points": 22, "race_result_ids": [4, 5]},
    ]


def test_limit_keeps_best_results_across_races():
    results = [
        _scored(1, 10, 8, race_id=1),
        _scored(2, 11, 25, race_id=1),
        _scored(3, 10, 18, race_id=2),
        _scored(4, 12, 15, race_id=2),
    ]
    standings = team_standings(_config(teams_drivers_for_calculation=2), results)["standings"]
    assert standings[0]["total_points"] == 43
    assert standings[0]["race_result_ids"] == [2, 3]


@pytest.mark.parametrize("limit", [None, 0])
def test_unset_or_zero_limit_counts_everything(limit):
    standings = team_standings(_config(teams_drivers_for_calculation=limit), RESULTS)["standings"]
    assert standings[0]["total_points"] == 58


def test_drivers_without_a_team_are_skipped():
    standings = team_standings(_config(), RESULTS)["standings"]
    counted = [rid for row in standings for rid in row["race_result_ids"]]
    assert 6 not in counted


def test_teams_without_results_are_left_out():
    standings = team_standings(_config(), RESULTS)["standings"]
    assert 3 not in [row["team_id"] for row in standings]


def test_level_teams_are_ordered_by_name():
    results = [_scored(1, 10, 10), _scored(2, 20, 10)]
    standings = team_standings(_config(), results)["standings"]
    assert [row["team_id"] for row in standings] == [2, 1]
    assert [row["position"] for row in standings] == [1, 2]
    assert "name" not in standings[0]


def test_disabled_championship_returns_none():
    assert team_standings(_config(team_championship_enabled=False), RESULTS) is None
    assert team_standings(_config(teams=()), RESULTS) is None


def test_config_reads_team_rows():
    config = RoundConfig.from_row(
        {
            "team_championship_enabled": True,
            "teams_drivers_for_calculation": "2",
            "teams": [{"team_id": 1, "name": "Rapid"}],
            "driver_teams": [{"driver_id": 10, "team_id": 1}, {"driver_id": 11, "team_id": None}],
        }
    )
    assert config.teams == (Team(1, "Rapid"),)
    assert config.driver_teams == {10: 1}
    assert config.teams_drivers_for_calculation == 2


def test_team_standings_logged(caplog):
    caplog.set_level("DEBUG", logger="paddock.teams")
    team_standings(_config(), RESULTS)
    assert "team_standings round_id=3 teams=2" in [r.getMessage() for r in caplog.records]
