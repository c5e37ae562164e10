import pytest

from paddock.errors import ConfigurationError
from paddock.models import PointsSystem, Race, RaceResult
from paddock.points import (
    award_race_points,
    award_round_points,
    total_race_points,
)


TABLE = PointsSystem.from_value({"1": 25, "2": 18, "3": 15})


def _result(result_id, driver_id, position=None, race_id=1, **kw):
    return RaceResult(result_id=result_id, race_id=race_id, driver_id=driver_id, position=position, **kw)


def test_points_table_from_mapping_and_list_forms():
    as_list = PointsSystem.from_value(
        [{"position": 2, "points": 18}, {"position": 1, "points": 25}]
    )
    as_json = PointsSystem.from_value('{"1": 25, "2": 18}')
    assert as_list.table == {1: 25, 2: 18}
    assert as_json == as_list
    assert list(as_list.table) == [1, 2]


def test_points_table_empty_values():
    assert PointsSystem.from_value(None).table == {}
    assert PointsSystem.from_value("").table == {}
    assert PointsSystem.from_value({"1": 0, "2": 0}).points_for(1) == 0


@pytest.mark.parametrize(
    "value",
    [
        {"0": 10},
        {"-1": 10},
        {"first": 10},
        {"1.5": 10},
        {"1": -5},
        {"1": "lots"},
        [{"position": 1, "points": 10}, {"position": 1, "points": 8}],
        [{"pos": 1, "points": 10}],
        "not json",
        42,
    ],
)
def test_malformed_points_table_is_rejected(value):
    with pytest.raises(ConfigurationError):
        PointsSystem.from_value(value)


def test_points_by_position():
    scored = award_race_points([_result(1, 10, 1), _result(2, 11, 2), _result(3, 12, 3)], TABLE)
    assert [r.race_points for r in scored] == [25, 18, 15]


def test_position_outside_table_scores_zero():
    scored = award_race_points([_result(1, 10, 4)], TABLE)
    assert scored[0].race_points == 0


def test_dnf_scores_zero_regardless_of_position():
    scored = award_race_points([_result(1, 10, 1, dnf=True)], TABLE)
    assert scored[0].race_points == 0


def test_unclassified_scores_zero():
    scored = award_race_points([_result(1, 10, None)], TABLE)
    assert scored[0].race_points == 0


def test_input_records_are_not_modified():
    original = [_result(1, 10, 1)]
    award_race_points(original, TABLE)
    assert original[0].race_points == 0


def test_each_race_uses_its_own_table():
    races = [
        Race(race_id=1, race_number=1, points_system=TABLE),
        Race(race_id=2, race_number=2, points_system=PointsSystem.from_value({"1": 10})),
    ]
    results = [_result(1, 10, 1, race_id=1), _result(2, 10, 1, race_id=2), _result(3, 11, 2, race_id=2)]
    scored = award_round_points(races, results)
    assert [r.race_points for r in scored] == [25, 10, 0]
    assert total_race_points(scored) == {10: 35, 11: 0}