import pytest

from paddock.errors import ConfigurationError
from paddock.models import PointsSystem, Race, RaceResult, RoundConfig
from paddock.points import award_round_points
from paddock.standings import (
    POINTS_AGGREGATE,
    POSITION_FALLBACK,
    build_standings,
    main_race,
    select_strategy,
)

A, B, C, D = 1, 2, 3, 4


def _result(result_id, race_id, driver_id, position=None, **kw):
    return RaceResult(result_id=result_id, race_id=race_id, driver_id=driver_id, position=position, **kw)


def _standings(config, races, results):
    return build_standings(config, races, award_round_points(races, results))


def _by_driver(rows):
    return {row["driver_id"]: row for row in rows}


def _assert_well_formed(rows):
    assert [row["position"] for row in rows] == list(range(1, len(rows) + 1))
    assert len({row["driver_id"] for row in rows}) == len(rows)
    for row in rows:
        assert row["total_points"] == (
            row["race_points"] + row["round_points"] + row["pole_bonus"] + row["fastest_lap_bonus"]
        )


def test_single_race_dnf_gets_no_round_points():
    races = [Race(race_id=1, race_number=1)]
    results = [
        _result(1, 1, A, 1),
        _result(2, 1, B, 2),
        _result(3, 1, C, 3, dnf=True),
    ]
    config = RoundConfig(
        round_points_enabled=True,
        points_system=PointsSystem.from_value({"1": 25, "2": 18, "3": 15}),
    )
    scored = award_round_points(races, results)
    assert select_strategy(config, scored) == POSITION_FALLBACK

    rows = build_standings(config, races, scored)["standings"]
    _assert_well_formed(rows)
    by_driver = _by_driver(rows)
    assert by_driver[A]["round_points"] == 25
    assert by_driver[B]["round_points"] == 18
    assert by_driver[C]["round_points"] == 0
    assert by_driver[C]["position"] == 3
    assert by_driver[C]["dnf"] is True
    assert by_driver[A]["dnf"] is False


def test_partial_dnf_over_several_races_is_not_zeroed():
    table = PointsSystem.from_value({"1": 25, "2": 18, "3": 15})
    races = [
        Race(race_id=1, race_number=1, points_system=table),
        Race(race_id=2, race_number=2, points_system=table),
    ]
    results = [
        _result(1, 1, A, 1),
        _result(2, 1, B, 2),
        _result(3, 1, C, 3, dnf=True),
        _result(4, 2, B, 1),
        _result(5, 2, C, 2),
        _result(6, 2, A, 3),
    ]
    config = RoundConfig(
        round_points_enabled=True,
        points_system=PointsSystem.from_value({"1": 10, "2": 8, "3": 6}),
    )
    out = _standings(config, races, results)
    rows = out["standings"]
    _assert_well_formed(rows)
    assert [row["driver_id"] for row in rows] == [B, A, C]
    c_row = _by_driver(rows)[C]
    assert c_row["race_points"] == 18
    assert c_row["round_points"] == 6
    assert c_row["total_points"] == 24
    assert c_row["dnf"] is False


def test_tie_on_points_broken_by_qualifying():
    table = PointsSystem.from_value({"1": 12, "2": 8})
    races = [
        Race(race_id=1, race_number=0, is_qualifier=True),
        Race(race_id=2, race_number=1, points_system=table),
        Race(race_id=3, race_number=2, points_system=table),
    ]
    results = [
        _result(1, 1, B, 3),
        _result(2, 1, A, 1),
        _result(3, 2, A, 1),
        _result(4, 2, B, 2),
        _result(5, 3, B, 1),
        _result(6, 3, A, 2),
    ]
    config = RoundConfig(tiebreaker_rules=("highest-qualifying-position",))
    out = _standings(config, races, results)
    rows = out["standings"]
    assert [row["driver_id"] for row in rows] == [A, B]
    assert rows[0]["race_points"] == rows[1]["race_points"] == 20
    assert out["tiebreakers"] == [
        {"driver_ids": [A, B], "rules_applied": ["highest-qualifying-position"], "resolved": True}
    ]


def test_every_driver_with_a_result_appears_once():
    table = PointsSystem.from_value({"1": 25, "2": 18})
    races = [
        Race(race_id=1, race_number=0, is_qualifier=True),
        Race(race_id=2, race_number=1, points_system=table),
    ]
    results = [
        _result(1, 1, D, 1),
        _result(2, 2, A, 1),
        _result(3, 2, B, 2),
        _result(4, 2, C, None),
    ]
    rows = _standings(RoundConfig(), races, results)["standings"]
    _assert_well_formed(rows)
    assert sorted(row["driver_id"] for row in rows) == [A, B, C, D]


def test_bonus_counts_toward_ranking():
    table = PointsSystem.from_value({"1": 20, "2": 19})
    races = [Race(race_id=1, race_number=1, points_system=table)]
    results = [
        _result(1, 1, A, 1, lap_time_ms=90000),
        _result(2, 1, B, 2, lap_time_ms=89000),
    ]
    config = RoundConfig(bonus_scope="round", fastest_lap_bonus=2)
    rows = _standings(config, races, results)["standings"]
    _assert_well_formed(rows)
    assert [row["driver_id"] for row in rows] == [B, A]
    assert rows[0]["fastest_lap_bonus"] == 2
    assert rows[0]["total_points"] == 21


def test_round_points_added_on_points_aggregate():
    table = PointsSystem.from_value({"1": 25, "2": 18})
    races = [Race(race_id=1, race_number=1, points_system=table)]
    results = [_result(1, 1, A, 2), _result(2, 1, B, 1)]
    config = RoundConfig(
        round_points_enabled=True,
        points_system=PointsSystem.from_value({"1": 5, "2": 3}),
    )
    rows = _standings(config, races, results)["standings"]
    by_driver = _by_driver(rows)
    assert by_driver[B]["total_points"] == 30
    assert by_driver[A]["total_points"] == 21


def test_round_points_without_table_score_zero_on_points_aggregate():
    table = PointsSystem.from_value({"1": 25})
    races = [Race(race_id=1, race_number=1, points_system=table)]
    config = RoundConfig(round_points_enabled=True)
    rows = _standings(config, races, [_result(1, 1, A, 1)])["standings"]
    assert rows[0]["round_points"] == 0
    assert rows[0]["total_points"] == 25


def test_strategy_selection():
    scored = [RaceResult(result_id=1, race_id=1, driver_id=A, position=1, race_points=0)]
    earned = [RaceResult(result_id=1, race_id=1, driver_id=A, position=1, race_points=3)]
    assert select_strategy(RoundConfig(round_points_enabled=True), scored) == POSITION_FALLBACK
    assert select_strategy(RoundConfig(round_points_enabled=True), earned) == POINTS_AGGREGATE
    assert select_strategy(RoundConfig(), scored) == POINTS_AGGREGATE


def test_position_fallback_requires_round_table():
    races = [Race(race_id=1, race_number=1)]
    with pytest.raises(ConfigurationError):
        _standings(RoundConfig(round_points_enabled=True), races, [_result(1, 1, A, 1)])


def test_position_fallback_ranks_on_main_race():
    races = [
        Race(race_id=1, race_number=1),
        Race(race_id=2, race_number=2),
    ]
    assert main_race(races).race_id == 2
    results = [
        _result(1, 1, A, 1),
        _result(2, 1, B, 2),
        _result(3, 1, C, 3),
        _result(4, 2, B, 1),
        _result(5, 2, A, 2),
        _result(6, 2, C, None, dnf=True),
    ]
    config = RoundConfig(
        round_points_enabled=True,
        points_system=PointsSystem.from_value({"1": 10, "2": 8, "3": 6}),
    )
    rows = _standings(config, races, results)["standings"]
    _assert_well_formed(rows)
    assert [row["driver_id"] for row in rows] == [B, A, C]
    # C finished race 1, so still round-complete
    assert _by_driver(rows)[C]["round_points"] == 6


def test_empty_round_has_no_standings():
    assert build_standings(RoundConfig(), [Race(race_id=1)], []) == {"standings": [], "tiebreakers": []}


def test_positions_gained_are_summed():
    table = PointsSystem.from_value({"1": 25})
    races = [Race(race_id=1, race_number=1, points_system=table), Race(race_id=2, race_number=2)]
    results = [_result(1, 1, A, 1, positions_gained=3), _result(2, 2, A, 1, positions_gained=-1)]
    rows = _standings(RoundConfig(), races, results)["standings"]
    assert rows[0]["positions_gained"] == 2
