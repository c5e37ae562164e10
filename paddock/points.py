"""Race points: map finishing positions to points via a race's table."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List

from .models import PointsSystem, Race, RaceResult


def _race_points(result: RaceResult, table: PointsSystem) -> float:
    """Return the points a single result earns from ``table``."""
    if result.dnf or result.position is None:
        return 0
    return table.points_for(result.position)


def award_race_points(results: Iterable[RaceResult], table: PointsSystem) -> List[RaceResult]:
    """Return copies of ``results`` with ``race_points`` filled in.

    DNF and unclassified results score zero whatever position was recorded.
    The input records are left untouched.
    """
    return [replace(res, race_points=_race_points(res, table)) for res in results]


def award_round_points(races: Iterable[Race], results: Iterable[RaceResult]) -> List[RaceResult]:
    """Apply each race's own points table to that race's results.

    Results keep their input order. Results for races not in ``races`` are
    passed through with zero points; the engine rejects those before scoring.
    """
    tables: Dict[int, PointsSystem] = {race.race_id: race.points_system for race in races}
    empty = PointsSystem()
    return [
        replace(res, race_points=_race_points(res, tables.get(res.race_id, empty)))
        for res in results
    ]


def total_race_points(results: Iterable[RaceResult]) -> Dict[int, float]:
    """Sum race points per driver, keeping first-seen driver order."""
    totals: Dict[int, float] = {}
    for res in results:
        totals[res.driver_id] = totals.get(res.driver_id, 0) + res.race_points
    return totals


__all__ = [
    "award_race_points",
    "award_round_points",
    "total_race_points",
]
