"""Round standings: rank drivers and award round points.

Two strategies exist. ``points_aggregate`` ranks on the race points each
driver collected plus bonuses. ``position_fallback`` is used for rounds that
award round points but have no per-race points configured: drivers are then
ranked on where they finished the main race and round points are read from the
round's table.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .bonuses import apply_bonuses, best_classified_positions
from .dnf import dnf_only, is_round_complete
from .errors import ConfigurationError
from .models import PointsSystem, Race, RaceResult, RoundConfig, first_seen, ordered_races
from .points import total_race_points
from .tiebreakers import TieContext, rank_drivers, validate_rules

log = logging.getLogger(__name__)

POINTS_AGGREGATE = "points_aggregate"
POSITION_FALLBACK = "position_fallback"


def select_strategy(config: RoundConfig, results: Iterable[RaceResult]) -> str:
    """Pick the ranking strategy for a round.

    Position fallback applies only when round points are enabled and no
    driver earned a single race point.
    """
    if config.round_points_enabled and all(pts == 0 for pts in total_race_points(results).values()):
        return POSITION_FALLBACK
    return POINTS_AGGREGATE


def main_race(races: Iterable[Race]) -> Optional[Race]:
    """The points race with the highest race number, if the round has one."""
    sessions = [race for race in ordered_races(races) if not race.is_qualifier]
    return sessions[-1] if sessions else None


def _positions_gained(results: Iterable[RaceResult]) -> Dict[int, int]:
    gained: Dict[int, int] = {}
    for res in results:
        gained.setdefault(res.driver_id, 0)
        if res.positions_gained is not None:
            gained[res.driver_id] += res.positions_gained
    return gained


def _standing_rows(
    ranked: Sequence[int],
    races: Sequence[Race],
    results: Sequence[RaceResult],
    race_points: Mapping[int, float],
    round_points: Mapping[int, float],
    bonuses: Mapping[int, Mapping[str, float]],
) -> List[Dict[str, Any]]:
    gained = _positions_gained(results)
    rows: List[Dict[str, Any]] = []
    for position, driver_id in enumerate(ranked, start=1):
        race_pts = race_points.get(driver_id, 0)
        round_pts = round_points.get(driver_id, 0)
        pole = bonuses.get(driver_id, {}).get("pole_bonus", 0)
        fastest = bonuses.get(driver_id, {}).get("fastest_lap_bonus", 0)
        rows.append(
            {
                "driver_id": driver_id,
                "position": position,
                "race_points": race_pts,
                "round_points": round_pts,
                "pole_bonus": pole,
                "fastest_lap_bonus": fastest,
                "total_points": race_pts + round_pts + pole + fastest,
                "positions_gained": gained.get(driver_id, 0),
                "dnf": dnf_only(driver_id, races, results),
            }
        )
    return rows


def points_aggregate_standings(
    config: RoundConfig,
    races: Sequence[Race],
    results: Sequence[RaceResult],
) -> Dict[str, Any]:
    """Rank on summed race points plus bonuses.

    Bonus eligibility for round-scope top-10 restrictions is judged on a
    provisional ranking by race points alone.
    """
    context = TieContext(races, results)
    rules = config.tiebreaker_rules
    race_points = total_race_points(results)

    provisional, _ = rank_drivers({d: -pts for d, pts in race_points.items()}, rules, context)
    positions = {driver_id: idx for idx, driver_id in enumerate(provisional, start=1)}
    bonuses = apply_bonuses(config, races, results, positions=positions)

    scores = {
        d: pts + bonuses[d]["pole_bonus"] + bonuses[d]["fastest_lap_bonus"]
        for d, pts in race_points.items()
    }
    ranked, resolutions = rank_drivers({d: -score for d, score in scores.items()}, rules, context)

    round_points: Dict[int, float] = {}
    if config.round_points_enabled:
        table = config.points_system or PointsSystem()
        for position, driver_id in enumerate(ranked, start=1):
            if is_round_complete(driver_id, races, results):
                round_points[driver_id] = table.points_for(position)

    return {
        "standings": _standing_rows(ranked, races, results, race_points, round_points, bonuses),
        "tiebreakers": [res.to_dict() for res in resolutions],
    }


def position_fallback_standings(
    config: RoundConfig,
    races: Sequence[Race],
    results: Sequence[RaceResult],
) -> Dict[str, Any]:
    """Rank on finishing positions and award round points by rank.

    Round-complete drivers come first, ordered by their main race finish;
    drivers without a classified main race finish follow by their best
    classified finish elsewhere in the round. Drivers who did not complete
    the round are ranked after them on the same keys and score no round
    points.
    """
    table = config.points_system
    if table is None or not table.table:
        raise ConfigurationError(
            f"Round {config.round_id} awards round points but has no points system configured"
        )

    main = main_race(races)
    main_positions: Dict[int, int] = {}
    if main is not None:
        for res in results:
            if res.race_id == main.race_id and not res.dnf and res.position is not None:
                main_positions.setdefault(res.driver_id, res.position)
    best = best_classified_positions(races, results)

    complete = {d: is_round_complete(d, races, results) for d in first_seen(results)}
    keys = {}
    for driver_id, done in complete.items():
        main_pos = main_positions.get(driver_id)
        if main_pos is not None:
            keys[driver_id] = (0 if done else 1, 0, main_pos, 0, 0)
        else:
            best_pos = best.get(driver_id)
            keys[driver_id] = (0 if done else 1, 1, 0, 0 if best_pos is not None else 1, best_pos or 0)

    context = TieContext(races, results)
    ranked, resolutions = rank_drivers(keys, config.tiebreaker_rules, context)
    positions = {driver_id: idx for idx, driver_id in enumerate(ranked, start=1)}
    bonuses = apply_bonuses(config, races, results, positions=positions)
    round_points = {
        driver_id: table.points_for(position) if complete[driver_id] else 0
        for driver_id, position in positions.items()
    }

    return {
        "standings": _standing_rows(ranked, races, results, total_race_points(results), round_points, bonuses),
        "tiebreakers": [res.to_dict() for res in resolutions],
    }


STRATEGIES = {
    POINTS_AGGREGATE: points_aggregate_standings,
    POSITION_FALLBACK: position_fallback_standings,
}


def build_standings(
    config: RoundConfig,
    races: Sequence[Race],
    results: Iterable[RaceResult],
) -> Dict[str, Any]:
    """Compute standings for one group of drivers.

    Args:
        config: Round settings.
        races: The round's races.
        results: Results that already carry ``race_points``.

    Returns:
        ``{"standings": [...], "tiebreakers": [...]}`` with contiguous
        positions starting at 1.
    """
    results = list(results)
    validate_rules(config.tiebreaker_rules)
    if not results:
        return {"standings": [], "tiebreakers": []}
    strategy = select_strategy(config, results)
    log.debug("standings round_id=%s strategy=%s drivers=%d",
              config.round_id, strategy, len(first_seen(results)))
    return STRATEGIES[strategy](config, list(races), results)


__all__ = [
    "POINTS_AGGREGATE",
    "POSITION_FALLBACK",
    "STRATEGIES",
    "select_strategy",
    "main_race",
    "points_aggregate_standings",
    "position_fallback_standings",
    "build_standings",
]
