"""Pole position and fastest lap bonus points."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import ConfigurationError
from .models import BONUS_SCOPES, Race, RaceResult, RoundConfig

log = logging.getLogger(__name__)

TOP_POSITIONS_LIMIT = 10


def _in_top(position: Optional[int]) -> bool:
    return position is not None and 1 <= position <= TOP_POSITIONS_LIMIT


def _first_flagged(results: Iterable[RaceResult], flag: str) -> Optional[RaceResult]:
    """Earliest recorded, non-DNF result carrying ``flag``."""
    for res in results:
        if getattr(res, flag) and not res.dnf:
            return res
    return None


def _fastest(results: Iterable[RaceResult]) -> Optional[RaceResult]:
    """Result with the lowest positive lap time; ties go to the earlier record."""
    best: Optional[RaceResult] = None
    for res in results:
        if not res.lap_time_ms or res.lap_time_ms <= 0:
            continue
        if best is None or res.lap_time_ms < best.lap_time_ms:
            best = res
    return best


def best_classified_positions(races: Sequence[Race], results: Iterable[RaceResult]) -> Dict[int, int]:
    """Best finishing position per driver across the round's points races."""
    sessions = {race.race_id for race in races if not race.is_qualifier}
    best: Dict[int, int] = {}
    for res in results:
        if res.race_id not in sessions or res.dnf or res.position is None:
            continue
        if res.driver_id not in best or res.position < best[res.driver_id]:
            best[res.driver_id] = res.position
    return best


def _race_scope(races: Sequence[Race], results: List[RaceResult], awards: Dict[int, Dict[str, float]]) -> None:
    # Pole is checked against the sitter's best race finish, not the grid slot
    finishes = best_classified_positions(races, results)
    has_races = any(not race.is_qualifier for race in races)
    for race in races:
        race_results = [res for res in results if res.race_id == race.race_id]
        if race.is_qualifier:
            bonus, top_10, flag, key = race.pole_bonus, race.pole_top_10, "has_pole", "pole_bonus"
        else:
            bonus, top_10, flag, key = (
                race.fastest_lap_bonus, race.fastest_lap_top_10, "has_fastest_lap", "fastest_lap_bonus",
            )
        if not bonus:
            continue
        winner = _first_flagged(race_results, flag)
        if winner is None:
            continue
        position = winner.position
        if race.is_qualifier and has_races:
            position = finishes.get(winner.driver_id)
        if top_10 and not _in_top(position):
            log.debug("bonus_dropped race_id=%s driver_id=%s bonus=%s position=%s",
                      race.race_id, winner.driver_id, key, position)
            continue
        awards[winner.driver_id][key] += bonus


def _round_scope(
    config: RoundConfig,
    races: Sequence[Race],
    results: List[RaceResult],
    positions: Mapping[int, int],
    awards: Dict[int, Dict[str, float]],
) -> None:
    qualifiers = {race.race_id for race in races if race.is_qualifier}
    candidates = (
        (config.pole_bonus, config.pole_top_10, "pole_bonus",
         [res for res in results if res.race_id in qualifiers]),
        (config.fastest_lap_bonus, config.fastest_lap_top_10, "fastest_lap_bonus",
         [res for res in results if res.race_id not in qualifiers]),
    )
    for bonus, top_10, key, pool in candidates:
        if not bonus:
            continue
        winner = _fastest(pool)
        if winner is None:
            continue
        if top_10 and not _in_top(positions.get(winner.driver_id)):
            log.debug("bonus_dropped round_id=%s driver_id=%s bonus=%s position=%s",
                      config.round_id, winner.driver_id, key, positions.get(winner.driver_id))
            continue
        awards[winner.driver_id][key] += bonus


def apply_bonuses(
    config: RoundConfig,
    races: Sequence[Race],
    results: Iterable[RaceResult],
    positions: Optional[Mapping[int, int]] = None,
) -> Dict[int, Dict[str, float]]:
    """Work out pole and fastest lap bonus points for every driver.

    Args:
        config: Round settings; ``effective_bonus_scope`` picks per-race
            or per-round awards.
        races: The round's races.
        results: All results for the drivers being scored.
        positions: Round positions used for the top-10 restriction in round
            scope. Defaults to each driver's best classified race finish.

    Returns:
        ``{driver_id: {"pole_bonus": x, "fastest_lap_bonus": y}}`` for every
        driver that has a result. Drivers without an award get zeros.
    """
    results = list(results)
    scope = config.effective_bonus_scope
    if scope not in BONUS_SCOPES:
        raise ConfigurationError(f"Unknown bonus scope {scope!r}")

    awards: Dict[int, Dict[str, float]] = {}
    for res in results:
        awards.setdefault(res.driver_id, {"pole_bonus": 0, "fastest_lap_bonus": 0})

    if scope == "race":
        _race_scope(races, results, awards)
    else:
        if positions is None:
            positions = best_classified_positions(races, results)
        _round_scope(config, races, results, positions, awards)
    return awards


__all__ = ["TOP_POSITIONS_LIMIT", "apply_bonuses", "best_classified_positions"]
