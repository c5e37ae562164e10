"""Compute every stored output of a round from its races and results."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .aggregates import aggregate
from .errors import ConfigurationError, DataIntegrityError
from .models import BONUS_SCOPES, Race, RaceResult, RoundConfig
from .points import award_round_points
from .standings import build_standings
from .teams import team_standings
from .tiebreakers import validate_rules

log = logging.getLogger(__name__)

OUTPUT_KEYS = (
    "round_results",
    "qualifying_results",
    "race_time_results",
    "fastest_lap_results",
    "team_championship_results",
)


def validate_inputs(config: RoundConfig, races: Sequence[Race], results: Sequence[RaceResult]) -> None:
    """Raise before scoring if the configuration or the data cannot be trusted."""
    validate_rules(config.tiebreaker_rules)
    if config.effective_bonus_scope not in BONUS_SCOPES:
        raise ConfigurationError(f"Unknown bonus scope {config.effective_bonus_scope!r}")

    race_ids = set()
    for race in races:
        if race.race_id in race_ids:
            raise DataIntegrityError(f"Race {race.race_id} listed twice")
        race_ids.add(race.race_id)

    seen = set()
    for res in results:
        if res.race_id not in race_ids:
            raise DataIntegrityError(f"Result {res.result_id} references unknown race {res.race_id}")
        if config.driver_ids is not None and res.driver_id not in config.driver_ids:
            raise DataIntegrityError(
                f"Result {res.result_id} references driver {res.driver_id} outside the round"
            )
        pair = (res.race_id, res.driver_id)
        if pair in seen:
            raise DataIntegrityError(f"Driver {res.driver_id} has more than one result in race {res.race_id}")
        seen.add(pair)
        if res.position is not None and res.position < 1:
            raise DataIntegrityError(f"Result {res.result_id} has non-positive position {res.position}")

    if config.divisions_enabled:
        divisions: Dict[int, Optional[int]] = {}
        for res in results:
            division_id = divisions.setdefault(res.driver_id, res.division_id)
            if division_id != res.division_id:
                raise DataIntegrityError(
                    f"Driver {res.driver_id} is in division {division_id} and division {res.division_id}"
                )


def _divisions(results: Iterable[RaceResult]) -> List[Tuple[Optional[int], List[RaceResult]]]:
    groups: Dict[Optional[int], List[RaceResult]] = {}
    for res in results:
        groups.setdefault(res.division_id, []).append(res)
    return sorted(groups.items(), key=lambda item: (item[0] is not None, item[0] or 0))


def compute_round(
    config: RoundConfig,
    races: Iterable[Race],
    results: Iterable[RaceResult],
) -> Dict[str, Any]:
    """Score a round and build every stored output.

    Args:
        config: Round and season settings.
        races: Every race in the round, qualifiers included.
        results: Every result recorded for those races, in record order.

    Returns:
        Dictionary keyed by ``OUTPUT_KEYS``. Nothing is returned for
        partially valid input: validation errors raise before scoring.
    """
    races = list(races)
    results = list(results)
    validate_inputs(config, races, results)

    scored = award_round_points(races, results)
    if config.divisions_enabled:
        round_results: Dict[str, Any] = {
            "divisions": [
                {"division_id": division_id, **build_standings(config, races, group)}
                for division_id, group in _divisions(scored)
            ]
        }
    else:
        round_results = build_standings(config, races, scored)

    outputs = {"round_results": round_results}
    outputs.update(aggregate(races, scored))
    outputs["team_championship_results"] = team_standings(config, scored)
    log.info(
        "compute_round round_id=%s races=%d results=%d divisions=%s",
        config.round_id, len(races), len(results), config.divisions_enabled,
    )
    return outputs


def inputs_from_rows(data: Mapping[str, Any]) -> Tuple[RoundConfig, List[Race], List[RaceResult]]:
    """Turn ``{"round": {...}, "races": [...], "results": [...]}`` into engine inputs."""
    config = RoundConfig.from_row(data.get("round") or {})
    races = [Race.from_row(row) for row in data.get("races") or []]
    results = [RaceResult.from_row(row) for row in data.get("results") or []]
    return config, races, results


def canonical_json(outputs: Mapping[str, Any]) -> str:
    """Serialise outputs so identical inputs give identical bytes."""
    return json.dumps(outputs, sort_keys=True, separators=(",", ":"))


__all__ = [
    "OUTPUT_KEYS",
    "validate_inputs",
    "compute_round",
    "inputs_from_rows",
    "canonical_json",
]
