"""DNF policy: who counts as having completed a round."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from .models import Race, RaceResult


def scoring_races(races: Iterable[Race]) -> List[Race]:
    """Return the races that decide round completion.

    Qualifiers only count when the round has no race session at all.
    """
    races = list(races)
    sessions = [race for race in races if not race.is_qualifier]
    return sessions or races


def is_single_race_round(races: Iterable[Race]) -> bool:
    return len(scoring_races(races)) == 1


def _driver_results(driver_id: int, races: Sequence[Race], results: Iterable[RaceResult]) -> List[RaceResult]:
    race_ids = {race.race_id for race in scoring_races(races)}
    return [res for res in results if res.driver_id == driver_id and res.race_id in race_ids]


def is_round_complete(driver_id: int, races: Iterable[Race], results: Iterable[RaceResult]) -> bool:
    """Return True if the driver finished at least one of the round's races.

    A driver who retired from every race they entered (in a single-race
    round: from the race) is not round-complete and earns no round points.
    A DNF in some but not all races leaves the driver eligible.
    """
    races = list(races)
    return any(not res.dnf for res in _driver_results(driver_id, races, results))


def dnf_only(driver_id: int, races: Iterable[Race], results: Iterable[RaceResult]) -> bool:
    """True when the driver took part in the round's races and DNF'd all of them."""
    races = list(races)
    entered = _driver_results(driver_id, races, results)
    return bool(entered) and all(res.dnf for res in entered)


__all__ = ["scoring_races", "is_single_race_round", "is_round_complete", "dnf_only"]
