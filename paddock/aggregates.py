"""Round-wide leaderboards for qualifying, race time and fastest lap."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .models import Race, RaceResult

log = logging.getLogger(__name__)


def _leaderboard(
    results: Iterable[RaceResult],
    time_of: Callable[[RaceResult], Optional[int]],
) -> List[Dict[str, Any]]:
    """Keep each driver's best positive time and rank ascending.

    Equal times keep the order the records were given in.
    """
    best: Dict[int, RaceResult] = {}
    times: Dict[int, int] = {}
    seen: Dict[int, int] = {}
    for idx, res in enumerate(results):
        time_ms = time_of(res)
        if time_ms is None or time_ms <= 0:
            continue
        if res.driver_id not in times or time_ms < times[res.driver_id]:
            best[res.driver_id] = res
            times[res.driver_id] = time_ms
            seen[res.driver_id] = idx

    ranked = sorted(best, key=lambda d: (times[d], seen[d]))
    return [
        {
            "position": position,
            "driver_id": driver_id,
            "race_id": best[driver_id].race_id,
            "race_result_id": best[driver_id].result_id,
            "time_ms": times[driver_id],
        }
        for position, driver_id in enumerate(ranked, start=1)
    ]


def aggregate(races: Sequence[Race], results: Iterable[RaceResult]) -> Dict[str, List[Dict[str, Any]]]:
    """Build the three cross-division leaderboards for a round.

    Qualifying uses qualifier lap times. Race time uses the final time
    (penalties included) of every non-DNF race finish. Fastest lap uses race
    lap times, DNF results included.
    """
    results = list(results)
    qualifiers = {race.race_id for race in races if race.is_qualifier}
    quali = [res for res in results if res.race_id in qualifiers]
    racing = [res for res in results if res.race_id not in qualifiers]

    outputs = {
        "qualifying_results": _leaderboard(quali, lambda r: r.lap_time_ms),
        "race_time_results": _leaderboard(
            (res for res in racing if not res.dnf), lambda r: r.final_race_time_ms
        ),
        "fastest_lap_results": _leaderboard(racing, lambda r: r.lap_time_ms),
    }
    log.debug(
        "aggregates qualifying=%d race_time=%d fastest_lap=%d",
        len(outputs["qualifying_results"]),
        len(outputs["race_time_results"]),
        len(outputs["fastest_lap_results"]),
    )
    return outputs


__all__ = ["aggregate"]
