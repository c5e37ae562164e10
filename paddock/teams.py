"""Team championship points for a round."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .models import RaceResult, RoundConfig

log = logging.getLogger(__name__)


def team_standings(config: RoundConfig, results: Iterable[RaceResult]) -> Optional[Dict[str, Any]]:
    """Sum race points per team.

    Each result of a driver with a team counts towards that team; drivers
    without a team are skipped. When ``teams_drivers_for_calculation`` is set
    only that many best-scoring results count per team. Teams level on points
    are ordered by name.

    Returns:
        ``{"standings": [{"position", "team_id", "total_points",
        "race_result_ids"}, ...]}``, or None when the season has no team
        championship (or no teams).
    """
    if not config.team_championship_enabled or not config.teams:
        return None

    by_team: Dict[int, List[RaceResult]] = {}
    for res in results:
        team_id = config.driver_teams.get(res.driver_id)
        if team_id is None:
            continue
        by_team.setdefault(team_id, []).append(res)

    limit = config.teams_drivers_for_calculation
    rows: List[Dict[str, Any]] = []
    for team in config.teams:
        team_results = by_team.get(team.team_id)
        if not team_results:
            continue
        counted = sorted(team_results, key=lambda r: -r.race_points)
        if limit is not None and limit > 0:
            counted = counted[:limit]
        rows.append(
            {
                "team_id": team.team_id,
                "name": team.name,
                "total_points": sum(r.race_points for r in counted),
                "race_result_ids": [r.result_id for r in counted],
            }
        )

    rows.sort(key=lambda row: (-row["total_points"], row["name"]))
    standings = []
    for position, row in enumerate(rows, start=1):
        row.pop("name")
        standings.append(dict(position=position, **row))
    log.debug("team_standings round_id=%s teams=%d", config.round_id, len(standings))
    return {"standings": standings}


__all__ = ["team_standings"]
