"""Plain data records consumed by the round results engine.

Rows arrive from the datastore (or JSON request bodies) as dictionaries; the
``from_row`` constructors coerce and validate them once so the scoring code
can rely on well-typed values.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigurationError, DataIntegrityError

BONUS_SCOPES = ("race", "round")


def _number(value: Any, what: str) -> float:
    """Return ``value`` as an int when integral, otherwise a float."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(f"{what} must be numeric, got {value!r}")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ConfigurationError(f"{what} must be numeric, got {value!r}") from None
    if not isinstance(value, (int, float)):
        raise ConfigurationError(f"{what} must be numeric, got {value!r}")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _position_key(key: Any) -> int:
    if isinstance(key, bool):
        raise ConfigurationError(f"Invalid points table position {key!r}")
    try:
        position = int(str(key).strip())
    except ValueError:
        raise ConfigurationError(f"Invalid points table position {key!r}") from None
    if position < 1 or str(position) != str(key).strip():
        raise ConfigurationError(f"Invalid points table position {key!r}")
    return position


def _build_lookup(entries: Any, key_field: str, value_field: str) -> Dict[int, float]:
    """Build a position lookup from a mapping or a list of settings entries.

    Accepts ``{"1": 25, "2": 18}`` as stored by the league admin and the
    list form ``[{"position": 1, "points": 25}, ...]``.
    """
    lookup: Dict[int, float] = {}
    if isinstance(entries, Mapping):
        items: Iterable[Tuple[Any, Any]] = entries.items()
    elif isinstance(entries, (list, tuple)):
        pairs = []
        for item in entries:
            if not isinstance(item, Mapping) or key_field not in item or value_field not in item:
                raise ConfigurationError(
                    f"Points table entries need '{key_field}' and '{value_field}', got {item!r}"
                )
            pairs.append((item[key_field], item[value_field]))
        items = pairs
    else:
        raise ConfigurationError(f"Points table must be a mapping or list, got {type(entries).__name__}")

    for key, value in items:
        position = _position_key(key)
        points = _number(value, f"Points for position {position}")
        if points < 0:
            raise ConfigurationError(f"Points for position {position} must not be negative")
        if position in lookup:
            raise ConfigurationError(f"Position {position} appears twice in points table")
        lookup[position] = points
    return lookup


@dataclass(frozen=True)
class PointsSystem:
    """Position -> points table. Positions missing from the table score 0."""

    table: Dict[int, float] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "PointsSystem":
        if value is None or value == "":
            return cls()
        if isinstance(value, PointsSystem):
            return value
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                raise ConfigurationError("Points table is not valid JSON") from None
            if value is None:
                return cls()
        lookup = _build_lookup(value, "position", "points")
        return cls(dict(sorted(lookup.items())))

    def points_for(self, position: Optional[int]) -> float:
        if position is None:
            return 0
        return self.table.get(position, 0)

    def to_dict(self) -> Dict[str, float]:
        return {str(pos): pts for pos, pts in sorted(self.table.items())}


def _optional_int(value: Any, what: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise DataIntegrityError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DataIntegrityError(f"{what} must be an integer, got {value!r}") from None


def _required_int(row: Mapping[str, Any], key: str) -> int:
    value = _optional_int(row.get(key), key)
    if value is None:
        raise DataIntegrityError(f"Missing {key} in {dict(row)!r}")
    return value


def _bonus(value: Any, what: str) -> float:
    if value is None or value == "":
        return 0
    points = _number(value, what)
    if points < 0:
        raise ConfigurationError(f"{what} must not be negative")
    return points


@dataclass(frozen=True)
class Race:
    """A timed session inside a round: a qualifier or a points race."""

    race_id: int
    race_number: Optional[int] = None
    is_qualifier: bool = False
    points_system: PointsSystem = field(default_factory=PointsSystem)
    fastest_lap_bonus: float = 0
    fastest_lap_top_10: bool = False
    pole_bonus: float = 0
    pole_top_10: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Race":
        return cls(
            race_id=_required_int(row, "race_id"),
            race_number=_optional_int(row.get("race_number"), "race_number"),
            is_qualifier=bool(row.get("is_qualifier")),
            points_system=PointsSystem.from_value(row.get("points_system")),
            fastest_lap_bonus=_bonus(row.get("fastest_lap_bonus"), "fastest_lap_bonus"),
            fastest_lap_top_10=bool(row.get("fastest_lap_top_10")),
            pole_bonus=_bonus(row.get("pole_bonus"), "pole_bonus"),
            pole_top_10=bool(row.get("pole_top_10")),
        )

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.race_number or 0, self.race_id)


@dataclass(frozen=True)
class RaceResult:
    """One driver's record in one race.

    ``lap_time_ms`` is the best timed lap (the qualifying time for a
    qualifier); ``race_time_ms`` is the full race time before penalties.
    """

    result_id: int
    race_id: int
    driver_id: int
    position: Optional[int] = None
    dnf: bool = False
    lap_time_ms: Optional[int] = None
    race_time_ms: Optional[int] = None
    penalties_ms: int = 0
    has_fastest_lap: bool = False
    has_pole: bool = False
    positions_gained: Optional[int] = None
    division_id: Optional[int] = None
    race_points: float = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RaceResult":
        return cls(
            result_id=_required_int(row, "result_id"),
            race_id=_required_int(row, "race_id"),
            driver_id=_required_int(row, "driver_id"),
            position=_optional_int(row.get("position"), "position"),
            dnf=bool(row.get("dnf")),
            lap_time_ms=_optional_int(row.get("lap_time_ms"), "lap_time_ms"),
            race_time_ms=_optional_int(row.get("race_time_ms"), "race_time_ms"),
            penalties_ms=_optional_int(row.get("penalties_ms"), "penalties_ms") or 0,
            has_fastest_lap=bool(row.get("has_fastest_lap")),
            has_pole=bool(row.get("has_pole")),
            positions_gained=_optional_int(row.get("positions_gained"), "positions_gained"),
            division_id=_optional_int(row.get("division_id"), "division_id"),
        )

    @property
    def final_race_time_ms(self) -> Optional[int]:
        if self.race_time_ms is None:
            return None
        return self.race_time_ms + (self.penalties_ms or 0)


@dataclass(frozen=True)
class Team:
    team_id: int
    name: str = ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Team":
        return cls(team_id=_required_int(row, "team_id"), name=str(row.get("name") or ""))


def _driver_teams(value: Any) -> Dict[int, int]:
    """Accept ``{driver_id: team_id}`` or ``[{"driver_id", "team_id"}, ...]``.

    Drivers without a team (``team_id`` null) are left out.
    """
    if not value:
        return {}
    if isinstance(value, Mapping):
        pairs = [{"driver_id": k, "team_id": v} for k, v in value.items()]
    else:
        pairs = list(value)
    teams: Dict[int, int] = {}
    for row in pairs:
        team_id = _optional_int(row.get("team_id"), "team_id")
        if team_id is not None:
            teams[_required_int(row, "driver_id")] = team_id
    return teams


@dataclass(frozen=True)
class RoundConfig:
    """Round and season settings that drive scoring.

    ``bonus_scope`` left unset follows the round points switch: bonuses are
    awarded once per round when round points are enabled and once per race
    otherwise.
    """

    round_id: Optional[int] = None
    round_points_enabled: bool = False
    points_system: Optional[PointsSystem] = None
    fastest_lap_bonus: float = 0
    fastest_lap_top_10: bool = False
    pole_bonus: float = 0
    pole_top_10: bool = False
    bonus_scope: Optional[str] = None
    divisions_enabled: bool = False
    tiebreaker_rules: Tuple[str, ...] = ()
    driver_ids: Optional[FrozenSet[int]] = None
    team_championship_enabled: bool = False
    teams: Tuple[Team, ...] = ()
    driver_teams: Dict[int, int] = field(default_factory=dict)
    teams_drivers_for_calculation: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RoundConfig":
        table = row.get("points_system")
        rules = row.get("tiebreaker_rules") or ()
        if isinstance(rules, str):
            try:
                rules = json.loads(rules)
            except ValueError:
                raise ConfigurationError("Tiebreaker rules are not valid JSON") from None
        roster = row.get("driver_ids")
        if roster is not None:
            roster = frozenset(_optional_int(d, "driver_ids") for d in roster) - {None}
        return cls(
            round_id=_optional_int(row.get("round_id"), "round_id"),
            round_points_enabled=bool(row.get("round_points_enabled")),
            points_system=PointsSystem.from_value(table) if table not in (None, "") else None,
            fastest_lap_bonus=_bonus(row.get("fastest_lap_bonus"), "fastest_lap_bonus"),
            fastest_lap_top_10=bool(row.get("fastest_lap_top_10")),
            pole_bonus=_bonus(row.get("pole_bonus"), "pole_bonus"),
            pole_top_10=bool(row.get("pole_top_10")),
            bonus_scope=row.get("bonus_scope") or None,
            divisions_enabled=bool(row.get("divisions_enabled")),
            tiebreaker_rules=tuple(_rule_slug(r) for r in rules),
            driver_ids=roster,
            team_championship_enabled=bool(row.get("team_championship_enabled")),
            teams=tuple(Team.from_row(t) for t in row.get("teams") or ()),
            driver_teams=_driver_teams(row.get("driver_teams")),
            teams_drivers_for_calculation=_optional_int(
                row.get("teams_drivers_for_calculation"), "teams_drivers_for_calculation"
            ),
        )

    @property
    def effective_bonus_scope(self) -> str:
        if self.bonus_scope:
            return self.bonus_scope
        return "round" if self.round_points_enabled else "race"


def _rule_slug(rule: Any) -> str:
    # Season settings store either bare slugs or {"slug": ..., "order": ...}
    if isinstance(rule, Mapping):
        rule = rule.get("slug") or rule.get("rule_slug")
    if not isinstance(rule, str) or not rule.strip():
        raise ConfigurationError(f"Invalid tiebreaker rule {rule!r}")
    return rule.strip()


def ordered_races(races: Iterable[Race]) -> List[Race]:
    return sorted(races, key=lambda r: r.sort_key)


def first_seen(results: Iterable[RaceResult]) -> Dict[int, int]:
    """Return driver_id -> index of the driver's first result record."""
    order: Dict[int, int] = {}
    for idx, res in enumerate(results):
        order.setdefault(res.driver_id, idx)
    return order


__all__ = [
    "BONUS_SCOPES",
    "PointsSystem",
    "Race",
    "RaceResult",
    "RoundConfig",
    "Team",
    "ordered_races",
    "first_seen",
]
