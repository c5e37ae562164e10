"""Tiebreaker rules for drivers level on round score.

Each rule maps every driver in a tied group to one comparable value where
lower sorts first; ``None`` means the driver has no data for the rule and
sorts after everyone who does. Rules are tried in the season's configured
order. A rule that splits the group only partially hands each sub-group on
to the remaining rules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple

from .errors import ConfigurationError
from .models import Race, RaceResult, first_seen

log = logging.getLogger(__name__)

_NO_RESULT = float("inf")


@dataclass
class TieContext:
    """Everything a rule may look at: the round's races and scored results."""

    races: Sequence[Race]
    results: Sequence[RaceResult]
    order: Dict[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.order:
            self.order = first_seen(self.results)
        self._qualifiers = {r.race_id for r in self.races if r.is_qualifier}
        self._race_one = {
            r.race_id for r in self.races if not r.is_qualifier and r.race_number == 1
        }

    def is_qualifier(self, res: RaceResult) -> bool:
        return res.race_id in self._qualifiers

    def is_race_one(self, res: RaceResult) -> bool:
        return res.race_id in self._race_one

    def results_for(self, driver_ids: Iterable[int]) -> List[RaceResult]:
        wanted = set(driver_ids)
        return [res for res in self.results if res.driver_id in wanted]


@dataclass
class TieResolution:
    """How one tied group was ordered."""

    driver_ids: List[int]
    order: List[int]
    rules_applied: List[str]
    resolved: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "driver_ids": list(self.order),
            "rules_applied": list(self.rules_applied),
            "resolved": self.resolved,
        }


RuleFn = Callable[[Sequence[int], TieContext], Dict[int, Any]]


def _highest_qualifying_position(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    best: Dict[int, Any] = {d: None for d in group}
    for res in ctx.results_for(group):
        if not ctx.is_qualifier(res) or res.position is None:
            continue
        current = best[res.driver_id]
        if current is None or res.position < current:
            best[res.driver_id] = res.position
    return best


def _race_one_best_result(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    best: Dict[int, Any] = {d: None for d in group}
    for res in ctx.results_for(group):
        if ctx.is_race_one(res) and res.position is not None:
            current = best[res.driver_id]
            if current is None or res.position < current:
                best[res.driver_id] = res.position
    return best


def _best_result_all_races(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    """Countback: best finish, then second best, and so on.

    A driver with fewer classified finishes loses a comparison the other
    driver has a result for.
    """
    finishes: Dict[int, List[int]] = {d: [] for d in group}
    for res in ctx.results_for(group):
        if ctx.is_qualifier(res) or res.position is None:
            continue
        finishes[res.driver_id].append(res.position)
    depth = max((len(v) for v in finishes.values()), default=0)
    if depth == 0:
        return {d: None for d in group}
    keys: Dict[int, Any] = {}
    for driver_id, positions in finishes.items():
        if not positions:
            keys[driver_id] = None
            continue
        padded = sorted(positions) + [_NO_RESULT] * (depth - len(positions))
        keys[driver_id] = tuple(padded)
    return keys


def _most_race_wins(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    wins: Dict[int, int] = {d: 0 for d in group}
    for res in ctx.results_for(group):
        if not ctx.is_qualifier(res) and not res.dnf and res.position == 1:
            wins[res.driver_id] += 1
    return {d: -count for d, count in wins.items()}


def _best_single_race_points(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    best: Dict[int, Any] = {d: 0 for d in group}
    for res in ctx.results_for(group):
        if res.race_points > best[res.driver_id]:
            best[res.driver_id] = res.race_points
    return {d: -pts for d, pts in best.items()}


def _head_to_head(group: Sequence[int], ctx: TieContext) -> Dict[int, Any]:
    """Races in which a driver finished ahead of another group member."""
    by_race: Dict[int, Dict[int, int]] = {}
    for res in ctx.results_for(group):
        if ctx.is_qualifier(res) or res.dnf or res.position is None:
            continue
        by_race.setdefault(res.race_id, {})[res.driver_id] = res.position
    wins: Dict[int, int] = {d: 0 for d in group}
    for positions in by_race.values():
        for driver_id, pos in positions.items():
            wins[driver_id] += sum(1 for other, opos in positions.items() if other != driver_id and pos < opos)
    return {d: -count for d, count in wins.items()}


RULES: Dict[str, RuleFn] = {
    "highest-qualifying-position": _highest_qualifying_position,
    "race-1-best-result": _race_one_best_result,
    "best-result-all-races": _best_result_all_races,
    "most-race-wins": _most_race_wins,
    "best-single-race-points": _best_single_race_points,
    "head-to-head": _head_to_head,
}


def validate_rules(rules: Iterable[str]) -> Tuple[str, ...]:
    """Return ``rules`` as a tuple, rejecting slugs without an implementation."""
    rules = tuple(rules)
    unknown = [slug for slug in rules if slug not in RULES]
    if unknown:
        raise ConfigurationError(f"Unknown tiebreaker rule(s): {', '.join(unknown)}")
    return rules


def _buckets(group: Sequence[int], keys: Mapping[int, Any]) -> List[List[int]]:
    """Split ``group`` into runs of equal key, best first, missing keys last."""
    present = sorted({keys[d] for d in group if keys[d] is not None})
    out = [[d for d in group if keys[d] == value and keys[d] is not None] for value in present]
    missing = [d for d in group if keys[d] is None]
    if missing:
        out.append(missing)
    return out


def _order_group(
    group: List[int],
    rules: Sequence[str],
    ctx: TieContext,
    applied: List[str],
) -> Tuple[List[int], bool]:
    if len(group) < 2:
        return list(group), True
    for idx, slug in enumerate(rules):
        buckets = _buckets(group, RULES[slug](group, ctx))
        if len(buckets) == 1:
            continue
        if slug not in applied:
            applied.append(slug)
        ordered: List[int] = []
        resolved = True
        for bucket in buckets:
            sub, ok = _order_group(bucket, rules[idx + 1:], ctx, applied)
            ordered.extend(sub)
            resolved = resolved and ok
        return ordered, resolved
    return sorted(group, key=lambda d: ctx.order.get(d, len(ctx.order))), False


def resolve_ties(tied_driver_ids: Sequence[int], rules: Sequence[str], context: TieContext) -> TieResolution:
    """Order drivers that share an identical primary score.

    When every rule is exhausted the remaining drivers keep the order of their
    first result record in the input.
    """
    rules = validate_rules(rules)
    group = sorted(dict.fromkeys(tied_driver_ids), key=lambda d: context.order.get(d, len(context.order)))
    applied: List[str] = []
    order, resolved = _order_group(group, rules, context, applied)
    log.debug(
        "tiebreak drivers=%s order=%s rules=%s resolved=%s",
        list(tied_driver_ids), order, applied, resolved,
    )
    return TieResolution(driver_ids=list(tied_driver_ids), order=order, rules_applied=applied, resolved=resolved)


def rank_drivers(
    keys: Mapping[int, Any],
    rules: Sequence[str],
    context: TieContext,
) -> Tuple[List[int], List[TieResolution]]:
    """Sort drivers by ``keys`` (lower first) and break exact ties.

    Only drivers whose keys are identical are handed to the resolver.
    """
    drivers = sorted(keys, key=lambda d: (keys[d], context.order.get(d, len(context.order))))
    ranked: List[int] = []
    resolutions: List[TieResolution] = []
    idx = 0
    while idx < len(drivers):
        end = idx + 1
        while end < len(drivers) and keys[drivers[end]] == keys[drivers[idx]]:
            end += 1
        group = drivers[idx:end]
        if len(group) > 1:
            resolution = resolve_ties(group, rules, context)
            resolutions.append(resolution)
            ranked.extend(resolution.order)
        else:
            ranked.extend(group)
        idx = end
    return ranked, resolutions


__all__ = [
    "RULES",
    "TieContext",
    "TieResolution",
    "validate_rules",
    "resolve_ties",
    "rank_drivers",
]
