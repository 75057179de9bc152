"""Greedy equity assignment of open activity slots.

Each activity belongs to an equity group (its own private group unless one is
set). A worker's cumulative count per group, seeded from history, drives the
choice: the eligible candidate with the lowest count divided by work rate wins,
then the lowest number of slots already taken this week, then the injected
tie-breaker.

Two passes, in a fixed order so results are reproducible for a given
tie-breaker:
1. Half-day activities, in declaration order, slot by slot in (date, period)
   order. Public holidays are never auto-filled.
2. Week-granularity activities: one worker per activity for the whole week.

This is a local greedy heuristic, not an optimiser.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional, Sequence

from constants import CUSTOM_GROUP_PREFIX, EQUITY_SCORE_TOLERANCE, WORKFLOW_EQUITY_GROUP
from eligibility import is_available_for_week, is_blocked, is_eligible, is_excluded_half_day, work_rate
from logger import get_logger
from models import ActivityDefinition, Granularity, Period, ScheduleSlot, ShiftHistory, Unavailability, Worker
from utils import public_holiday

logger = get_logger('equity')

TieBreaker = Callable[[Sequence[Worker]], Worker]


class RandomTieBreaker:
    """Uniform pick among tied candidates from a seedable source."""

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random(seed)

    def __call__(self, candidates: Sequence[Worker]) -> Worker:
        return self._rng.choice(list(candidates))


def first_candidate(candidates: Sequence[Worker]) -> Worker:
    """Deterministic tie-break: the first tied worker in roster order."""
    return candidates[0]


def equity_group_of(activity: ActivityDefinition) -> str:
    return activity.equity_group or f"{CUSTOM_GROUP_PREFIX}{activity.id}"


def group_activities(activities: Iterable[ActivityDefinition]) -> dict[str, list[ActivityDefinition]]:
    """Activities bucketed by equity group, in declaration order."""
    groups: dict[str, list[ActivityDefinition]] = {}
    for activity in activities:
        groups.setdefault(equity_group_of(activity), []).append(activity)
    return groups


@dataclass
class EquityState:
    """Running fairness tallies threaded through one generation pass.

    scores: worker id -> equity group -> cumulative count
    week_load: worker id -> slots taken during the current week (tie-break only)
    """
    scores: dict[str, dict[str, int]] = field(default_factory=dict)
    week_load: dict[str, int] = field(default_factory=dict)

    @classmethod
    def seed(cls, workers: Iterable[Worker], activities: Iterable[ActivityDefinition],
             history: Optional[ShiftHistory] = None) -> "EquityState":
        """Sum each worker's per-activity history into group totals."""
        history = history or {}
        groups = group_activities(activities)
        state = cls()
        for worker in workers:
            counts = history.get(worker.id, {})
            state.scores[worker.id] = {
                group: sum(counts.get(a.id, 0) for a in acts)
                for group, acts in groups.items()
            }
            state.week_load[worker.id] = 0
        return state

    def start_week(self) -> "EquityState":
        """Copy with the same cumulative scores and a fresh week counter."""
        return EquityState(
            scores={wid: dict(groups) for wid, groups in self.scores.items()},
            week_load={wid: 0 for wid in self.week_load},
        )

    def score(self, worker_id: str, group: str) -> int:
        return self.scores.get(worker_id, {}).get(group, 0)

    def weighted_score(self, worker: Worker, group: str) -> float:
        return self.score(worker.id, group) / work_rate(worker)

    def load(self, worker_id: str) -> int:
        return self.week_load.get(worker_id, 0)

    def record(self, worker_id: str, group: str, count_in_week: bool = True) -> None:
        groups = self.scores.setdefault(worker_id, {})
        groups[group] = groups.get(group, 0) + 1
        if count_in_week:
            self.week_load[worker_id] = self.week_load.get(worker_id, 0) + 1

    def to_dict(self) -> dict:
        return {
            "scores": {wid: dict(groups) for wid, groups in self.scores.items()},
            "week_load": dict(self.week_load),
        }


def _lowest(candidates: list[Worker], key: Callable[[Worker], float], tolerance: float = 0.0) -> list[Worker]:
    best = min(key(w) for w in candidates)
    return [w for w in candidates if key(w) - best <= tolerance]


def pick_half_day_candidate(
    candidates: list[Worker],
    group: str,
    state: EquityState,
    tie_breaker: TieBreaker,
    tolerance: float = EQUITY_SCORE_TOLERANCE,
) -> Worker:
    """Lowest weighted group score, then lowest week load, then tie-breaker."""
    tied = _lowest(candidates, lambda w: state.weighted_score(w, group), tolerance)
    tied = _lowest(tied, lambda w: state.load(w.id))
    return tied[0] if len(tied) == 1 else tie_breaker(tied)


def pick_week_candidate(
    candidates: list[Worker],
    group: str,
    state: EquityState,
    tie_breaker: TieBreaker,
    workflow_group: str = WORKFLOW_EQUITY_GROUP,
    tolerance: float = EQUITY_SCORE_TOLERANCE,
) -> Worker:
    """Lowest cumulative score; ties go straight to the tie-breaker.

    The workflow rotation compares raw counts; other week activities compare
    counts weighted by work rate.
    """
    if group == workflow_group:
        tied = _lowest(candidates, lambda w: state.score(w.id, group))
    else:
        tied = _lowest(candidates, lambda w: state.weighted_score(w, group), tolerance)
    return tied[0] if len(tied) == 1 else tie_breaker(tied)


def _fillable(slot: ScheduleSlot) -> bool:
    return not slot.is_closed and not slot.is_cancelled


def fill_auto_activities(
    slots: list[ScheduleSlot],
    activities: list[ActivityDefinition],
    workers: list[Worker],
    unavailabilities: list[Unavailability],
    state: Optional[EquityState] = None,
    tie_breaker: Optional[TieBreaker] = None,
    workflow_group: str = WORKFLOW_EQUITY_GROUP,
    tolerance: float = EQUITY_SCORE_TOLERANCE,
) -> tuple[list[ScheduleSlot], EquityState]:
    """Assign workers to the open activity slots of one week.

    Args:
        slots: Materialized slots of the week (template, meetings and activities)
        activities: Activity definitions, in declaration order
        workers: Current roster
        unavailabilities: Dated absences
        state: Equity tallies carried in (seeded from history); not mutated
        tie_breaker: Pick among exact ties; defaults to an unseeded RandomTieBreaker
        workflow_group: Equity group using the relaxed week rotation
        tolerance: Weighted scores closer than this to the best are tied

    Returns:
        (new slot list, equity state after this week)
    """
    filled = list(slots)
    state = (state or EquityState.seed(workers, activities)).start_week()
    tie_breaker = tie_breaker or RandomTieBreaker()

    if not workers:
        return filled, state

    known_ids = {w.id for w in workers}
    by_activity: dict[str, list[int]] = {}
    for index, slot in enumerate(filled):
        if slot.activity_id:
            by_activity.setdefault(slot.activity_id, []).append(index)
    for indices in by_activity.values():
        indices.sort(key=lambda i: (filled[i].date, filled[i].period is not Period.MORNING))

    # Pass 1: half-day activities
    for activity in activities:
        if activity.granularity is not Granularity.HALF_DAY:
            continue
        group = equity_group_of(activity)
        for index in by_activity.get(activity.id, []):
            slot = filled[index]
            holiday = public_holiday(slot.date)
            if holiday:
                logger.debug(f"{slot.id}: {holiday}, not auto-filled")
                continue
            if not _fillable(slot):
                continue
            if slot.assigned_worker_id:
                if slot.assigned_worker_id in known_ids:
                    state.record(slot.assigned_worker_id, group)
                continue

            candidates = [
                w for w in workers
                if is_eligible(w, activity.id, slot, unavailabilities, filled)
            ]
            if not candidates:
                logger.warning(f"No eligible worker for {slot.id}, left unassigned")
                continue

            chosen = pick_half_day_candidate(candidates, group, state, tie_breaker, tolerance)
            filled[index] = replace(slot, assigned_worker_id=chosen.id)
            state.record(chosen.id, group)
            logger.debug(f"{slot.id} -> {chosen.id} (group {group})")

    # Pass 2: week-granularity activities
    for activity in activities:
        if activity.granularity is not Granularity.WEEKLY:
            continue
        indices = [i for i in by_activity.get(activity.id, []) if _fillable(filled[i])]
        if not indices:
            continue
        group = equity_group_of(activity)

        manual = next(
            (filled[i].assigned_worker_id for i in indices
             if filled[i].assigned_worker_id in known_ids),
            None,
        )
        if manual:
            state.record(manual, group, count_in_week=False)
            chosen_id = manual
        else:
            week_days = sorted({filled[i].date for i in indices})
            week_half_days = {(filled[i].day, filled[i].period) for i in indices}
            candidates = []
            for worker in workers:
                if activity.id in worker.excluded_activities:
                    continue
                if not is_available_for_week(worker, week_days, unavailabilities):
                    continue
                if group != workflow_group and any(
                    is_excluded_half_day(worker, day, period) for day, period in week_half_days
                ):
                    continue
                candidates.append(worker)
            if not candidates:
                logger.warning(f"No eligible worker for week activity '{activity.id}', left unassigned")
                continue
            if not activity.allow_double_booking:
                free = [w for w in candidates if not any(
                    is_blocked(w.id, filled[i].date, filled[i].period, filled, ignore_slot_id=filled[i].id)
                    for i in indices
                )]
                candidates = free or candidates
            chosen = pick_week_candidate(candidates, group, state, tie_breaker, workflow_group, tolerance)
            state.record(chosen.id, group, count_in_week=False)
            chosen_id = chosen.id
            logger.debug(f"Week activity '{activity.id}' -> {chosen_id} (group {group})")

        for i in indices:
            slot = filled[i]
            if slot.assigned_worker_id:
                continue
            if not activity.allow_double_booking and is_blocked(
                chosen_id, slot.date, slot.period, filled, ignore_slot_id=slot.id
            ):
                logger.warning(f"{chosen_id} already busy on {slot.date} {slot.period.value}, {slot.id} left open")
                continue
            filled[i] = replace(slot, assigned_worker_id=chosen_id)

    return filled, state
