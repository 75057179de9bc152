from __future__ import annotations

from typing import Iterable, Optional

from constants import (
    CUSTOM_GROUP_PREFIX,
    MAX_REPLACEMENT_SUGGESTIONS,
    REPLACEMENT_AFFINITY_BONUS,
    REPLACEMENT_BASE_SCORE,
    REPLACEMENT_HIGH_LOAD,
    REPLACEMENT_LOAD_ADJUSTMENT,
    REPLACEMENT_LOW_LOAD,
    REPLACEMENT_SPECIALTY_BONUS,
)
from eligibility import work_rate
from equity import equity_group_of
from history_view import HistoryView
from models import ActivityDefinition, ReplacementSuggestion, ScheduleSlot, ShiftHistory, Worker

# Scoring knobs, overridable from configuration
DEFAULT_SCORING = {
    "base_score": REPLACEMENT_BASE_SCORE,
    "specialty_bonus": REPLACEMENT_SPECIALTY_BONUS,
    "load_adjustment": REPLACEMENT_LOAD_ADJUSTMENT,
    "affinity_bonus": REPLACEMENT_AFFINITY_BONUS,
    "low_load_threshold": REPLACEMENT_LOW_LOAD,
    "high_load_threshold": REPLACEMENT_HIGH_LOAD,
    "max_suggestions": MAX_REPLACEMENT_SUGGESTIONS,
}


def _group_activity_ids(slot: ScheduleSlot, activities: Iterable[ActivityDefinition]) -> list[str]:
    """Activities pooled with the slot's activity for equity purposes."""
    activities = list(activities)
    slot_activity = next((a for a in activities if a.id == slot.activity_id), None)
    if slot_activity is not None:
        group = equity_group_of(slot_activity)
    else:
        group = f"{CUSTOM_GROUP_PREFIX}{slot.activity_id or 'default'}"
    return [a.id for a in activities if equity_group_of(a) == group]


def suggest_replacements(
    slot: ScheduleSlot,
    unavailable: Worker,
    candidates: Iterable[Worker],
    schedule: Iterable[ScheduleSlot],
    history: Optional[ShiftHistory] = None,
    activities: Iterable[ActivityDefinition] = (),
    scoring: Optional[dict] = None,
) -> list[ReplacementSuggestion]:
    """Rank replacement workers for a conflicted slot.

    Candidates who excluded the slot type or the slot's activity are dropped.
    Everyone else starts from the base score and gains or loses points for:
    - sharing a specialty with the unavailable worker
    - a light or heavy weighted load in the slot's equity group
      ((history + assignments this week) / work rate)
    - a specialty that appears in the slot's location label

    Args:
        slot: The conflicted slot
        unavailable: Worker who can no longer take it
        candidates: Worker pool to choose from
        schedule: Current week's slots, for this week's load
        history: Equity history (worker -> activity -> count)
        activities: Activity definitions, to resolve equity groups
        scoring: Overrides for DEFAULT_SCORING keys

    Returns:
        Best suggestions first, at most `max_suggestions`, scores in [0, 100]
    """
    knobs = {**DEFAULT_SCORING, **(scoring or {})}
    view = HistoryView(history or {})
    group_ids = _group_activity_ids(slot, activities)
    schedule = list(schedule)
    location = slot.location.lower()

    suggestions = []
    for candidate in candidates:
        if candidate.id == unavailable.id:
            continue
        if slot.type in candidate.excluded_slot_types:
            continue
        if slot.activity_id and slot.activity_id in candidate.excluded_activities:
            continue

        score = knobs["base_score"]
        reasons = []

        shared = [s for s in candidate.specialties if s in unavailable.specialties]
        if shared:
            score += knobs["specialty_bonus"]
            reasons.append(f"Same specialty ({', '.join(shared)})")

        this_week = sum(
            1 for s in schedule
            if s.assigned_worker_id == candidate.id and s.id != slot.id and s.activity_id in group_ids
        )
        weighted = (view.activities_total(candidate.id, group_ids) + this_week) / work_rate(candidate)
        if weighted < knobs["low_load_threshold"]:
            score += knobs["load_adjustment"]
            reasons.append("Light weighted load")
        elif weighted > knobs["high_load_threshold"]:
            score -= knobs["load_adjustment"]
            reasons.append("Heavy weighted load")

        relevant = next((s for s in candidate.specialties if s.lower() in location), None)
        if relevant:
            score += knobs["affinity_bonus"]
            reasons.append(f"Relevant expertise ({relevant})")

        if not reasons:
            reasons.append("Available")

        suggestions.append(ReplacementSuggestion(
            original_worker_id=unavailable.id,
            suggested_worker_id=candidate.id,
            reasoning=" • ".join(reasons),
            score=max(0, min(100, score)),
        ))

    # stable sort keeps roster order among equal scores
    suggestions.sort(key=lambda s: -s.score)
    return suggestions[:knobs["max_suggestions"]]
