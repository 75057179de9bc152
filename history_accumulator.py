"""Equity history replay.

Rebuilds each worker's activity counts from a counting start date by walking
the weeks up to a target date. Only admin-saved overrides count: a week that
was never saved contributes nothing, even if auto-fill would have assigned
someone. Week-granularity activities count once per worker per week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from constants import HISTORY_MAX_WEEKS, WORKFLOW_EQUITY_GROUP
from equity import equity_group_of
from history_view import group_key
from logger import get_logger, timed
from models import ActivityDefinition, Granularity, ScheduleSnapshot, ShiftHistory, SlotType, WorkerOverride, parse_override
from scheduling_engine import generate_week
from utils import DateLike, parse_date, week_start

logger = get_logger('history')


@dataclass
class HistoryReplayResult:
    history: ShiftHistory = field(default_factory=dict)
    weeks_processed: int = 0
    truncated: bool = False


def _empty_history(snapshot: ScheduleSnapshot) -> ShiftHistory:
    groups = {equity_group_of(a) for a in snapshot.activities}
    history: ShiftHistory = {}
    for worker in snapshot.workers:
        counts = {a.id: 0 for a in snapshot.activities}
        counts.update({group_key(g): 0 for g in sorted(groups)})
        history[worker.id] = counts
    return history


def _counts_once_per_week(activity: ActivityDefinition) -> bool:
    return activity.granularity is Granularity.WEEKLY


@timed(name="compute_history_from_date")
def compute_history_from_date(
    start: DateLike,
    target: DateLike,
    snapshot: ScheduleSnapshot,
    max_weeks: int = HISTORY_MAX_WEEKS,
    workflow_group: str = WORKFLOW_EQUITY_GROUP,
) -> HistoryReplayResult:
    """Replay saved assignments week by week from `start` up to `target` (exclusive).

    Args:
        start: Counting start date; its week's Monday is the first week counted
        target: Weeks starting on or after this date are not counted
        snapshot: Input snapshot (overrides are the only assignment source)
        max_weeks: Iteration ceiling; reaching it stops the walk with a warning
        workflow_group: Equity group also counted once per week

    Returns:
        HistoryReplayResult with per-activity counts and "equity_<group>" totals
    """
    result = HistoryReplayResult(history=_empty_history(snapshot))
    history = result.history
    activities = {a.id: a for a in snapshot.activities}

    current = week_start(start)
    target_date = parse_date(target)
    counted_weeks: set[tuple[str, str, date]] = set()

    while current < target_date:
        if result.weeks_processed >= max_weeks:
            result.truncated = True
            logger.warning(
                f"History replay stopped after {max_weeks} weeks at {current} (target {target_date})"
            )
            break

        week = generate_week(current, snapshot, auto_fill=False, apply_saved_overrides=False)
        for slot in week.slots:
            if slot.type != SlotType.ACTIVITY or slot.is_cancelled:
                continue
            override = parse_override(snapshot.overrides.get(slot.id))
            if not isinstance(override, WorkerOverride):
                continue
            worker_id = override.worker_id
            activity = activities.get(slot.activity_id)
            if activity is None or worker_id not in history:
                continue

            group = equity_group_of(activity)
            if _counts_once_per_week(activity) or group == workflow_group:
                week_key = (worker_id, activity.id, current)
                if week_key in counted_weeks:
                    continue
                counted_weeks.add(week_key)

            history[worker_id][activity.id] = history[worker_id].get(activity.id, 0) + 1
            history[worker_id][group_key(group)] = history[worker_id].get(group_key(group), 0) + 1

        current += timedelta(weeks=1)
        result.weeks_processed += 1

    logger.info(f"History replayed over {result.weeks_processed} week(s) from {week_start(start)}")
    return result
