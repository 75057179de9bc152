"""Week schedule generation.

Builds every slot of one week in a fixed order:
1. Template rules that fire this week, with exceptions and meeting attendance
   applied.
2. MANUAL meeting instances dated inside the week.
3. One slot per activity per weekday half-day.

Saved overrides are then applied and, when requested, the equity assigner
fills the open activity slots. Slot ids only depend on the rule/instance/
activity and the date, so overrides and attendance keyed by them remain valid
across regenerations.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Optional

from attendance import drop_zombies, resolve_attendance, resolve_direct_assignment
from constants import EQUITY_SCORE_TOLERANCE, MONTH_VIEW_WEEKS, WORKFLOW_EQUITY_GROUP
from equity import EquityState, TieBreaker, fill_auto_activities
from logger import get_logger, timed
from models import (
    ActivityDefinition,
    ClosedOverride,
    DayOfWeek,
    Period,
    ScheduleSlot,
    ScheduleSnapshot,
    ShiftHistory,
    SlotType,
    TemplateSlot,
    WorkerOverride,
    parse_override,
)
from occurrence_exceptions import Occurrence, apply_exception, find_exception, index_exceptions
from recurrence import find_rcp_definition, manual_instances_in_week, rule_fires, standard_date
from utils import date_for_day, week_start, DateLike

logger = get_logger('engine')


@dataclass
class WeekSchedule:
    """Slots of one week plus the equity tallies after filling it."""
    week_start: date
    slots: list[ScheduleSlot] = field(default_factory=list)
    equity: Optional[EquityState] = None

    @property
    def unassigned(self) -> list[ScheduleSlot]:
        return [s for s in self.slots if s.activity_id and not s.assigned_worker_id and not s.is_closed]

    def to_dict(self) -> dict:
        return {
            "week_start": self.week_start.isoformat(),
            "slots": [s.to_dict() for s in self.slots],
            "equity": self.equity.to_dict() if self.equity else None,
        }


def activity_slot_id(activity: ActivityDefinition, day: date, period: Period) -> str:
    return f"act-{activity.id}-{day.isoformat()}-{period.value}"


def _template_slot(rule: TemplateSlot, occurrence: Occurrence, snapshot: ScheduleSnapshot,
                   known_ids: set[str], exceptions) -> ScheduleSlot:
    occurrence = apply_exception(occurrence, find_exception(exceptions, rule.id, occurrence.original_date))
    slot_id = occurrence.slot_id
    day = DayOfWeek.from_weekday(occurrence.date.weekday()) or rule.day

    backup = drop_zombies([rule.backup_worker_id], known_ids, slot_id)
    slot = ScheduleSlot(
        id=slot_id,
        date=occurrence.date,
        day=day,
        period=occurrence.period,
        time=occurrence.time,
        location=rule.location,
        type=rule.type,
        sub_type=rule.sub_type,
        backup_worker_id=backup[0] if backup else None,
        is_blocking=rule.is_blocking,
    )

    if occurrence.is_cancelled:
        return replace(slot, is_cancelled=True, is_blocking=False)

    if rule.type == SlotType.RCP:
        resolution = resolve_attendance(slot_id, occurrence.participants, snapshot.attendance, known_ids)
    else:
        resolution = resolve_direct_assignment(slot_id, occurrence.participants, known_ids)

    return replace(
        slot,
        assigned_worker_id=resolution.assigned_worker_id,
        secondary_worker_ids=list(resolution.secondary_worker_ids),
        is_unconfirmed=resolution.is_unconfirmed,
        is_blocking=True if resolution.force_blocking else rule.is_blocking,
    )


def build_template_slots(monday: date, snapshot: ScheduleSnapshot) -> list[ScheduleSlot]:
    known_ids = {w.id for w in snapshot.workers}
    exceptions = index_exceptions(snapshot.exceptions)
    slots = []
    for rule in snapshot.template:
        definition = find_rcp_definition(rule, snapshot.rcp_definitions)
        if not rule_fires(rule, monday, definition):
            continue
        occurrence = Occurrence.from_rule(rule, standard_date(rule, monday))
        slots.append(_template_slot(rule, occurrence, snapshot, known_ids, exceptions))
    return slots


def build_manual_meeting_slots(monday: date, snapshot: ScheduleSnapshot) -> list[ScheduleSlot]:
    known_ids = {w.id for w in snapshot.workers}
    slots = []
    for occurrence in manual_instances_in_week(snapshot.rcp_definitions, monday):
        instance = occurrence.instance
        slot_id = occurrence.slot_id
        resolution = resolve_attendance(slot_id, instance.worker_ids, snapshot.attendance, known_ids)
        backup = drop_zombies([instance.backup_worker_id], known_ids, slot_id)
        slots.append(ScheduleSlot(
            id=slot_id,
            date=instance.date,
            day=occurrence.day,
            period=occurrence.period,
            time=instance.time,
            location=occurrence.definition.name,
            type=SlotType.RCP,
            sub_type=occurrence.definition.name,
            assigned_worker_id=resolution.assigned_worker_id,
            secondary_worker_ids=list(resolution.secondary_worker_ids),
            backup_worker_id=backup[0] if backup else None,
            is_blocking=True,
            is_unconfirmed=resolution.is_unconfirmed,
        ))
    return slots


def build_activity_slots(monday: date, activities: list[ActivityDefinition]) -> list[ScheduleSlot]:
    slots = []
    for activity in activities:
        for day in DayOfWeek:
            slot_date = date_for_day(monday, day)
            for period in Period:
                slots.append(ScheduleSlot(
                    id=activity_slot_id(activity, slot_date, period),
                    date=slot_date,
                    day=day,
                    period=period,
                    location=activity.name,
                    type=SlotType.ACTIVITY,
                    sub_type=activity.name,
                    activity_id=activity.id,
                    is_blocking=not activity.allow_double_booking,
                ))
    return slots


def apply_overrides(slots: list[ScheduleSlot], overrides: dict[str, Any],
                    known_ids: Optional[set[str]] = None) -> list[ScheduleSlot]:
    """Apply admin-saved overrides to the matching slots.

    A worker override assigns the worker and locks the slot; a closed override
    empties and locks it. Overrides naming unknown workers are ignored.
    """
    result = []
    for slot in slots:
        override = parse_override(overrides.get(slot.id))
        if isinstance(override, ClosedOverride):
            slot = replace(slot, assigned_worker_id=None, is_locked=True, is_closed=True)
        elif isinstance(override, WorkerOverride):
            if known_ids is not None and override.worker_id not in known_ids:
                logger.warning(f"Ignoring override on {slot.id}: unknown worker '{override.worker_id}'")
            else:
                slot = replace(slot, assigned_worker_id=override.worker_id, is_locked=True)
        elif slot.id in overrides and overrides[slot.id]:
            logger.warning(f"Ignoring unreadable override on {slot.id}: {overrides[slot.id]!r}")
        result.append(slot)
    return result


@timed(name="generate_week")
def generate_week(
    week_of: DateLike,
    snapshot: ScheduleSnapshot,
    auto_fill: bool = True,
    history: Optional[ShiftHistory] = None,
    tie_breaker: Optional[TieBreaker] = None,
    apply_saved_overrides: bool = True,
    workflow_group: str = WORKFLOW_EQUITY_GROUP,
    tolerance: float = EQUITY_SCORE_TOLERANCE,
) -> WeekSchedule:
    """Materialize the schedule of the week containing `week_of`.

    Args:
        week_of: Any date of the target week
        snapshot: Input snapshot
        auto_fill: Run the equity assigner on open activity slots
        history: Equity history seeding the assigner (defaults to snapshot.history)
        tie_breaker: Tie-break source for the assigner
        apply_saved_overrides: Apply snapshot.overrides before filling
        workflow_group: Equity group using the relaxed week rotation
        tolerance: Weighted scores closer than this to the best are tied

    Returns:
        WeekSchedule with slots and, when auto-filled, the equity tallies

    Raises:
        ScheduleValidationError: A MANUAL instance lacks an id, date or time
    """
    monday = week_start(week_of)
    if not snapshot.workers:
        logger.warning(f"No workers, week of {monday} is left unassigned")

    slots = (
        build_template_slots(monday, snapshot)
        + build_manual_meeting_slots(monday, snapshot)
        + build_activity_slots(monday, snapshot.activities)
    )
    if apply_saved_overrides:
        slots = apply_overrides(slots, snapshot.overrides, {w.id for w in snapshot.workers})

    equity = None
    if auto_fill:
        seed = EquityState.seed(
            snapshot.workers,
            snapshot.activities,
            history if history is not None else snapshot.history,
        )
        slots, equity = fill_auto_activities(
            slots,
            snapshot.activities,
            snapshot.workers,
            snapshot.unavailabilities,
            state=seed,
            tie_breaker=tie_breaker,
            workflow_group=workflow_group,
            tolerance=tolerance,
        )

    filled = sum(1 for s in slots if s.assigned_worker_id)
    # History replay regenerates every past week without auto-fill
    log = logger.info if auto_fill else logger.debug
    log(f"Week of {monday}: {len(slots)} slots, {filled} assigned")
    return WeekSchedule(monday, slots, equity)


def generate_month_schedule(start: DateLike, snapshot: ScheduleSnapshot,
                            weeks: int = MONTH_VIEW_WEEKS) -> list[ScheduleSlot]:
    """Consecutive week skeletons with saved overrides only, never auto-filled."""
    monday = week_start(start)
    slots: list[ScheduleSlot] = []
    for i in range(weeks):
        slots.extend(generate_week(monday + timedelta(weeks=i), snapshot, auto_fill=False).slots)
    return slots
