"""Eligibility checks: can a worker take a slot?

A worker is eligible for an activity slot when they have not excluded the
activity, the (day, period) is not one of their recurring non-working
half-days, no dated absence covers it, and no blocking slot already holds them
at the same date and period.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from constants import MIN_WORK_RATE, STANDARD_HALF_DAYS
from models import (
    DayOfWeek,
    Period,
    ScheduleSlot,
    SlotType,
    Unavailability,
    Worker,
)
from utils import is_date_in_range


def work_rate(worker: Worker) -> float:
    """Fraction of the 10 weekday half-days the worker is present, floored at 0.1.

    Granular half-day exclusions take priority; legacy excluded days count as
    two half-days each.
    """
    if worker.excluded_half_days:
        excluded = len(set(worker.excluded_half_days))
    elif worker.excluded_days:
        excluded = 2 * len(set(worker.excluded_days))
    else:
        return 1.0
    rate = (STANDARD_HALF_DAYS - excluded) / STANDARD_HALF_DAYS
    return rate if rate > MIN_WORK_RATE else MIN_WORK_RATE


def is_excluded_half_day(worker: Worker, day: DayOfWeek, period: Period) -> bool:
    """Recurring weekly non-working half-day."""
    if worker.excluded_half_days:
        return any(h.day == day and h.period == period for h in worker.excluded_half_days)
    return day in worker.excluded_days


def is_full_day_excluded(worker: Worker, day: DayOfWeek) -> bool:
    if day in worker.excluded_days:
        return True
    if worker.excluded_half_days:
        return all(is_excluded_half_day(worker, day, p) for p in Period)
    return False


def is_absent(worker_id: str, day: date, period: Period, unavailabilities: Iterable[Unavailability]) -> bool:
    """Dated absence covering this date and period (ALL_DAY covers both)."""
    return any(
        u.worker_id == worker_id
        and is_date_in_range(day, u.start_date, u.end_date)
        and u.scope.covers(period)
        for u in unavailabilities
    )


def has_absence_on(worker_id: str, days: Iterable[date], unavailabilities: Iterable[Unavailability]) -> bool:
    """Any absence, whatever its scope, on any of the given days."""
    unavailabilities = [u for u in unavailabilities if u.worker_id == worker_id]
    return any(
        is_date_in_range(d, u.start_date, u.end_date)
        for d in days
        for u in unavailabilities
    )


def is_blocking_slot(slot: ScheduleSlot) -> bool:
    """Meetings block once attendance is confirmed; other slots unless flagged non-blocking.

    A cancelled occurrence never blocks.
    """
    if slot.is_cancelled:
        return False
    if slot.type == SlotType.RCP:
        return not slot.is_unconfirmed
    return slot.is_blocking is not False


def find_conflicting_slot(
    slot: ScheduleSlot, slots: Iterable[ScheduleSlot], worker_id: str
) -> Optional[ScheduleSlot]:
    """Another blocking slot holding the worker at the same date and period."""
    for other in slots:
        if (
            other.id != slot.id
            and other.date == slot.date
            and other.period == slot.period
            and worker_id in other.worker_ids
            and is_blocking_slot(other)
        ):
            return other
    return None


def is_blocked(worker_id: str, day: date, period: Period, slots: Iterable[ScheduleSlot],
               ignore_slot_id: Optional[str] = None) -> bool:
    return any(
        s.id != ignore_slot_id
        and s.date == day
        and s.period == period
        and worker_id in s.worker_ids
        and is_blocking_slot(s)
        for s in slots
    )


def is_eligible(
    worker: Worker,
    activity_id: str,
    slot: ScheduleSlot,
    unavailabilities: Iterable[Unavailability],
    placed: Iterable[ScheduleSlot],
    check_blocking: bool = True,
) -> bool:
    """Whether the worker may be auto-assigned to an activity slot."""
    if activity_id in worker.excluded_activities:
        return False
    if is_excluded_half_day(worker, slot.day, slot.period):
        return False
    if is_absent(worker.id, slot.date, slot.period, unavailabilities):
        return False
    if check_blocking and is_blocked(worker.id, slot.date, slot.period, placed, ignore_slot_id=slot.id):
        return False
    return True


def is_available_for_week(worker: Worker, days: Iterable[date], unavailabilities: Iterable[Unavailability]) -> bool:
    """Strict week availability: no absence of any scope on any of the days."""
    return not has_absence_on(worker.id, days, unavailabilities)


def available_workers(
    workers: Iterable[Worker],
    slots: Iterable[ScheduleSlot],
    unavailabilities: Iterable[Unavailability],
    day: DayOfWeek,
    period: Period,
    target_date: Optional[date] = None,
    slot_type: Optional[SlotType] = None,
) -> list[Worker]:
    """Workers that can be picked by hand for a (day, period).

    Without a date only the recurring weekly pattern is checked.
    """
    slots = list(slots)
    unavailabilities = list(unavailabilities)
    result = []
    for worker in workers:
        if is_excluded_half_day(worker, day, period):
            continue
        if target_date is not None:
            if is_absent(worker.id, target_date, period, unavailabilities):
                continue
            if slot_type is not None and slot_type in worker.excluded_slot_types:
                continue
            if is_blocked(worker.id, target_date, period, slots):
                continue
        result.append(worker)
    return result
