"""Conflict detection over a materialized schedule.

Findings per worker:
1. UNAVAILABLE: a slot overlaps one of the worker's dated absences.
2. UNAVAILABLE: a slot lands on a recurring non-working half-day. For meetings
   this only counts once the worker's attendance is confirmed.
3. COMPETENCE_MISMATCH: the worker excluded the slot's activity or slot type.
4. DOUBLE_BOOKING: two blocking slots share the same date and period. One
   finding is emitted per slot of the pair.

This helps the planner understand what needs fixing before publishing a week.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from eligibility import is_absent, is_blocking_slot, is_excluded_half_day
from logger import get_logger
from models import (
    Conflict,
    ConflictKind,
    Period,
    ScheduleSlot,
    Severity,
    SlotType,
    Unavailability,
    UnavailabilityScope,
    Worker,
)

logger = get_logger('conflicts')

PERIOD_LABELS = {Period.MORNING: "morning", Period.AFTERNOON: "afternoon"}


def _slot_label(slot: ScheduleSlot) -> str:
    return slot.sub_type or slot.location


def _group_by_worker(slots: Iterable[ScheduleSlot]) -> dict[str, list[ScheduleSlot]]:
    by_worker: dict[str, list[ScheduleSlot]] = {}
    for slot in slots:
        if slot.is_cancelled:
            continue
        for worker_id in slot.worker_ids:
            by_worker.setdefault(worker_id, []).append(slot)
    return by_worker


def _absence_conflicts(by_worker, unavailabilities) -> list[Conflict]:
    conflicts = []
    for absence in unavailabilities:
        for slot in by_worker.get(absence.worker_id, []):
            if not is_absent(absence.worker_id, slot.date, slot.period, [absence]):
                continue
            scope = "" if absence.scope is UnavailabilityScope.ALL_DAY else f" - {absence.scope.value.lower()}"
            conflicts.append(Conflict(
                id=f"conflict-abs-{slot.id}-{absence.worker_id}",
                slot_id=slot.id,
                worker_id=absence.worker_id,
                kind=ConflictKind.UNAVAILABLE,
                description=f"Absent ({absence.reason}{scope})",
                severity=Severity.HIGH,
            ))
    return conflicts


def _exclusion_conflicts(worker: Worker, slots: list[ScheduleSlot]) -> list[Conflict]:
    conflicts = []
    for slot in slots:
        if is_excluded_half_day(worker, slot.day, slot.period):
            # An unconfirmed meeting participant will not attend anyway
            if slot.type != SlotType.RCP or not slot.is_unconfirmed:
                period = PERIOD_LABELS[slot.period]
                if slot.type == SlotType.RCP:
                    description = (
                        f"{worker.name} confirmed attendance at {_slot_label(slot)} "
                        f"but does not work on {slot.day.value.title()} {period}"
                    )
                else:
                    description = f"Does not work on {slot.day.value.title()} {period} (recurring)"
                conflicts.append(Conflict(
                    id=f"conflict-halfday-excl-{slot.id}-{worker.id}",
                    slot_id=slot.id,
                    worker_id=worker.id,
                    kind=ConflictKind.UNAVAILABLE,
                    description=description,
                    severity=Severity.HIGH,
                ))

        if slot.activity_id and slot.activity_id in worker.excluded_activities:
            conflicts.append(Conflict(
                id=f"conflict-act-excl-{slot.id}-{worker.id}",
                slot_id=slot.id,
                worker_id=worker.id,
                kind=ConflictKind.COMPETENCE_MISMATCH,
                description=f"Excluded from activity: {_slot_label(slot)}",
                severity=Severity.HIGH,
            ))
        elif slot.type in worker.excluded_slot_types:
            conflicts.append(Conflict(
                id=f"conflict-type-excl-{slot.id}-{worker.id}",
                slot_id=slot.id,
                worker_id=worker.id,
                kind=ConflictKind.COMPETENCE_MISMATCH,
                description=f"Excluded from {slot.type.value} slots: {_slot_label(slot)}",
                severity=Severity.HIGH,
            ))
    return conflicts


def _double_booking_description(worker: Worker, first: ScheduleSlot, second: ScheduleSlot) -> str:
    if first.type == SlotType.RCP or second.type == SlotType.RCP:
        meeting, other = (first, second) if first.type == SlotType.RCP else (second, first)
        return (
            f"{worker.name} confirmed attendance at meeting \"{_slot_label(meeting)}\"; "
            f"cannot also take \"{_slot_label(other)}\" on the same half-day"
        )
    if first.type == SlotType.ACTIVITY and second.type == SlotType.ACTIVITY:
        return f"{worker.name} holds both {_slot_label(first)} and {_slot_label(second)}"
    return f"{worker.name} is at {first.location} and {second.location} at the same time"


def _double_booking_conflicts(worker: Worker, slots: list[ScheduleSlot]) -> list[Conflict]:
    conflicts = []
    for i, first in enumerate(slots):
        for second in slots[i + 1:]:
            if first.id == second.id:
                continue
            if first.date != second.date or first.period != second.period:
                continue
            if not (is_blocking_slot(first) and is_blocking_slot(second)):
                continue
            description = _double_booking_description(worker, first, second)
            for slot, other in ((first, second), (second, first)):
                conflicts.append(Conflict(
                    id=f"conflict-db-{slot.id}-{other.id}-{worker.id}",
                    slot_id=slot.id,
                    worker_id=worker.id,
                    kind=ConflictKind.DOUBLE_BOOKING,
                    description=description,
                    severity=Severity.HIGH,
                ))
    return conflicts


def detect_conflicts(
    slots: Iterable[ScheduleSlot],
    unavailabilities: Iterable[Unavailability],
    workers: Iterable[Worker],
) -> list[Conflict]:
    """Scan a schedule and return every conflict found.

    Args:
        slots: Materialized schedule
        unavailabilities: Dated absences
        workers: Current roster; slots held by unknown workers are only checked
            against absences

    Returns:
        List of Conflict, absences first, then per worker in roster order
    """
    workers = list(workers)
    if not workers:
        return []
    by_worker = _group_by_worker(slots)

    conflicts = _absence_conflicts(by_worker, unavailabilities)
    for worker in workers:
        worker_slots = by_worker.get(worker.id, [])
        if not worker_slots:
            continue
        conflicts.extend(_exclusion_conflicts(worker, worker_slots))
        conflicts.extend(_double_booking_conflicts(worker, worker_slots))

    if conflicts:
        logger.info(f"Detected {len(conflicts)} conflict(s)")
    return conflicts


@dataclass
class ConflictReport:
    """Conflicts of one schedule, indexed for the warnings panel."""
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def get(self, conflict_id: str):
        for conflict in self.conflicts:
            if conflict.id == conflict_id:
                return conflict
        return None

    def for_slot(self, slot_id: str) -> list[Conflict]:
        return [c for c in self.conflicts if c.slot_id == slot_id]

    def for_worker(self, worker_id: str) -> list[Conflict]:
        return [c for c in self.conflicts if c.worker_id == worker_id]

    def by_kind(self, kind: ConflictKind) -> list[Conflict]:
        return [c for c in self.conflicts if c.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_conflicts": self.has_conflicts,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }

    def format_report(self) -> str:
        """Format the report as a human-readable string."""
        lines = ["=" * 60, "SCHEDULE CONFLICT REPORT", "=" * 60, ""]

        if not self.conflicts:
            lines.append("No conflicts")
            lines.append("")
        for kind in ConflictKind:
            found = self.by_kind(kind)
            if not found:
                continue
            lines.append(f"{kind.value} ({len(found)}):")
            lines.append("-" * 40)
            for c in found:
                lines.append(f"  • [{c.severity.value}] {c.slot_id} / {c.worker_id}: {c.description}")
            lines.append("")

        lines.append("=" * 60)
        return "\n".join(lines)
