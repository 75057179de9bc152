"""Attendee resolution for meeting (RCP) slots.

Precedence for one generated slot id:
1. Workers who confirmed PRESENT become the assignment (first is primary) and
   the slot blocks double booking.
2. Otherwise the slot is unconfirmed and the planned participants, minus those
   who confirmed ABSENT, are the provisional assignment.

Non-meeting slots take their planned participants as a definite assignment.
Both paths drop worker ids that no longer exist.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from logger import get_logger
from models import AttendanceStatus

logger = get_logger('attendance')


@dataclass(frozen=True)
class AttendanceResolution:
    assigned_worker_id: Optional[str] = None
    secondary_worker_ids: tuple[str, ...] = field(default_factory=tuple)
    is_unconfirmed: bool = False
    force_blocking: bool = False


def drop_zombies(worker_ids: Iterable[Optional[str]], known_ids: set[str], context: str = "") -> list[str]:
    """Keep only ids of workers that still exist, preserving order."""
    kept = []
    for worker_id in worker_ids:
        if not worker_id:
            continue
        if worker_id not in known_ids:
            logger.warning(f"Dropping unknown worker '{worker_id}'{f' on {context}' if context else ''}")
            continue
        kept.append(worker_id)
    return kept


def _split(worker_ids: list[str]) -> tuple[Optional[str], tuple[str, ...]]:
    if not worker_ids:
        return None, ()
    return worker_ids[0], tuple(worker_ids[1:])


def resolve_attendance(
    slot_id: str,
    planned: Iterable[str],
    attendance: dict[str, dict[str, AttendanceStatus]],
    known_ids: set[str],
) -> AttendanceResolution:
    """Resolve who attends a meeting occurrence.

    Args:
        slot_id: Generated slot id (attendance is keyed by it)
        planned: Planned participants, in order
        attendance: Attendance responses for all slots
        known_ids: Ids of the current workers

    Returns:
        AttendanceResolution for the slot
    """
    responses = attendance.get(slot_id) or {}
    confirmed = [wid for wid, status in responses.items() if status == AttendanceStatus.PRESENT]

    if confirmed:
        primary, secondary = _split(drop_zombies(confirmed, known_ids, slot_id))
        return AttendanceResolution(primary, secondary, is_unconfirmed=False, force_blocking=True)

    remaining = [wid for wid in planned if responses.get(wid) != AttendanceStatus.ABSENT]
    primary, secondary = _split(drop_zombies(remaining, known_ids, slot_id))
    return AttendanceResolution(primary, secondary, is_unconfirmed=True, force_blocking=False)


def resolve_direct_assignment(slot_id: str, planned: Iterable[str], known_ids: set[str]) -> AttendanceResolution:
    """Assignment for non-meeting slots: the planned list as is."""
    primary, secondary = _split(drop_zombies(planned, known_ids, slot_id))
    return AttendanceResolution(primary, secondary)
