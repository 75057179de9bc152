"""Per-occurrence exceptions layered over a rule's default occurrence.

An exception is looked up by (template id, original date). The original date
stays the identity of the occurrence even when the exception moves it, so slot
ids and attendance records keyed by it survive a move.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from models import Period, RcpException, TemplateSlot


@dataclass(frozen=True)
class Occurrence:
    """Displayed date/period/time and planned participants of one rule occurrence."""
    rule_id: str
    original_date: date
    date: date
    period: Period
    time: Optional[str]
    participants: tuple[str, ...]
    is_cancelled: bool = False

    @property
    def slot_id(self) -> str:
        return f"{self.rule_id}-{self.original_date.isoformat()}"

    @classmethod
    def from_rule(cls, rule: TemplateSlot, original_date: date) -> "Occurrence":
        return cls(
            rule_id=rule.id,
            original_date=original_date,
            date=original_date,
            period=rule.period,
            time=rule.time,
            participants=tuple(rule.planned_participants()),
        )


def index_exceptions(exceptions: list[RcpException]) -> dict[tuple[str, date], RcpException]:
    """Key exceptions by (template id, original date); a later entry wins."""
    return {ex.key: ex for ex in exceptions}


def find_exception(
    exceptions: dict[tuple[str, date], RcpException],
    rule_id: str,
    original_date: date,
) -> Optional[RcpException]:
    return exceptions.get((rule_id, original_date))


def apply_exception(occurrence: Occurrence, exception: Optional[RcpException]) -> Occurrence:
    """Return the occurrence as displayed once the exception is applied.

    Only fields present on the exception replace the defaults. A cancelled
    occurrence keeps its defaults and is only flagged. Applying the same
    exception again gives the same result.
    """
    if exception is None or exception.key != (occurrence.rule_id, occurrence.original_date):
        return occurrence
    if exception.is_cancelled:
        return replace(occurrence, is_cancelled=True)

    changes = {}
    if exception.new_date is not None:
        changes["date"] = exception.new_date
    if exception.new_period is not None:
        changes["period"] = exception.new_period
    if exception.new_time:
        changes["time"] = exception.new_time
    if exception.custom_worker_ids is not None:
        changes["participants"] = tuple(exception.custom_worker_ids)
    return replace(occurrence, **changes)
