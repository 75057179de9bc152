"""Recurrence rules: does a template rule fire in a given week, and on which date.

Template rules whose location names a meeting definition follow that
definition's frequency. MANUAL definitions never fire from the template; their
occurrences come from the dated instance list instead (see
`manual_instances_in_week`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional

from logger import get_logger
from models import (
    DayOfWeek,
    Frequency,
    ManualInstance,
    Period,
    RcpDefinition,
    ScheduleValidationError,
    TemplateSlot,
    WeekParity,
)
from utils import date_for_day, iso_week_number, ordinal_weekday_in_month, period_for_time, week_start

logger = get_logger('recurrence')


def standard_date(rule: TemplateSlot, monday: date) -> date:
    """Date the rule would fall on in the week starting at `monday`."""
    return date_for_day(monday, rule.day)


def find_rcp_definition(rule: TemplateSlot, definitions: list[RcpDefinition]) -> Optional[RcpDefinition]:
    for definition in definitions:
        if definition.name == rule.location:
            return definition
    return None


def fires_on_parity(week_number: int, parity: Optional[WeekParity]) -> bool:
    """BIWEEKLY check; an unset parity means odd weeks."""
    is_odd = week_number % 2 == 1
    if parity is WeekParity.EVEN:
        return not is_odd
    return is_odd


def rule_fires(rule: TemplateSlot, monday: date, definition: Optional[RcpDefinition] = None) -> bool:
    """Whether `rule` produces an occurrence in the week starting at `monday`.

    Args:
        rule: Template rule
        monday: Monday of the target week
        definition: Meeting definition matched by the rule's location, if any

    Returns:
        True if an occurrence must be generated
    """
    week_number = iso_week_number(monday)

    if definition is not None:
        if definition.frequency is Frequency.BIWEEKLY:
            return fires_on_parity(week_number, definition.week_parity)
        if definition.frequency is Frequency.MONTHLY:
            target = definition.monthly_week_number or 1
            return ordinal_weekday_in_month(standard_date(rule, monday)) == target
        if definition.frequency is Frequency.MANUAL:
            return False
        return True

    if rule.frequency is Frequency.BIWEEKLY:
        return fires_on_parity(week_number, rule.week_parity)
    return True


@dataclass(frozen=True)
class ManualOccurrence:
    """A manual meeting instance that falls in the target week."""
    definition: RcpDefinition
    instance: ManualInstance
    day: DayOfWeek
    period: Period

    @property
    def slot_id(self) -> str:
        return f"manual-rcp-{self.definition.id}-{self.instance.id}"


def validate_manual_instance(definition: RcpDefinition, instance: ManualInstance) -> None:
    """Raise ScheduleValidationError when the instance cannot yield a stable slot.

    The slot id is built from the instance id and its date/time decide which
    week and half-day it lands in, so all three are mandatory.
    """
    if not instance.id:
        raise ScheduleValidationError(f"Manual instance of '{definition.name}' has no id")
    if instance.date is None:
        raise ScheduleValidationError(
            f"Manual instance '{instance.id}' of '{definition.name}' has no date"
        )
    if not instance.time:
        raise ScheduleValidationError(
            f"Manual instance '{instance.id}' of '{definition.name}' has no time"
        )
    try:
        period_for_time(instance.time)
    except ValueError:
        raise ScheduleValidationError(
            f"Manual instance '{instance.id}' of '{definition.name}' has an invalid time: {instance.time!r}"
        ) from None


def manual_instances_in_week(definitions: list[RcpDefinition], monday: date) -> Iterator[ManualOccurrence]:
    """Yield the MANUAL meeting instances dated inside the target week.

    Every instance is validated, including the ones outside the week, so a
    corrupt entry fails regardless of which week is being generated.
    """
    for definition in definitions:
        if definition.frequency is not Frequency.MANUAL:
            continue
        for instance in definition.manual_instances:
            validate_manual_instance(definition, instance)
            if week_start(instance.date) != monday:
                continue
            day = DayOfWeek.from_weekday(instance.date.weekday())
            if day is None:
                logger.warning(
                    f"Skipping manual instance '{instance.id}' of '{definition.name}': "
                    f"{instance.date} is a weekend day"
                )
                continue
            yield ManualOccurrence(definition, instance, day, period_for_time(instance.time))
