"""Data model for the recurring-schedule engine.

All inputs are read-only snapshots supplied by the caller (workers, weekly
template, meeting definitions, absences, exceptions, attendance, overrides and
prior history). `ScheduleSlot` and `Conflict` are pure outputs rebuilt on every
call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Union

from constants import AUTO_OVERRIDE_PREFIX, CLOSED_OVERRIDE


class ScheduleValidationError(ValueError):
    """Input that would make generated slot ids non-deterministic."""


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"

    @property
    def offset(self) -> int:
        """Days after Monday."""
        return list(DayOfWeek).index(self)

    @classmethod
    def from_weekday(cls, weekday: int) -> Optional["DayOfWeek"]:
        """Map date.weekday() to the grid; weekends have no grid day."""
        days = list(cls)
        return days[weekday] if 0 <= weekday < len(days) else None


class Period(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"


class SlotType(str, Enum):
    CONSULTATION = "CONSULTATION"
    RCP = "RCP"
    MACHINE = "MACHINE"
    ACTIVITY = "ACTIVITY"
    OTHER = "OTHER"


class Frequency(str, Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    MANUAL = "MANUAL"


class WeekParity(str, Enum):
    ODD = "ODD"
    EVEN = "EVEN"


class Granularity(str, Enum):
    HALF_DAY = "HALF_DAY"
    WEEKLY = "WEEKLY"


class UnavailabilityScope(str, Enum):
    ALL_DAY = "ALL_DAY"
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"

    def covers(self, period: Period) -> bool:
        if self is UnavailabilityScope.ALL_DAY:
            return True
        return self.value == period.value


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"


class ConflictKind(str, Enum):
    UNAVAILABLE = "UNAVAILABLE"
    DOUBLE_BOOKING = "DOUBLE_BOOKING"
    COMPETENCE_MISMATCH = "COMPETENCE_MISMATCH"


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# worker_id -> activity_id (or "equity_<group>") -> count
ShiftHistory = dict[str, dict[str, int]]
# generated slot id -> worker_id -> status
Attendance = dict[str, dict[str, AttendanceStatus]]


def _as_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


@dataclass(frozen=True)
class HalfDay:
    day: DayOfWeek
    period: Period


@dataclass
class Worker:
    """A doctor who can be placed on slots."""
    id: str
    name: str
    specialties: list[str] = field(default_factory=list)
    # Legacy full-day exclusions; ignored when excluded_half_days is set
    excluded_days: list[DayOfWeek] = field(default_factory=list)
    excluded_half_days: list[HalfDay] = field(default_factory=list)
    excluded_activities: list[str] = field(default_factory=list)
    excluded_slot_types: list[SlotType] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "specialties": list(self.specialties),
            "excluded_days": [d.value for d in self.excluded_days],
            "excluded_half_days": [
                {"day": h.day.value, "period": h.period.value} for h in self.excluded_half_days
            ],
            "excluded_activities": list(self.excluded_activities),
            "excluded_slot_types": [t.value for t in self.excluded_slot_types],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Worker":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            specialties=list(data.get("specialties", [])),
            excluded_days=[DayOfWeek(d) for d in data.get("excluded_days", [])],
            excluded_half_days=[
                HalfDay(DayOfWeek(h["day"]), Period(h["period"]))
                for h in data.get("excluded_half_days", [])
            ],
            excluded_activities=list(data.get("excluded_activities", [])),
            excluded_slot_types=[SlotType(t) for t in data.get("excluded_slot_types", [])],
        )


@dataclass
class TemplateSlot:
    """A recurring rule of the weekly template.

    Planned participants come from `worker_ids` when it is non-empty, otherwise
    from `default_worker_id` followed by `secondary_worker_ids`.
    """
    id: str
    day: DayOfWeek
    period: Period
    location: str
    type: SlotType = SlotType.CONSULTATION
    time: Optional[str] = None
    default_worker_id: Optional[str] = None
    secondary_worker_ids: list[str] = field(default_factory=list)
    worker_ids: list[str] = field(default_factory=list)
    backup_worker_id: Optional[str] = None
    sub_type: Optional[str] = None
    is_blocking: bool = True
    frequency: Frequency = Frequency.WEEKLY
    week_parity: Optional[WeekParity] = None

    def planned_participants(self) -> list[str]:
        if self.worker_ids:
            return list(self.worker_ids)
        if self.default_worker_id:
            return [self.default_worker_id, *self.secondary_worker_ids]
        return []

    @classmethod
    def from_dict(cls, data: dict) -> "TemplateSlot":
        parity = data.get("week_parity")
        return cls(
            id=data["id"],
            day=DayOfWeek(data["day"]),
            period=Period(data["period"]),
            location=data.get("location", ""),
            type=SlotType(data.get("type", SlotType.CONSULTATION.value)),
            time=data.get("time"),
            default_worker_id=data.get("default_worker_id"),
            secondary_worker_ids=list(data.get("secondary_worker_ids", [])),
            worker_ids=list(data.get("worker_ids", [])),
            backup_worker_id=data.get("backup_worker_id"),
            sub_type=data.get("sub_type"),
            is_blocking=data.get("is_blocking", True),
            frequency=Frequency(data.get("frequency", Frequency.WEEKLY.value)),
            week_parity=WeekParity(parity) if parity else None,
        )


@dataclass
class ManualInstance:
    """One dated occurrence of a MANUAL meeting definition."""
    id: str
    date: Optional[date]
    time: Optional[str]
    worker_ids: list[str] = field(default_factory=list)
    backup_worker_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ManualInstance":
        # date/time are validated at generation time, not here
        raw_date = data.get("date")
        try:
            parsed = _as_date(raw_date)
        except ValueError:
            raise ScheduleValidationError(
                f"Manual instance '{data.get('id')}' has an invalid date: {raw_date!r}"
            ) from None
        return cls(
            id=data.get("id", ""),
            date=parsed,
            time=data.get("time"),
            worker_ids=list(data.get("worker_ids", [])),
            backup_worker_id=data.get("backup_worker_id"),
        )


@dataclass
class RcpDefinition:
    """Named recurring meeting; template rules refer to it by location name."""
    id: str
    name: str
    frequency: Frequency = Frequency.WEEKLY
    week_parity: Optional[WeekParity] = None
    monthly_week_number: Optional[int] = None
    manual_instances: list[ManualInstance] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "RcpDefinition":
        parity = data.get("week_parity")
        return cls(
            id=data["id"],
            name=data["name"],
            frequency=Frequency(data.get("frequency", Frequency.WEEKLY.value)),
            week_parity=WeekParity(parity) if parity else None,
            monthly_week_number=data.get("monthly_week_number"),
            manual_instances=[ManualInstance.from_dict(i) for i in data.get("manual_instances", [])],
        )


@dataclass
class RcpException:
    """Change to one occurrence of a template rule, keyed by its original date."""
    template_id: str
    original_date: date
    new_date: Optional[date] = None
    new_period: Optional[Period] = None
    new_time: Optional[str] = None
    is_cancelled: bool = False
    custom_worker_ids: Optional[list[str]] = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.template_id, self.original_date)

    @classmethod
    def from_dict(cls, data: dict) -> "RcpException":
        new_period = data.get("new_period")
        custom = data.get("custom_worker_ids")
        return cls(
            template_id=data["template_id"],
            original_date=_as_date(data["original_date"]),
            new_date=_as_date(data.get("new_date")),
            new_period=Period(new_period) if new_period else None,
            new_time=data.get("new_time"),
            is_cancelled=data.get("is_cancelled", False),
            custom_worker_ids=list(custom) if custom is not None else None,
        )


@dataclass
class ActivityDefinition:
    id: str
    name: str
    granularity: Granularity = Granularity.HALF_DAY
    allow_double_booking: bool = False
    equity_group: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityDefinition":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            granularity=Granularity(data.get("granularity", Granularity.HALF_DAY.value)),
            allow_double_booking=data.get("allow_double_booking", False),
            equity_group=data.get("equity_group"),
        )


@dataclass
class Unavailability:
    """Dated absence, inclusive on both ends."""
    id: str
    worker_id: str
    start_date: date
    end_date: date
    scope: UnavailabilityScope = UnavailabilityScope.ALL_DAY
    reason: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Unavailability":
        return cls(
            id=data.get("id", ""),
            worker_id=data["worker_id"],
            start_date=_as_date(data["start_date"]),
            end_date=_as_date(data.get("end_date", data["start_date"])),
            scope=UnavailabilityScope(data.get("scope", UnavailabilityScope.ALL_DAY.value)),
            reason=data.get("reason", ""),
        )


@dataclass
class ScheduleSlot:
    """One materialized half-day slot of a generated week."""
    id: str
    date: date
    day: DayOfWeek
    period: Period
    location: str
    type: SlotType
    time: Optional[str] = None
    sub_type: Optional[str] = None
    activity_id: Optional[str] = None
    assigned_worker_id: Optional[str] = None
    secondary_worker_ids: list[str] = field(default_factory=list)
    backup_worker_id: Optional[str] = None
    is_generated: bool = True
    is_blocking: bool = True
    is_unconfirmed: bool = False
    is_cancelled: bool = False
    is_locked: bool = False
    is_closed: bool = False

    @property
    def worker_ids(self) -> list[str]:
        """Primary then secondary workers placed on this slot."""
        ids = [self.assigned_worker_id] if self.assigned_worker_id else []
        return ids + list(self.secondary_worker_ids)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "day": self.day.value,
            "period": self.period.value,
            "time": self.time,
            "location": self.location,
            "type": self.type.value,
            "sub_type": self.sub_type,
            "activity_id": self.activity_id,
            "assigned_worker_id": self.assigned_worker_id,
            "secondary_worker_ids": list(self.secondary_worker_ids),
            "backup_worker_id": self.backup_worker_id,
            "is_generated": self.is_generated,
            "is_blocking": self.is_blocking,
            "is_unconfirmed": self.is_unconfirmed,
            "is_cancelled": self.is_cancelled,
            "is_locked": self.is_locked,
            "is_closed": self.is_closed,
        }


@dataclass
class Conflict:
    id: str
    slot_id: str
    worker_id: str
    kind: ConflictKind
    description: str
    severity: Severity = Severity.HIGH

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slot_id": self.slot_id,
            "worker_id": self.worker_id,
            "kind": self.kind.value,
            "description": self.description,
            "severity": self.severity.value,
        }


@dataclass
class ReplacementSuggestion:
    original_worker_id: str
    suggested_worker_id: str
    reasoning: str
    score: int


# --- Manual overrides -------------------------------------------------------

@dataclass(frozen=True)
class WorkerOverride:
    """Admin-saved assignment of a worker to a slot.

    `auto` marks an automatic pick that an admin confirmed; it counts exactly
    like a hand-picked worker.
    """
    worker_id: str
    auto: bool = False


@dataclass(frozen=True)
class ClosedOverride:
    """Admin closed the slot: nobody is assigned and auto-fill skips it."""


Override = Union[WorkerOverride, ClosedOverride]


def parse_override(raw: Any) -> Optional[Override]:
    """Turn a stored override value into its typed form.

    Returns None for empty or non-string values.
    """
    if isinstance(raw, (WorkerOverride, ClosedOverride)):
        return raw
    if not isinstance(raw, str) or not raw:
        return None
    if raw == CLOSED_OVERRIDE:
        return ClosedOverride()
    if raw.startswith(AUTO_OVERRIDE_PREFIX):
        worker_id = raw[len(AUTO_OVERRIDE_PREFIX):]
        return WorkerOverride(worker_id, auto=True) if worker_id else None
    return WorkerOverride(raw)


# --- Input snapshot -----------------------------------------------------------

@dataclass
class ScheduleSnapshot:
    """Everything the engine reads for one invocation."""
    workers: list[Worker] = field(default_factory=list)
    template: list[TemplateSlot] = field(default_factory=list)
    rcp_definitions: list[RcpDefinition] = field(default_factory=list)
    activities: list[ActivityDefinition] = field(default_factory=list)
    unavailabilities: list[Unavailability] = field(default_factory=list)
    exceptions: list[RcpException] = field(default_factory=list)
    attendance: Attendance = field(default_factory=dict)
    overrides: dict[str, Any] = field(default_factory=dict)
    history: ShiftHistory = field(default_factory=dict)
    counting_start_date: Optional[date] = None

    @property
    def workers_by_id(self) -> dict[str, Worker]:
        return {w.id: w for w in self.workers}

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleSnapshot":
        attendance = {
            slot_id: {wid: AttendanceStatus(status) for wid, status in (responses or {}).items()}
            for slot_id, responses in (data.get("attendance") or {}).items()
        }
        return cls(
            workers=[Worker.from_dict(w) for w in data.get("workers") or []],
            template=[TemplateSlot.from_dict(t) for t in data.get("template") or []],
            rcp_definitions=[RcpDefinition.from_dict(r) for r in data.get("rcp_definitions") or []],
            activities=[ActivityDefinition.from_dict(a) for a in data.get("activities") or []],
            unavailabilities=[Unavailability.from_dict(u) for u in data.get("unavailabilities") or []],
            exceptions=[RcpException.from_dict(e) for e in data.get("exceptions") or []],
            attendance=attendance,
            overrides=dict(data.get("overrides") or {}),
            history={wid: dict(counts) for wid, counts in (data.get("history") or {}).items()},
            counting_start_date=_as_date(data.get("counting_start_date")),
        )
