"""
Pytest fixtures and configuration for medplan tests.
"""

import pytest
import sys
import os
from datetime import date

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import (  # noqa: E402
    ActivityDefinition,
    DayOfWeek,
    Frequency,
    Granularity,
    HalfDay,
    Period,
    RcpDefinition,
    ScheduleSlot,
    ScheduleSnapshot,
    SlotType,
    TemplateSlot,
    Worker,
)

# Monday of ISO week 2 (even), no public holiday in the week
WEEK = date(2024, 1, 8)


@pytest.fixture
def workers():
    """Three doctors; Carol does not work on Wednesday afternoons."""
    return [
        Worker(id="alice", name="Alice", specialties=["cardio", "onco"]),
        Worker(id="bob", name="Bob", specialties=["onco"]),
        Worker(
            id="carol",
            name="Carol",
            specialties=["derm"],
            excluded_half_days=[HalfDay(DayOfWeek.WEDNESDAY, Period.AFTERNOON)],
        ),
    ]


@pytest.fixture
def template():
    """A Monday morning consultation and a Tuesday afternoon meeting."""
    return [
        TemplateSlot(
            id="t-consult",
            day=DayOfWeek.MONDAY,
            period=Period.MORNING,
            location="Consult Cardio",
            type=SlotType.CONSULTATION,
            time="09:00",
            default_worker_id="alice",
        ),
        TemplateSlot(
            id="t-rcp",
            day=DayOfWeek.TUESDAY,
            period=Period.AFTERNOON,
            location="RCP Onco",
            type=SlotType.RCP,
            time="14:00",
            worker_ids=["alice", "bob"],
        ),
    ]


@pytest.fixture
def rcp_definitions():
    return [RcpDefinition(id="rcp-onco", name="RCP Onco", frequency=Frequency.WEEKLY)]


@pytest.fixture
def activities():
    """A half-day on-call rota and a pooled week-long workflow rotation."""
    return [
        ActivityDefinition(id="astreinte", name="Astreinte", granularity=Granularity.HALF_DAY),
        ActivityDefinition(
            id="workflow",
            name="Workflow",
            granularity=Granularity.WEEKLY,
            allow_double_booking=True,
            equity_group="workflow",
        ),
    ]


@pytest.fixture
def snapshot(workers, template, rcp_definitions, activities):
    """Provide a ready snapshot with no absences, exceptions or history."""
    return ScheduleSnapshot(
        workers=workers,
        template=template,
        rcp_definitions=rcp_definitions,
        activities=activities,
    )


@pytest.fixture
def make_slot():
    """Factory for hand-built schedule slots."""
    def _make(slot_id, day=WEEK, period=Period.MORNING, worker=None, **kwargs):
        kwargs.setdefault("location", slot_id)
        kwargs.setdefault("type", SlotType.CONSULTATION)
        return ScheduleSlot(
            id=slot_id,
            date=day,
            day=DayOfWeek.from_weekday(day.weekday()),
            period=period,
            assigned_worker_id=worker,
            **kwargs,
        )
    return _make
