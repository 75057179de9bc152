"""
Tests for the greedy equity assigner.

These tests cover:
- Group scores seeded from history
- Half-day rotation and its fairness
- Holidays, absences, closed and manually assigned slots
- Week-granularity activities (workflow and regular)
- Reproducibility with a seeded tie-breaker
"""

import pytest
from collections import Counter
from dataclasses import replace
from datetime import date, timedelta

from conflict_detection import detect_conflicts
from equity import (
    EquityState,
    RandomTieBreaker,
    equity_group_of,
    fill_auto_activities,
    first_candidate,
    group_activities,
    pick_half_day_candidate,
    pick_week_candidate,
)
from models import (
    ActivityDefinition,
    ConflictKind,
    DayOfWeek,
    Granularity,
    HalfDay,
    Period,
    Unavailability,
    UnavailabilityScope,
    Worker,
)
from scheduling_engine import build_activity_slots

WEEK = date(2024, 1, 8)
HOLIDAY_WEEK = date(2024, 1, 1)

ASTREINTE = ActivityDefinition("astreinte", "Astreinte", Granularity.HALF_DAY)
WORKFLOW = ActivityDefinition("workflow", "Workflow", Granularity.WEEKLY,
                              allow_double_booking=True, equity_group="workflow")
SUPERVISION = ActivityDefinition("supervision", "Supervision", Granularity.WEEKLY,
                                 allow_double_booking=True)


def _fill(workers, activities, monday=WEEK, unavs=(), history=None, slots=None, tie_breaker=first_candidate):
    slots = slots if slots is not None else build_activity_slots(monday, activities)
    state = EquityState.seed(workers, activities, history)
    return fill_auto_activities(slots, activities, workers, list(unavs), state=state, tie_breaker=tie_breaker)


def _assigned(slots, activity_id=None):
    return Counter(
        s.assigned_worker_id for s in slots
        if s.assigned_worker_id and (activity_id is None or s.activity_id == activity_id)
    )


class TestEquityGroups:

    def test_private_group_by_default(self):
        assert equity_group_of(ASTREINTE) == "custom_astreinte"

    def test_explicit_group(self):
        assert equity_group_of(WORKFLOW) == "workflow"

    def test_group_activities(self):
        pooled = ActivityDefinition("wf2", "Workflow 2", Granularity.WEEKLY, equity_group="workflow")
        groups = group_activities([ASTREINTE, WORKFLOW, pooled])
        assert [a.id for a in groups["workflow"]] == ["workflow", "wf2"]
        assert [a.id for a in groups["custom_astreinte"]] == ["astreinte"]


class TestEquityState:
    """Tests for EquityState bookkeeping."""

    def test_seed_sums_history_per_group(self, workers):
        pooled = ActivityDefinition("wf2", "Workflow 2", Granularity.WEEKLY, equity_group="workflow")
        history = {"alice": {"workflow": 2, "wf2": 3, "astreinte": 1}}
        state = EquityState.seed(workers, [ASTREINTE, WORKFLOW, pooled], history)
        assert state.score("alice", "workflow") == 5
        assert state.score("alice", "custom_astreinte") == 1
        assert state.score("bob", "workflow") == 0

    def test_weighted_score_uses_work_rate(self, workers):
        state = EquityState(scores={"carol": {"g": 9}})
        assert state.weighted_score(workers[2], "g") == pytest.approx(10.0)

    def test_start_week_resets_load_only(self, workers):
        state = EquityState.seed(workers, [ASTREINTE])
        state.record("alice", "custom_astreinte")
        fresh = state.start_week()
        assert fresh.score("alice", "custom_astreinte") == 1
        assert fresh.load("alice") == 0
        assert state.load("alice") == 1

    def test_record_without_week_load(self):
        state = EquityState()
        state.record("alice", "workflow", count_in_week=False)
        assert state.score("alice", "workflow") == 1
        assert state.load("alice") == 0


class TestPickCandidate:

    def test_lowest_weighted_score_wins(self, workers):
        state = EquityState(scores={"alice": {"g": 3}, "bob": {"g": 1}, "carol": {"g": 2}})
        assert pick_half_day_candidate(workers, "g", state, first_candidate).id == "bob"

    def test_scores_within_tolerance_tie(self, workers):
        """Carol's 1/0.9 is within 0.2 of Bob's 1, so week load decides."""
        state = EquityState(
            scores={"alice": {"g": 3}, "bob": {"g": 1}, "carol": {"g": 1}},
            week_load={"bob": 2, "carol": 0},
        )
        assert pick_half_day_candidate(workers, "g", state, first_candidate, tolerance=0.2).id == "carol"

    def test_week_load_breaks_score_ties(self, workers):
        state = EquityState(week_load={"alice": 2, "bob": 1, "carol": 1})
        assert pick_half_day_candidate(workers, "g", state, lambda tied: tied[-1]).id == "carol"

    def test_workflow_compares_raw_counts(self, workers):
        """Raw counts: Carol's 1 beats Alice's 2 even though Carol works less."""
        state = EquityState(scores={"alice": {"workflow": 2}, "bob": {"workflow": 3}, "carol": {"workflow": 1}})
        assert pick_week_candidate(workers, "workflow", state, first_candidate).id == "carol"


class TestHalfDayFill:
    """Tests for pass 1: half-day activities."""

    def test_all_slots_filled_fairly(self, workers):
        slots, state = _fill(workers, [ASTREINTE])
        counts = _assigned(slots)
        assert sum(counts.values()) == 10
        assert max(counts.values()) - min(counts.values()) <= 1
        assert set(counts) == {"alice", "bob", "carol"}

    def test_recurring_exclusion_respected(self, workers):
        slots, _ = _fill(workers, [ASTREINTE])
        wed_pm = next(s for s in slots if s.date == date(2024, 1, 10) and s.period == Period.AFTERNOON)
        assert wed_pm.assigned_worker_id != "carol"

    def test_history_steers_assignments(self, workers):
        slots, _ = _fill(workers, [ASTREINTE], history={"alice": {"astreinte": 10}})
        assert "alice" not in _assigned(slots)

    def test_scores_are_carried_out(self, workers):
        _, state = _fill(workers, [ASTREINTE])
        assert sum(state.score(w.id, "custom_astreinte") for w in workers) == 10

    def test_absent_worker_skipped(self, workers):
        unavs = [Unavailability("u1", "bob", WEEK, date(2024, 1, 12))]
        slots, _ = _fill(workers, [ASTREINTE], unavs=unavs)
        assert "bob" not in _assigned(slots)

    def test_holiday_not_filled(self, workers):
        slots, _ = _fill(workers, [ASTREINTE], monday=HOLIDAY_WEEK)
        for slot in slots:
            if slot.date == HOLIDAY_WEEK:
                assert slot.assigned_worker_id is None
            else:
                assert slot.assigned_worker_id is not None

    def test_no_candidate_leaves_slot_open(self):
        only = Worker("w", "W", excluded_half_days=[HalfDay(DayOfWeek.MONDAY, Period.MORNING)])
        slots, _ = _fill([only], [ASTREINTE])
        mon_am = next(s for s in slots if s.date == WEEK and s.period == Period.MORNING)
        assert mon_am.assigned_worker_id is None

    def test_closed_slot_skipped(self, workers):
        slots = build_activity_slots(WEEK, [ASTREINTE])
        slots[0] = replace(slots[0], is_closed=True, is_locked=True)
        filled, _ = _fill(workers, [ASTREINTE], slots=slots)
        assert filled[0].assigned_worker_id is None

    def test_manual_assignment_is_kept_and_counted(self, workers):
        slots = build_activity_slots(WEEK, [ASTREINTE])
        slots[0] = replace(slots[0], assigned_worker_id="carol", is_locked=True)
        filled, state = _fill(workers, [ASTREINTE], slots=slots)
        assert filled[0].assigned_worker_id == "carol"
        assert sum(state.score(w.id, "custom_astreinte") for w in workers) == 10

    def test_input_slots_not_mutated(self, workers):
        slots = build_activity_slots(WEEK, [ASTREINTE])
        _fill(workers, [ASTREINTE], slots=slots)
        assert all(s.assigned_worker_id is None for s in slots)

    def test_seeded_tie_breaker_is_reproducible(self, workers):
        first, _ = _fill(workers, [ASTREINTE], tie_breaker=RandomTieBreaker(seed=42))
        second, _ = _fill(workers, [ASTREINTE], tie_breaker=RandomTieBreaker(seed=42))
        assert [s.assigned_worker_id for s in first] == [s.assigned_worker_id for s in second]

    def test_scores_converge_over_weeks(self):
        """Equal work rates: group scores never drift more than one apart."""
        team = [Worker("a", "A"), Worker("b", "B"), Worker("c", "C"), Worker("d", "D")]
        state = EquityState.seed(team, [ASTREINTE])
        tie_breaker = RandomTieBreaker(seed=3)
        for week in range(8):
            monday = date(2024, 2, 5) + timedelta(weeks=week)
            slots = build_activity_slots(monday, [ASTREINTE])
            _, state = fill_auto_activities(slots, [ASTREINTE], team, [], state=state, tie_breaker=tie_breaker)
            scores = [state.score(w.id, "custom_astreinte") for w in team]
            assert max(scores) - min(scores) <= 1

    def test_no_workers(self):
        slots, _ = _fill([], [ASTREINTE])
        assert all(s.assigned_worker_id is None for s in slots)


class TestWeekFill:
    """Tests for pass 2: week-granularity activities."""

    def test_one_worker_for_the_whole_week(self, workers):
        slots, state = _fill(workers, [WORKFLOW])
        assert _assigned(slots) == Counter({"alice": 10})
        assert state.score("alice", "workflow") == 1
        assert state.load("alice") == 0

    def test_absence_of_any_scope_excludes(self, workers):
        unavs = [Unavailability("u1", "alice", date(2024, 1, 11), date(2024, 1, 11), UnavailabilityScope.MORNING)]
        slots, _ = _fill(workers, [WORKFLOW], unavs=unavs)
        assert set(_assigned(slots)) == {"bob"}

    def test_workflow_ignores_recurring_half_days(self, workers):
        history = {"alice": {"workflow": 5}, "bob": {"workflow": 5}}
        slots, _ = _fill(workers, [WORKFLOW], history=history)
        assert set(_assigned(slots)) == {"carol"}

    def test_regular_week_activity_respects_recurring_half_days(self, workers):
        history = {"alice": {"supervision": 5}, "bob": {"supervision": 5}}
        slots, _ = _fill(workers, [SUPERVISION], history=history)
        assert set(_assigned(slots)) == {"alice"}

    def test_manual_pick_extends_to_the_week(self, workers):
        slots = build_activity_slots(WEEK, [WORKFLOW])
        slots[3] = replace(slots[3], assigned_worker_id="bob", is_locked=True)
        filled, state = _fill(workers, [WORKFLOW], slots=slots)
        assert _assigned(filled) == Counter({"bob": 10})
        assert state.score("bob", "workflow") == 1

    def test_excluded_activity(self, workers):
        workers[0] = replace(workers[0], excluded_activities=["workflow"])
        slots, _ = _fill(workers, [WORKFLOW])
        assert set(_assigned(slots)) == {"bob"}

    def test_blocking_week_activity_avoids_busy_worker(self, workers, make_slot):
        """Alice has a Monday morning consultation, so the blocking week goes to Bob."""
        blocking = ActivityDefinition("supervision", "Supervision", Granularity.WEEKLY)
        consult = make_slot("consult", worker="alice")
        slots = [consult] + build_activity_slots(WEEK, [blocking])
        history = {"bob": {"supervision": 5}, "carol": {"supervision": 5}}
        filled, _ = _fill(workers, [blocking], history=history, slots=slots)
        assert filled[0].assigned_worker_id == "alice"
        assert _assigned(filled, "supervision") == Counter({"bob": 10})
        assert not [c for c in detect_conflicts(filled, [], workers) if c.kind == ConflictKind.DOUBLE_BOOKING]

    def test_manual_holder_skips_blocked_half_day(self, workers, make_slot):
        blocking = ActivityDefinition("supervision", "Supervision", Granularity.WEEKLY)
        slots = [make_slot("consult", worker="alice")] + build_activity_slots(WEEK, [blocking])
        slots[3] = replace(slots[3], assigned_worker_id="alice", is_locked=True)
        filled, _ = _fill(workers, [blocking], slots=slots)
        mon_am = filled[1]
        assert mon_am.date == WEEK and mon_am.period == Period.MORNING
        assert mon_am.assigned_worker_id is None
        assert _assigned(filled, "supervision") == Counter({"alice": 9})
        assert not [c for c in detect_conflicts(filled, [], workers) if c.kind == ConflictKind.DOUBLE_BOOKING]
