"""
Tests for SchedulerService - the business logic layer.

These tests cover:
- Configuration loading, fallback and persistence
- Effective history (replayed or supplied)
- Week generation with conflicts
- Replacement suggestions per conflict
- Manual picker lookup and month view
"""

import logging
import pytest
import yaml
from datetime import date

from equity import first_candidate
from models import DayOfWeek, Period, SlotType, Unavailability
from scheduler_service import EngineSettings, ScheduleResult, SchedulerService

WEEK = date(2024, 1, 8)
NEXT_WEEK = date(2024, 1, 15)


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "config.yaml")


def _write(path, data):
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(data, f)


class TestEngineSettings:

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.history_max_weeks == 104
        assert settings.workflow_equity_group == "workflow"
        assert settings.equity_score_tolerance == 0.1
        assert settings.tie_break_seed is None
        assert settings.month_weeks == 5

    def test_from_dict_merges_over_defaults(self):
        settings = EngineSettings.from_dict({"tie_break_seed": 3})
        assert settings.tie_break_seed == 3
        assert settings.history_max_weeks == 104

    def test_unknown_keys_are_ignored(self, caplog):
        with caplog.at_level(logging.WARNING):
            settings = EngineSettings.from_dict({"colour": "blue"})
        assert settings == EngineSettings()
        assert "colour" in caplog.text

    def test_immutable(self):
        with pytest.raises(AttributeError):
            EngineSettings().month_weeks = 3


class TestConfiguration:
    """Tests for config file handling."""

    def test_missing_file_uses_defaults(self, snapshot, config_path):
        service = SchedulerService(snapshot, config_path=config_path)
        assert service.settings == EngineSettings()
        assert service.scoring["max_suggestions"] == 5
        assert service.counting_start_date is None

    def test_load(self, snapshot, config_path):
        _write(config_path, {
            "settings": {"tie_break_seed": 7, "month_weeks": 2},
            "replacement": {"max_suggestions": 1},
            "counting_start_date": "2024-01-01",
        })
        service = SchedulerService(snapshot, config_path=config_path)
        assert service.settings.tie_break_seed == 7
        assert service.settings.month_weeks == 2
        assert service.scoring["max_suggestions"] == 1
        assert service.scoring["base_score"] == 50
        assert service.counting_start_date == date(2024, 1, 1)

    def test_snapshot_counting_date_wins(self, snapshot, config_path):
        _write(config_path, {"counting_start_date": "2024-01-01"})
        snapshot.counting_start_date = WEEK
        assert SchedulerService(snapshot, config_path=config_path).counting_start_date == WEEK

    def test_invalid_yaml_falls_back(self, snapshot, config_path, caplog):
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("settings: [unclosed\n")
        with caplog.at_level(logging.WARNING):
            service = SchedulerService(snapshot, config_path=config_path)
        assert service.settings == EngineSettings()
        assert "Could not load config file" in caplog.text

    def test_save_and_reload(self, snapshot, config_path):
        _write(config_path, {"settings": {"tie_break_seed": 11}, "replacement": {"base_score": 40}})
        service = SchedulerService(snapshot, config_path=config_path)
        service.set_counting_start_date("2024-01-03")
        assert service.save_config()

        reloaded = SchedulerService(snapshot, config_path=config_path)
        assert reloaded.settings == service.settings
        assert reloaded.scoring == service.scoring
        assert reloaded.counting_start_date == date(2024, 1, 3)

    def test_save_to_unwritable_path(self, snapshot, tmp_path):
        service = SchedulerService(snapshot, config_path=str(tmp_path / "missing" / "config.yaml"))
        assert service.save_config() is False

    def test_load_snapshot(self, tmp_path):
        path = tmp_path / "snapshot.yaml"
        _write(str(path), {
            "workers": [{"id": "w1", "name": "W1"}],
            "unavailabilities": [{"worker_id": "w1", "start_date": "2024-01-08"}],
            "overrides": {"s1": "w1"},
        })
        snap = SchedulerService.load_snapshot(str(path))
        assert snap.workers[0].id == "w1"
        assert snap.unavailabilities[0].end_date == WEEK
        assert snap.overrides == {"s1": "w1"}


class TestEffectiveHistory:

    def test_supplied_history_without_counting_date(self, snapshot, config_path):
        snapshot.history = {"alice": {"astreinte": 4}}
        service = SchedulerService(snapshot, config_path=config_path)
        assert service.effective_history(WEEK) == {"alice": {"astreinte": 4}}

    def test_replayed_from_counting_date(self, snapshot, config_path):
        snapshot.history = {"alice": {"astreinte": 4}}
        snapshot.overrides = {"act-astreinte-2024-01-09-MORNING": "bob"}
        service = SchedulerService(snapshot, config_path=config_path)
        service.set_counting_start_date(WEEK)

        history = service.effective_history(date(2024, 1, 17))
        assert history["bob"]["astreinte"] == 1
        assert history["alice"]["astreinte"] == 0

    def test_clearing_counting_date(self, snapshot, config_path):
        service = SchedulerService(snapshot, config_path=config_path)
        service.set_counting_start_date(WEEK)
        service.set_counting_start_date(None)
        assert service.counting_start_date is None


class TestGenerate:
    """Tests for generation through the service."""

    def test_result(self, snapshot, config_path):
        service = SchedulerService(snapshot, config_path=config_path, tie_breaker=first_candidate)
        result = service.generate(WEEK)
        assert isinstance(result, ScheduleResult)
        assert result.week_start == WEEK
        assert len(result.slots) == 22
        assert result.conflicts == []
        assert result.equity is not None
        assert result.slot("t-consult-2024-01-08").assigned_worker_id == "alice"
        assert result.slot("nope") is None

    def test_seed_from_config_is_reproducible(self, snapshot, config_path):
        _write(config_path, {"settings": {"tie_break_seed": 5}})
        first = SchedulerService(snapshot, config_path=config_path).generate(WEEK)
        second = SchedulerService(snapshot, config_path=config_path).generate(WEEK)
        assert first.to_dict() == second.to_dict()

    def test_conflicts_and_replacements(self, snapshot, config_path):
        snapshot.unavailabilities = [Unavailability("u1", "alice", WEEK, WEEK, reason="Congrès")]
        service = SchedulerService(snapshot, config_path=config_path, tie_breaker=first_candidate)
        result = service.generate(WEEK)

        conflict_id = "conflict-abs-t-consult-2024-01-08-alice"
        assert result.report.get(conflict_id) is not None

        suggestions = service.suggest_for_conflict(result, conflict_id)
        assert [s.suggested_worker_id for s in suggestions] == ["bob", "carol"]
        assert suggestions[0].score == 100

    def test_replacement_scoring_from_config(self, snapshot, config_path):
        _write(config_path, {"replacement": {"max_suggestions": 1}})
        snapshot.unavailabilities = [Unavailability("u1", "alice", WEEK, WEEK)]
        service = SchedulerService(snapshot, config_path=config_path, tie_breaker=first_candidate)
        result = service.generate(WEEK)
        assert len(service.suggest_for_conflict(result, "conflict-abs-t-consult-2024-01-08-alice")) == 1

    def test_unknown_conflict(self, snapshot, config_path, caplog):
        service = SchedulerService(snapshot, config_path=config_path, tie_breaker=first_candidate)
        result = service.generate(WEEK)
        with caplog.at_level(logging.WARNING):
            assert service.suggest_for_conflict(result, "conflict-nope") == []
        assert "conflict-nope" in caplog.text

    def test_available_workers(self, snapshot, config_path):
        service = SchedulerService(snapshot, config_path=config_path)
        result = service.generate(WEEK, auto_fill=False)
        found = service.available_workers(result, DayOfWeek.MONDAY, Period.MORNING, target_date=WEEK,
                                          slot_type=SlotType.ACTIVITY)
        assert [w.id for w in found] == ["bob", "carol"]

    def test_generate_month_uses_settings(self, snapshot, config_path):
        _write(config_path, {"settings": {"month_weeks": 2}})
        service = SchedulerService(snapshot, config_path=config_path)
        assert len(service.generate_month(WEEK)) == 2 * 22

    def test_result_to_dict(self, snapshot, config_path):
        service = SchedulerService(snapshot, config_path=config_path, tie_breaker=first_candidate)
        data = service.generate(WEEK).to_dict()
        assert data["week_start"] == "2024-01-08"
        assert data["conflicts"] == []
        assert "scores" in data["equity"]
