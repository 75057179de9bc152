"""Scheduler Service - Business logic layer between callers and the engine.

This module provides a clean API for scheduling operations, decoupling callers
(UI, request handlers) from the underlying engine modules. It holds the input
snapshot and the settings loaded from configuration, and exposes:
- Effective equity history (replayed from the counting start date, or supplied)
- Week generation with conflict detection
- Replacement suggestions for a detected conflict
- Configuration persistence
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from datetime import date
from typing import Any, Optional

import yaml

from constants import EQUITY_SCORE_TOLERANCE, HISTORY_MAX_WEEKS, MONTH_VIEW_WEEKS, WORKFLOW_EQUITY_GROUP
from conflict_detection import ConflictReport, detect_conflicts
from eligibility import available_workers
from equity import EquityState, RandomTieBreaker, TieBreaker
from history_accumulator import compute_history_from_date
from logger import get_logger, log_timing
from models import (
    Conflict,
    DayOfWeek,
    Period,
    ReplacementSuggestion,
    ScheduleSlot,
    ScheduleSnapshot,
    ShiftHistory,
    SlotType,
    Worker,
)
from replacement import DEFAULT_SCORING, suggest_replacements
from scheduling_engine import generate_month_schedule, generate_week
from utils import DateLike, parse_date, week_start

logger = get_logger('scheduler_service')


@dataclass(frozen=True)
class EngineSettings:
    """Tunable engine parameters."""
    history_max_weeks: int = HISTORY_MAX_WEEKS
    workflow_equity_group: str = WORKFLOW_EQUITY_GROUP
    equity_score_tolerance: float = EQUITY_SCORE_TOLERANCE
    tie_break_seed: Optional[int] = None
    month_weeks: int = MONTH_VIEW_WEEKS

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngineSettings":
        known = {f.name for f in fields(cls)}
        data = data or {}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ScheduleResult:
    """Result of a week generation."""
    week_start: date
    slots: list[ScheduleSlot] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    history: ShiftHistory = field(default_factory=dict)
    equity: Optional[EquityState] = None

    @property
    def report(self) -> ConflictReport:
        return ConflictReport(list(self.conflicts))

    def slot(self, slot_id: str) -> Optional[ScheduleSlot]:
        for s in self.slots:
            if s.id == slot_id:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "week_start": self.week_start.isoformat(),
            "slots": [s.to_dict() for s in self.slots],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "history": {wid: dict(c) for wid, c in self.history.items()},
            "equity": self.equity.to_dict() if self.equity else None,
        }


class SchedulerService:
    """
    Service layer for schedule operations.

    This class provides a clean API for:
    - Snapshot management (replace the input snapshot, set the counting start date)
    - Effective history computation
    - Week and month generation
    - Conflict detection and replacement suggestions
    - Configuration persistence
    """

    DEFAULT_CONFIG_FILE = "config.yaml"

    def __init__(self, snapshot: Optional[ScheduleSnapshot] = None, config_path: Optional[str] = None,
                 tie_breaker: Optional[TieBreaker] = None):
        """Initialize the scheduler service.

        Args:
            snapshot: Input snapshot. If None, an empty one.
            config_path: Path to configuration file. If None, uses default.
            tie_breaker: Tie-break source for auto-fill. If None, a
                RandomTieBreaker seeded from settings.tie_break_seed.
        """
        self._config_path = config_path or self._get_default_config_path()
        self._snapshot = snapshot or ScheduleSnapshot()
        self._settings = EngineSettings()
        self._scoring: dict[str, Any] = DEFAULT_SCORING.copy()
        self._counting_start_date: Optional[date] = self._snapshot.counting_start_date
        self._tie_breaker = tie_breaker

        self._load_config()

    @staticmethod
    def _get_default_config_path() -> str:
        """Get the default config file path."""
        return os.path.join(os.path.dirname(os.path.abspath(__file__)), SchedulerService.DEFAULT_CONFIG_FILE)

    # =========================================================================
    # Configuration Management
    # =========================================================================

    def _load_config(self) -> None:
        """Load configuration from file."""
        if not os.path.exists(self._config_path):
            logger.info(f"Config file not found at {self._config_path}, using defaults")
            return

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f) or {}

            if 'settings' in config:
                self._settings = EngineSettings.from_dict(config['settings'])

            if 'replacement' in config:
                self._scoring.update(config['replacement'] or {})

            if config.get('counting_start_date') and self._counting_start_date is None:
                self._counting_start_date = parse_date(config['counting_start_date'])

            logger.info(f"Configuration loaded from {self._config_path}")

        except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
            logger.warning(f"Could not load config file: {e}")
            self._settings = EngineSettings()
            self._scoring = DEFAULT_SCORING.copy()

    def save_config(self) -> bool:
        """Save current configuration to file.

        Returns:
            True if save was successful, False otherwise.
        """
        config = {
            'settings': self._settings.to_dict(),
            'replacement': dict(self._scoring),
            'counting_start_date': self._counting_start_date.isoformat() if self._counting_start_date else None,
        }

        try:
            with open(self._config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            logger.info(f"Configuration saved to {self._config_path}")
            return True
        except OSError as e:
            logger.error(f"Could not save config file: {e}")
            return False

    @staticmethod
    def load_snapshot(path: str) -> ScheduleSnapshot:
        """Read an input snapshot from a YAML file."""
        with open(path, 'r', encoding='utf-8') as f:
            return ScheduleSnapshot.from_dict(yaml.safe_load(f) or {})

    # =========================================================================
    # Snapshot & Settings
    # =========================================================================

    @property
    def snapshot(self) -> ScheduleSnapshot:
        return self._snapshot

    @snapshot.setter
    def snapshot(self, value: ScheduleSnapshot) -> None:
        self._snapshot = value

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def scoring(self) -> dict[str, Any]:
        return self._scoring.copy()

    @property
    def counting_start_date(self) -> Optional[date]:
        return self._counting_start_date

    def set_counting_start_date(self, value: Optional[DateLike]) -> None:
        """Set (or clear with None) the date from which history is replayed."""
        self._counting_start_date = parse_date(value) if value else None

    def _get_tie_breaker(self) -> TieBreaker:
        if self._tie_breaker is not None:
            return self._tie_breaker
        return RandomTieBreaker(self._settings.tie_break_seed)

    # =========================================================================
    # History
    # =========================================================================

    def effective_history(self, week_of: DateLike) -> ShiftHistory:
        """Equity history in force for the week containing `week_of`.

        Replayed from saved overrides when a counting start date is set,
        otherwise the history supplied with the snapshot.
        """
        if self._counting_start_date is None:
            return self._snapshot.history
        with log_timing("history replay", logger):
            replay = compute_history_from_date(
                self._counting_start_date,
                week_start(week_of),
                self._snapshot,
                max_weeks=self._settings.history_max_weeks,
                workflow_group=self._settings.workflow_equity_group,
            )
        return replay.history

    # =========================================================================
    # Schedule Generation
    # =========================================================================

    def generate(self, week_of: DateLike, auto_fill: bool = True) -> ScheduleResult:
        """Generate one week and detect its conflicts.

        Args:
            week_of: Any date of the target week
            auto_fill: Fill open activity slots by equity

        Returns:
            ScheduleResult

        Raises:
            ScheduleValidationError: Malformed MANUAL meeting instance
        """
        history = self.effective_history(week_of)
        week = generate_week(
            week_of,
            self._snapshot,
            auto_fill=auto_fill,
            history=history,
            tie_breaker=self._get_tie_breaker(),
            workflow_group=self._settings.workflow_equity_group,
            tolerance=self._settings.equity_score_tolerance,
        )
        conflicts = detect_conflicts(week.slots, self._snapshot.unavailabilities, self._snapshot.workers)
        return ScheduleResult(week.week_start, week.slots, conflicts, history, week.equity)

    def generate_month(self, start: DateLike) -> list[ScheduleSlot]:
        return generate_month_schedule(start, self._snapshot, weeks=self._settings.month_weeks)

    # =========================================================================
    # Conflict Resolution
    # =========================================================================

    def suggest_for_conflict(self, result: ScheduleResult, conflict_id: str) -> list[ReplacementSuggestion]:
        """Replacement suggestions for one conflict of a generated week.

        Returns:
            Ranked suggestions, empty if the conflict, its slot or worker is unknown
        """
        conflict = result.report.get(conflict_id)
        if conflict is None:
            logger.warning(f"Unknown conflict '{conflict_id}'")
            return []
        slot = result.slot(conflict.slot_id)
        unavailable = self._snapshot.workers_by_id.get(conflict.worker_id)
        if slot is None or unavailable is None:
            return []
        return suggest_replacements(
            slot,
            unavailable,
            self._snapshot.workers,
            result.slots,
            result.history,
            self._snapshot.activities,
            scoring=self._scoring,
        )

    def available_workers(self, result: ScheduleResult, day: DayOfWeek, period: Period,
                          target_date: Optional[DateLike] = None,
                          slot_type: Optional[SlotType] = None) -> list[Worker]:
        """Workers an admin may pick by hand for a half-day of a generated week."""
        return available_workers(
            self._snapshot.workers,
            result.slots,
            self._snapshot.unavailabilities,
            day,
            period,
            target_date=parse_date(target_date) if target_date else None,
            slot_type=slot_type,
        )
