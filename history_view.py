"""History access adapter.

Equity history is stored as:
  history[worker_id][activity_id] -> count
with optional pooled totals under "equity_<group>" keys.

This module provides read/query helpers so scheduling logic doesn't have to know
about that schema everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Tuple

GROUP_KEY_PREFIX = "equity_"

History = Dict[str, Dict[str, int]]


def group_key(group: str) -> str:
    return f"{GROUP_KEY_PREFIX}{group}"


@dataclass(frozen=True)
class HistoryView:
    history: History

    def iter_counts(self) -> Iterator[Tuple[str, str, int]]:
        """(worker_id, activity_id, count) for per-activity entries only."""
        for worker_id, counts in (self.history or {}).items():
            if not isinstance(counts, dict):
                continue
            for key, count in counts.items():
                if key.startswith(GROUP_KEY_PREFIX) or not isinstance(count, (int, float)):
                    continue
                yield worker_id, key, count

    def count(self, worker_id: str, activity_id: str) -> int:
        return (self.history or {}).get(worker_id, {}).get(activity_id, 0) or 0

    def activities_total(self, worker_id: str, activity_ids: Iterable[str]) -> int:
        """Sum of a worker's counts over several activities."""
        return sum(self.count(worker_id, a) for a in activity_ids)

    def group_total(self, worker_id: str, group: str) -> int:
        """Stored pooled total for an equity group, 0 when absent."""
        return self.count(worker_id, group_key(group))

    def totals_by_worker(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for worker_id, _activity, count in self.iter_counts():
            totals[worker_id] = totals.get(worker_id, 0) + count
        return totals
