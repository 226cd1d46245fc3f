"""
Process-local record of recent sync runs, served by the API
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional

from schemas.sync import SyncSummary


class RunHistory:
    """Bounded, newest-last list of run summaries plus the last run-level error"""

    def __init__(self, max_runs: int = 20):
        self._runs: Deque[SyncSummary] = deque(maxlen=max_runs)
        self.last_error: Optional[Dict[str, Any]] = None

    def record(self, summary: SyncSummary):
        self._runs.append(summary)
        self.last_error = None

    def record_error(self, error: Dict[str, Any]):
        self.last_error = error

    def latest(self) -> Optional[SyncSummary]:
        return self._runs[-1] if self._runs else None

    def recent(self, limit: int = 10) -> List[SyncSummary]:
        return list(self._runs)[-limit:][::-1]

    def __len__(self) -> int:
        return len(self._runs)
