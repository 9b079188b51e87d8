"""
Execution History
-----------------
Bounded, per-tool audit trail of every execution attempt.

Design:
- One deque per tool id, capped; oldest records evicted first
- Appends are atomic with respect to each other (single lock)
- Records appended in completion order, not call order
- Optional JSON-lines mirror for post-mortems
"""

from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional
import json
import logging
import threading

from core.models import ExecutionRecord


class ExecutionHistory:
    """
    In-memory audit log owned by SafeExecutor for the process lifetime.

    The only state shared across concurrent executions.
    """

    DEFAULT_LIMIT = 100

    def __init__(self, limit: int = DEFAULT_LIMIT, audit_file: Optional[str] = None):
        if limit <= 0:
            raise ValueError("History limit must be positive")

        self._limit = limit
        self._records: Dict[str, Deque[ExecutionRecord]] = {}
        self._lock = threading.Lock()
        self._audit_file = Path(audit_file) if audit_file else None
        self._logger = logging.getLogger("sandbox.infra.audit")

        if self._audit_file is not None:
            self._audit_file.parent.mkdir(parents=True, exist_ok=True)

    @property
    def limit(self) -> int:
        return self._limit

    def append(self, record: ExecutionRecord) -> None:
        """Append a record to its tool's history."""
        with self._lock:
            history = self._records.get(record.tool_id)
            if history is None:
                history = deque(maxlen=self._limit)
                self._records[record.tool_id] = history
            history.append(record)

            if self._audit_file is not None:
                self._write_line(record)

        self._logger.debug(
            f"Audit: {record.tool_id} | {record.status} | {record.duration_ms:.1f} ms"
        )

    def _write_line(self, record: ExecutionRecord) -> None:
        try:
            with open(self._audit_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(record.to_dict(), default=str, sort_keys=True) + "\n")
        except OSError as e:
            # The in-memory trail is authoritative; the file is a mirror
            self._logger.error(f"Failed to write audit file {self._audit_file}: {e}")

    def get(self, tool_id: str) -> List[ExecutionRecord]:
        """Ordered snapshot for one tool, oldest first. Empty if never called."""
        with self._lock:
            return list(self._records.get(tool_id, ()))

    def latest(self, tool_id: str) -> Optional[ExecutionRecord]:
        with self._lock:
            history = self._records.get(tool_id)
            return history[-1] if history else None

    def tool_ids(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        """Success/failure counts per tool over the retained records."""
        stats: Dict[str, Dict[str, int]] = {}
        with self._lock:
            for tool_id, history in self._records.items():
                successes = sum(1 for r in history if r.status == "success")
                stats[tool_id] = {
                    "total": len(history),
                    "success": successes,
                    "failure": len(history) - successes,
                }
        return stats

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(h) for h in self._records.values())
