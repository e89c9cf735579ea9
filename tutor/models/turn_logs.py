"""
Turn Logging Models

In-memory storage for per-subject orchestration events.
"""

from datetime import datetime
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field
import threading


class TurnLogEntry(BaseModel):
    """Single orchestration event."""

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    subject_id: str
    turn_id: str
    event_type: str
    tool_name: Optional[str] = None
    input_summary: Optional[str] = None
    output: Optional[Dict[str, Any]] = None
    duration_ms: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TurnLogStore:
    """In-memory storage for turn logs, thread-safe."""

    def __init__(self, max_logs_per_subject: int = 200):
        self._logs: Dict[str, List[TurnLogEntry]] = {}
        self._lock = threading.Lock()
        self._max_logs = max_logs_per_subject

    def add_log(self, entry: TurnLogEntry) -> None:
        with self._lock:
            logs = self._logs.setdefault(entry.subject_id, [])
            logs.append(entry)
            if len(logs) > self._max_logs:
                self._logs[entry.subject_id] = logs[-self._max_logs:]

    def get_logs(
        self,
        subject_id: str,
        turn_id: Optional[str] = None,
        event_type: Optional[str] = None,
    ) -> List[TurnLogEntry]:
        with self._lock:
            logs = list(self._logs.get(subject_id, []))
        if turn_id:
            logs = [log for log in logs if log.turn_id == turn_id]
        if event_type:
            logs = [log for log in logs if log.event_type == event_type]
        return logs

    def get_recent_logs(self, subject_id: str, limit: int = 50) -> List[TurnLogEntry]:
        with self._lock:
            logs = self._logs.get(subject_id, [])
            return logs[-limit:] if logs else []

    def clear_subject(self, subject_id: str) -> None:
        with self._lock:
            self._logs.pop(subject_id, None)

    def interactive_usage(self, subject_id: str) -> Dict[str, Any]:
        """How many completed turns produced interactive content."""
        with self._lock:
            completed = [
                log for log in self._logs.get(subject_id, [])
                if log.event_type == "turn_completed"
            ]
        turns = len(completed)
        with_content = sum(1 for log in completed if log.metadata.get("interactive_count", 0) > 0)
        return {
            "turns": turns,
            "turns_with_interactive": with_content,
            "interactive_rate": (with_content / turns) if turns else 0.0,
        }

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            total_logs = sum(len(logs) for logs in self._logs.values())
            return {
                "subject_count": len(self._logs),
                "total_logs": total_logs,
                "max_logs_per_subject": self._max_logs,
            }


_turn_log_store: Optional[TurnLogStore] = None


def get_turn_log_store() -> TurnLogStore:
    global _turn_log_store
    if _turn_log_store is None:
        _turn_log_store = TurnLogStore()
    return _turn_log_store
