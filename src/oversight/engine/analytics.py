"""Failure logging for blocked and errored tasks"""
import json
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class FailureRecord:
    """Record of a task that did not get approved"""
    task_id: str
    agent_id: str
    phase: str  # "verification" | "critic_fixer" | "rating" | "compliance"
    error_type: str  # "verification_failed" | "exception"
    error_message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FailureRecord":
        """Load from dict"""
        data = dict(data)
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)


class AnalyticsLogger:
    """Appends failures to a JSONL log and aggregates them"""

    FAILURES_FILE = "failures.jsonl"

    def __init__(self, analytics_dir: Path):
        self.analytics_dir = Path(analytics_dir)
        self.analytics_dir.mkdir(parents=True, exist_ok=True)
        self.failures_log = self.analytics_dir / self.FAILURES_FILE

    def log_failure(self, failure: FailureRecord) -> None:
        """Log a failure; an unwritable log is reported, never raised"""
        try:
            with open(self.failures_log, "a") as f:
                json.dump(failure.to_dict(), f, default=str)
                f.write("\n")
        except OSError as e:
            logger.warning("Could not write failure log %s: %s", self.failures_log, e)

    def _read_entries(self) -> list[dict]:
        if not self.failures_log.exists():
            return []

        entries = []
        with open(self.failures_log, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning("Skipping malformed line in %s", self.failures_log)
        return entries

    def get_failure_stats(self) -> dict[str, Any]:
        """Get aggregated failure statistics"""
        by_phase: dict[str, int] = defaultdict(int)
        by_error_type: dict[str, int] = defaultdict(int)
        by_agent: dict[str, int] = defaultdict(int)

        entries = self._read_entries()
        for entry in entries:
            by_phase[entry.get("phase", "unknown")] += 1
            by_error_type[entry.get("error_type", "unknown")] += 1
            by_agent[entry.get("agent_id", "unknown")] += 1

        return {
            "total_failures": len(entries),
            "by_phase": dict(by_phase),
            "by_error_type": dict(by_error_type),
            "by_agent": dict(by_agent),
        }

    def get_recent_failures(self, limit: int = 10) -> list[dict]:
        """Get most recent failures, newest first"""
        return self._read_entries()[-limit:][::-1]

    def get_failures_by_agent(self, agent_id: str) -> list[FailureRecord]:
        """Get all failures recorded for one agent"""
        return [
            FailureRecord.from_dict(entry)
            for entry in self._read_entries()
            if entry.get("agent_id") == agent_id
        ]
