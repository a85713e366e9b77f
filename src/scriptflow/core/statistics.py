"""
Execution statistics collected per element location.
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class ElementStatistics:
    """
    Outcome counters for one configured element.

    Attributes:
        location: Element location
        successful: Number of invocations that returned normally
        failed: Number of invocations that raised
        total_seconds: Cumulative time spent inside the element
    """

    location: str
    successful: int = 0
    failed: int = 0
    total_seconds: float = 0.0

    @property
    def executed(self) -> int:
        return self.successful + self.failed

    @property
    def average_seconds(self) -> float:
        return self.total_seconds / self.executed if self.executed else 0.0


@dataclass
class ExecutionStatistics:
    """
    Result of an ETL session run.

    Attributes:
        elements: Statistics keyed by element location, in first-execution order
        started_at: When the run started (None for a dry run)
        finished_at: When the run finished (None for a dry run)

    Example:
        >>> stats = session.run()
        >>> print(f"Executed {stats.executed_count} elements in {stats.duration_seconds:.2f}s")
        >>> stats.elements["load_users"].successful
        120
    """

    elements: dict[str, ElementStatistics] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def executed_count(self) -> int:
        return sum(e.executed for e in self.elements.values())

    @property
    def failed_count(self) -> int:
        return sum(e.failed for e in self.elements.values())

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dictionary."""
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "executed_count": self.executed_count,
            "failed_count": self.failed_count,
            "elements": [
                {
                    "location": e.location,
                    "successful": e.successful,
                    "failed": e.failed,
                    "total_seconds": e.total_seconds,
                    "average_seconds": e.average_seconds,
                }
                for e in self.elements.values()
            ],
        }

    def to_json(self) -> str:
        """
        Serialize to a JSON string, e.g. for a run report file.

        Example:
            >>> Path("output/stats.json").write_text(stats.to_json())
        """
        return json.dumps(self.to_dict(), indent=2)


class StatisticsCollector:
    """
    Thread-safe accumulator fed by the statistics interceptor.

    One collector belongs to one session; there is no process-wide state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._elements: dict[str, ElementStatistics] = {}

    def record(self, location: str, elapsed_seconds: float, success: bool) -> None:
        """
        Record one element invocation.

        Args:
            location: Element location
            elapsed_seconds: Time spent in the invocation
            success: Whether the invocation returned normally
        """
        with self._lock:
            stats = self._elements.get(location)
            if stats is None:
                stats = self._elements[location] = ElementStatistics(location)
            if success:
                stats.successful += 1
            else:
                stats.failed += 1
            stats.total_seconds += elapsed_seconds

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._elements.clear()

    def get(self, location: str) -> Optional[ElementStatistics]:
        with self._lock:
            return self._elements.get(location)

    def snapshot(
        self,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ) -> ExecutionStatistics:
        """Copy the collected counters into an ExecutionStatistics."""
        with self._lock:
            elements = {
                location: ElementStatistics(
                    location=s.location,
                    successful=s.successful,
                    failed=s.failed,
                    total_seconds=s.total_seconds,
                )
                for location, s in self._elements.items()
            }
        return ExecutionStatistics(elements=elements, started_at=started_at, finished_at=finished_at)
