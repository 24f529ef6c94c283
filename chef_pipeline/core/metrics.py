"""
Per-build timing and status records.
"""

import copy
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

RUNNING = "running"


@dataclass
class BuildMetrics:
    """Timing and counters for one build."""
    start_time: datetime
    end_time: Optional[datetime] = None
    build_duration: float = 0.0
    deploy_duration: float = 0.0
    status: str = RUNNING
    error_count: int = 0
    warning_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "build_duration": self.build_duration,
            "deploy_duration": self.deploy_duration,
            "status": self.status,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
        }


class MetricsCollector:
    """
    Thread-safe metrics registry keyed by build id.

    Holds at most ``max_entries`` records; when full, the oldest finished
    record is dropped. Running builds are never evicted.
    """

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self._metrics: "OrderedDict[str, BuildMetrics]" = OrderedDict()
        self._lock = threading.Lock()

    def start_build(self, build_id: str) -> None:
        with self._lock:
            self._metrics.pop(build_id, None)
            self._metrics[build_id] = BuildMetrics(start_time=datetime.now())
            self._evict()

    def end_build(self, build_id: str, status: str) -> None:
        with self._lock:
            metrics = self._metrics.get(build_id)
            if metrics is None:
                return
            metrics.end_time = datetime.now()
            metrics.build_duration = (metrics.end_time - metrics.start_time).total_seconds()
            metrics.status = status

    def record_deploy(self, build_id: str, duration_seconds: float) -> None:
        with self._lock:
            if build_id in self._metrics:
                self._metrics[build_id].deploy_duration = duration_seconds

    def record_error(self, build_id: str) -> None:
        with self._lock:
            if build_id in self._metrics:
                self._metrics[build_id].error_count += 1

    def record_warning(self, build_id: str) -> None:
        with self._lock:
            if build_id in self._metrics:
                self._metrics[build_id].warning_count += 1

    def get_metrics(self, build_id: str) -> Optional[BuildMetrics]:
        """Copy of the record for build_id, or None."""
        with self._lock:
            metrics = self._metrics.get(build_id)
            return copy.copy(metrics) if metrics else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)

    def _evict(self) -> None:
        overflow = len(self._metrics) - self.max_entries
        if overflow <= 0:
            return
        for build_id in [k for k, m in self._metrics.items() if m.status != RUNNING][:overflow]:
            del self._metrics[build_id]
