"""Worker health state and the read-only reporter over it."""
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Any

from castmint.errors import CastmintError
from castmint.logging_conf import logger
from castmint.queue.models import utc_now


class WorkerStatus:
    STARTING = "starting"
    IDLE = "idle"
    PROCESSING = "processing"
    ERROR = "error"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


@dataclass(frozen=True)
class HealthState:
    """A point-in-time view of the worker."""

    status: str = WorkerStatus.STARTING
    current_queue_size: int = 0
    failed_count: int = 0
    last_processed_at: Optional[str] = None
    recent_errors: List[str] = field(default_factory=list)
    last_error: Optional[str] = None
    started_at: Optional[str] = None
    read_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status,
            "currentQueueSize": self.current_queue_size,
            "failedCount": self.failed_count,
            "lastProcessedAt": self.last_processed_at,
            "recentErrors": list(self.recent_errors),
            "lastError": self.last_error,
            "startedAt": self.started_at,
        }
        if self.read_error:
            data["readError"] = self.read_error
        return data


class HealthMonitor:
    """Mutable health state owned by the worker.

    Writers go through the ``mark_*`` transitions; readers take a snapshot.
    """

    def __init__(self, max_errors: int = 20):
        self._lock = threading.Lock()
        self._status = WorkerStatus.STARTING
        self._queue_size = 0
        self._failed_count = 0
        self._last_processed_at: Optional[str] = None
        self._errors = deque(maxlen=max_errors)
        self._started_at = utc_now()

    @property
    def status(self) -> str:
        return self._status

    def mark_idle(self, queue_size: Optional[int] = None) -> None:
        with self._lock:
            if self._status not in (WorkerStatus.SHUTTING_DOWN, WorkerStatus.STOPPED):
                self._status = WorkerStatus.IDLE
            if queue_size is not None:
                self._queue_size = queue_size

    def mark_processing(self) -> None:
        with self._lock:
            if self._status != WorkerStatus.SHUTTING_DOWN:
                self._status = WorkerStatus.PROCESSING

    def mark_success(self) -> None:
        with self._lock:
            self._last_processed_at = utc_now()
            if self._status != WorkerStatus.SHUTTING_DOWN:
                self._status = WorkerStatus.IDLE

    def mark_failure(self, message: str, failed: bool = True) -> None:
        """Record a pipeline failure; ``failed`` means it went to the failed list."""
        with self._lock:
            self._errors.append(message)
            if failed:
                self._failed_count += 1
            if self._status != WorkerStatus.SHUTTING_DOWN:
                self._status = WorkerStatus.ERROR

    def record_error(self, message: str) -> None:
        """Record an error without changing status."""
        with self._lock:
            self._errors.append(message)

    def mark_shutting_down(self) -> None:
        with self._lock:
            self._status = WorkerStatus.SHUTTING_DOWN

    def mark_stopped(self) -> None:
        with self._lock:
            self._status = WorkerStatus.STOPPED

    def update_counts(self, queue_size: int, failed_count: int) -> None:
        with self._lock:
            self._queue_size = queue_size
            self._failed_count = failed_count

    def snapshot(self) -> HealthState:
        with self._lock:
            errors = list(self._errors)
            return HealthState(
                status=self._status,
                current_queue_size=self._queue_size,
                failed_count=self._failed_count,
                last_processed_at=self._last_processed_at,
                recent_errors=errors,
                last_error=errors[-1] if errors else None,
                started_at=self._started_at,
            )


class HealthReporter:
    """Serves health snapshots with fresh queue counts when the store is reachable."""

    def __init__(self, monitor: HealthMonitor, queue):
        self.monitor = monitor
        self.queue = queue

    def get_health(self) -> HealthState:
        """Never raises for store errors; falls back to the last known state."""
        try:
            queue_size = self.queue.size()
            failed_count = self.queue.failed_size()
        except CastmintError as e:
            logger.warning(f"Health read failed, returning last known state: {e}")
            return replace(self.monitor.snapshot(), read_error=str(e))
        except Exception as e:
            logger.error(f"Unexpected health read failure: {e}", exc_info=True)
            return replace(self.monitor.snapshot(), read_error=str(e) or type(e).__name__)

        self.monitor.update_counts(queue_size, failed_count)
        return self.monitor.snapshot()
