import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional

from .provider import MetricsProvider
from ..core.exceptions import MetricsUnavailable
from ..core.models import SystemMetrics
from ..core.utils import TimeUtils

class ResourceMonitor:
    """
    Samples system metrics from a provider and keeps a bounded,
    time-ordered history of snapshots.
    """

    def __init__(
        self,
        provider: MetricsProvider,
        history_size: int = 360,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the resource monitor.

        Args:
            provider: Source of metric snapshots
            history_size: Maximum number of retained samples (360 is one hour at 10s)
            clock: Optional time source, defaults to UTC now
        """
        self.provider = provider
        self.clock = clock or TimeUtils.get_utc_now
        self.logger = logging.getLogger(__name__)

        self._history: Deque[SystemMetrics] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    async def get_current_metrics(self) -> SystemMetrics:
        """Sample one snapshot and append it to history."""
        try:
            metrics = await self.provider.get_snapshot()
        except Exception as e:
            self.logger.error(f"Metrics provider failed: {str(e)}")
            raise MetricsUnavailable(
                f"Metrics provider failed: {str(e)}",
                type(self.provider).__name__
            ) from e

        metrics.validate()

        with self._lock:
            if self._history and metrics.timestamp <= self._history[-1].timestamp:
                self.logger.debug(
                    f"Dropping non-ascending sample at {TimeUtils.format_timestamp(metrics.timestamp)}"
                )
            else:
                self._history.append(metrics)

        return metrics

    def get_historical_metrics(self, duration_ms: float) -> List[SystemMetrics]:
        """Return retained samples no older than duration_ms, oldest first."""
        cutoff = self.clock() - TimeUtils.ms(duration_ms)
        with self._lock:
            return [m for m in self._history if m.timestamp >= cutoff]

    async def get_current_memory_usage(self) -> int:
        """Resident memory in bytes."""
        try:
            return await self.provider.get_resident_memory()
        except Exception as e:
            self.logger.error(f"Memory query failed: {str(e)}")
            raise MetricsUnavailable(
                f"Memory query failed: {str(e)}",
                type(self.provider).__name__
            ) from e

    def latest(self) -> Optional[SystemMetrics]:
        with self._lock:
            return self._history[-1] if self._history else None

    @property
    def history_size(self) -> int:
        with self._lock:
            return len(self._history)

    def cleanup(self):
        """Discard retained history."""
        with self._lock:
            self._history.clear()
        self.logger.info("Resource monitor history cleared")
