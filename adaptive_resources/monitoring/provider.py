import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

import psutil

from ..core.models import SystemMetrics
from ..core.utils import TimeUtils, MetricsUtils

# pool name -> (utilization, queue size, average task duration in ms)
PoolStats = Dict[str, Tuple[float, int, float]]

class MetricsProvider(ABC):
    """Pull-based source of system metric snapshots."""

    @abstractmethod
    async def get_snapshot(self) -> SystemMetrics:
        """Return one point-in-time snapshot."""
        pass

    @abstractmethod
    async def get_resident_memory(self) -> int:
        """Return resident memory of the process in bytes."""
        pass

class PsutilMetricsProvider(MetricsProvider):
    """
    Metrics provider backed by psutil.
    Thread pool statistics come from an optional callable, usually the
    execution substrate's pool_stats method.
    """

    def __init__(
        self,
        pool_stats: Optional[Callable[[], PoolStats]] = None,
        network_capacity_bytes: float = 125_000_000  # 1 Gbit/s
    ):
        self.logger = logging.getLogger(__name__)
        self.pool_stats = pool_stats
        self.network_capacity_bytes = network_capacity_bytes
        self.process = psutil.Process()
        self._last_network: Optional[Tuple[float, int]] = None

        # Prime cpu_percent so the first real reading is meaningful
        psutil.cpu_percent(interval=None)

    async def get_snapshot(self) -> SystemMetrics:
        cpu = psutil.cpu_percent(interval=None) / 100.0
        memory = psutil.virtual_memory().percent / 100.0
        load = psutil.getloadavg()[0] / max(1, psutil.cpu_count() or 1)

        pools = self.pool_stats() if self.pool_stats else {}

        return SystemMetrics(
            timestamp=TimeUtils.get_utc_now(),
            cpu_utilization=MetricsUtils.clamp01(cpu),
            memory_utilization=MetricsUtils.clamp01(memory),
            network_utilization=self._network_utilization(),
            thread_pool_utilization={name: MetricsUtils.clamp01(s[0]) for name, s in pools.items()},
            queue_sizes={name: int(s[1]) for name, s in pools.items()},
            average_task_duration={name: float(s[2]) for name, s in pools.items()},
            system_load=max(0.0, load)
        )

    async def get_resident_memory(self) -> int:
        return self.process.memory_info().rss

    def _network_utilization(self) -> float:
        counters = psutil.net_io_counters()
        now = time.monotonic()
        total = counters.bytes_sent + counters.bytes_recv

        previous = self._last_network
        self._last_network = (now, total)
        if previous is None or now <= previous[0]:
            return 0.0

        rate = (total - previous[1]) / (now - previous[0])
        return MetricsUtils.clamp01(rate / self.network_capacity_bytes)
