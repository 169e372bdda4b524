import asyncio
import gc
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..core.exceptions import SubstrateError

class ExecutionSubstrate(ABC):
    """
    Boundary to the runtime whose capacity the controller adjusts.
    Any executor implementing these six operations can be managed.
    """

    @abstractmethod
    async def get_pool_size(self, pool: str) -> int:
        pass

    @abstractmethod
    async def scale_pool(self, pool: str, delta: int) -> bool:
        pass

    @abstractmethod
    async def preallocate_memory(self, size_mb: float) -> bool:
        pass

    @abstractmethod
    async def force_gc(self) -> bool:
        pass

    @abstractmethod
    async def redistribute(self, target: str, intensity: float) -> bool:
        pass

    @abstractmethod
    async def throttle(self, factor: float) -> bool:
        pass

@dataclass
class PoolState:
    """Bookkeeping for one named worker pool."""
    size: int
    active: int = 0
    queued: int = 0
    average_task_ms: float = 0.0

    @property
    def utilization(self) -> float:
        return min(1.0, self.active / self.size) if self.size > 0 else 0.0

class LocalExecutionSubstrate(ExecutionSubstrate):
    """
    In-process substrate that tracks named pool sizes, memory reservations,
    throttling and redistribution state. The host runtime reads this state
    to size its executors; load figures are reported back through report_load.
    """

    def __init__(
        self,
        pool_sizes: Optional[Dict[str, int]] = None,
        min_pool_size: int = 1
    ):
        self.logger = logging.getLogger(__name__)
        self.min_pool_size = min_pool_size
        self.pools: Dict[str, PoolState] = {
            name: PoolState(size=size)
            for name, size in (pool_sizes or {}).items()
        }
        self.reserved_memory_mb = 0.0
        self.throttle_factor = 0.0
        self.redistribution: Dict[str, float] = {}
        self.gc_runs = 0
        self._lock = asyncio.Lock()

    async def get_pool_size(self, pool: str) -> int:
        state = self.pools.get(pool)
        if state is None:
            raise SubstrateError(f"Unknown pool: {pool}", 'get_pool_size', pool)
        return state.size

    async def scale_pool(self, pool: str, delta: int) -> bool:
        async with self._lock:
            state = self.pools.get(pool)
            if state is None:
                raise SubstrateError(f"Unknown pool: {pool}", 'scale_pool', pool)

            new_size = state.size + int(delta)
            if new_size < self.min_pool_size:
                self.logger.warning(f"Refusing to shrink {pool} below {self.min_pool_size} workers")
                return False

            self.logger.info(f"Scaling {pool} pool from {state.size} to {new_size} workers")
            state.size = new_size
            return True

    async def preallocate_memory(self, size_mb: float) -> bool:
        if size_mb < 0:
            raise SubstrateError("Cannot reserve a negative amount of memory", 'preallocate_memory')
        async with self._lock:
            self.reserved_memory_mb += size_mb
        self.logger.info(f"Reserved {size_mb:.2f}MB (total {self.reserved_memory_mb:.2f}MB)")
        return True

    async def force_gc(self) -> bool:
        collected = gc.collect()
        self.gc_runs += 1
        self.logger.info(f"Garbage collection freed {collected} objects")
        return True

    async def redistribute(self, target: str, intensity: float) -> bool:
        async with self._lock:
            self.redistribution[target] = intensity
        self.logger.info(f"Redistributing {target} load with intensity {intensity:.2f}")
        return True

    async def throttle(self, factor: float) -> bool:
        async with self._lock:
            self.throttle_factor = min(1.0, max(0.0, factor))
        self.logger.info(f"Throttling requests by factor {self.throttle_factor:.2f}")
        return True

    def report_load(self, pool: str, active: int, queued: int = 0, average_task_ms: float = 0.0):
        state = self.pools.setdefault(pool, PoolState(size=max(self.min_pool_size, active)))
        state.active = active
        state.queued = queued
        state.average_task_ms = average_task_ms

    def pool_stats(self) -> Dict[str, Tuple[float, int, float]]:
        """Utilization, queue size and average task duration per pool."""
        return {
            name: (state.utilization, state.queued, state.average_task_ms)
            for name, state in self.pools.items()
        }
