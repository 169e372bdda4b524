"""Shared fixtures: deterministic clock, metrics provider and execution substrate."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import pytest

from adaptive_resources.controllers.adaptive_manager import AdaptiveResourceManager
from adaptive_resources.core.config import AdaptiveConfig
from adaptive_resources.core.exceptions import SubstrateError
from adaptive_resources.core.models import SystemMetrics
from adaptive_resources.execution.substrate import ExecutionSubstrate
from adaptive_resources.monitoring.provider import MetricsProvider

MB = 1024 * 1024


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float):
        self.now += timedelta(milliseconds=ms)


class FakeMetricsProvider(MetricsProvider):
    """Returns whatever utilization figures the test sets, one second apart."""

    def __init__(self, clock: FakeClock, step_ms: float = 1000):
        self.clock = clock
        self.step_ms = step_ms
        self.cpu = 0.3
        self.memory = 0.3
        self.network = 0.1
        self.threads: Dict[str, float] = {}
        self.resident_memory = 1024 * MB
        self.fail = False
        self.calls = 0

    async def get_snapshot(self) -> SystemMetrics:
        self.calls += 1
        if self.fail:
            raise RuntimeError("counters unavailable")
        self.clock.advance(self.step_ms)
        return SystemMetrics(
            timestamp=self.clock(),
            cpu_utilization=self.cpu,
            memory_utilization=self.memory,
            network_utilization=self.network,
            thread_pool_utilization=dict(self.threads),
            queue_sizes={pool: 0 for pool in self.threads},
            average_task_duration={pool: 50.0 for pool in self.threads},
            system_load=1.0
        )

    async def get_resident_memory(self) -> int:
        if self.fail:
            raise RuntimeError("counters unavailable")
        return self.resident_memory


class FakeSubstrate(ExecutionSubstrate):
    """Records every directive; operations listed in fail_on raise."""

    def __init__(self, pool_sizes: Optional[Dict[str, int]] = None):
        self.pool_sizes = dict(pool_sizes or {})
        self.calls: List[tuple] = []
        self.fail_on: Set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    def _check(self, operation: str):
        if operation in self.fail_on:
            raise SubstrateError(f"{operation} failed", operation)

    async def get_pool_size(self, pool: str) -> int:
        if pool not in self.pool_sizes:
            raise SubstrateError(f"Unknown pool: {pool}", 'get_pool_size', pool)
        return self.pool_sizes[pool]

    async def scale_pool(self, pool: str, delta: int) -> bool:
        self._check('scale_pool')
        self.calls.append(('scale_pool', pool, delta))
        self.pool_sizes[pool] += delta
        return True

    async def preallocate_memory(self, size_mb: float) -> bool:
        self._check('preallocate_memory')
        self.calls.append(('preallocate_memory', size_mb))
        return True

    async def force_gc(self) -> bool:
        self._check('force_gc')
        self.calls.append(('force_gc',))
        return True

    async def redistribute(self, target: str, intensity: float) -> bool:
        self._check('redistribute')
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        self.calls.append(('redistribute', target, intensity))
        return True

    async def throttle(self, factor: float) -> bool:
        self._check('throttle')
        self.calls.append(('throttle', factor))
        return True

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(clock):
    return FakeMetricsProvider(clock)


@pytest.fixture
def substrate():
    return FakeSubstrate({
        'cpu-bound': 8,
        'io-bound': 16,
        'ai-optimized': 4,
        'mixed': 12
    })


@pytest.fixture
def config():
    return AdaptiveConfig()


@pytest.fixture
def manager(substrate, config, provider, clock):
    mgr = AdaptiveResourceManager(substrate, config, provider=provider, clock=clock)
    yield mgr
    mgr.shutdown()


@pytest.fixture
def make_metrics(clock):
    """Build a snapshot at the current fake time (or an explicit one)."""
    def _make(cpu=0.3, memory=0.3, network=0.1, threads=None, timestamp=None):
        return SystemMetrics(
            timestamp=timestamp or clock(),
            cpu_utilization=cpu,
            memory_utilization=memory,
            network_utilization=network,
            thread_pool_utilization=dict(threads or {}),
            system_load=1.0
        )
    return _make
