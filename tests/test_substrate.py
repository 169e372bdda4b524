"""Unit tests for the in-process execution substrate."""

import pytest

from adaptive_resources.core.exceptions import SubstrateError
from adaptive_resources.execution.substrate import LocalExecutionSubstrate


@pytest.fixture
def local_substrate():
    return LocalExecutionSubstrate({'cpu-bound': 8, 'io-bound': 16})


@pytest.mark.asyncio
async def test_scale_pool_changes_size(local_substrate):
    assert await local_substrate.scale_pool('cpu-bound', 4)
    assert await local_substrate.get_pool_size('cpu-bound') == 12


@pytest.mark.asyncio
async def test_refuses_to_shrink_below_minimum(local_substrate):
    assert not await local_substrate.scale_pool('cpu-bound', -8)
    assert await local_substrate.get_pool_size('cpu-bound') == 8


@pytest.mark.asyncio
async def test_unknown_pool_raises(local_substrate):
    with pytest.raises(SubstrateError):
        await local_substrate.get_pool_size('gpu')
    with pytest.raises(SubstrateError):
        await local_substrate.scale_pool('gpu', 1)


@pytest.mark.asyncio
async def test_memory_gc_throttle_and_redistribution(local_substrate):
    assert await local_substrate.preallocate_memory(256)
    assert await local_substrate.preallocate_memory(128)
    assert local_substrate.reserved_memory_mb == 384

    assert await local_substrate.force_gc()
    assert local_substrate.gc_runs == 1

    assert await local_substrate.throttle(1.7)
    assert local_substrate.throttle_factor == 1.0

    assert await local_substrate.redistribute('cpu-workload', 0.2)
    assert local_substrate.redistribution == {'cpu-workload': 0.2}

    with pytest.raises(SubstrateError):
        await local_substrate.preallocate_memory(-1)


def test_pool_stats_reflect_reported_load(local_substrate):
    local_substrate.report_load('cpu-bound', active=6, queued=3, average_task_ms=40.0)
    local_substrate.report_load('batch', active=2)

    stats = local_substrate.pool_stats()

    assert stats['cpu-bound'] == (0.75, 3, 40.0)
    assert stats['io-bound'] == (0.0, 0, 0.0)
    assert stats['batch'][0] == 1.0
