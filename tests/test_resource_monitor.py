"""Unit tests for the resource monitor."""

import pytest

from adaptive_resources.core.exceptions import InvalidMetrics, MetricsUnavailable
from adaptive_resources.monitoring.resource_monitor import ResourceMonitor


@pytest.fixture
def monitor(provider, clock):
    return ResourceMonitor(provider, history_size=5, clock=clock)


@pytest.mark.asyncio
async def test_samples_are_appended_in_order(monitor, provider):
    for value in (0.1, 0.2, 0.3):
        provider.cpu = value
        await monitor.get_current_metrics()

    history = monitor.get_historical_metrics(60_000)
    assert [m.cpu_utilization for m in history] == [0.1, 0.2, 0.3]
    timestamps = [m.timestamp for m in history]
    assert timestamps == sorted(set(timestamps))


@pytest.mark.asyncio
async def test_oldest_sample_is_evicted(monitor, provider):
    for i in range(8):
        provider.cpu = i / 10
        await monitor.get_current_metrics()

    assert monitor.history_size == 5
    assert monitor.get_historical_metrics(3_600_000)[0].cpu_utilization == pytest.approx(0.3)
    assert monitor.latest().cpu_utilization == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_historical_metrics_respects_duration(monitor, provider, clock):
    for _ in range(4):
        await monitor.get_current_metrics()

    # samples at t+1s .. t+4s, clock now at t+4s
    assert len(monitor.get_historical_metrics(2_000)) == 3
    clock.advance(10_000)
    assert monitor.get_historical_metrics(2_000) == []


@pytest.mark.asyncio
async def test_non_ascending_sample_not_retained(monitor, provider, clock):
    await monitor.get_current_metrics()
    provider.step_ms = 0

    metrics = await monitor.get_current_metrics()

    assert metrics.timestamp == clock()
    assert monitor.history_size == 1


@pytest.mark.asyncio
async def test_provider_failure_raises_metrics_unavailable(monitor, provider):
    provider.fail = True
    with pytest.raises(MetricsUnavailable) as exc_info:
        await monitor.get_current_metrics()
    assert exc_info.value.error_code == 'METRICS_UNAVAILABLE'
    assert monitor.history_size == 0

    with pytest.raises(MetricsUnavailable):
        await monitor.get_current_memory_usage()


@pytest.mark.asyncio
async def test_invalid_snapshot_is_rejected(monitor, provider):
    provider.memory = float('nan')
    with pytest.raises(InvalidMetrics):
        await monitor.get_current_metrics()
    assert monitor.history_size == 0


@pytest.mark.asyncio
async def test_memory_usage_comes_from_provider(monitor, provider):
    provider.resident_memory = 12345
    assert await monitor.get_current_memory_usage() == 12345


@pytest.mark.asyncio
async def test_cleanup_discards_history(monitor):
    await monitor.get_current_metrics()
    monitor.cleanup()
    assert monitor.history_size == 0
    assert monitor.latest() is None
