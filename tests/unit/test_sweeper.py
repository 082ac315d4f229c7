"""
Unit tests for the expiry sweeper.
Tests single sweeps, the periodic task and idempotent start/stop.
"""

import asyncio
from datetime import timedelta
from unittest.mock import Mock

import pytest

from ruuvi_prometheus.metrics.reading import SensorReading
from ruuvi_prometheus.metrics.registry import DeviceMetricRegistry
from ruuvi_prometheus.metrics.sweeper import ExpirySweeper


class TestSweepOnce:
    """Test a single expiry pass."""

    def test_sweep_once_uses_configured_window(self, registry, clock):
        registry.observe(SensorReading(device_id="CC:DD", rssi=-80))
        sweeper = ExpirySweeper(registry, interval=timedelta(seconds=10))

        clock.advance(11)
        expired = sweeper.sweep_once()

        assert expired == ["CC:DD"]
        assert sweeper.get_statistics()["sweep_count"] == 1
        assert sweeper.get_statistics()["expired_count"] == 1

    def test_window_defaults_to_interval(self, registry):
        sweeper = ExpirySweeper(registry, interval=timedelta(seconds=30))

        assert sweeper.freshness_window == timedelta(seconds=30)

    def test_sweep_records_performance(self, registry, clock, mock_performance_monitor):
        registry.observe(SensorReading(device_id="CC:DD", rssi=-80))
        sweeper = ExpirySweeper(registry, performance_monitor=mock_performance_monitor)

        clock.advance(61)
        sweeper.sweep_once()

        mock_performance_monitor.measure_time.assert_called_once_with("expiry_sweep")
        mock_performance_monitor.record_metric.assert_called_once_with("devices_expired", 1)


class TestSweepLoop:
    """Test the periodic sweep task."""

    @pytest.mark.asyncio
    async def test_stale_device_removed_by_task(self):
        registry = DeviceMetricRegistry()
        registry.observe(SensorReading(device_id="CC:DD", rssi=-80))
        sweeper = ExpirySweeper(
            registry,
            interval=timedelta(milliseconds=20),
            freshness_window=timedelta(milliseconds=10)
        )

        await sweeper.start()
        try:
            for _ in range(50):
                if "CC:DD" not in registry:
                    break
                await asyncio.sleep(0.02)
        finally:
            await sweeper.stop()

        assert "CC:DD" not in registry
        assert sweeper.get_statistics()["sweep_count"] >= 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, registry):
        sweeper = ExpirySweeper(registry, interval=timedelta(seconds=60))

        await sweeper.start()
        assert sweeper.is_running()

        await sweeper.stop()
        await sweeper.stop()

        assert not sweeper.is_running()

    @pytest.mark.asyncio
    async def test_stop_before_start(self, registry):
        sweeper = ExpirySweeper(registry)

        await sweeper.stop()

        assert not sweeper.is_running()

    @pytest.mark.asyncio
    async def test_start_twice_warns(self, registry):
        logger = Mock()
        sweeper = ExpirySweeper(registry, interval=timedelta(seconds=60), logger=logger)

        await sweeper.start()
        await sweeper.start()
        await sweeper.stop()

        logger.warning.assert_called_once_with("Expiry sweeper already running")

    @pytest.mark.asyncio
    async def test_stop_does_not_wait_for_interval(self, registry):
        sweeper = ExpirySweeper(registry, interval=timedelta(hours=1))

        await sweeper.start()
        await asyncio.wait_for(sweeper.stop(), timeout=1.0)

        assert sweeper.get_statistics()["sweep_count"] == 0
