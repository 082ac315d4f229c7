"""
Periodic expiry of silent devices from the metric registry.
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from ..utils.logging import PerformanceMonitor
from .registry import DEFAULT_FRESHNESS_WINDOW, DeviceMetricRegistry


class ExpirySweeper:
    """
    Recurring task that drops devices whose last frame is older than the
    freshness window.

    A single asyncio task runs the ticks sequentially, so two sweeps never
    overlap. stop() is safe to call any number of times.
    """

    def __init__(self,
                 registry: DeviceMetricRegistry,
                 interval: timedelta = DEFAULT_FRESHNESS_WINDOW,
                 freshness_window: Optional[timedelta] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the sweeper.

        Args:
            registry: Registry to sweep
            interval: Time between sweeps
            freshness_window: Maximum silence before expiry (defaults to interval)
            performance_monitor: Optional monitor recording sweep timings
            logger: Logger instance (defaults to the ruuvi.metrics logger)
        """
        self.registry = registry
        self.interval = interval
        self.freshness_window = freshness_window if freshness_window is not None else interval
        self.performance_monitor = performance_monitor
        self.logger = logger or logging.getLogger("ruuvi.metrics")

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._sweep_count = 0
        self._expired_count = 0

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def sweep_once(self) -> List[str]:
        """
        Run a single expiry pass against the registry.

        Returns:
            List[str]: Identifiers of the devices that were removed
        """
        if self.performance_monitor:
            with self.performance_monitor.measure_time("expiry_sweep"):
                expired = self.registry.expire(freshness_window=self.freshness_window)
        else:
            expired = self.registry.expire(freshness_window=self.freshness_window)

        self._sweep_count += 1
        self._expired_count += len(expired)
        self.logger.debug(
            f"Expiry sweep {self._sweep_count}: removed {len(expired)} devices, "
            f"{len(self.registry)} remaining"
        )
        if self.performance_monitor and expired:
            self.performance_monitor.record_metric("devices_expired", len(expired))
        return expired

    async def start(self):
        """Start the periodic sweep on the running event loop."""
        if self.is_running():
            self.logger.warning("Expiry sweeper already running")
            return

        self._stop_event = asyncio.Event()
        self.logger.info(
            f"Starting expiry sweeper (interval: {self.interval.total_seconds():g}s, "
            f"freshness window: {self.freshness_window.total_seconds():g}s)"
        )
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        """Stop the sweeper after the current tick, if any."""
        if self._stop_event is not None:
            self._stop_event.set()

        if self._task is not None and not self._task.done():
            await self._task
            self.logger.info("Expiry sweeper stopped")
        self._task = None

    async def _sweep_loop(self):
        """Wait one interval, sweep, repeat until stopped."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval.total_seconds())
            except asyncio.TimeoutError:
                self.sweep_once()

    def get_statistics(self) -> dict:
        return {
            "running": self.is_running(),
            "sweep_count": self._sweep_count,
            "expired_count": self._expired_count,
            "interval_seconds": self.interval.total_seconds(),
            "freshness_window_seconds": self.freshness_window.total_seconds(),
        }
