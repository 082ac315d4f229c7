"""
Exporter daemon for the Ruuvi Prometheus exporter.
Wires the BLE reading source, the device metric registry, the expiry sweeper
and the scrape endpoint together and supervises them until shutdown.
"""

import asyncio
import logging
import signal
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import psutil

from ..ble.source import RuuviReadingSource, ScannerError
from ..exceptions.edge_cases import EdgeCaseHandler
from ..exporter.server import ExporterError, MetricsServer
from ..metrics.reading import SensorReading
from ..metrics.registry import DeviceMetricRegistry
from ..metrics.sweeper import ExpirySweeper
from ..utils.config import Config
from ..utils.logging import PerformanceMonitor


@dataclass
class DaemonStats:
    """Daemon statistics container."""
    start_time: datetime
    uptime_seconds: int
    readings_observed: int
    errors_count: int
    last_reading_time: Optional[datetime] = None
    memory_usage_mb: Optional[float] = None
    cpu_usage_percent: Optional[float] = None


class ExporterDaemonError(Exception):
    """Base exception for daemon operations."""
    pass


class ExporterDaemon:
    """
    Supervisor for the exporter components.

    Features:
    - Continuous BLE listening feeding the metric registry
    - Periodic expiry of silent devices
    - HTTP scrape endpoint
    - One shutdown event shared by every task
    - Periodic resource and performance logging
    """

    def __init__(self, config: Config, logger: Optional[logging.Logger] = None):
        """
        Initialize daemon components from configuration.

        Args:
            config: Validated configuration
            logger: Logger instance (defaults to the ruuvi.service logger)
        """
        self.config = config
        self.logger = logger or logging.getLogger("ruuvi.service")
        self.performance_monitor = PerformanceMonitor()

        self.registry = DeviceMetricRegistry(freshness_window=config.metrics_ttl)
        self.source = RuuviReadingSource(
            device=config.ble_device,
            retry_attempts=config.ble_retry_attempts,
            retry_delay=config.ble_retry_delay,
            performance_monitor=self.performance_monitor
        )
        self.sweeper = ExpirySweeper(
            self.registry,
            interval=config.sweep_interval,
            freshness_window=config.metrics_ttl,
            performance_monitor=self.performance_monitor
        )
        host, port = config.listen_address
        self.server = MetricsServer(self.registry, host, port)
        self.edge_case_handler = EdgeCaseHandler(device=config.ble_device)

        self.source.add_callback(self._handle_reading)

        # Daemon state
        self._running = False
        self._failed = False
        self._shutdown = asyncio.Event()
        self._source_task: Optional[asyncio.Task] = None
        self._stats_task: Optional[asyncio.Task] = None

        self._stats = DaemonStats(
            start_time=datetime.now(),
            uptime_seconds=0,
            readings_observed=0,
            errors_count=0
        )

    @property
    def failed(self) -> bool:
        """True when a component failure caused the shutdown."""
        return self._failed

    def _handle_reading(self, reading: SensorReading):
        self.registry.observe(reading)
        self._stats.readings_observed += 1
        self._stats.last_reading_time = datetime.now()

    def request_shutdown(self, reason: str = "requested"):
        """Signal every task to finish."""
        if not self._shutdown.is_set():
            self.logger.info(f"Shutdown initiated ({reason})")
        self._shutdown.set()

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
            loop.call_soon_threadsafe(self.request_shutdown, signal_name)

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

    async def _source_loop(self):
        """Run the reading source; a BLE failure shuts the daemon down."""
        try:
            await self.source.run(self._shutdown)
        except ScannerError as e:
            self._stats.errors_count += 1
            if self._shutdown.is_set():
                self.logger.warning(f"Error stopping BLE source: {e}")
                return

            self._failed = True
            self.logger.error(f"BLE source failed: {e}")
            problems, guide = self.edge_case_handler.handle_ble_adapter_error(e)
            for problem in problems:
                self.logger.error(problem)
            self.logger.info(guide)
            self.request_shutdown("BLE source failure")

    async def _statistics_loop(self):
        """Background loop for logging resource usage and component statistics."""
        interval = self.config.performance_log_interval
        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self._update_statistics()
                self.performance_monitor.log_system_resources()
                self.logger.info(
                    f"Tracking {len(self.registry)} devices, "
                    f"{self._stats.readings_observed} readings observed, "
                    f"{self._stats.errors_count} errors"
                )
                self.logger.debug(f"Performance summary: {self.performance_monitor.get_performance_summary()}")

    def _update_statistics(self):
        self._stats.uptime_seconds = int(
            (datetime.now() - self._stats.start_time).total_seconds()
        )
        try:
            process = psutil.Process()
            self._stats.memory_usage_mb = process.memory_info().rss / 1024 / 1024
            self._stats.cpu_usage_percent = process.cpu_percent()
        except psutil.Error as e:
            self.logger.debug(f"Unable to read process resources: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get current daemon status."""
        self._update_statistics()
        return {
            "running": self._running,
            "shutdown_requested": self._shutdown.is_set(),
            "stats": asdict(self._stats),
            "devices": self.registry.device_ids(),
            "components": {
                "source": self.source.get_statistics(),
                "sweeper": self.sweeper.get_statistics(),
                "server": self.server.is_running(),
            }
        }

    def get_statistics(self) -> DaemonStats:
        """Get daemon statistics."""
        return self._stats

    async def start(self):
        """
        Start serving, sweeping and listening.

        Raises:
            ExporterDaemonError: If the daemon is already running or the endpoint cannot bind
        """
        if self._running:
            raise ExporterDaemonError("Daemon is already running")

        self.logger.info("Starting Ruuvi Prometheus exporter...")
        try:
            await self.server.start()
        except ExporterError as e:
            self._failed = True
            raise ExporterDaemonError(str(e))

        await self.sweeper.start()
        self._running = True
        self._source_task = asyncio.create_task(self._source_loop())
        self._stats_task = asyncio.create_task(self._statistics_loop())
        self.logger.info("Ruuvi Prometheus exporter started")

    async def run(self):
        """Start the daemon and block until shutdown completes."""
        self._setup_signal_handlers()
        await self.start()
        try:
            await self._shutdown.wait()
        finally:
            await self.stop()

    async def stop(self):
        """Stop source, sweeper and server in that order. Safe to call repeatedly."""
        if not self._running:
            return

        self.logger.info("Stopping Ruuvi Prometheus exporter...")
        self._running = False
        self._shutdown.set()

        for task in (self._source_task, self._stats_task):
            if task and not task.done():
                await task

        await self.sweeper.stop()
        await self.server.stop()
        self.logger.info("Ruuvi Prometheus exporter stopped")


async def run_daemon(config: Config) -> int:
    """
    Run the exporter until a signal or a component failure.

    Args:
        config: Validated configuration

    Returns:
        int: Process exit status
    """
    daemon = ExporterDaemon(config)

    try:
        await daemon.run()
    except ExporterDaemonError as e:
        daemon.logger.error(f"Daemon startup failed: {e}")
        return 1

    return 1 if daemon.failed else 0
