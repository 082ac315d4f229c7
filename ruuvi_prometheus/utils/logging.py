"""
Logging configuration for the Ruuvi Prometheus exporter.
Sets up console, rotating file and syslog output for the component loggers
and tracks sweep, decode and resource figures for periodic status lines.
"""

import logging
import logging.handlers
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List

import colorlog
import psutil


COMPONENT_LOGGERS = ['ruuvi.ble', 'ruuvi.metrics', 'ruuvi.exporter', 'ruuvi.service']

# Third-party loggers that are only interesting when debugging
NOISY_LOGGERS = ['bleak', 'aiohttp.access']

CONSOLE_FORMAT = '%(log_color)s%(asctime)s %(levelname)-8s%(reset)s %(name)s: %(message)s'
FILE_FORMAT = '%(asctime)s %(levelname)-8s %(name)s [%(process)d] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ProductionLogger:
    """
    Root logging setup for running the exporter as a service.

    Console output is colored with colorlog, the log file rotates by size and
    syslog receives warnings and above when enabled. Per-scrape and per-frame
    chatter from bleak and aiohttp is hidden unless debug is on.
    """

    def __init__(self,
                 app_name: str = "ruuvi_prometheus",
                 log_dir: str = "./logs",
                 log_level: str = "INFO",
                 max_file_size: int = 10 * 1024 * 1024,
                 backup_count: int = 5,
                 enable_console: bool = True,
                 enable_file: bool = True,
                 enable_syslog: bool = False,
                 debug: bool = False):
        self.app_name = app_name
        self.log_dir = Path(log_dir)
        self.debug_enabled = debug
        self.level = logging.DEBUG if debug else getattr(logging, log_level.upper())
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        handlers = []
        if enable_console:
            handlers.append(self._console_handler())
        if enable_file:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            handlers.append(self._rotating_handler(f"{app_name}.log", FILE_FORMAT))
        if enable_syslog:
            syslog = self._syslog_handler()
            if syslog is not None:
                handlers.append(syslog)

        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(self.level)
        for handler in handlers:
            root.addHandler(handler)

        for name in COMPONENT_LOGGERS:
            logging.getLogger(name).setLevel(self.level)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

        if enable_file:
            performance = logging.getLogger('ruuvi.performance')
            performance.addHandler(self._rotating_handler("performance.log", '%(asctime)s %(message)s'))

    def _console_handler(self) -> logging.Handler:
        handler = colorlog.StreamHandler(sys.stdout)
        handler.setLevel(self.level)
        handler.setFormatter(colorlog.ColoredFormatter(
            CONSOLE_FORMAT,
            datefmt=DATE_FORMAT,
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        ))
        return handler

    def _rotating_handler(self, filename: str, fmt: str) -> logging.Handler:
        handler = logging.handlers.RotatingFileHandler(
            self.log_dir / filename,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count
        )
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
        return handler

    def _syslog_handler(self):
        """Syslog handler for systemd journals; None when /dev/log is unavailable."""
        try:
            handler = logging.handlers.SysLogHandler(address='/dev/log')
        except OSError as e:
            logging.getLogger(__name__).warning(f"Could not setup syslog handler: {e}")
            return None
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter(f'{self.app_name}[%(process)d]: %(levelname)s %(message)s'))
        return handler


class PerformanceMonitor:
    """
    Running totals and timings for the exporter's periodic status log.
    """

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger('ruuvi.performance')
        self.samples: Dict[str, List[float]] = {}
        self.counters: Dict[str, float] = {}
        self.start_time = datetime.now()

    def log_system_resources(self):
        """Log resident memory and CPU usage of this process."""
        try:
            process = psutil.Process()
            rss_mb = process.memory_info().rss / 1024 / 1024
            cpu_percent = process.cpu_percent()
        except psutil.Error as e:
            self.logger.error(f"Failed to read system resources: {e}")
            return

        self.record_metric('memory_rss_mb', rss_mb)
        self.logger.info(f"RESOURCES memory_rss={rss_mb:.1f}MB cpu={cpu_percent:.1f}%")

    def record_metric(self, metric_name: str, value: float):
        """Record a sample and add it to the metric's running total."""
        self.samples.setdefault(metric_name, []).append(value)
        self.counters[metric_name] = self.counters.get(metric_name, 0) + value
        self.logger.debug(f"METRIC {metric_name}={value}")

    @contextmanager
    def measure_time(self, operation_name: str):
        """Record the wall time of the wrapped block as <operation>_duration."""
        start = time.monotonic()
        try:
            yield
        finally:
            duration = time.monotonic() - start
            self.record_metric(f"{operation_name}_duration", duration)

    def get_performance_summary(self) -> dict:
        """Uptime, running totals and average durations."""
        summary = {
            'uptime_seconds': (datetime.now() - self.start_time).total_seconds(),
            'totals': dict(self.counters),
        }
        for name, values in self.samples.items():
            if name.endswith('_duration') and values:
                summary[f'avg_{name}'] = sum(values) / len(values)
        return summary


def setup_logging(config, debug: bool = False) -> ProductionLogger:
    """
    Setup logging for the exporter using configuration.

    Args:
        config: Configuration instance
        debug: Force debug output regardless of configuration

    Returns:
        ProductionLogger instance
    """
    return ProductionLogger(
        log_level=config.log_level,
        log_dir=str(config.log_dir),
        max_file_size=config.log_max_file_size,
        backup_count=config.log_backup_count,
        enable_console=config.log_enable_console,
        enable_file=config.log_enable_file,
        enable_syslog=config.log_enable_syslog,
        debug=debug or config.debug
    )
