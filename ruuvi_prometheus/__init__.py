"""
Ruuvi Prometheus exporter - Ruuvi sensor metrics over BLE for Prometheus.

Listens to Ruuvi tag advertisements via Bluetooth Low Energy, keeps the
latest measurements of every tag heard within the freshness window and
serves them on a Prometheus scrape endpoint.

Features:
- Continuous BLE listening with data format 3 and 5 decoding
- Per-device gauges and frame counters
- Automatic removal of devices that stopped advertising
- Configuration management with environment variables
- Performance monitoring and logging
"""

__version__ = "1.0.0"
__author__ = "Ruuvi Prometheus Team"
__description__ = "Prometheus exporter for Ruuvi BLE sensors"

# Package imports for convenience
from .utils.config import Config
from .utils.logging import ProductionLogger, PerformanceMonitor
from .metrics import DeviceMetricRegistry, ExpirySweeper, SensorReading
from .ble.source import RuuviReadingSource
from .exporter import MetricsServer
from .service.daemon import ExporterDaemon

__all__ = [
    "Config",
    "ProductionLogger",
    "PerformanceMonitor",
    "DeviceMetricRegistry",
    "ExpirySweeper",
    "SensorReading",
    "RuuviReadingSource",
    "MetricsServer",
    "ExporterDaemon"
]
