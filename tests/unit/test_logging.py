"""
Unit tests for logging setup and performance tracking.
"""

import logging

import pytest

from ruuvi_prometheus.utils.logging import PerformanceMonitor, ProductionLogger


@pytest.fixture
def restore_root_logger():
    """Keep handler changes from leaking into other tests."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    bleak_level = logging.getLogger('bleak').level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger('bleak').setLevel(bleak_level)
    logging.getLogger('ruuvi.performance').handlers.clear()


class TestProductionLogger:

    def test_file_logging_creates_logs(self, tmp_path, restore_root_logger):
        ProductionLogger(log_dir=str(tmp_path), enable_console=False)

        logging.getLogger('ruuvi.metrics').info("device expired")

        assert (tmp_path / "ruuvi_prometheus.log").exists()
        assert logging.getLogger('bleak').level == logging.WARNING

    def test_debug_overrides_level(self, tmp_path, restore_root_logger):
        production_logger = ProductionLogger(log_dir=str(tmp_path), log_level="ERROR",
                                             enable_console=False, enable_file=False, debug=True)

        assert production_logger.level == logging.DEBUG
        assert logging.getLogger('ruuvi.ble').level == logging.DEBUG
        assert logging.getLogger('bleak').level == logging.DEBUG


class TestPerformanceMonitor:

    def test_record_metric_accumulates(self):
        monitor = PerformanceMonitor()

        monitor.record_metric("devices_expired", 2)
        monitor.record_metric("devices_expired", 3)

        assert monitor.get_performance_summary()["totals"]["devices_expired"] == 5

    def test_measure_time_records_duration(self):
        monitor = PerformanceMonitor()

        with monitor.measure_time("expiry_sweep"):
            pass

        summary = monitor.get_performance_summary()
        assert "avg_expiry_sweep_duration" in summary
        assert summary["avg_expiry_sweep_duration"] >= 0

    def test_log_system_resources(self):
        monitor = PerformanceMonitor()

        monitor.log_system_resources()

        assert monitor.get_performance_summary()["totals"]["memory_rss_mb"] > 0
