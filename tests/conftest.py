"""
Pytest configuration and shared fixtures for Ruuvi Prometheus exporter tests.
Provides a controllable clock, sample readings, BLE mocks and exposition parsing.
"""

import pytest
from datetime import datetime, timedelta
from typing import Dict, Tuple
from unittest.mock import Mock, MagicMock

from prometheus_client.parser import text_string_to_metric_families

from ruuvi_prometheus.metrics.reading import SensorReading
from ruuvi_prometheus.metrics.registry import DeviceMetricRegistry
from ruuvi_prometheus.utils.config import Config
from ruuvi_prometheus.utils.logging import PerformanceMonitor


class FakeClock:
    """Manually advanced time source for registry tests."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    """Create a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def registry(clock):
    """Create a registry driven by the fake clock."""
    return DeviceMetricRegistry(clock=clock)


@pytest.fixture
def mock_config():
    """Create a mock configuration for testing."""
    config = Mock(spec=Config)

    # BLE configuration
    config.ble_device = "hci0"
    config.ble_retry_attempts = 1
    config.ble_retry_delay = 0.0

    # Exporter configuration
    config.listen = "127.0.0.1:0"
    config.listen_address = ("127.0.0.1", 0)
    config.metrics_ttl = timedelta(seconds=60)
    config.sweep_interval = timedelta(seconds=60)

    # Logging configuration
    config.debug = False
    config.log_level = "DEBUG"
    config.performance_log_interval = 60

    return config


@pytest.fixture
def mock_performance_monitor():
    """Create a mock performance monitor for testing."""
    monitor = Mock(spec=PerformanceMonitor)
    monitor.record_metric = Mock()
    monitor.measure_time = Mock()

    # Mock the context manager for measure_time
    mock_context = MagicMock()
    mock_context.__enter__ = Mock(return_value=mock_context)
    mock_context.__exit__ = Mock(return_value=None)
    monitor.measure_time.return_value = mock_context

    return monitor


@pytest.fixture
def full_reading():
    """Format 5 reading with every optional field present."""
    return SensorReading(
        device_id="AA:BB:CC:DD:EE:FF",
        rssi=-65,
        humidity=0.5349,
        temperature=24.3,
        pressure=1000.44,
        acceleration_x=0.004,
        acceleration_y=-0.004,
        acceleration_z=1.036,
        battery_voltage=2.977,
        tx_power=4,
        movement_counter=66,
        measurement_sequence=205,
    )


@pytest.fixture
def sample_format5_payload():
    """Ruuvi format 5 manufacturer payload (official test vector)."""
    return bytes.fromhex("0512FC5394C37C0004FFFC040CAC364200CDCBB8334C884F")


@pytest.fixture
def sample_format3_payload():
    """Ruuvi format 3 manufacturer payload (official test vector)."""
    return bytes.fromhex("03291A1ECE1EFC18F94202CA0B53")


@pytest.fixture
def mock_ble_device():
    """Create a mock BLE device for testing."""
    device = Mock()
    device.address = "aa:bb:cc:dd:ee:ff"
    device.name = "Ruuvi 1234"
    return device


@pytest.fixture
def mock_advertisement_data():
    """Create mock advertisement data for testing."""
    def _create_ad_data(manufacturer_data: Dict[int, bytes], rssi: int = -65):
        ad_data = Mock()
        ad_data.manufacturer_data = manufacturer_data
        ad_data.rssi = rssi
        ad_data.local_name = "Ruuvi 1234"
        return ad_data

    return _create_ad_data


@pytest.fixture
def exported_samples():
    """Parse an exposition into {(sample name, sorted labels): value}, keeping names with the prefix."""
    def _parse(exposition, prefix: str = "ruuvi_") -> Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float]:
        if isinstance(exposition, bytes):
            exposition = exposition.decode("utf-8")
        samples = {}
        for family in text_string_to_metric_families(exposition):
            for sample in family.samples:
                if not sample.name.startswith(prefix):
                    continue
                samples[(sample.name, tuple(sorted(sample.labels.items())))] = sample.value
        return samples

    return _parse


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
    config.addinivalue_line(
        "markers", "requires_bluetooth: mark test as requiring Bluetooth hardware"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test location."""
    for item in items:
        # Add unit marker to tests in unit/ directory
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker to tests in integration/ directory
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Add slow marker to tests that might be slow
        if "concurrent" in item.name or "long" in item.name:
            item.add_marker(pytest.mark.slow)
