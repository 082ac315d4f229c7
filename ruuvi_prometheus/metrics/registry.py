"""
Device metric registry for the Ruuvi Prometheus exporter.

Holds the live metric set of every recently seen Ruuvi tag and renders it in
the Prometheus text exposition format. All state lives in one map guarded by
one lock; a device's metrics are written, read and deleted as a unit.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest
)
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily

from .reading import InvalidReading, SensorReading


# Devices are forgotten after this long without a frame
DEFAULT_FRESHNESS_WINDOW = timedelta(minutes=1)

ACCELERATION_AXES = ("X", "Y", "Z")


@dataclass
class DeviceMetricState:
    """Current metric values of one device."""
    device_id: str
    last_seen: datetime
    frames: int = 0
    rssi: Optional[int] = None
    format_version: Optional[int] = None
    humidity: Optional[float] = None
    temperature: Optional[float] = None
    pressure: Optional[float] = None
    acceleration_x: Optional[float] = None
    acceleration_y: Optional[float] = None
    acceleration_z: Optional[float] = None
    battery_voltage: Optional[float] = None
    tx_power: Optional[int] = None
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None

    def apply(self, reading: SensorReading, seen_at: datetime):
        """Fold one reading into this state; absent fields keep their last value."""
        self.frames += 1
        self.last_seen = seen_at
        self.rssi = reading.rssi
        self.format_version = reading.format_version

        if reading.battery_voltage is not None:
            self.battery_voltage = reading.battery_voltage
        if reading.pressure is not None:
            self.pressure = reading.pressure
        if reading.temperature is not None:
            self.temperature = reading.temperature
        if reading.humidity is not None:
            self.humidity = reading.humidity
        if reading.has_acceleration:
            self.acceleration_x = reading.acceleration_x
            self.acceleration_y = reading.acceleration_y
            self.acceleration_z = reading.acceleration_z
        if reading.tx_power is not None:
            self.tx_power = reading.tx_power
        if reading.movement_counter is not None:
            self.movement_counter = reading.movement_counter
        if reading.measurement_sequence is not None:
            self.measurement_sequence = reading.measurement_sequence


# (metric name, help text, state attribute)
GAUGES = [
    ("ruuvi_humidity_ratio", "Ruuvi tag sensor relative humidity", "humidity"),
    ("ruuvi_temperature_celsius", "Ruuvi tag sensor temperature", "temperature"),
    ("ruuvi_pressure_hpa", "Ruuvi tag sensor air pressure", "pressure"),
    ("ruuvi_battery_volts", "Ruuvi tag battery voltage", "battery_voltage"),
    ("ruuvi_rssi_dbm", "Ruuvi tag received signal strength RSSI", "rssi"),
    ("ruuvi_format", "Ruuvi frame format version (e.g. 3 or 5)", "format_version"),
    ("ruuvi_txpower_dbm", "Ruuvi transmit power in dBm", "tx_power"),
    ("ruuvi_movecount_total", "Ruuvi movement counter", "movement_counter"),
    ("ruuvi_seqno_current", "Ruuvi frame sequence number", "measurement_sequence"),
]


class DeviceMetricCollector:
    """prometheus_client collector that renders a registry snapshot."""

    def __init__(self, registry: "DeviceMetricRegistry"):
        self._registry = registry

    def collect(self) -> Iterator:
        states = sorted(self._registry.snapshot().values(), key=lambda s: s.device_id)

        frames = CounterMetricFamily("ruuvi_frames", "Total Ruuvi frames received", labels=["device"])
        for state in states:
            frames.add_metric([state.device_id], state.frames)
        yield frames

        for name, documentation, attribute in GAUGES:
            family = GaugeMetricFamily(name, documentation, labels=["device"])
            for state in states:
                value = getattr(state, attribute)
                if value is not None:
                    family.add_metric([state.device_id], float(value))
            yield family

        acceleration = GaugeMetricFamily(
            "ruuvi_acceleration_g", "Ruuvi tag sensor acceleration X/Y/Z", labels=["device", "axis"]
        )
        for state in states:
            if state.acceleration_x is None:
                continue
            values = (state.acceleration_x, state.acceleration_y, state.acceleration_z)
            for axis, value in zip(ACCELERATION_AXES, values):
                acceleration.add_metric([state.device_id, axis], float(value))
        yield acceleration


class DeviceMetricRegistry:
    """
    Live per-device metric set with freshness-based expiry.

    Thread safe: observe, expire and export may run concurrently from the
    BLE callback, the expiry sweeper and scrape requests. Critical sections
    only touch the in-memory map.
    """

    def __init__(self,
                 freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW,
                 clock: Callable[[], datetime] = datetime.now,
                 logger: Optional[logging.Logger] = None,
                 runtime_metrics: bool = True):
        """
        Initialize the registry.

        Args:
            freshness_window: Default silence after which a device is expired
            clock: Source of the current time, used for last-seen stamps
            logger: Logger instance (defaults to the ruuvi.metrics logger)
            runtime_metrics: Also export process_*, python_info and python_gc_* series
        """
        self.freshness_window = freshness_window
        self.clock = clock
        self.logger = logger or logging.getLogger("ruuvi.metrics")

        self._lock = threading.Lock()
        self._devices: Dict[str, DeviceMetricState] = {}

        self._collector_registry = CollectorRegistry(auto_describe=False)
        self._collector_registry.register(DeviceMetricCollector(self))
        if runtime_metrics:
            ProcessCollector(registry=self._collector_registry)
            PlatformCollector(registry=self._collector_registry)
            GCCollector(registry=self._collector_registry)

    @property
    def content_type(self) -> str:
        """HTTP content type of export()."""
        return CONTENT_TYPE_LATEST

    @property
    def collector_registry(self) -> CollectorRegistry:
        return self._collector_registry

    def observe(self, reading: SensorReading):
        """
        Record one reading for its device.

        Args:
            reading: Decoded sensor reading

        Raises:
            InvalidReading: If the reading has no device identifier
        """
        try:
            reading.validate()
        except InvalidReading as e:
            self.logger.warning(f"Discarding reading: {e}")
            raise

        seen_at = self.clock()
        with self._lock:
            state = self._devices.get(reading.device_id)
            if state is None:
                state = DeviceMetricState(device_id=reading.device_id, last_seen=seen_at)
                self._devices[reading.device_id] = state
                new_device = True
            else:
                new_device = False
            state.apply(reading, seen_at)

        if new_device:
            self.logger.info(f"New device {reading.device_id} (format {reading.format_version})")

    def expire(self,
               now: Optional[datetime] = None,
               freshness_window: Optional[timedelta] = None) -> List[str]:
        """
        Remove every device silent for longer than the freshness window.

        Args:
            now: Reference time (defaults to the registry clock)
            freshness_window: Maximum allowed silence (defaults to the registry window)

        Returns:
            List[str]: Identifiers of the removed devices
        """
        now = now if now is not None else self.clock()
        window = freshness_window if freshness_window is not None else self.freshness_window

        with self._lock:
            expired = [device_id for device_id, state in self._devices.items()
                       if now - state.last_seen > window]
            for device_id in expired:
                del self._devices[device_id]

        for device_id in expired:
            self.logger.info(f"{device_id} expired")
        return expired

    def snapshot(self) -> Dict[str, DeviceMetricState]:
        """Copy of every live device state, keyed by device identifier."""
        with self._lock:
            return {device_id: replace(state) for device_id, state in self._devices.items()}

    def export(self) -> bytes:
        """Render all live metrics in the Prometheus text exposition format."""
        return generate_latest(self._collector_registry)

    def device_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._devices)

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._devices
