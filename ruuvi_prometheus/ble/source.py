"""
Bluetooth Low Energy reading source for Ruuvi sensors.
Listens to advertisements continuously, hands Ruuvi payloads to the
ruuvitag-sensor decoders and delivers SensorReading objects to callbacks.
"""

import asyncio
import logging
import traceback
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from ruuvitag_sensor.decoder import Df3Decoder, Df5Decoder

from ..metrics.reading import InvalidReading, SensorReading
from ..utils.logging import PerformanceMonitor


# Ruuvi Innovations Ltd. company identifier (0x0499, sent little endian as 99 04)
RUUVI_MANUFACTURER_ID = 0x0499

# Payload byte 0 selects the decoder
DECODERS = {
    3: Df3Decoder(),
    5: Df5Decoder(),
}


class ScannerError(Exception):
    """Base exception for scanner operations."""
    pass


class ScannerInitError(ScannerError):
    """Exception for scanner initialization errors."""
    pass


class ScannerOperationError(ScannerError):
    """Exception for scanner operation errors."""
    pass


def _scaled(value: Optional[float], divisor: float) -> Optional[float]:
    if value is None:
        return None
    return value / divisor


def reading_from_decoded(device_id: str, rssi: int, decoded: Dict[str, Any]) -> SensorReading:
    """
    Convert ruuvitag-sensor decoder output to a SensorReading.

    The decoders report humidity in %, acceleration in mG and battery in mV;
    the exporter publishes a ratio, g and volts.

    Args:
        device_id: Device identifier (MAC address)
        rssi: Received signal strength in dBm
        decoded: Dictionary returned by a ruuvitag-sensor decoder

    Returns:
        SensorReading: Reading with absent fields left as None
    """
    return SensorReading(
        device_id=device_id,
        rssi=rssi,
        humidity=_scaled(decoded.get("humidity"), 100),
        temperature=decoded.get("temperature"),
        pressure=decoded.get("pressure"),
        acceleration_x=_scaled(decoded.get("acceleration_x"), 1000),
        acceleration_y=_scaled(decoded.get("acceleration_y"), 1000),
        acceleration_z=_scaled(decoded.get("acceleration_z"), 1000),
        battery_voltage=_scaled(decoded.get("battery"), 1000),
        tx_power=decoded.get("tx_power"),
        movement_counter=decoded.get("movement_counter"),
        measurement_sequence=decoded.get("measurement_sequence_number"),
    )


class RuuviReadingSource:
    """
    Continuous BLE listener producing readings for Ruuvi tags.

    Features:
    - Async scanning with bleak, no gaps between scan windows
    - Manufacturer id filtering and format 3/5 decoding
    - Retry logic on adapter start
    - Callback fan-out with per-callback error isolation
    """

    def __init__(self,
                 device: str = "hci0",
                 retry_attempts: int = 3,
                 retry_delay: float = 2.0,
                 performance_monitor: Optional[PerformanceMonitor] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the reading source.

        Args:
            device: HCI adapter name, or "auto" for the platform default
            retry_attempts: Scanner start attempts before giving up
            retry_delay: Seconds between start attempts
            performance_monitor: Optional performance monitoring instance
            logger: Logger instance (defaults to the ruuvi.ble logger)
        """
        self.device = device
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.performance_monitor = performance_monitor
        self.logger = logger or logging.getLogger("ruuvi.ble")

        self._scanner: Optional[BleakScanner] = None
        self._is_scanning = False
        self._callbacks: List[Callable[[SensorReading], None]] = []

        # Statistics
        self._frames_received = 0
        self._frames_decoded = 0
        self._decode_errors = 0
        self._invalid_readings = 0
        self._callback_errors = 0
        self._last_frame_time: Optional[datetime] = None

    @property
    def adapter(self) -> Optional[str]:
        return None if self.device == "auto" else self.device

    def add_callback(self, callback: Callable[[SensorReading], None]):
        """
        Add callback for sensor readings.

        Args:
            callback: Function to call with every decoded reading
        """
        self._callbacks.append(callback)
        self.logger.debug(f"Added callback: {getattr(callback, '__name__', callback)}")

    def remove_callback(self, callback: Callable[[SensorReading], None]):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self, reading: SensorReading):
        """Deliver a reading to every callback; one failing callback does not stop the rest."""
        for callback in self._callbacks:
            try:
                callback(reading)
            except InvalidReading as e:
                self._invalid_readings += 1
                self.logger.warning(f"Invalid reading from {reading.device_id!r}: {e}")
            except Exception as e:
                self._callback_errors += 1
                self.logger.error(f"Error in callback {getattr(callback, '__name__', callback)}: {e}")
                self.logger.debug(f"Callback error traceback: {traceback.format_exc()}")

    def decode(self, device_id: str, rssi: int, manufacturer_data: Dict[int, bytes]) -> Optional[SensorReading]:
        """
        Decode the Ruuvi manufacturer data of one advertisement.

        Args:
            device_id: Advertising device address
            rssi: Received signal strength in dBm
            manufacturer_data: Manufacturer data from the advertisement

        Returns:
            Optional[SensorReading]: Reading, or None if not a decodable Ruuvi frame
        """
        payload = manufacturer_data.get(RUUVI_MANUFACTURER_ID)
        if not payload:
            return None

        self._frames_received += 1
        decoder = DECODERS.get(payload[0])
        if decoder is None:
            self._decode_errors += 1
            self.logger.debug(f"Unknown Ruuvi data format {payload[0]} from {device_id}")
            return None

        decoded = decoder.decode_data(payload.hex())
        if not decoded:
            self._decode_errors += 1
            self.logger.debug(
                f"Unable to parse ruuvi data: data={payload.hex()}, len={len(payload)}, address={device_id}"
            )
            return None

        self._frames_decoded += 1
        return reading_from_decoded(device_id, rssi, decoded)

    def _detection_callback(self, device: BLEDevice, advertisement_data: AdvertisementData):
        """
        Callback for BLE advertisement detection.

        Args:
            device: Detected BLE device
            advertisement_data: Advertisement data
        """
        try:
            reading = self.decode(
                device.address.upper(),
                advertisement_data.rssi,
                advertisement_data.manufacturer_data
            )
            if reading is None:
                return

            self._last_frame_time = datetime.now()
            self.logger.debug(
                f"Ruuvi frame from {reading.device_id} (format {reading.format_version}, "
                f"RSSI: {reading.rssi}dBm)"
            )
            self._notify_callbacks(reading)

            if self.performance_monitor:
                self.performance_monitor.record_metric("ble_frames_decoded", 1)

        except Exception as e:
            self._decode_errors += 1
            self.logger.error(f"Error processing BLE device {device.address}: {e}")
            self.logger.debug(f"Detection callback traceback: {traceback.format_exc()}")

    async def _start_scanner(self) -> BleakScanner:
        """
        Create and start the BLE scanner with retry logic.

        Returns:
            BleakScanner: Running scanner

        Raises:
            ScannerInitError: If the scanner cannot be started
        """
        for attempt in range(self.retry_attempts):
            try:
                scanner = BleakScanner(
                    detection_callback=self._detection_callback,
                    adapter=self.adapter
                )
                await scanner.start()
                self.logger.debug(f"BLE scanner started (attempt {attempt + 1})")
                return scanner

            except Exception as e:
                self.logger.warning(f"Scanner start attempt {attempt + 1} failed: {e}")
                if attempt < self.retry_attempts - 1:
                    await asyncio.sleep(self.retry_delay)
                else:
                    raise ScannerInitError(
                        f"Failed to start scanner on {self.device} after {self.retry_attempts} attempts: {e}"
                    )

    async def run(self, shutdown: asyncio.Event):
        """
        Listen to advertisements until the shutdown event is set.

        Args:
            shutdown: Event signalling the end of the scan

        Raises:
            ScannerInitError: If the adapter cannot be started
        """
        self.logger.info(f"Using device {self.device}")
        self._scanner = await self._start_scanner()
        self._is_scanning = True
        self.logger.info("Continuous BLE listening started")

        try:
            await shutdown.wait()
        finally:
            await self.stop()

    async def stop(self):
        """
        Stop the scanner if it is running. Safe to call repeatedly.

        Raises:
            ScannerOperationError: If the adapter refuses to stop scanning
        """
        if not self._is_scanning or self._scanner is None:
            return

        self._is_scanning = False
        self.logger.debug("Requesting to stop scan")
        try:
            await self._scanner.stop()
        except Exception as e:
            raise ScannerOperationError(f"Failed to stop scanning: {e}")
        finally:
            self._scanner = None
        self.logger.info("Continuous BLE listening stopped")

    def is_scanning(self) -> bool:
        return self._is_scanning

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get source statistics.

        Returns:
            Dict[str, Any]: Frame and error counters
        """
        return {
            "device": self.device,
            "is_scanning": self._is_scanning,
            "frames_received": self._frames_received,
            "frames_decoded": self._frames_decoded,
            "decode_errors": self._decode_errors,
            "invalid_readings": self._invalid_readings,
            "callback_errors": self._callback_errors,
            "last_frame_time": self._last_frame_time,
            "callbacks_registered": len(self._callbacks),
        }
