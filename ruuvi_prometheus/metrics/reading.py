"""
Sensor reading model for the Ruuvi Prometheus exporter.
A reading is one decoded advertisement; absent optional fields are None.
"""

from dataclasses import dataclass
from typing import Optional


# Protocol variants distinguished by the exporter
FORMAT_3 = 3
FORMAT_5 = 5


class MetricsError(Exception):
    """Base exception for metric registry operations."""
    pass


class InvalidReading(MetricsError):
    """Raised when a reading lacks a usable device identifier."""
    pass


@dataclass(frozen=True)
class SensorReading:
    """
    Single decoded observation of a Ruuvi tag.

    Every optional field uses None as its "not present" flag. A reading with
    all optional fields absent is still valid and refreshes signal strength
    and last-seen time only.
    """
    device_id: str
    rssi: int                                    # dBm
    humidity: Optional[float] = None             # ratio 0..1
    temperature: Optional[float] = None          # Celsius
    pressure: Optional[float] = None             # hPa
    acceleration_x: Optional[float] = None       # g
    acceleration_y: Optional[float] = None       # g
    acceleration_z: Optional[float] = None       # g
    battery_voltage: Optional[float] = None      # V
    tx_power: Optional[int] = None               # dBm
    movement_counter: Optional[int] = None
    measurement_sequence: Optional[int] = None

    @property
    def has_acceleration(self) -> bool:
        """Acceleration is only meaningful with all three axes."""
        return (self.acceleration_x is not None
                and self.acceleration_y is not None
                and self.acceleration_z is not None)

    @property
    def format_version(self) -> int:
        """
        Guess the Ruuvi data format of this reading.

        Format 3 carries no tx power, movement counter or sequence number;
        any of them being present means format 5.
        """
        return classify_format(self.tx_power, self.movement_counter, self.measurement_sequence)

    def validate(self):
        """
        Check the mandatory identity of the reading.

        Raises:
            InvalidReading: If the device identifier is missing or empty
        """
        if not isinstance(self.device_id, str) or not self.device_id:
            raise InvalidReading(f"Reading has no device identifier: {self.device_id!r}")


def classify_format(tx_power: Optional[int],
                    movement_counter: Optional[int],
                    measurement_sequence: Optional[int]) -> int:
    """Classify the protocol variant from three optional-field presence flags."""
    if tx_power is None and movement_counter is None and measurement_sequence is None:
        return FORMAT_3
    return FORMAT_5
