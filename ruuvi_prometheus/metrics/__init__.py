"""
Device metric lifecycle for the Ruuvi Prometheus exporter.
Provides the reading model, the live metric registry and the expiry sweeper.
"""

from .reading import (
    FORMAT_3,
    FORMAT_5,
    InvalidReading,
    MetricsError,
    SensorReading,
    classify_format
)
from .registry import (
    DEFAULT_FRESHNESS_WINDOW,
    DeviceMetricRegistry,
    DeviceMetricState
)
from .sweeper import ExpirySweeper

__all__ = [
    # Reading model
    'FORMAT_3',
    'FORMAT_5',
    'InvalidReading',
    'MetricsError',
    'SensorReading',
    'classify_format',

    # Registry
    'DEFAULT_FRESHNESS_WINDOW',
    'DeviceMetricRegistry',
    'DeviceMetricState',

    # Expiry
    'ExpirySweeper'
]
