"""
Scrape endpoint for the Ruuvi Prometheus exporter.
"""

from .server import ExporterError, MetricsServer, ROOT_CONTENT, create_app

__all__ = [
    'ExporterError',
    'MetricsServer',
    'ROOT_CONTENT',
    'create_app'
]
