"""
HTTP scrape endpoint for the Ruuvi Prometheus exporter.
Serves a plain-text index on / and the registry exposition on /metrics.
"""

import logging
from typing import Optional

from aiohttp import web

from ..metrics.registry import DeviceMetricRegistry


ROOT_CONTENT = """ruuvi-prometheus exporter

/                This page
/metrics         Prometheus metrics endpoint
"""

REGISTRY_KEY = web.AppKey("registry", DeviceMetricRegistry)


class ExporterError(Exception):
    """Raised when the scrape endpoint cannot be served."""
    pass


async def handle_root(request: web.Request) -> web.Response:
    return web.Response(text=ROOT_CONTENT, content_type="text/plain")


async def handle_metrics(request: web.Request) -> web.Response:
    registry = request.app[REGISTRY_KEY]
    return web.Response(body=registry.export(), headers={"Content-Type": registry.content_type})


def create_app(registry: DeviceMetricRegistry) -> web.Application:
    """
    Build the aiohttp application exposing the registry.

    Args:
        registry: Registry rendered on /metrics

    Returns:
        web.Application: Application with / and /metrics routes
    """
    app = web.Application()
    app[REGISTRY_KEY] = registry
    app.router.add_get("/", handle_root)
    app.router.add_get("/metrics", handle_metrics)
    return app


class MetricsServer:
    """Runs the scrape application on the current event loop."""

    def __init__(self, registry: DeviceMetricRegistry, host: str, port: int,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.host = host
        self.port = port
        self.logger = logger or logging.getLogger("ruuvi.exporter")
        self._runner: Optional[web.AppRunner] = None

    async def start(self):
        """
        Bind the listen address and start serving.

        Raises:
            ExporterError: If the address cannot be bound
        """
        if self._runner is not None:
            self.logger.warning("Metrics server already running")
            return

        runner = web.AppRunner(create_app(self.registry))
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            raise ExporterError(f"Unable to listen on {self.host}:{self.port}: {e}")

        self._runner = runner
        self.logger.info(f"Serving metrics on http://{self.host}:{self.port}/metrics")

    async def stop(self):
        """Stop serving. Safe to call repeatedly."""
        if self._runner is None:
            return

        runner, self._runner = self._runner, None
        await runner.cleanup()
        self.logger.info("Metrics server stopped")

    def is_running(self) -> bool:
        return self._runner is not None
