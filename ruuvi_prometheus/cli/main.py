"""
Command-line interface for the Ruuvi Prometheus exporter.
Provides the run and config commands using click and rich.
"""

import asyncio
import platform
import sys

import click
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..service.daemon import run_daemon
from ..utils.config import Config, ConfigurationError
from ..utils.logging import setup_logging


PROG_NAME = "ruuvi-prometheus"

VERSION_MESSAGE = (
    f"%(prog)s %(version)s "
    f"({platform.system().lower()}/{platform.machine()}, Python {platform.python_version()})"
)

console = Console()


def _require_device(ctx, param, value):
    if value is not None and not value.strip():
        raise click.BadParameter("device cannot be empty")
    return value


def _load_config(env_file, overrides=None) -> Config:
    try:
        config = Config(env_file=env_file, overrides=overrides)
        config.validate_configuration()
    except ConfigurationError as e:
        console.print(str(e), style="red", markup=False)
        sys.exit(1)
    return config


@click.group()
@click.version_option(version=__version__, prog_name=PROG_NAME, message=VERSION_MESSAGE)
def cli():
    """Ruuvi Prometheus exporter - Ruuvi sensor metrics over BLE."""
    pass


@cli.command()
@click.option("--device", callback=_require_device, help="Bluetooth HCI device to listen on (default hci0)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--listen", help="Address to serve metrics on (default :9521)")
@click.option("--ttl", type=float, help="Seconds of silence before a device's metrics are removed")
@click.option("--sweep-interval", type=float, help="Seconds between expiry sweeps")
@click.option("--env-file", type=click.Path(dir_okay=False), help="Environment file to load")
def run(device, debug, listen, ttl, sweep_interval, env_file):
    """Listen for Ruuvi sensors and serve Prometheus metrics."""
    config = _load_config(env_file, {
        "BLE_DEVICE": device,
        "DEBUG": debug or None,
        "EXPORTER_LISTEN": listen,
        "METRICS_TTL": ttl,
        "METRICS_SWEEP_INTERVAL": sweep_interval,
    })
    setup_logging(config)

    sys.exit(asyncio.run(run_daemon(config)))


@cli.command(name="config")
@click.option("--env-file", type=click.Path(dir_okay=False), help="Environment file to load")
def show_config(env_file):
    """Show the effective configuration."""
    config = _load_config(env_file)

    table = Table(title="Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Section", style="magenta")
    table.add_column("Setting", style="blue")
    table.add_column("Value", style="green")

    for section, settings in config.get_summary().items():
        for setting, value in settings.items():
            table.add_row(section, setting, str(value))

    console.print(table)


if __name__ == "__main__":
    cli()
