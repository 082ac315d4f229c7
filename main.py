#!/usr/bin/env python3
"""
Ruuvi Prometheus exporter - Main Entry Point

Usage:
    python main.py --help                 # Show help
    python main.py run                    # Listen on hci0 and serve :9521
    python main.py run --device hci1 --listen 127.0.0.1:9521
    python main.py config                 # Show effective configuration
    python main.py --version              # Show version information

Requirements:
    - Python 3.9+
    - Bluetooth adapter available
    - Proper permissions for BLE access
"""

from ruuvi_prometheus.cli.main import cli


if __name__ == "__main__":
    cli()
