"""
Edge case handling for the Ruuvi Prometheus exporter.

Turns Bluetooth adapter failures into actionable guidance. Checks only
inspect the system; they never change adapter or service state.
"""

import logging
import os
import subprocess
from typing import List, Optional, Tuple


class EdgeCaseHandler:
    """
    Diagnoses BLE adapter errors raised by the reading source:
    - bluetooth service not running
    - user lacking bluetooth group membership
    - adapter missing or down
    """

    def __init__(self, device: str = "hci0", logger: Optional[logging.Logger] = None):
        self.device = device
        self.logger = logger or logging.getLogger("ruuvi.ble")

    def handle_ble_adapter_error(self, error: Exception) -> Tuple[List[str], str]:
        """
        Diagnose a BLE adapter error.

        Args:
            error: The BLE-related exception

        Returns:
            Tuple of (detected problems, troubleshooting guide)
        """
        error_msg = f"{type(error).__name__}: {error}"
        self.logger.warning(f"BLE adapter error detected: {error_msg}")

        problems = []
        for check in (self._check_bluetooth_service,
                      self._check_bluetooth_permissions,
                      self._check_bluetooth_hardware):
            ok, message = check()
            if not ok:
                problems.append(message)

        return problems, self._generate_ble_troubleshooting_guide(error_msg, problems)

    def _check_bluetooth_service(self) -> Tuple[bool, str]:
        """Check if bluetooth service is running."""
        try:
            result = subprocess.run(['systemctl', 'is-active', 'bluetooth'],
                                    capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            return False, f"Unable to check bluetooth service: {e}"

        if result.returncode != 0:
            return False, "Bluetooth service is not active. Run: sudo systemctl start bluetooth"
        return True, "Bluetooth service is active"

    def _check_bluetooth_permissions(self) -> Tuple[bool, str]:
        """Check bluetooth group membership of the current user."""
        if os.geteuid() == 0:
            return True, "Running as root"

        try:
            import grp
            bluetooth_group = grp.getgrnam('bluetooth')
        except (ImportError, KeyError):
            return False, "Bluetooth group does not exist"

        current_user = os.getenv('USER')
        if current_user not in bluetooth_group.gr_mem:
            return False, (f"User {current_user} not in bluetooth group. "
                           f"Run: sudo usermod -a -G bluetooth {current_user}")
        return True, "Bluetooth permissions are correct"

    def _check_bluetooth_hardware(self) -> Tuple[bool, str]:
        """Check bluetooth adapter availability."""
        try:
            result = subprocess.run(['hciconfig', self.device],
                                    capture_output=True, text=True, timeout=5)
        except (OSError, subprocess.SubprocessError) as e:
            return False, f"Unable to check bluetooth hardware: {e}"

        if result.returncode != 0 or 'hci' not in result.stdout:
            return False, f"Bluetooth adapter {self.device} not found. Check hardware connection."

        if 'DOWN' in result.stdout:
            return False, f"Bluetooth adapter is down. Run: sudo hciconfig {self.device} up"

        return True, "Bluetooth hardware is available and up"

    def _generate_ble_troubleshooting_guide(self, error_msg: str, problems: List[str]) -> str:
        """Generate BLE troubleshooting guide."""
        guide = [
            "BLE Troubleshooting Guide:",
            "=" * 50,
            f"Error: {error_msg}",
            "",
        ]

        if problems:
            guide.append("Detected problems:")
            guide.extend(f"- {problem}" for problem in problems)
            guide.append("")

        guide.extend([
            "Quick Fixes:",
            "1. Check bluetooth service: sudo systemctl status bluetooth",
            "2. Add user to bluetooth group: sudo usermod -a -G bluetooth $USER",
            f"3. Check adapter status: hciconfig {self.device}",
            "4. Select another adapter with --device",
            "",
            "If problems persist:",
            "- Check system logs: journalctl -u bluetooth",
            "- Test with bluetoothctl scan on",
        ])

        return "\n".join(guide)
