"""
Unit tests for BLE adapter error diagnosis.
Tests the system checks and the troubleshooting guide without touching the host.
"""

import subprocess
from unittest.mock import Mock, patch

from ruuvi_prometheus.ble.source import ScannerInitError
from ruuvi_prometheus.exceptions.edge_cases import EdgeCaseHandler


def completed(returncode=0, stdout=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


class TestEdgeCaseHandler:
    """Test BLE adapter diagnosis."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = EdgeCaseHandler(device="hci1", logger=Mock())

    @patch('ruuvi_prometheus.exceptions.edge_cases.os.geteuid', return_value=0)
    @patch('ruuvi_prometheus.exceptions.edge_cases.subprocess.run')
    def test_healthy_system_reports_no_problems(self, mock_run, mock_geteuid):
        mock_run.side_effect = [
            completed(0, "active\n"),
            completed(0, "hci1:\tType: Primary  Bus: USB\n\tUP RUNNING\n"),
        ]

        problems, guide = self.handler.handle_ble_adapter_error(ScannerInitError("failed"))

        assert problems == []
        assert "ScannerInitError: failed" in guide
        assert "hciconfig hci1" in guide

    @patch('ruuvi_prometheus.exceptions.edge_cases.os.geteuid', return_value=0)
    @patch('ruuvi_prometheus.exceptions.edge_cases.subprocess.run')
    def test_inactive_service_and_down_adapter(self, mock_run, mock_geteuid):
        mock_run.side_effect = [
            completed(3, "inactive\n"),
            completed(0, "hci1:\tType: Primary  Bus: USB\n\tDOWN\n"),
        ]

        problems, guide = self.handler.handle_ble_adapter_error(Exception("adapter error"))

        assert len(problems) == 2
        assert "Bluetooth service is not active" in problems[0]
        assert "sudo hciconfig hci1 up" in problems[1]
        assert "Detected problems:" in guide

    @patch('ruuvi_prometheus.exceptions.edge_cases.os.geteuid', return_value=0)
    @patch('ruuvi_prometheus.exceptions.edge_cases.subprocess.run', side_effect=FileNotFoundError("hciconfig"))
    def test_missing_tools_reported(self, mock_run, mock_geteuid):
        problems, _ = self.handler.handle_ble_adapter_error(Exception("adapter error"))

        assert any("Unable to check bluetooth service" in problem for problem in problems)
        assert any("Unable to check bluetooth hardware" in problem for problem in problems)

    @patch('ruuvi_prometheus.exceptions.edge_cases.os.getenv', return_value="pi")
    @patch('ruuvi_prometheus.exceptions.edge_cases.os.geteuid', return_value=1000)
    def test_user_outside_bluetooth_group(self, mock_geteuid, mock_getenv):
        group = Mock(gr_mem=["root"])
        with patch('grp.getgrnam', return_value=group):
            ok, message = self.handler._check_bluetooth_permissions()

        assert ok is False
        assert "usermod -a -G bluetooth pi" in message
