"""
Configuration management for the Ruuvi Prometheus exporter.
Loads configuration from environment variables with validation and defaults.
"""

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from dotenv import load_dotenv


# Allocated in https://github.com/prometheus/prometheus/wiki/Default-port-allocations
DEFAULT_LISTEN = ":9521"
DEFAULT_DEVICE = "hci0"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


def parse_listen_address(listen: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Accepts "host:port" or ":port"; an empty host means all interfaces.

    Raises:
        ConfigurationError: If the address is malformed
    """
    host, sep, port = listen.rpartition(":")
    if not sep:
        raise ConfigurationError(f"Listen address must be host:port or :port, got '{listen}'")

    try:
        port_number = int(port)
    except ValueError:
        raise ConfigurationError(f"Listen port must be an integer, got '{port}'")

    if port_number < 1 or port_number > 65535:
        raise ConfigurationError(f"Listen port must be between 1 and 65535, got {port_number}")

    host = host.strip("[]") or "0.0.0.0"
    return host, port_number


class Config:
    """
    Configuration manager that loads settings from environment variables.
    Values passed as overrides (typically from the command line) win over the environment.
    """

    def __init__(self, env_file: Optional[str] = None, overrides: Optional[Dict[str, object]] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (defaults to .env in the working directory)
            overrides: Environment keys mapped to values that take precedence
        """
        self.logger = logging.getLogger(__name__)
        self.overrides = {key: value for key, value in (overrides or {}).items() if value is not None}

        if env_file is None:
            env_file = Path.cwd() / ".env"

        if Path(env_file).exists():
            load_dotenv(env_file)
            self.logger.info(f"Loaded configuration from {env_file}")
        else:
            self.logger.debug(f"Environment file {env_file} not found, using system environment")

    def _raw(self, key: str, default: object = None) -> str:
        """Override, then environment, then default; missing everywhere is an error."""
        if key in self.overrides:
            return str(self.overrides[key])
        value = os.getenv(key)
        if value is not None:
            return value
        if default is None:
            raise ConfigurationError(f"Required configuration key '{key}' not found")
        return str(default)

    def _convert(self, key: str, default: object, cast, type_name: str):
        value = self._raw(key, default)
        try:
            return cast(value)
        except ValueError:
            raise ConfigurationError(f"Configuration key '{key}' must be {type_name}, got '{value}'")

    def get_str(self, key: str, default: Optional[str] = None) -> str:
        return self._raw(key, default)

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        return self._convert(key, default, int, "an integer")

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        return self._convert(key, default, float, "a number")

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        return self._raw(key, default).lower() in ('true', '1', 'yes', 'on', 'enabled')

    def get_path(self, key: str, default: Optional[Union[str, Path]] = None) -> Path:
        """Get path configuration value, relative paths resolved from the working directory."""
        path = Path(self._raw(key, default))
        if not path.is_absolute():
            path = Path.cwd() / path
        return path

    # BLE Scanner Configuration
    @property
    def ble_device(self) -> str:
        return self.get_str("BLE_DEVICE", DEFAULT_DEVICE)

    @property
    def ble_retry_attempts(self) -> int:
        return self.get_int("BLE_RETRY_ATTEMPTS", 3)

    @property
    def ble_retry_delay(self) -> float:
        return self.get_float("BLE_RETRY_DELAY", 2.0)

    # Exporter Configuration
    @property
    def listen(self) -> str:
        return self.get_str("EXPORTER_LISTEN", DEFAULT_LISTEN)

    @property
    def listen_address(self) -> Tuple[str, int]:
        return parse_listen_address(self.listen)

    @property
    def metrics_ttl(self) -> timedelta:
        """Silence after which a device's metrics are removed."""
        return timedelta(seconds=self.get_float("METRICS_TTL", 60.0))

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.get_float("METRICS_SWEEP_INTERVAL", 60.0))

    # Logging Configuration
    @property
    def debug(self) -> bool:
        return self.get_bool("DEBUG", False)

    @property
    def log_level(self) -> str:
        return self.get_str("LOG_LEVEL", "INFO").upper()

    @property
    def log_dir(self) -> Path:
        return self.get_path("LOG_DIR", "./logs")

    @property
    def log_max_file_size(self) -> int:
        return self.get_int("LOG_MAX_FILE_SIZE", 10 * 1024 * 1024)  # 10MB

    @property
    def log_backup_count(self) -> int:
        return self.get_int("LOG_BACKUP_COUNT", 5)

    @property
    def log_enable_console(self) -> bool:
        return self.get_bool("LOG_ENABLE_CONSOLE", True)

    @property
    def log_enable_file(self) -> bool:
        return self.get_bool("LOG_ENABLE_FILE", True)

    @property
    def log_enable_syslog(self) -> bool:
        return self.get_bool("LOG_ENABLE_SYSLOG", False)

    # Performance Monitoring
    @property
    def performance_log_interval(self) -> int:
        return self.get_int("PERFORMANCE_LOG_INTERVAL", 300)

    def validate_configuration(self) -> bool:
        """
        Validate all configuration values.

        Returns:
            bool: True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        errors = []

        # Validate BLE configuration
        try:
            if not self.ble_device:
                errors.append("BLE_DEVICE cannot be empty")
            if self.ble_retry_attempts < 1:
                errors.append("BLE_RETRY_ATTEMPTS must be at least 1")
            if self.ble_retry_delay < 0:
                errors.append("BLE_RETRY_DELAY cannot be negative")
        except ConfigurationError as e:
            errors.append(str(e))

        # Validate exporter configuration
        try:
            self.listen_address
        except ConfigurationError as e:
            errors.append(f"EXPORTER_LISTEN: {e}")

        try:
            if self.metrics_ttl <= timedelta(0):
                errors.append("METRICS_TTL must be positive")
            if self.sweep_interval <= timedelta(0):
                errors.append("METRICS_SWEEP_INTERVAL must be positive")
        except ConfigurationError as e:
            errors.append(str(e))

        # Validate log level
        try:
            valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
            if self.log_level not in valid_levels:
                errors.append(f"LOG_LEVEL must be one of {valid_levels}")
        except ConfigurationError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

        return True

    def get_summary(self) -> dict:
        """Get configuration summary for logging/debugging."""
        return {
            'ble': {
                'device': self.ble_device,
                'retry_attempts': self.ble_retry_attempts,
                'retry_delay': self.ble_retry_delay,
            },
            'exporter': {
                'listen': self.listen,
                'metrics_ttl': self.metrics_ttl.total_seconds(),
                'sweep_interval': self.sweep_interval.total_seconds(),
            },
            'logging': {
                'debug': self.debug,
                'level': self.log_level,
                'dir': str(self.log_dir),
                'enable_console': self.log_enable_console,
                'enable_file': self.log_enable_file,
                'enable_syslog': self.log_enable_syslog,
            },
        }
