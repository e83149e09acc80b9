"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses and file loading
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Non-overlapping periodic loop and delayed calls
"""

from .config import (
    TankSettings,
    ErieConnectSettings,
    MqttSettings,
    BridgeConfig,
    load_bridge_config,
    read_config_file,
    validate_config,
)
from .exceptions import (
    BridgeError,
    ConfigError,
    VendorError,
    AuthError,
    NoDevicesError,
    TelemetryUnavailableError,
    PersistenceError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    set_log_level,
    log_reading,
    log_reset,
)
from .scheduler import ScheduledLoop, DelayedCall

__all__ = [
    # Config
    "TankSettings",
    "ErieConnectSettings",
    "MqttSettings",
    "BridgeConfig",
    "load_bridge_config",
    "read_config_file",
    "validate_config",
    # Exceptions
    "BridgeError",
    "ConfigError",
    "VendorError",
    "AuthError",
    "NoDevicesError",
    "TelemetryUnavailableError",
    "PersistenceError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "set_log_level",
    "log_reading",
    "log_reset",
    # Scheduling
    "ScheduledLoop",
    "DelayedCall",
]
