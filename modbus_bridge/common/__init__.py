"""
Common Utilities

Shared modules used across all services:
- address_map.py - Immutable register descriptors
- config.py - Configuration dataclasses and loader
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed interval loops
"""

from .address_map import AddressMap, RegisterDescriptor
from .config import (
    BridgeConfig,
    ModbusSettings,
    MqttSettings,
    TopicSettings,
    PollingSettings,
    DatabaseSettings,
    StatusSettings,
    HealthSettings,
    load_bridge_config,
    load_config_file,
)
from .exceptions import (
    BridgeError,
    ConfigError,
    TransportError,
    QueryError,
    PublishError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    set_log_level,
    log_block_read,
    log_publish,
)
from .scheduler import ScheduledLoop, SchedulerGroup

__all__ = [
    # Address map
    "AddressMap",
    "RegisterDescriptor",
    # Config
    "BridgeConfig",
    "ModbusSettings",
    "MqttSettings",
    "TopicSettings",
    "PollingSettings",
    "DatabaseSettings",
    "StatusSettings",
    "HealthSettings",
    "load_bridge_config",
    "load_config_file",
    # Exceptions
    "BridgeError",
    "ConfigError",
    "TransportError",
    "QueryError",
    "PublishError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "set_log_level",
    "log_block_read",
    "log_publish",
    # Scheduling
    "ScheduledLoop",
    "SchedulerGroup",
]
