#!/usr/bin/env python3
"""
Modbus Bridge - Main Entry Point

Usage:
    modbus-bridge                              # Use $MODBUS_BRIDGE_CONFIG or modbus_addresses.json
    modbus-bridge --config bridge.yaml         # Use custom config file
    modbus-bridge --dry-run                    # Print parsed config and exit
    modbus-bridge --verbose                    # Enable debug logging

The bridge will:
1. Load the configuration artifact and register map
2. Connect to the Modbus TCP device and the MQTT broker
3. Poll holding registers and publish telemetry and alarm streams
4. Publish active alarm counts from MariaDB to the status topic
"""

import argparse
import asyncio
import os
import sys

from modbus_bridge.common.config import BridgeConfig, load_config_file
from modbus_bridge.common.exceptions import ConfigError
from modbus_bridge.common.logging_setup import get_service_logger, set_log_level
from modbus_bridge.services.bridge.service import BridgeService

DEFAULT_CONFIG_PATH = "modbus_addresses.json"

logger = get_service_logger("main")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="modbus-bridge",
        description="Poll Modbus TCP holding registers and republish them over MQTT",
    )
    parser.add_argument(
        "--config", "-c",
        default=os.environ.get("MODBUS_BRIDGE_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to configuration file (JSON or YAML)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and print configuration, then exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def print_config_summary(config: BridgeConfig) -> None:
    """Print startup information."""
    address_map = config.address_map
    alarm_count = len(address_map.alarm_registers())

    print()
    print("=" * 60)
    print("  Modbus Bridge")
    print("=" * 60)
    print(f"  Modbus:     {config.modbus.host}:{config.modbus.port} (unit {config.modbus.unit_id})")
    print(f"  Broker:     {config.mqtt.host}:{config.mqtt.port} (qos {config.mqtt.qos})")
    print(f"  Topics:     telemetry={config.topics.telemetry}")
    print(f"              alarm={config.topics.alarm}")
    print(f"              status={config.topics.status}")
    print(f"  Registers:  {len(address_map)} ({alarm_count} alarm-eligible)")
    print(f"  Polling:    every {config.polling.interval_ms}ms, "
          f"max {config.polling.max_batch_size} registers/request")
    print(f"  Cadence:    '{config.polling.low_priority_marker}' registers "
          f"every {config.polling.low_priority_cadence} cycles")
    if config.database:
        print(f"  Alarm DB:   {config.database.host}:{config.database.port}/"
              f"{config.database.database} (every {config.status.interval_s:.0f}s)")
    else:
        print("  Alarm DB:   not configured")
    print("=" * 60)
    print()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        logger.error(f"Error loading configuration: {e.message}")
        return 1

    set_log_level("DEBUG" if args.verbose else config.log_level)
    logger.info(f"Loaded configuration from {args.config}")

    if args.dry_run:
        print_config_summary(config)
        return 0

    service = BridgeService(config)
    try:
        asyncio.run(service.run())
    except KeyboardInterrupt:
        pass

    return 0


if __name__ == "__main__":
    sys.exit(main())
