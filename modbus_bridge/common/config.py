"""
Configuration Dataclasses

Type-safe configuration structures for the bridge.
The configuration artifact is read once at startup and never reloaded.

Accepted layout (JSON or YAML):

    config:
      modbus_host: 192.168.1.10
      modbus_port: 502
      mqtt_broker: mqtt://localhost:1883
      mqtt_topic: plant/telemetry
      mqtt_alarm_topic: plant/alarms
      mqtt_status_topic: plant/status
      max_registers_per_request: 50
      polling_interval: 1000
      mariadb: {host: db, user: bridge, password: secret, database: scada}
    addresses:
      "100": {topic: "B1_T_Temp", factor: 0.1, alarm: false}
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .address_map import AddressMap, RegisterDescriptor
from .exceptions import ConfigError

# Keys of an address entry that map onto RegisterDescriptor fields.
# Everything else is passed through as metadata.
DESCRIPTOR_KEYS = ("topic", "factor", "alarm")

PRIORITY_LABELS = ("prio1", "prio2", "prio3", "warnung", "info")

TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ModbusSettings:
    """Field-bus endpoint"""
    host: str
    port: int = 502
    unit_id: int = 1
    timeout_s: float = 3.0
    reconnect_delay_s: float = 10.0
    reconnect_jitter_s: float = 0.0


@dataclass(frozen=True)
class MqttSettings:
    """Publish/subscribe broker"""
    host: str
    port: int = 1883
    username: str | None = None
    password: str | None = None
    client_id: str | None = None
    qos: int = 1


@dataclass(frozen=True)
class TopicSettings:
    """Destination topics for the three streams"""
    telemetry: str
    alarm: str
    status: str


@dataclass(frozen=True)
class PollingSettings:
    """Read cycle settings"""
    interval_ms: int = 1000
    max_batch_size: int = 125
    low_priority_cadence: int = 5
    low_priority_marker: str = "_R_"


@dataclass(frozen=True)
class DatabaseSettings:
    """Relational alarm store (MariaDB)"""
    host: str
    user: str
    password: str
    database: str
    port: int = 3306
    pool_size: int = 10
    table: str = "alarms"


@dataclass(frozen=True)
class StatusSettings:
    """Alarm status aggregation"""
    interval_s: float = 5.0


@dataclass(frozen=True)
class HealthSettings:
    """Local health endpoint (port 0 disables it)"""
    host: str = "127.0.0.1"
    port: int = 8085


@dataclass(frozen=True)
class BridgeConfig:
    """Complete bridge configuration"""
    modbus: ModbusSettings
    mqtt: MqttSettings
    topics: TopicSettings
    polling: PollingSettings
    status: StatusSettings
    health: HealthSettings
    address_map: AddressMap
    database: DatabaseSettings | None = None
    log_level: str = "INFO"


# ----------------------------------------------------------------
# Field helpers
# ----------------------------------------------------------------

def _require(data: dict[str, Any], key: str, prefix: str = "") -> Any:
    if key not in data or data[key] is None or data[key] == "":
        raise ConfigError(f"Missing required key '{prefix}{key}'", key=f"{prefix}{key}")
    return data[key]


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {type(value).__name__}", key=key)
    return value


def _as_int(value: Any, key: str, minimum: int | None = None) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool):
        raise ConfigError(f"'{key}' must be an integer, got bool", key=key)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ConfigError(f"'{key}' must be an integer, got {value!r}", key=key) from None
    if not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}", key=key)
    if minimum is not None and value < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {value}", key=key)
    return value


def _as_float(value: Any, key: str, minimum: float | None = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}", key=key)
    if minimum is not None and value < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {value}", key=key)
    return float(value)


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ConfigError(f"'{key}' must be a boolean, got {value!r}", key=key)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return _as_str(value, key)


def parse_broker_url(url: str) -> tuple[str, int]:
    """
    Split a broker address into host and port.

    Accepts "mqtt://host:port", "tcp://host", "host:port" or a bare host.
    """
    if "://" not in url:
        url = f"mqtt://{url}"
    parsed = urlparse(url)
    if parsed.scheme not in ("mqtt", "tcp"):
        raise ConfigError(f"Unsupported broker scheme '{parsed.scheme}'", key="mqtt_broker")
    if not parsed.hostname:
        raise ConfigError(f"Broker URL has no host: {url}", key="mqtt_broker")
    try:
        port = parsed.port or 1883
    except ValueError as e:
        raise ConfigError(f"Invalid broker port in {url}", key="mqtt_broker") from e
    return parsed.hostname, port


# ----------------------------------------------------------------
# Section loaders
# ----------------------------------------------------------------

def load_address_map(addresses: Any) -> AddressMap:
    """Build the AddressMap from the "addresses" section"""
    if not isinstance(addresses, dict):
        raise ConfigError("'addresses' must be a mapping of address to register", key="addresses")

    descriptors = []
    for raw_address, entry in addresses.items():
        try:
            address = int(raw_address)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid register address '{raw_address}'", key="addresses") from e
        if address < 0:
            raise ConfigError(f"Negative register address {address}", key="addresses")
        if not isinstance(entry, dict):
            raise ConfigError(f"Register {address} must be a mapping", key=f"addresses.{raw_address}")

        prefix = f"addresses.{raw_address}."
        topic = _as_str(_require(entry, "topic", prefix), f"{prefix}topic")
        factor = _as_float(entry.get("factor", 1.0), f"{prefix}factor")
        alarm = _as_bool(entry.get("alarm", False), f"{prefix}alarm")
        metadata = {k: v for k, v in entry.items() if k not in DESCRIPTOR_KEYS}

        descriptors.append(RegisterDescriptor(
            address=address,
            factor=factor,
            topic_class=topic,
            alarm_eligible=alarm,
            metadata=metadata,
        ))

    try:
        return AddressMap(descriptors)
    except ValueError as e:
        # "10" and "010" collapse onto the same address
        raise ConfigError(str(e), key="addresses") from e


def _load_database(data: Any) -> DatabaseSettings | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigError("'mariadb' must be a mapping", key="mariadb")

    prefix = "mariadb."
    table = _as_str(data.get("table", "alarms"), "mariadb.table")
    if not TABLE_NAME_RE.match(table):
        raise ConfigError(f"Invalid table name '{table}'", key="mariadb.table")

    return DatabaseSettings(
        host=_as_str(_require(data, "host", prefix), "mariadb.host"),
        user=_as_str(_require(data, "user", prefix), "mariadb.user"),
        password=_as_str(data.get("password", ""), "mariadb.password"),
        database=_as_str(_require(data, "database", prefix), "mariadb.database"),
        port=_as_int(data.get("port", 3306), "mariadb.port", minimum=1),
        pool_size=_as_int(data.get("connectionLimit", 10), "mariadb.connectionLimit", minimum=1),
        table=table,
    )


def load_bridge_config(data: Any) -> BridgeConfig:
    """
    Build a validated BridgeConfig from the parsed artifact.

    Raises:
        ConfigError: on any missing or malformed key
    """
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")

    settings = data.get("config")
    if not isinstance(settings, dict):
        raise ConfigError("Missing 'config' section", key="config")
    if "addresses" not in data:
        raise ConfigError("Missing 'addresses' section", key="addresses")

    broker_host, broker_port = parse_broker_url(
        _as_str(_require(settings, "mqtt_broker"), "mqtt_broker")
    )

    modbus = ModbusSettings(
        host=_as_str(_require(settings, "modbus_host"), "modbus_host"),
        port=_as_int(settings.get("modbus_port", 502), "modbus_port", minimum=1),
        unit_id=_as_int(settings.get("modbus_unit_id", 1), "modbus_unit_id", minimum=0),
        timeout_s=_as_float(settings.get("modbus_timeout", 3.0), "modbus_timeout", minimum=0.1),
        reconnect_delay_s=_as_float(
            settings.get("reconnect_delay", 10.0), "reconnect_delay", minimum=0.0
        ),
        reconnect_jitter_s=_as_float(
            settings.get("reconnect_jitter", 0.0), "reconnect_jitter", minimum=0.0
        ),
    )

    qos = _as_int(settings.get("mqtt_qos", 1), "mqtt_qos", minimum=0)
    if qos > 2:
        raise ConfigError(f"'mqtt_qos' must be 0, 1 or 2, got {qos}", key="mqtt_qos")

    mqtt = MqttSettings(
        host=broker_host,
        port=broker_port,
        username=_optional_str(settings, "mqtt_username"),
        password=_optional_str(settings, "mqtt_password"),
        client_id=_optional_str(settings, "mqtt_client_id"),
        qos=qos,
    )

    topics = TopicSettings(
        telemetry=_as_str(_require(settings, "mqtt_topic"), "mqtt_topic"),
        alarm=_as_str(_require(settings, "mqtt_alarm_topic"), "mqtt_alarm_topic"),
        status=_as_str(_require(settings, "mqtt_status_topic"), "mqtt_status_topic"),
    )

    polling = PollingSettings(
        interval_ms=_as_int(_require(settings, "polling_interval"), "polling_interval", minimum=1),
        max_batch_size=_as_int(
            _require(settings, "max_registers_per_request"),
            "max_registers_per_request",
            minimum=1,
        ),
        low_priority_cadence=_as_int(
            settings.get("low_priority_cadence", 5), "low_priority_cadence", minimum=1
        ),
        low_priority_marker=_as_str(
            settings.get("low_priority_marker", "_R_"), "low_priority_marker"
        ),
    )
    if polling.max_batch_size > 125:
        # Protocol limit for a single holding register read
        raise ConfigError(
            f"'max_registers_per_request' must be <= 125, got {polling.max_batch_size}",
            key="max_registers_per_request",
        )

    status = StatusSettings(
        interval_s=_as_float(settings.get("status_interval", 5.0), "status_interval", minimum=0.1),
    )

    health = HealthSettings(
        host=_as_str(settings.get("health_host", "127.0.0.1"), "health_host"),
        port=_as_int(settings.get("health_port", 8085), "health_port", minimum=0),
    )

    log_level = _as_str(settings.get("log_level", "INFO"), "log_level").upper()

    return BridgeConfig(
        modbus=modbus,
        mqtt=mqtt,
        topics=topics,
        polling=polling,
        status=status,
        health=health,
        address_map=load_address_map(data["addresses"]),
        database=_load_database(settings.get("mariadb")),
        log_level=log_level,
    )


def load_config_file(config_path: str | Path) -> BridgeConfig:
    """
    Read and validate the configuration artifact.

    JSON files are parsed with json, everything else with yaml.safe_load.

    Raises:
        ConfigError: file missing, unreadable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse configuration file {path}: {e}") from e

    return load_bridge_config(data)
