"""Tests for configuration loading and validation.

Test Coverage:
- The on-disk artifact shape with defaults applied
- Broker address parsing
- Address entries and metadata passthrough
- Every rejection path raises ConfigError naming the key
- JSON and YAML files
"""

import copy
import json

import pytest
import yaml

from modbus_bridge.common.config import (
    load_address_map,
    load_bridge_config,
    load_config_file,
    parse_broker_url,
)
from modbus_bridge.common.exceptions import ConfigError


# ================================================================
# VALID ARTIFACT
# ================================================================
class TestLoadBridgeConfig:
    def test_connection_settings(self, raw_config):
        config = load_bridge_config(raw_config)

        assert config.modbus.host == "192.168.1.10"
        assert config.modbus.port == 502
        assert config.mqtt.host == "broker.local"
        assert config.mqtt.port == 1884
        assert config.mqtt.username == "bridge"
        assert config.mqtt.password == "secret"
        assert config.topics.telemetry == "plant/telemetry"
        assert config.topics.alarm == "plant/alarms"
        assert config.topics.status == "plant/status"

    def test_defaults(self, raw_config):
        config = load_bridge_config(raw_config)

        assert config.modbus.unit_id == 1
        assert config.modbus.reconnect_delay_s == 10.0
        assert config.modbus.reconnect_jitter_s == 0.0
        assert config.mqtt.qos == 1
        assert config.mqtt.client_id is None
        assert config.polling.low_priority_cadence == 5
        assert config.polling.low_priority_marker == "_R_"
        assert config.status.interval_s == 5.0
        assert config.health.port == 8085
        assert config.log_level == "INFO"

    def test_polling(self, raw_config):
        config = load_bridge_config(raw_config)
        assert config.polling.interval_ms == 1000
        assert config.polling.max_batch_size == 50

    def test_database(self, raw_config):
        database = load_bridge_config(raw_config).database

        assert database.host == "db.local"
        assert database.database == "scada"
        assert database.pool_size == 4
        assert database.port == 3306
        assert database.table == "alarms"

    def test_database_is_optional(self, raw_config):
        del raw_config["config"]["mariadb"]
        assert load_bridge_config(raw_config).database is None

    def test_optional_overrides(self, raw_config):
        raw_config["config"].update({
            "modbus_unit_id": 3,
            "reconnect_delay": 2.5,
            "low_priority_cadence": 10,
            "mqtt_qos": 0,
            "health_port": 0,
            "log_level": "debug",
        })
        config = load_bridge_config(raw_config)

        assert config.modbus.unit_id == 3
        assert config.modbus.reconnect_delay_s == 2.5
        assert config.polling.low_priority_cadence == 10
        assert config.mqtt.qos == 0
        assert config.health.port == 0
        assert config.log_level == "DEBUG"

    def test_numeric_strings_accepted(self, raw_config):
        raw_config["config"]["modbus_port"] = "1502"
        raw_config["config"]["polling_interval"] = "500"
        config = load_bridge_config(raw_config)
        assert config.modbus.port == 1502
        assert config.polling.interval_ms == 500

    @pytest.mark.parametrize("value", ["--5", "\u00b2", "12ms", ""])
    def test_non_numeric_string_rejected(self, raw_config, value):
        raw_config["config"]["polling_interval"] = value
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.key == "polling_interval"


# ================================================================
# BROKER URL
# ================================================================
class TestParseBrokerUrl:
    @pytest.mark.parametrize("url, expected", [
        ("mqtt://localhost:1883", ("localhost", 1883)),
        ("mqtt://broker", ("broker", 1883)),
        ("tcp://10.0.0.5:8883", ("10.0.0.5", 8883)),
        ("broker.local:1884", ("broker.local", 1884)),
        ("broker.local", ("broker.local", 1883)),
    ])
    def test_accepted_forms(self, url, expected):
        assert parse_broker_url(url) == expected

    def test_rejects_unknown_scheme(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_broker_url("http://broker")
        assert exc_info.value.key == "mqtt_broker"

    def test_rejects_bad_port(self):
        with pytest.raises(ConfigError):
            parse_broker_url("mqtt://broker:notaport")


# ================================================================
# ADDRESSES
# ================================================================
class TestLoadAddressMap:
    def test_entries(self, raw_config):
        address_map = load_address_map(raw_config["addresses"])

        assert address_map.addresses() == [100, 101, 200]
        assert address_map[100].factor == 0.1
        assert address_map[100].topic_class == "B1_T_Temp"
        assert address_map[101].alarm_eligible is True

    def test_entry_defaults(self, raw_config):
        descriptor = load_address_map(raw_config["addresses"])[200]
        assert descriptor.factor == 1.0
        assert descriptor.alarm_eligible is False
        assert dict(descriptor.metadata) == {}

    def test_extra_keys_become_metadata(self, raw_config):
        descriptor = load_address_map(raw_config["addresses"])[101]
        assert dict(descriptor.metadata) == {"qhmi": 1}

    def test_missing_topic(self):
        with pytest.raises(ConfigError) as exc_info:
            load_address_map({"5": {"factor": 1}})
        assert exc_info.value.key == "addresses.5.topic"

    def test_non_numeric_address(self):
        with pytest.raises(ConfigError, match="Invalid register address"):
            load_address_map({"abc": {"topic": "T"}})

    def test_negative_address(self):
        with pytest.raises(ConfigError, match="Negative"):
            load_address_map({"-1": {"topic": "T"}})

    def test_duplicate_after_normalisation(self):
        with pytest.raises(ConfigError, match="Duplicate"):
            load_address_map({"10": {"topic": "A"}, "010": {"topic": "B"}})

    def test_factor_must_be_number(self):
        with pytest.raises(ConfigError) as exc_info:
            load_address_map({"1": {"topic": "T", "factor": "0.1"}})
        assert exc_info.value.key == "addresses.1.factor"

    def test_alarm_must_be_bool(self):
        with pytest.raises(ConfigError):
            load_address_map({"1": {"topic": "T", "alarm": "yes"}})

    def test_addresses_must_be_mapping(self):
        with pytest.raises(ConfigError):
            load_address_map([{"topic": "T"}])


# ================================================================
# REJECTIONS
# ================================================================
class TestInvalidConfig:
    @pytest.mark.parametrize("key", [
        "modbus_host",
        "mqtt_broker",
        "mqtt_topic",
        "mqtt_alarm_topic",
        "mqtt_status_topic",
        "polling_interval",
        "max_registers_per_request",
    ])
    def test_missing_required_key(self, raw_config, key):
        del raw_config["config"][key]
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.key == key
        assert exc_info.value.recoverable is False

    def test_missing_config_section(self, raw_config):
        del raw_config["config"]
        with pytest.raises(ConfigError, match="'config'"):
            load_bridge_config(raw_config)

    def test_missing_addresses_section(self, raw_config):
        del raw_config["addresses"]
        with pytest.raises(ConfigError, match="'addresses'"):
            load_bridge_config(raw_config)

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigError):
            load_bridge_config(["not", "a", "mapping"])

    @pytest.mark.parametrize("value", [0, -1, 126, True])
    def test_batch_size_bounds(self, raw_config, value):
        raw_config["config"]["max_registers_per_request"] = value
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.key == "max_registers_per_request"

    def test_qos_above_two(self, raw_config):
        raw_config["config"]["mqtt_qos"] = 3
        with pytest.raises(ConfigError, match="mqtt_qos"):
            load_bridge_config(raw_config)

    def test_zero_cadence(self, raw_config):
        raw_config["config"]["low_priority_cadence"] = 0
        with pytest.raises(ConfigError):
            load_bridge_config(raw_config)

    @pytest.mark.parametrize("table", ["alarms; DROP TABLE x", "a-b", "1alarms", ""])
    def test_unsafe_table_name(self, raw_config, table):
        raw_config["config"]["mariadb"]["table"] = table
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.key == "mariadb.table"

    def test_database_missing_host(self, raw_config):
        del raw_config["config"]["mariadb"]["host"]
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.key == "mariadb.host"

    def test_message_prefix(self, raw_config):
        del raw_config["config"]["modbus_host"]
        with pytest.raises(ConfigError) as exc_info:
            load_bridge_config(raw_config)
        assert exc_info.value.message.startswith("Config Error: ")


# ================================================================
# FILES
# ================================================================
class TestLoadConfigFile:
    def test_json_file(self, tmp_path, raw_config):
        path = tmp_path / "modbus_addresses.json"
        path.write_text(json.dumps(raw_config))

        config = load_config_file(path)
        assert len(config.address_map) == 3

    def test_yaml_file(self, tmp_path, raw_config):
        path = tmp_path / "bridge.yaml"
        path.write_text(yaml.safe_dump(copy.deepcopy(raw_config)))

        config = load_config_file(str(path))
        assert config.mqtt.host == "broker.local"
        assert config.address_map[100].factor == 0.1

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "absent.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("config: [unclosed")
        with pytest.raises(ConfigError, match="Cannot parse"):
            load_config_file(path)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "garbled.json"
        path.write_bytes(b'{"config": {"modbus_host": "\xff\xfe"}}')
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config_file(path)

    def test_example_file_loads(self):
        from pathlib import Path

        example = Path(__file__).resolve().parents[3] / "modbus_addresses.example.json"
        config = load_config_file(example)
        assert config.database is not None
        assert len(config.address_map.alarm_registers()) == 1
