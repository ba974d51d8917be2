# tests/conftest.py
"""Shared pytest fixtures for the Modbus bridge tests.

Fakes here stand in for the three external capabilities the bridge
consumes: the Modbus TCP client, the MQTT broker and the MariaDB pool.
"""

import json
from typing import Any

import pytest

from modbus_bridge.common.address_map import AddressMap, RegisterDescriptor
from modbus_bridge.common.config import TopicSettings
from modbus_bridge.common.exceptions import PublishError, TransportError


# ----------------------------------------------------------------
# Modbus client
# ----------------------------------------------------------------
class FakeModbusClient:
    """In-memory replacement for ModbusClient.

    words maps register address to raw word; unknown addresses read as 0.
    Reads whose start address is in fail_at raise TransportError.
    """

    def __init__(self, connect_ok: bool = True, words: dict[int, int] | None = None,
                 fail_at: set[int] | None = None):
        self.connect_ok = connect_ok
        self.words = words or {}
        self.fail_at = fail_at or set()
        self.connect_calls = 0
        self.close_calls = 0
        self.reads: list[tuple[int, int]] = []

    async def connect(self) -> bool:
        self.connect_calls += 1
        return self.connect_ok

    def close(self) -> None:
        self.close_calls += 1

    async def read_holding_registers(self, address: int, count: int) -> list[int]:
        self.reads.append((address, count))
        if address in self.fail_at:
            raise TransportError(f"Read timeout at {address}", address=address)
        return [self.words.get(address + offset, 0) for offset in range(count)]


class ClientFactory:
    """Hands out FakeModbusClient instances and remembers them."""

    def __init__(self, **client_kwargs):
        self.client_kwargs = client_kwargs
        self.created: list[FakeModbusClient] = []

    def __call__(self) -> FakeModbusClient:
        client = FakeModbusClient(**self.client_kwargs)
        self.created.append(client)
        return client


# ----------------------------------------------------------------
# Publisher
# ----------------------------------------------------------------
class RecordingPublisher:
    """Publisher that records every message instead of sending it."""

    def __init__(self, fail_topics: set[str] | None = None):
        self.fail_topics = fail_topics or set()
        self.messages: list[tuple[str, bytes]] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def publish(self, topic: str, payload: bytes) -> None:
        if topic in self.fail_topics:
            raise PublishError("broker gone", topic=topic)
        self.messages.append((topic, payload))

    def on_topic(self, topic: str) -> list[Any]:
        """Decoded payloads published to one topic."""
        return [json.loads(payload) for t, payload in self.messages if t == topic]


# ----------------------------------------------------------------
# MariaDB pool
# ----------------------------------------------------------------
class FakeCursor:
    def __init__(self, pool: "FakePool"):
        self._pool = pool
        self.executed: list[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def execute(self, query: str) -> None:
        self.executed.append(query)
        self._pool.queries.append(query)
        if self._pool.execute_error is not None:
            raise self._pool.execute_error

    async def fetchone(self):
        return self._pool.row


class FakeConnection:
    def __init__(self, pool: "FakePool"):
        self._pool = pool

    def cursor(self, cursor_class=None):
        return FakeCursor(self._pool)


class _Acquire:
    def __init__(self, pool: "FakePool"):
        self._pool = pool

    async def __aenter__(self):
        if self._pool.acquire_error is not None:
            raise self._pool.acquire_error
        self._pool.size += 1
        return FakeConnection(self._pool)

    async def __aexit__(self, exc_type, exc, tb):
        self._pool.freesize += 1
        return False


class FakePool:
    """Mimics aiomysql.Pool bookkeeping: outstanding = size - freesize."""

    def __init__(self, row: dict | None = None, execute_error: Exception | None = None,
                 acquire_error: Exception | None = None):
        self.row = row
        self.execute_error = execute_error
        self.acquire_error = acquire_error
        self.size = 0
        self.freesize = 0
        self.queries: list[str] = []
        self.closed = False

    def acquire(self) -> _Acquire:
        return _Acquire(self)

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None


# ----------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------
@pytest.fixture
def topics():
    return TopicSettings(telemetry="plant/telemetry", alarm="plant/alarms", status="plant/status")


@pytest.fixture
def sample_address_map():
    """Three contiguous runs; 102 is alarm-eligible, 200-201 are low priority."""
    return AddressMap([
        RegisterDescriptor(100, 0.1, "B1_T_Temp", False, {"type": "float", "gw": "gw1"}),
        RegisterDescriptor(101, 0.01, "B1_P_Pressure", False, {"type": "float"}),
        RegisterDescriptor(102, 1.0, "B1_A_Fault", True, {"type": "bool", "qhmi": 1}),
        RegisterDescriptor(200, 1.0, "B1_R_Runtime", False),
        RegisterDescriptor(201, 1.0, "B1_R_Starts", False),
    ])


@pytest.fixture
def client_factory():
    return ClientFactory()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def raw_config():
    """Configuration artifact in its on-disk shape."""
    return {
        "config": {
            "modbus_host": "192.168.1.10",
            "modbus_port": 502,
            "mqtt_broker": "mqtt://broker.local:1884",
            "mqtt_topic": "plant/telemetry",
            "mqtt_alarm_topic": "plant/alarms",
            "mqtt_status_topic": "plant/status",
            "mqtt_username": "bridge",
            "mqtt_password": "secret",
            "max_registers_per_request": 50,
            "polling_interval": 1000,
            "mariadb": {
                "host": "db.local",
                "user": "bridge",
                "password": "secret",
                "database": "scada",
                "connectionLimit": 4,
            },
        },
        "addresses": {
            "100": {"topic": "B1_T_Temp", "factor": 0.1, "type": "float", "alarm": False},
            "101": {"topic": "B1_A_Fault", "factor": 1, "alarm": True, "qhmi": 1},
            "200": {"topic": "B1_R_Runtime"},
        },
    }


@pytest.fixture
def make_client_factory():
    """Build a ClientFactory with custom FakeModbusClient behaviour."""
    return ClientFactory


@pytest.fixture
def make_publisher():
    return RecordingPublisher


@pytest.fixture
def make_pool():
    return FakePool
