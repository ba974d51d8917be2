"""
MQTT Publisher

Publisher is the capability the poll and status services hand their
messages to. MqttPublisher implements it on aiomqtt with a lazily
(re)established broker connection: a failed publish drops the connection
and the next publish reconnects.
"""

import asyncio
import json
from typing import Any, Callable, Protocol

from aiomqtt import Client, MqttError

from modbus_bridge.common.config import MqttSettings
from modbus_bridge.common.exceptions import PublishError
from modbus_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("publish")


class Publisher(Protocol):
    """Fire-and-forget topic + payload sink"""

    async def publish(self, topic: str, payload: bytes) -> None:
        ...


def encode_json(message: Any, indent: int | None = 2) -> bytes:
    """Serialize a message the way downstream consumers expect it"""
    return json.dumps(message, indent=indent, ensure_ascii=False, default=str).encode("utf-8")


class MqttPublisher:
    """
    aiomqtt-backed Publisher.

    Raises PublishError on failure; callers log it and carry on.
    """

    def __init__(
        self,
        settings: MqttSettings,
        client_factory: Callable[[], Client] | None = None,
    ):
        self.settings = settings
        self._client_factory = client_factory or self._default_client
        self._client: Client | None = None
        self._lock = asyncio.Lock()

        self._published_count = 0
        self._failed_count = 0
        self._last_error: str | None = None

    def _default_client(self) -> Client:
        return Client(
            hostname=self.settings.host,
            port=self.settings.port,
            username=self.settings.username,
            password=self.settings.password,
            identifier=self.settings.client_id,
        )

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def start(self) -> None:
        """Connect eagerly; a failure here is retried on first publish"""
        try:
            async with self._lock:
                await self._ensure_connected()
        except PublishError as e:
            logger.warning(f"Broker not reachable at startup: {e.message}")

    async def stop(self) -> None:
        async with self._lock:
            await self._disconnect()
        logger.info("MQTT publisher stopped")

    async def publish(self, topic: str, payload: bytes) -> None:
        async with self._lock:
            await self._ensure_connected()
            try:
                await self._client.publish(topic, payload=payload, qos=self.settings.qos)
            except MqttError as e:
                self._failed_count += 1
                self._last_error = str(e)
                await self._disconnect()
                raise PublishError(str(e), topic=topic) from e

        self._published_count += 1

    async def _ensure_connected(self) -> None:
        if self._client is not None:
            return

        client = self._client_factory()
        try:
            await client.__aenter__()
        except MqttError as e:
            self._failed_count += 1
            self._last_error = str(e)
            raise PublishError(
                f"Cannot connect to broker {self.settings.host}:{self.settings.port}: {e}"
            ) from e

        self._client = client
        logger.info(f"Connected to broker {self.settings.host}:{self.settings.port}")

    async def _disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except MqttError as e:
            logger.debug(f"Broker disconnect error ignored: {e}")

    def get_stats(self) -> dict:
        return {
            "broker": f"{self.settings.host}:{self.settings.port}",
            "connected": self.is_connected,
            "published": self._published_count,
            "failed": self._failed_count,
            "last_error": self._last_error,
        }
