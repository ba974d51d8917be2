"""
Transport Session

Owns the connection lifecycle to the Modbus TCP endpoint.

State machine:

    DISCONNECTED --connect()--> CONNECTING --ok--> CONNECTED
         ^                          |                  |
         |                        fail            read error
         +---- reconnect timer <----+------------------+

There is no terminal state. Every failure schedules exactly one reconnect
attempt after a fixed delay; scheduling again cancels and replaces the
pending timer, so at most one reconnect is ever pending.
"""

import asyncio
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from modbus_bridge.common.exceptions import TransportError
from modbus_bridge.common.logging_setup import get_service_logger
from .modbus_client import ModbusClient

logger = get_service_logger("device.session")


class ConnectionState(str, Enum):
    """Transport session states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TransportSession:
    """
    Self-healing Modbus TCP session.

    Only this class writes `state`; the read pipeline observes it through
    `is_connected` and reports failures by way of read_block() raising.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = 3.0,
        reconnect_delay_s: float = 10.0,
        reconnect_jitter_s: float = 0.0,
        client_factory: Callable[[], ModbusClient] | None = None,
    ):
        self.host = host
        self.port = port
        self.reconnect_delay_s = reconnect_delay_s
        self.reconnect_jitter_s = reconnect_jitter_s

        self._client_factory = client_factory or (
            lambda: ModbusClient(host=host, port=port, unit_id=unit_id, timeout=timeout)
        )
        self._client: ModbusClient | None = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_lock = asyncio.Lock()

        # Single slot: at most one reconnect pending at any time
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None

        # Observability
        self._connect_attempts = 0
        self._connect_failures = 0
        self._read_failures = 0
        self._reconnects_scheduled = 0
        self._last_state_change: datetime | None = None
        self._last_error: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Try to open the session.

        Never raises for connection failure: on failure the session stays
        DISCONNECTED and a reconnect is scheduled.

        Returns:
            True when the session is connected afterwards
        """
        async with self._connect_lock:
            if self._state is ConnectionState.CONNECTED:
                return True

            self._set_state(ConnectionState.CONNECTING)
            self._connect_attempts += 1
            client = self._client_factory()

            try:
                connected = await client.connect()
            except asyncio.CancelledError:
                client.close()
                self._set_state(ConnectionState.DISCONNECTED)
                raise

            if connected:
                self._client = client
                self._cancel_reconnect_timer()
                self._last_error = None
                self._set_state(ConnectionState.CONNECTED)
                logger.info(f"Connected to {self.host}:{self.port}")
                return True

            client.close()
            self._connect_failures += 1
            self._last_error = "connect failed"
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_reconnect()
            return False

    async def read_block(self, start_address: int, count: int) -> list[int]:
        """
        Read `count` holding registers starting at `start_address`.

        Raises:
            TransportError: session not connected, or the read failed. On a
                read failure the connection is dropped and a reconnect is
                scheduled before the error propagates.
        """
        if self._state is not ConnectionState.CONNECTED or self._client is None:
            raise TransportError(
                "Session not connected",
                host=self.host, port=self.port, address=start_address,
            )

        try:
            return await self._client.read_holding_registers(start_address, count)
        except TransportError as e:
            self._read_failures += 1
            self._last_error = e.message
            logger.warning(f"Read failed, dropping connection: {e.message}")
            self._release_client()
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_reconnect()
            raise

    def close(self) -> None:
        """Release the connection and cancel any pending reconnect. Idempotent."""
        self._cancel_reconnect_timer()
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._reconnect_task = None
        self._release_client()
        self._set_state(ConnectionState.DISCONNECTED)

    # ----------------------------------------------------------------
    # Reconnect timer
    # ----------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer, replacing any pending one"""
        self._cancel_reconnect_timer()

        delay = self.reconnect_delay_s
        if self.reconnect_jitter_s > 0:
            delay += random.uniform(0, self.reconnect_jitter_s)

        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(delay, self._on_reconnect_timer)
        self._reconnects_scheduled += 1
        logger.info(f"Reconnect to {self.host}:{self.port} scheduled in {delay:.1f}s")

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _on_reconnect_timer(self) -> None:
        self._reconnect_handle = None
        self._reconnect_task = asyncio.create_task(self.connect(), name="modbus-reconnect")

    def _release_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Session {self._state.value} -> {state.value}")
        self._state = state
        self._last_state_change = datetime.now(timezone.utc)

    def get_stats(self) -> dict:
        """Get session statistics"""
        return {
            "endpoint": f"{self.host}:{self.port}",
            "state": self._state.value,
            "reconnect_pending": self.reconnect_pending,
            "connect_attempts": self._connect_attempts,
            "connect_failures": self._connect_failures,
            "read_failures": self._read_failures,
            "reconnects_scheduled": self._reconnects_scheduled,
            "last_state_change": (
                self._last_state_change.isoformat() if self._last_state_change else None
            ),
            "last_error": self._last_error,
        }
