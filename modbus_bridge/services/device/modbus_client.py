"""
Async Modbus Client

Thin wrapper around pymodbus' AsyncModbusTcpClient exposing the three
operations the transport session needs: connect, raw holding register
block read, close.
"""

import asyncio

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from modbus_bridge.common.exceptions import TransportError
from modbus_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("device.modbus")


class ModbusClient:
    """
    Async Modbus TCP client returning raw 16-bit register words.

    Scaling and typing happen in the read pipeline; this class only moves
    words off the wire and turns every failure into TransportError.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = 3.0,
    ):
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout

        self._client: AsyncModbusTcpClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.connected

    async def connect(self) -> bool:
        """Establish connection to the Modbus device"""
        try:
            self._client = AsyncModbusTcpClient(
                host=self.host,
                port=self.port,
                timeout=self.timeout,
            )
            await self._client.connect()
        except Exception as e:
            logger.error(f"Connection error to {self.host}:{self.port}: {e}")
            self.close()
            return False

        if not self._client.connected:
            logger.warning(f"Failed to connect to Modbus device at {self.host}:{self.port}")
            self.close()
            return False

        logger.debug(f"Connected to Modbus device at {self.host}:{self.port}")
        return True

    def close(self) -> None:
        """Close connection"""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"Disconnected from {self.host}:{self.port}")

    async def read_holding_registers(self, address: int, count: int) -> list[int]:
        """
        Read a contiguous block of holding registers.

        Raises:
            TransportError: not connected, timeout, protocol exception or
                a short response
        """
        if not self.is_connected:
            raise TransportError(
                "Not connected", host=self.host, port=self.port, address=address
            )

        try:
            response = await self._client.read_holding_registers(
                address=address,
                count=count,
                device_id=self.unit_id,
            )
        except ModbusException as e:
            raise TransportError(
                f"Modbus exception at {address}: {e}",
                host=self.host, port=self.port, address=address,
            ) from e
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Read timeout at {address}",
                host=self.host, port=self.port, address=address,
            ) from e
        except OSError as e:
            raise TransportError(
                f"Socket error at {address}: {e}",
                host=self.host, port=self.port, address=address,
            ) from e
        except Exception as e:
            raise TransportError(
                f"Read error at {address}: {e}",
                host=self.host, port=self.port, address=address,
            ) from e

        if response.isError():
            raise TransportError(
                f"Modbus error at {address}: {response}",
                host=self.host, port=self.port, address=address,
            )

        registers = list(response.registers)
        if len(registers) < count:
            raise TransportError(
                f"Short response at {address}: expected {count}, got {len(registers)}",
                host=self.host, port=self.port, address=address,
            )

        return registers[:count]
