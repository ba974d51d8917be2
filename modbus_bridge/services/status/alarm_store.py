"""
Alarm Store

Read-only access to the MariaDB alarm table through an aiomysql pool.
Only one aggregate query is ever issued: active alarm counts per priority.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import aiomysql

from modbus_bridge.common.config import PRIORITY_LABELS, DatabaseSettings
from modbus_bridge.common.exceptions import QueryError
from modbus_bridge.common.logging_setup import get_service_logger

logger = get_service_logger("status.store")


def build_status_query(table: str) -> str:
    """One row: total plus one count column per priority label"""
    columns = ",\n".join(
        f"  SUM(CASE WHEN priority = '{label}' THEN 1 ELSE 0 END) AS {label}"
        for label in PRIORITY_LABELS
    )
    return f"SELECT\n  COUNT(*) AS totalActive,\n{columns}\nFROM `{table}`"


@dataclass(frozen=True)
class AlarmStatusSummary:
    """Active alarm counts for one status tick"""
    total_active: int
    counts_by_priority: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any] | None) -> "AlarmStatusSummary":
        # SUM() over an empty table is NULL; counts arrive as Decimal
        row = row or {}
        return cls(
            total_active=int(row.get("totalActive") or 0),
            counts_by_priority={
                label: int(row.get(label) or 0) for label in PRIORITY_LABELS
            },
        )

    def to_payload(self) -> dict[str, int]:
        payload = {"totalActive": self.total_active}
        payload.update(self.counts_by_priority)
        return payload


class AlarmStore:
    """
    Pooled MariaDB reader.

    The pool is created with minsize=0 so that an unreachable database
    never blocks startup; connections are opened on first acquire.
    """

    CONNECT_TIMEOUT_S = 5

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self.query = build_status_query(settings.table)
        self._pool: aiomysql.Pool | None = None
        self._open_lock = asyncio.Lock()

    @property
    def outstanding(self) -> int:
        """Connections currently borrowed from the pool"""
        if self._pool is None:
            return 0
        return self._pool.size - self._pool.freesize

    async def open(self) -> None:
        async with self._open_lock:
            if self._pool is not None:
                return
            try:
                self._pool = await aiomysql.create_pool(
                    host=self.settings.host,
                    port=self.settings.port,
                    user=self.settings.user,
                    password=self.settings.password,
                    db=self.settings.database,
                    minsize=0,
                    maxsize=self.settings.pool_size,
                    connect_timeout=self.CONNECT_TIMEOUT_S,
                    # Each query must see the current table, not a stale snapshot
                    autocommit=True,
                )
            except (aiomysql.Error, OSError, asyncio.TimeoutError) as e:
                raise QueryError(f"Cannot create pool: {e}") from e
            logger.info(
                f"Alarm store pool ready ({self.settings.host}:{self.settings.port}/"
                f"{self.settings.database}, max {self.settings.pool_size})"
            )

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        pool.close()
        await pool.wait_closed()
        logger.info("Alarm store pool closed")

    async def fetch_summary(self) -> AlarmStatusSummary:
        """
        Run the aggregate query on a borrowed connection.

        The connection goes back to the pool on every exit path.

        Raises:
            QueryError: database unreachable or query failed
        """
        if self._pool is None:
            await self.open()

        try:
            async with self._pool.acquire() as conn:
                async with conn.cursor(aiomysql.DictCursor) as cur:
                    await cur.execute(self.query)
                    row = await cur.fetchone()
        except (aiomysql.Error, OSError, asyncio.TimeoutError) as e:
            raise QueryError(str(e), query=self.query) from e

        return AlarmStatusSummary.from_row(row)

    def get_stats(self) -> dict:
        return {
            "database": f"{self.settings.host}:{self.settings.port}/{self.settings.database}",
            "pool_open": self._pool is not None,
            "outstanding": self.outstanding,
        }
