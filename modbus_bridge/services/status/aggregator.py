"""
Status Aggregator

Periodically counts active alarms in the alarm store and publishes the
summary to the status topic. Runs on its own timer, independent of the
poll cycle and of the Modbus connection state.
"""

from modbus_bridge.common.exceptions import PublishError, QueryError
from modbus_bridge.common.logging_setup import get_service_logger, log_publish
from modbus_bridge.services.publish.publisher import Publisher, encode_json
from .alarm_store import AlarmStatusSummary, AlarmStore

logger = get_service_logger("status")


class StatusAggregator:
    """Alarm status publisher; nothing is carried over between ticks"""

    def __init__(self, store: AlarmStore, publisher: Publisher, topic: str):
        self._store = store
        self._publisher = publisher
        self._topic = topic

        self._ticks = 0
        self._failed_queries = 0
        self._failed_publishes = 0

    async def tick(self) -> AlarmStatusSummary | None:
        """
        Query, then publish.

        Returns:
            The published summary, or None when the tick failed
        """
        self._ticks += 1

        try:
            summary = await self._store.fetch_summary()
        except QueryError as e:
            self._failed_queries += 1
            logger.error(f"Alarm status query failed: {e.message}")
            return None

        try:
            await self._publisher.publish(self._topic, encode_json(summary.to_payload(), indent=None))
        except PublishError as e:
            self._failed_publishes += 1
            log_publish(logger, self._topic, success=False, error=e.message)
            return None

        logger.info(
            f"Status sent to {self._topic}: {summary.total_active} active",
            extra={"status": summary.to_payload()},
        )
        return summary

    def get_stats(self) -> dict:
        return {
            "topic": self._topic,
            "ticks": self._ticks,
            "failed_queries": self._failed_queries,
            "failed_publishes": self._failed_publishes,
            "store": self._store.get_stats(),
        }
