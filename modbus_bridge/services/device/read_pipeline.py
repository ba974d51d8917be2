"""
Read Pipeline

Executes one poll cycle:

1. skip when the transport session is not connected
2. select the active register subset for this cycle
3. batch the subset into contiguous groups
4. read every group, in ascending address order
5. scale raw words into data points
6. split out the alarm-eligible points
7. publish telemetry (and alarms when present) as single aggregate messages

Publishing is all-or-nothing per cycle: if any group fails to read, the
remaining groups are abandoned and nothing is published for that cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from modbus_bridge.common.address_map import AddressMap, RegisterDescriptor
from modbus_bridge.common.config import TopicSettings
from modbus_bridge.common.exceptions import PublishError, TransportError
from modbus_bridge.common.logging_setup import (
    get_service_logger,
    log_block_read,
    log_publish,
)
from modbus_bridge.services.publish.publisher import Publisher, encode_json
from .batcher import AddressGroup, group_addresses
from .cycle_scheduler import CycleScheduler
from .transport_session import TransportSession

logger = get_service_logger("device.pipeline")


@dataclass(frozen=True)
class DataPoint:
    """A scaled register reading from one poll cycle"""
    address: int
    value: float
    topic_class: str
    alarm_eligible: bool
    factor: float
    observed_at: datetime
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_word(
        cls,
        descriptor: RegisterDescriptor,
        word: int,
        observed_at: datetime,
    ) -> "DataPoint":
        return cls(
            address=descriptor.address,
            value=word * descriptor.factor,
            topic_class=descriptor.topic_class,
            alarm_eligible=descriptor.alarm_eligible,
            factor=descriptor.factor,
            observed_at=observed_at,
            metadata=descriptor.metadata,
        )

    def to_payload(self) -> dict[str, Any]:
        """Wire representation; metadata keys sit beside the reading"""
        payload: dict[str, Any] = {
            "address": self.address,
            "value": self.value,
            "topic": self.topic_class,
        }
        for key, value in self.metadata.items():
            payload.setdefault(key, value)
        payload["alarm"] = self.alarm_eligible
        payload["factor"] = self.factor
        payload["timestamp"] = int(self.observed_at.timestamp() * 1000)
        return payload


def build_data_points(
    group: AddressGroup,
    words: Sequence[int],
    address_map: AddressMap,
    observed_at: datetime,
) -> list[DataPoint]:
    """Scale one block of raw words using the descriptors of its addresses"""
    return [
        DataPoint.from_word(address_map[address], words[offset], observed_at)
        for offset, address in enumerate(group.addresses)
    ]


def partition_alarms(points: Iterable[DataPoint]) -> tuple[list[DataPoint], list[DataPoint]]:
    """Split into (full telemetry stream, alarm-eligible subset)"""
    telemetry = list(points)
    alarms = [p for p in telemetry if p.alarm_eligible]
    return telemetry, alarms


class ReadPipeline:
    """
    Poll cycle driver.

    Owns the cycle counter: it advances exactly once per run_cycle()
    call whatever the outcome, and drives the low-priority cadence.
    """

    def __init__(
        self,
        address_map: AddressMap,
        session: TransportSession,
        publisher: Publisher,
        cycle_scheduler: CycleScheduler,
        topics: TopicSettings,
        max_batch_size: int,
    ):
        self._address_map = address_map
        self._session = session
        self._publisher = publisher
        self._scheduler = cycle_scheduler
        self._topics = topics
        self._max_batch_size = max_batch_size

        self._cycle_index = 0
        self._busy = False

        self._cycles_completed = 0
        self._cycles_failed = 0
        self._cycles_skipped = 0
        self._busy_skips = 0
        self._last_success: datetime | None = None

    @property
    def cycle_index(self) -> int:
        return self._cycle_index

    async def run_cycle(self) -> None:
        """Run one poll cycle; never raises for transport or publish errors"""
        if self._busy:
            # Serialize cycles: one session, one cycle at a time
            self._busy_skips += 1
            self._cycle_index += 1
            logger.warning("Previous poll cycle still running, tick skipped")
            return

        self._busy = True
        try:
            await self._execute(self._cycle_index)
        finally:
            self._cycle_index += 1
            self._busy = False

    async def _execute(self, cycle_index: int) -> None:
        if not self._session.is_connected:
            self._cycles_skipped += 1
            logger.debug(
                f"Cycle {cycle_index} skipped: session {self._session.state.value}"
            )
            return

        active = self._scheduler.select(self._address_map, cycle_index)
        if not active:
            self._cycles_skipped += 1
            logger.debug(f"Cycle {cycle_index}: no registers due")
            return

        groups = group_addresses([d.address for d in active], self._max_batch_size)

        try:
            points = await self._read_groups(groups)
        except TransportError as e:
            self._cycles_failed += 1
            logger.error(
                f"Cycle {cycle_index} aborted, nothing published: {e.message}",
                extra={"cycle_index": cycle_index, "address": e.address},
            )
            return

        telemetry, alarms = partition_alarms(points)
        await self._publish(self._topics.telemetry, telemetry)
        if alarms:
            await self._publish(self._topics.alarm, alarms)
        else:
            logger.debug("No alarm registers in this cycle")

        self._cycles_completed += 1
        self._last_success = datetime.now(timezone.utc)

    async def _read_groups(self, groups: list[AddressGroup]) -> list[DataPoint]:
        """Read all groups or raise on the first failure"""
        points: list[DataPoint] = []
        for group in groups:
            try:
                words = await self._session.read_block(group.start, group.count)
            except TransportError:
                log_block_read(logger, group.start, group.count, success=False)
                raise

            log_block_read(logger, group.start, group.count, words)
            observed_at = datetime.now(timezone.utc)
            points.extend(build_data_points(group, words, self._address_map, observed_at))
        return points

    async def _publish(self, topic: str, points: list[DataPoint]) -> None:
        payload = encode_json([p.to_payload() for p in points])
        try:
            await self._publisher.publish(topic, payload)
        except PublishError as e:
            log_publish(logger, topic, success=False, error=e.message)
            return
        log_publish(logger, topic, item_count=len(points))

    def get_stats(self) -> dict:
        return {
            "cycle_index": self._cycle_index,
            "registers": len(self._address_map),
            "cycles_completed": self._cycles_completed,
            "cycles_failed": self._cycles_failed,
            "cycles_skipped": self._cycles_skipped,
            "busy_skips": self._busy_skips,
            "last_success": self._last_success.isoformat() if self._last_success else None,
        }
