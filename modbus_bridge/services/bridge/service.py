"""
Bridge Service

Responsible for:
- Wiring configuration into the session, pipeline, publisher and status aggregator
- Running the poll and status timers
- Exposing a local health endpoint
- Graceful shutdown on SIGTERM/SIGINT
"""

import asyncio
import signal
from datetime import datetime, timezone

from aiohttp import web

from modbus_bridge.common.config import BridgeConfig
from modbus_bridge.common.logging_setup import get_service_logger
from modbus_bridge.common.scheduler import SchedulerGroup
from modbus_bridge.services.device.cycle_scheduler import CycleScheduler
from modbus_bridge.services.device.read_pipeline import ReadPipeline
from modbus_bridge.services.device.transport_session import TransportSession
from modbus_bridge.services.publish.publisher import MqttPublisher
from modbus_bridge.services.status.aggregator import StatusAggregator
from modbus_bridge.services.status.alarm_store import AlarmStore

logger = get_service_logger("bridge")


class BridgeService:
    """
    Modbus TCP to MQTT bridge.

    Two independent timers drive the work:
    - "poll": one ReadPipeline cycle per polling interval
    - "status": one StatusAggregator tick per status interval (only when
      an alarm store is configured)
    """

    def __init__(
        self,
        config: BridgeConfig,
        session: TransportSession | None = None,
        publisher: MqttPublisher | None = None,
        alarm_store: AlarmStore | None = None,
    ):
        self.config = config

        self.session = session or TransportSession(
            host=config.modbus.host,
            port=config.modbus.port,
            unit_id=config.modbus.unit_id,
            timeout=config.modbus.timeout_s,
            reconnect_delay_s=config.modbus.reconnect_delay_s,
            reconnect_jitter_s=config.modbus.reconnect_jitter_s,
        )
        self.publisher = publisher or MqttPublisher(config.mqtt)

        self.pipeline = ReadPipeline(
            address_map=config.address_map,
            session=self.session,
            publisher=self.publisher,
            cycle_scheduler=CycleScheduler(
                cadence=config.polling.low_priority_cadence,
                low_priority_marker=config.polling.low_priority_marker,
            ),
            topics=config.topics,
            max_batch_size=config.polling.max_batch_size,
        )

        if alarm_store is None and config.database is not None:
            alarm_store = AlarmStore(config.database)
        self.alarm_store = alarm_store
        self.aggregator = (
            StatusAggregator(alarm_store, self.publisher, config.topics.status)
            if alarm_store is not None
            else None
        )

        self.schedulers = SchedulerGroup()
        self.schedulers.add("poll", config.polling.interval_ms / 1000, self.pipeline.run_cycle)
        if self.aggregator is not None:
            self.schedulers.add("status", config.status.interval_s, self._status_tick)

        self._start_time = datetime.now(timezone.utc)
        self._running = False
        self._shutdown_event = asyncio.Event()

        self._health_runner: web.AppRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect collaborators and start both timers"""
        if self._running:
            return

        logger.info("Starting Modbus bridge")
        self._running = True
        self._start_time = datetime.now(timezone.utc)

        await self.publisher.start()

        # A failed first connect is not fatal: the session schedules its own retry
        if not await self.session.connect():
            logger.warning(
                f"Modbus device {self.config.modbus.host}:{self.config.modbus.port} "
                f"not reachable, retrying every {self.config.modbus.reconnect_delay_s:.0f}s"
            )

        if self.aggregator is None:
            logger.info("No alarm store configured, status publishing disabled")

        await self.schedulers.start_all()

        if self.config.health.port:
            await self._start_health_server()

        logger.info(
            f"Modbus bridge started ({len(self.config.address_map)} registers, "
            f"poll every {self.config.polling.interval_ms}ms)",
            extra={"register_count": len(self.config.address_map)},
        )

    async def stop(self) -> None:
        """Stop timers and release every connection"""
        if not self._running:
            return

        logger.info("Stopping Modbus bridge")
        self._running = False

        self.schedulers.stop_all()
        self.session.close()
        await self.publisher.stop()

        if self.alarm_store is not None:
            await self.alarm_store.close()

        await self._stop_health_server()
        logger.info("Modbus bridge stopped")

    async def run(self) -> None:
        """Start, wait for a shutdown signal, stop"""
        await self.start()
        self._setup_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    async def _status_tick(self) -> None:
        await self.aggregator.tick()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(self.request_shutdown))

    # ----------------------------------------------------------------
    # Health server
    # ----------------------------------------------------------------

    async def _start_health_server(self) -> None:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/status", self._status_handler)

        self._health_runner = web.AppRunner(app)
        await self._health_runner.setup()

        site = web.TCPSite(self._health_runner, self.config.health.host, self.config.health.port)
        await site.start()

        logger.info(f"Health server started on {self.config.health.host}:{self.config.health.port}")

    async def _stop_health_server(self) -> None:
        if self._health_runner:
            await self._health_runner.cleanup()
            self._health_runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

        return web.json_response({
            "status": "healthy" if self._running else "unhealthy",
            "service": "modbus_bridge",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connection": self.session.state.value,
        })

    async def _status_handler(self, request: web.Request) -> web.Response:
        status = {
            "pipeline": self.pipeline.get_stats(),
            "session": self.session.get_stats(),
            "schedulers": self.schedulers.get_stats(),
        }
        if isinstance(self.publisher, MqttPublisher):
            status["publisher"] = self.publisher.get_stats()
        if self.aggregator is not None:
            status["status"] = self.aggregator.get_stats()
        return web.json_response(status)
