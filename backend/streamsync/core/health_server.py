"""HTTP health and status server"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from aiohttp import web

if TYPE_CHECKING:
    from streamsync.components.stream_state import StreamStateMachine
    from streamsync.core.context import SyncContext

logger = logging.getLogger("Sync.Health")

SERVICE_NAME = "streamsync"
HEARTBEAT_INTERVAL = 300


class HealthCheckServer:
    """Liveness plus the published sync surface (API status, stream state, stats, budget)"""

    def __init__(
        self,
        ctx: "SyncContext",
        machine: "StreamStateMachine | None" = None,
        host: str = "0.0.0.0",
        port: int = 4345,
    ):
        self.ctx = ctx
        self.machine = machine
        self.host = host
        self.port = port
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self._start_time: float = time.time()
        self._heartbeat_task: asyncio.Task | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/", self.handle_root)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/status", self.handle_status)
        self.app.router.add_get("/ping", self.handle_ping)

    @property
    def ready(self) -> bool:
        return self.ctx.channel.resolved

    async def handle_root(self, request: web.Request) -> web.Response:
        return web.json_response({"service": SERVICE_NAME, "status": "running"})

    async def handle_health(self, request: web.Request) -> web.Response:
        """Always 200 (liveness); ``ready`` once the channel id is known"""
        return web.json_response(
            {"status": "healthy" if self.ready else "starting", "ready": self.ready}
        )

    async def handle_status(self, request: web.Request) -> web.Response:
        budget = self.ctx.rate_budget.snapshot
        return web.json_response(
            {
                "service": SERVICE_NAME,
                "uptime_seconds": int(time.time() - self._start_time),
                "channel_id": self.ctx.channel.value,
                "api": self.ctx.api_status.value,
                "stream": self.machine.state.value if self.machine else None,
                "stats": self.ctx.stats.as_dict(),
                "rate_budget": {"remaining": budget.remaining, "reset_at": budget.reset_at},
            }
        )

    async def handle_ping(self, request: web.Request) -> web.Response:
        return web.Response(text="pong")

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            uptime = int(time.time() - self._start_time)
            state = self.machine.state.value if self.machine else "unknown"
            logger.info(
                f"Heartbeat: uptime={uptime}s, api={self.ctx.api_status.value}, stream={state}, "
                f"budget={self.ctx.rate_budget.remaining}"
            )

    async def start(self) -> None:
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()

            site = web.TCPSite(self.runner, self.host, self.port)
            await site.start()

            self._heartbeat_task = asyncio.create_task(self._heartbeat())

            logger.info(f"Health server started on {self.host}:{self.port}")
            logger.info(f"  GET http://{self.host}:{self.port}/status - Published sync state")

        except Exception as e:
            logger.exception(f"Failed to start health server: {e}")
            raise

    async def stop(self) -> None:
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
        if self.runner:
            try:
                await self.runner.cleanup()
                logger.info("Health server stopped")
            except Exception as e:
                logger.exception(f"Error stopping health server: {e}")
