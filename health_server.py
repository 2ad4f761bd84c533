"""
Health-check HTTP server (aiohttp.web).
"""
import logging
import time
from aiohttp import web

from modules.block_listener import SharedBlockCache

logger = logging.getLogger(__name__)


class HealthServer:
    """GET / and GET /health report liveness plus a few counters."""

    def __init__(self, seen, registry, chains, port: int = 3000, host: str = "0.0.0.0"):
        self.seen = seen
        self.registry = registry
        self.chains = list(chains)
        self.port = port
        self.host = host
        self.started_at = time.time()
        self._runner = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.health_handler)
        app.router.add_get("/health", self.health_handler)
        return app

    async def health_handler(self, request: web.Request) -> web.Response:
        blocks = SharedBlockCache.snapshot()
        return web.json_response({
            'status': 'ok',
            'chains': {chain: blocks.get(chain, 0) for chain in self.chains},
            'seen_contracts': len(self.seen),
            'subscriber_scopes': self.registry.scope_count(),
            'uptime_seconds': int(time.time() - self.started_at),
        })

    async def start(self):
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"🚀 Health server live on port {self.port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
