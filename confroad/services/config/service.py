"""
Config Service - long-running host for the sync engine

Responsible for:
- Loading bootstrap parameters and applying log settings
- Starting the sync engine (fails fast on startup errors)
- Serving health and read endpoints over HTTP
- Graceful shutdown on SIGTERM / SIGINT
"""

import asyncio
import os
import signal
from datetime import datetime, timezone

from aiohttp import web

from confroad.common.config import BootstrapConfig, load_bootstrap_config
from confroad.common.logging_setup import configure_logging, get_service_logger

from .engine import SyncEngine
from .source import NacosHttpSource, RemoteSource

logger = get_service_logger("config.service")

DEFAULT_CONFIG_PATH = "config.yaml"


class ConfigService:
    """
    Config Service

    Hosts a SyncEngine with:
    - GET /health - engine status
    - GET /configs - synced document ids
    - GET /configs/{document_id} - raw document content
    """

    def __init__(
        self,
        config: BootstrapConfig,
        source: RemoteSource | None = None,
    ):
        self.config = config
        self.source = source
        self.engine: SyncEngine | None = None

        self._start_time = datetime.now(timezone.utc)

        # HTTP server
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None

        self._shutdown_event = asyncio.Event()

    @classmethod
    def from_file(cls, config_path: str | None = None) -> "ConfigService":
        """Build from a bootstrap file (CONFROAD_CONFIG or config.yaml by default)"""
        path = config_path or os.environ.get("CONFROAD_CONFIG", DEFAULT_CONFIG_PATH)
        config = load_bootstrap_config(path)
        configure_logging(config.nacos_client.log_level, config.nacos_client.log_dir)
        return cls(config)

    async def start(self) -> None:
        """
        Start the engine and HTTP endpoints.

        Raises:
            StartupError: engine could not reach steady state
            OSError: HTTP endpoints could not bind (engine is stopped first)
        """
        logger.info("Starting Config Service")

        source = self.source or NacosHttpSource.from_config(self.config)
        self.engine = await SyncEngine.create(self.config, source)

        if self.config.health_server.port:
            try:
                await self._start_http_server()
            except Exception as e:
                logger.error(f"HTTP server failed to start: {e}")
                await self.stop()
                raise

        logger.info(
            f"Config Service started (group: {self.config.base_config.group})",
            extra={"group": self.config.base_config.group},
        )

    async def run(self) -> None:
        """Start, then serve until a shutdown signal arrives"""
        await self.start()
        self._setup_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            self._remove_signal_handlers()
            await self.stop()

    async def stop(self) -> None:
        """Stop the config service"""
        logger.info("Stopping Config Service")

        await self._stop_http_server()

        if self.engine:
            await self.engine.stop()

        logger.info("Config Service stopped")

    def request_shutdown(self) -> None:
        """Handle shutdown signal"""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers"""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(self.request_shutdown))

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)

    # ============================================
    # HTTP ENDPOINTS
    # ============================================

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/configs", self._list_handler)
        app.router.add_get("/configs/{document_id}", self._document_handler)
        return app

    async def _start_http_server(self) -> None:
        """Start the health/read HTTP server"""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        server = self.config.health_server
        site = web.TCPSite(self._runner, server.host, server.port)
        await site.start()

        logger.info(f"HTTP server started on {server.host}:{server.port}")

    async def _stop_http_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _health_handler(self, request: web.Request) -> web.Response:
        """Handle health check requests"""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        status = self.engine.status() if self.engine else {"state": "uninitialized"}

        return web.json_response({
            "status": "healthy" if status["state"] == "steady" else "unhealthy",
            "service": "config",
            "uptime": int(uptime),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "engine": status,
        })

    async def _list_handler(self, request: web.Request) -> web.Response:
        ids = self.engine.store.keys() if self.engine else []
        return web.json_response({"documents": ids})

    async def _document_handler(self, request: web.Request) -> web.Response:
        document_id = request.match_info["document_id"]
        content = self.engine.get(document_id) if self.engine else None
        if content is None:
            raise web.HTTPNotFound(text=f"Unknown document: {document_id}")
        return web.Response(text=content)


async def main(config_path: str | None = None) -> None:
    """Main entry point"""
    service = ConfigService.from_file(config_path)
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
