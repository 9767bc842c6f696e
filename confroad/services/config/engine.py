"""
Sync Engine

Discovery -> fetch -> cache -> store -> subscribe, then steady-state change
handling.

Startup is all-or-nothing: a discovery or initial fetch failure raises
StartupError and no engine is returned. Once steady, every notification
error is logged and the event dropped.

Notifications may arrive on any thread. They are handed to the event loop
and placed on a per-document queue with a single consumer, so updates for
one document apply in arrival order while different documents proceed
independently.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from confroad.common.config import BootstrapConfig, load_bootstrap_config
from confroad.common.exceptions import CacheWriteError, StartupError
from confroad.common.logging_setup import (
    configure_logging,
    get_service_logger,
    log_document_applied,
)
from confroad.common.state import ConfigStore

from .cache import ConfigCache
from .discovery import discover_ids
from .source import NacosHttpSource, RemoteSource

logger = get_service_logger("config.engine")


class EngineState(str, Enum):
    """Engine lifecycle states"""
    UNINITIALIZED = "uninitialized"
    DISCOVERING = "discovering"
    INITIAL_SYNCING = "initial_syncing"
    STEADY = "steady"
    FATAL = "fatal"
    STOPPED = "stopped"


class SyncEngine:
    """
    Keeps a ConfigStore and ConfigCache in line with the remote source.

    The engine owns the source: it is closed on stop() and when startup fails.
    """

    def __init__(
        self,
        config: BootstrapConfig,
        source: RemoteSource,
        store: ConfigStore | None = None,
        cache: ConfigCache | None = None,
    ):
        self.config = config
        self.source = source
        self.store = store if store is not None else ConfigStore(config.base_config.config_type)
        self.cache = cache if cache is not None else ConfigCache(config.base_config.cache_dir)

        self.state = EngineState.UNINITIALIZED
        self.document_ids: list[str] = []
        # Documents synced at startup whose subscription was rejected
        self.unsubscribed: set[str] = set()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._queues: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._started_at: datetime | None = None

        # Observability counters
        self.notifications_applied = 0
        self.notifications_dropped = 0

    @classmethod
    async def create(
        cls,
        config: BootstrapConfig,
        source: RemoteSource,
        store: ConfigStore | None = None,
        cache: ConfigCache | None = None,
    ) -> "SyncEngine":
        """
        Construct and start an engine.

        Returns:
            Engine in the steady state

        Raises:
            StartupError: discovery or an initial fetch failed
        """
        engine = cls(config, source, store, cache)
        try:
            await engine.start()
        except StartupError:
            await source.close()
            raise
        return engine

    @property
    def group(self) -> str:
        return self.config.base_config.group

    def get(self, document_id: str) -> str | None:
        """Latest content for a document"""
        return self.store.get(document_id)

    async def start(self) -> None:
        """Run discovery and the initial sync, ending in the steady state"""
        if self.state != EngineState.UNINITIALIZED:
            raise RuntimeError(f"Engine already started (state: {self.state.value})")

        self._loop = asyncio.get_running_loop()
        self._started_at = datetime.now(timezone.utc)
        base = self.config.base_config

        logger.info(
            f"Starting sync for group {base.group}",
            extra={"group": base.group, "search_pattern": base.search_pattern.value},
        )

        # 1. Discovery
        self.state = EngineState.DISCOVERING
        try:
            ids = await discover_ids(
                self.source,
                base.group,
                base.search_pattern,
                base.page_size,
                base.data_id,
            )
        except Exception as e:
            self.state = EngineState.FATAL
            logger.critical(f"Discovery failed: {e}", extra={"group": base.group})
            raise StartupError(f"discovery failed: {e}", "discovery") from e

        self.document_ids = ids

        # 2. Initial sync
        self.state = EngineState.INITIAL_SYNCING
        contents = await self._fetch_all(ids)

        for document_id, content in zip(ids, contents):
            await self._apply(document_id, content, "initial")
            await self._subscribe(document_id)

        self.state = EngineState.STEADY
        logger.info(
            f"Initial sync complete: {len(ids)} documents, "
            f"{len(self.unsubscribed)} without live updates",
            extra={
                "document_count": len(ids),
                "unsubscribed_count": len(self.unsubscribed),
            },
        )

    async def _fetch_all(self, ids: list[str]) -> list[str]:
        """Fetch all documents in parallel; any failure is fatal"""
        results = await asyncio.gather(
            *(self.source.fetch(document_id, self.group) for document_id in ids),
            return_exceptions=True,
        )

        for document_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                self.state = EngineState.FATAL
                logger.critical(
                    f"Initial fetch failed for {document_id}: {result}",
                    extra={"document_id": document_id},
                )
                raise StartupError(
                    f"fetch {document_id} failed: {result}", "fetch", document_id
                ) from result

        return results

    async def _apply(self, document_id: str, content: str, origin: str) -> None:
        """Write cache, then store. A cache failure never blocks the store."""
        cached = True
        try:
            await asyncio.to_thread(self.cache.write, document_id, content)
        except CacheWriteError as e:
            cached = False
            logger.error(
                f"Cache write failed for {document_id}: {e}",
                extra={"document_id": document_id},
            )

        self.store.set(document_id, content)
        log_document_applied(logger, document_id, origin, len(content), cached)

    async def _subscribe(self, document_id: str) -> None:
        try:
            await self.source.subscribe(document_id, self.group, self.on_change)
        except Exception as e:
            self.unsubscribed.add(document_id)
            logger.warning(
                f"Subscription failed for {document_id}, no live updates: {e}",
                extra={"document_id": document_id},
            )

    # ============================================
    # CHANGE NOTIFICATIONS
    # ============================================

    def on_change(self, document_id: str, content: str) -> None:
        """
        Change callback handed to the remote source.

        Safe to call from any thread; never blocks.
        """
        loop = self._loop
        if loop is None or loop.is_closed() or self.state in (EngineState.FATAL, EngineState.STOPPED):
            logger.warning(
                f"Dropping change for {document_id} (state: {self.state.value})",
                extra={"document_id": document_id},
            )
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._enqueue(document_id, content)
        else:
            loop.call_soon_threadsafe(self._enqueue, document_id, content)

    def _enqueue(self, document_id: str, content: str) -> None:
        if self.state == EngineState.STOPPED:
            return

        queue = self._queues.get(document_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[document_id] = queue
            self._workers[document_id] = asyncio.create_task(
                self._consume(document_id, queue),
                name=f"confroad-change-{document_id}",
            )
        queue.put_nowait(content)

    async def _consume(self, document_id: str, queue: asyncio.Queue) -> None:
        """Single consumer per document: applies changes in arrival order"""
        while True:
            content = await queue.get()
            try:
                await self._apply(document_id, content, "change")
                self.notifications_applied += 1
            except Exception as e:
                self.notifications_dropped += 1
                logger.error(
                    f"Dropped change for {document_id}: {e}",
                    extra={"document_id": document_id},
                    exc_info=True,
                )
            finally:
                queue.task_done()

    async def join(self) -> None:
        """Wait until every queued notification has been applied"""
        # Let handoffs from other threads land first
        await asyncio.sleep(0)
        while self.state != EngineState.STOPPED:
            queues = list(self._queues.values())
            await asyncio.gather(*(queue.join() for queue in queues))
            if len(queues) == len(self._queues):
                return

    async def stop(self) -> None:
        """Stop change handling and close the source"""
        if self.state == EngineState.STOPPED:
            return

        self.state = EngineState.STOPPED

        for task in self._workers.values():
            task.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)

        # Release join() waiters on changes that will never be applied
        for queue in self._queues.values():
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()
                self.notifications_dropped += 1

        self._workers.clear()
        self._queues.clear()

        await self.source.close()
        logger.info("Sync engine stopped")

    def status(self) -> dict[str, Any]:
        """Engine status for health reporting"""
        uptime = None
        if self._started_at:
            uptime = int((datetime.now(timezone.utc) - self._started_at).total_seconds())

        return {
            "state": self.state.value,
            "group": self.group,
            "document_count": len(self.store),
            "unsubscribed": sorted(self.unsubscribed),
            "notifications_applied": self.notifications_applied,
            "notifications_dropped": self.notifications_dropped,
            "pending": sum(queue.qsize() for queue in self._queues.values()),
            "uptime": uptime,
        }


async def init_from_file(path: str | Path) -> SyncEngine:
    """
    Load a bootstrap file, configure logging, and start an engine against Nacos.

    Raises:
        BootstrapParseError: malformed bootstrap file
        StartupError: discovery or initial fetch failed
    """
    config = load_bootstrap_config(path)
    configure_logging(config.nacos_client.log_level, config.nacos_client.log_dir)

    source = NacosHttpSource.from_config(config)
    return await SyncEngine.create(config, source)
