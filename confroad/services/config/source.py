"""
Remote Config Source

Adapter contract for the remote configuration service, plus an HTTP
implementation against the Nacos v1 open API.

The engine only depends on RemoteSource:
- fetch(id, group) -> content
- search(group, pattern, page_size, page_no) -> SearchPage (1-indexed pages)
- subscribe(id, group, on_change) -> at-least-once async change delivery
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable
from urllib.parse import unquote

import httpx

from confroad.common.config import BootstrapConfig, SearchPattern
from confroad.common.exceptions import (
    DocumentNotFoundError,
    RemoteUnavailableError,
    RoadError,
    SubscriptionFailedError,
)
from confroad.common.logging_setup import get_service_logger

logger = get_service_logger("config.source")

# on_change(document_id, content)
ChangeCallback = Callable[[str, str], None]

CONFIGS_PATH = "/nacos/v1/cs/configs"
LISTENER_PATH = "/nacos/v1/cs/configs/listener"
# Listening-Configs field separators
WORD_SEPARATOR = "\x02"
LINE_SEPARATOR = "\x01"
LONG_POLL_TIMEOUT_MS = 30000
LISTENER_RETRY_SECONDS = 2.0


@dataclass(frozen=True)
class SearchItem:
    """One search hit"""
    document_id: str
    group: str = ""


@dataclass
class SearchPage:
    """One page of search results"""
    items: list[SearchItem] = field(default_factory=list)
    total_count: int = 0


class RemoteSource(ABC):
    """Capability to read and watch documents on the remote service"""

    @abstractmethod
    async def fetch(self, document_id: str, group: str) -> str:
        """
        Fetch current content.

        Raises:
            RemoteUnavailableError: network or service failure
            DocumentNotFoundError: unknown document
        """

    @abstractmethod
    async def search(
        self,
        group: str,
        pattern: SearchPattern,
        page_size: int,
        page_no: int,
        data_id: str = "",
    ) -> SearchPage:
        """
        Search documents in a group, one page at a time.

        Raises:
            RemoteUnavailableError: network or service failure
        """

    @abstractmethod
    async def subscribe(self, document_id: str, group: str, on_change: ChangeCallback) -> None:
        """
        Register the change callback for a document.

        Raises:
            SubscriptionFailedError: registration rejected
        """

    async def close(self) -> None:
        """Release resources"""


def content_md5(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def parse_changed_keys(body: str) -> list[tuple[str, str]]:
    """
    Parse a listener response into (document_id, group) pairs.

    The body is URL-encoded lines of dataId^2group[^2tenant]^1.
    """
    keys = []
    for line in unquote(body.strip()).split(LINE_SEPARATOR):
        if not line:
            continue
        parts = line.split(WORD_SEPARATOR)
        if len(parts) >= 2:
            keys.append((parts[0], parts[1]))
    return keys


class NacosHttpSource(RemoteSource):
    """
    Nacos open API adapter.

    Subscriptions share one long-polling listener task. Each poll posts the
    MD5 of every watched document; the server answers with the keys whose
    content changed, which are then re-fetched and handed to their callback.

    Successful fetches are mirrored to a snapshot directory. With
    use_snapshot enabled, an unreachable server falls back to that snapshot.
    """

    def __init__(
        self,
        base_url: str,
        namespace_id: str = "",
        timeout_ms: int = 5000,
        snapshot_dir: str | Path | None = None,
        use_snapshot: bool = True,
        long_poll_timeout_ms: int = LONG_POLL_TIMEOUT_MS,
        retry_seconds: float = LISTENER_RETRY_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.namespace_id = namespace_id
        self.timeout_s = timeout_ms / 1000
        self.snapshot_dir = Path(snapshot_dir) if snapshot_dir else None
        self.use_snapshot = use_snapshot
        self.long_poll_timeout_ms = long_poll_timeout_ms
        self.retry_seconds = retry_seconds
        self._transport = transport

        self._client: httpx.AsyncClient | None = None
        self._listeners: dict[tuple[str, str], ChangeCallback] = {}
        self._md5: dict[tuple[str, str], str] = {}
        self._listen_task: asyncio.Task | None = None
        self._closed = False

    @classmethod
    def from_config(cls, config: BootstrapConfig, **kwargs) -> "NacosHttpSource":
        """Build from bootstrap server and client settings"""
        client = config.nacos_client
        return cls(
            base_url=config.nacos_server.base_url,
            namespace_id=client.namespace_id,
            timeout_ms=client.timeout_ms,
            snapshot_dir=Path(client.cache_dir) / "snapshot",
            use_snapshot=not client.not_load_cache_at_start,
            **kwargs,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create reusable HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Stop the listener and close the HTTP client"""
        self._closed = True

        if self._listen_task:
            self._listen_task.cancel()
            try:
                await self._listen_task
            except asyncio.CancelledError:
                pass
            self._listen_task = None

        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _params(self, **params) -> dict:
        if self.namespace_id:
            params["tenant"] = self.namespace_id
        return params

    # ============================================
    # FETCH
    # ============================================

    async def fetch(self, document_id: str, group: str) -> str:
        try:
            content = await self._get_config(document_id, group)
        except RemoteUnavailableError:
            if self.use_snapshot:
                snapshot = self._read_snapshot(document_id, group)
                if snapshot is not None:
                    logger.warning(
                        f"Server unavailable, serving snapshot for {document_id}",
                        extra={"document_id": document_id, "group": group},
                    )
                    return snapshot
            raise

        self._remember(document_id, group, content)
        return content

    async def _get_config(self, document_id: str, group: str) -> str:
        client = await self._get_client()
        try:
            response = await client.get(
                CONFIGS_PATH,
                params=self._params(dataId=document_id, group=group),
            )
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"fetch {document_id}: {e}", "fetch") from e

        if response.status_code == 404:
            raise DocumentNotFoundError(document_id, group)
        if response.is_error:
            raise RemoteUnavailableError(
                f"fetch {document_id}: HTTP {response.status_code}", "fetch"
            )
        return response.text

    def _remember(self, document_id: str, group: str, content: str) -> None:
        self._md5[(document_id, group)] = content_md5(content)
        self._write_snapshot(document_id, group, content)

    def _snapshot_path(self, document_id: str, group: str) -> Path | None:
        if self.snapshot_dir is None:
            return None
        return self.snapshot_dir / (self.namespace_id or "public") / group / document_id

    def _write_snapshot(self, document_id: str, group: str, content: str) -> None:
        path = self._snapshot_path(document_id, group)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.debug(f"Snapshot write failed for {document_id}: {e}")

    def _read_snapshot(self, document_id: str, group: str) -> str | None:
        path = self._snapshot_path(document_id, group)
        if path is None or not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.debug(f"Snapshot read failed for {document_id}: {e}")
            return None

    # ============================================
    # SEARCH
    # ============================================

    async def search(
        self,
        group: str,
        pattern: SearchPattern,
        page_size: int,
        page_no: int,
        data_id: str = "",
    ) -> SearchPage:
        client = await self._get_client()
        params = self._params(
            dataId=data_id,
            group=group,
            search=SearchPattern(pattern).value,
            pageNo=page_no,
            pageSize=page_size,
        )
        try:
            response = await client.get(CONFIGS_PATH, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"search page {page_no}: {e}", "search") from e
        except ValueError as e:
            raise RemoteUnavailableError(
                f"search page {page_no}: invalid response body", "search"
            ) from e

        items = [
            SearchItem(document_id=item["dataId"], group=item.get("group") or group)
            for item in data.get("pageItems") or []
            if item.get("dataId")
        ]
        return SearchPage(items=items, total_count=int(data.get("totalCount") or 0))

    # ============================================
    # SUBSCRIBE
    # ============================================

    async def subscribe(self, document_id: str, group: str, on_change: ChangeCallback) -> None:
        if self._closed:
            raise SubscriptionFailedError("source is closed", document_id)

        key = (document_id, group)
        if key in self._listeners:
            raise SubscriptionFailedError("already subscribed", document_id)

        self._listeners[key] = on_change
        if self._listen_task is None or self._listen_task.done():
            self._listen_task = asyncio.create_task(self._listen_loop())

        logger.debug(
            f"Subscribed to {document_id}",
            extra={"document_id": document_id, "group": group},
        )

    async def _listen_loop(self) -> None:
        """Long-poll for changes until closed"""
        while not self._closed and self._listeners:
            try:
                changed = await self._poll_changes()
                for document_id, group in changed:
                    await self._deliver(document_id, group)
            except RemoteUnavailableError as e:
                logger.warning(f"Listener poll failed: {e}")
                await asyncio.sleep(self.retry_seconds)
            except Exception as e:
                logger.error(f"Listener loop error: {e}", exc_info=True)
                await asyncio.sleep(self.retry_seconds)

    async def _poll_changes(self) -> list[tuple[str, str]]:
        lines = []
        for document_id, group in list(self._listeners):
            parts = [document_id, group, self._md5.get((document_id, group), "")]
            if self.namespace_id:
                parts.append(self.namespace_id)
            lines.append(WORD_SEPARATOR.join(parts) + LINE_SEPARATOR)

        client = await self._get_client()
        try:
            response = await client.post(
                LISTENER_PATH,
                data={"Listening-Configs": "".join(lines)},
                headers={"Long-Pulling-Timeout": str(self.long_poll_timeout_ms)},
                timeout=self.timeout_s + self.long_poll_timeout_ms / 1000,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteUnavailableError(f"listen: {e}", "listen") from e

        return parse_changed_keys(response.text)

    async def _deliver(self, document_id: str, group: str) -> None:
        callback = self._listeners.get((document_id, group))
        if callback is None:
            return

        try:
            content = await self._get_config(document_id, group)
        except RoadError as e:
            logger.warning(f"Refetch after change failed for {document_id}: {e}")
            return

        self._remember(document_id, group, content)
        try:
            callback(document_id, content)
        except Exception as e:
            logger.error(f"Change callback failed for {document_id}: {e}", exc_info=True)
