"""Tests for confroad.services.config.source module.

Exercises NacosHttpSource against httpx.MockTransport: fetch, search,
snapshot fallback and the long-polling listener.
"""

import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from confroad.common.config import SearchPattern, bootstrap_from_dict
from confroad.common.exceptions import (
    DocumentNotFoundError,
    RemoteUnavailableError,
    SubscriptionFailedError,
)
from confroad.services.config.source import (
    CONFIGS_PATH,
    LISTENER_PATH,
    NacosHttpSource,
    content_md5,
    parse_changed_keys,
)


def make_source(handler, **kwargs):
    kwargs.setdefault("use_snapshot", False)
    return NacosHttpSource(
        "http://nacos.test:8848",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestFetch:
    """Test single-document fetch."""

    @pytest.mark.asyncio
    async def test_fetch_ok(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="key: value\n")

        source = make_source(handler, namespace_id="dev")
        assert await source.fetch("app.yaml", "app") == "key: value\n"
        await source.close()

        params = seen[0].url.params
        assert seen[0].url.path == CONFIGS_PATH
        assert params["dataId"] == "app.yaml"
        assert params["group"] == "app"
        assert params["tenant"] == "dev"

    @pytest.mark.asyncio
    async def test_no_tenant_without_namespace(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="x")

        source = make_source(handler)
        await source.fetch("a", "app")
        await source.close()
        assert "tenant" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_not_found(self):
        source = make_source(lambda request: httpx.Response(404, text="config data not exist"))
        with pytest.raises(DocumentNotFoundError) as exc:
            await source.fetch("missing", "app")
        assert exc.value.document_id == "missing"
        await source.close()

    @pytest.mark.asyncio
    async def test_server_error(self):
        source = make_source(lambda request: httpx.Response(500))
        with pytest.raises(RemoteUnavailableError):
            await source.fetch("a", "app")
        await source.close()

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        source = make_source(handler)
        with pytest.raises(RemoteUnavailableError):
            await source.fetch("a", "app")
        await source.close()


class TestSnapshot:
    """Test failover to the client snapshot."""

    @pytest.mark.asyncio
    async def test_fallback_to_snapshot(self, tmp_path):
        responses = [httpx.Response(200, text="cached: true\n")]

        def handler(request):
            if responses:
                return responses.pop(0)
            raise httpx.ConnectError("down", request=request)

        source = make_source(handler, snapshot_dir=tmp_path, use_snapshot=True)
        assert await source.fetch("a", "app") == "cached: true\n"
        assert (tmp_path / "public" / "app" / "a").read_text() == "cached: true\n"

        assert await source.fetch("a", "app") == "cached: true\n"
        await source.close()

    @pytest.mark.asyncio
    async def test_no_fallback_when_disabled(self, tmp_path):
        snapshot = tmp_path / "public" / "app" / "a"
        snapshot.parent.mkdir(parents=True)
        snapshot.write_text("stale")

        source = make_source(lambda request: httpx.Response(503), snapshot_dir=tmp_path)
        with pytest.raises(RemoteUnavailableError):
            await source.fetch("a", "app")
        await source.close()

    @pytest.mark.asyncio
    async def test_no_snapshot_propagates(self, tmp_path):
        source = make_source(
            lambda request: httpx.Response(503),
            snapshot_dir=tmp_path,
            use_snapshot=True,
        )
        with pytest.raises(RemoteUnavailableError):
            await source.fetch("a", "app")
        await source.close()

    @pytest.mark.asyncio
    async def test_not_found_never_uses_snapshot(self, tmp_path):
        snapshot = tmp_path / "public" / "app" / "a"
        snapshot.parent.mkdir(parents=True)
        snapshot.write_text("stale")

        source = make_source(
            lambda request: httpx.Response(404),
            snapshot_dir=tmp_path,
            use_snapshot=True,
        )
        with pytest.raises(DocumentNotFoundError):
            await source.fetch("a", "app")
        await source.close()

    def test_from_config(self, tmp_path):
        config = bootstrap_from_dict({
            "nacos_server": {"ip_addr": "10.1.1.1", "port": 8848},
            "nacos_client": {
                "namespace_id": "prod",
                "timeout_ms": 2000,
                "cache_dir": str(tmp_path),
                "not_load_cache_at_start": True,
            },
        })
        source = NacosHttpSource.from_config(config)
        assert source.base_url == "http://10.1.1.1:8848"
        assert source.namespace_id == "prod"
        assert source.timeout_s == 2.0
        assert source.snapshot_dir == tmp_path / "snapshot"
        assert source.use_snapshot is False


class TestSearch:
    """Test paginated search."""

    @pytest.mark.asyncio
    async def test_search_page(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "totalCount": 3,
                "pageNumber": 1,
                "pagesAvailable": 2,
                "pageItems": [
                    {"dataId": "a", "group": "app", "content": "..."},
                    {"dataId": "b", "group": "app", "content": "..."},
                ],
            })

        source = make_source(handler)
        page = await source.search("app", SearchPattern.BLUR, 2, 1, data_id="*")
        await source.close()

        assert [item.document_id for item in page.items] == ["a", "b"]
        assert page.total_count == 3

        params = seen[0].url.params
        assert params["search"] == "blur"
        assert params["pageNo"] == "1"
        assert params["pageSize"] == "2"
        assert params["dataId"] == "*"

    @pytest.mark.asyncio
    async def test_search_empty(self):
        source = make_source(
            lambda request: httpx.Response(200, json={"totalCount": 0, "pageItems": []})
        )
        page = await source.search("app", SearchPattern.ACCURATE, 10, 1)
        await source.close()
        assert page.items == []
        assert page.total_count == 0

    @pytest.mark.asyncio
    async def test_search_error(self):
        source = make_source(lambda request: httpx.Response(502))
        with pytest.raises(RemoteUnavailableError):
            await source.search("app", SearchPattern.ACCURATE, 10, 1)
        await source.close()

    @pytest.mark.asyncio
    async def test_search_invalid_body(self):
        source = make_source(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RemoteUnavailableError):
            await source.search("app", SearchPattern.ACCURATE, 10, 1)
        await source.close()


class TestListener:
    """Test subscriptions served by long polling."""

    def test_parse_changed_keys(self):
        body = "a%02app%02dev%01b%02app%01\n"
        assert parse_changed_keys(body) == [("a", "app"), ("b", "app")]
        assert parse_changed_keys("") == []

    @pytest.mark.asyncio
    async def test_change_delivered(self):
        contents = {"a": "v1"}
        listen_bodies = []
        polls = 0

        async def handler(request):
            nonlocal polls
            if request.url.path == LISTENER_PATH:
                polls += 1
                listen_bodies.append(parse_qs(request.content.decode())["Listening-Configs"][0])
                if polls == 1:
                    contents["a"] = "v2"
                    return httpx.Response(200, text="a%02app%01")
                await asyncio.sleep(0.01)
                return httpx.Response(200, text="")
            return httpx.Response(200, text=contents[request.url.params["dataId"]])

        source = make_source(handler)
        delivered = asyncio.Event()
        received = []

        def on_change(document_id, content):
            received.append((document_id, content))
            delivered.set()

        assert await source.fetch("a", "app") == "v1"
        await source.subscribe("a", "app", on_change)
        await asyncio.wait_for(delivered.wait(), timeout=2)
        await source.close()

        assert received == [("a", "v2")]
        assert listen_bodies[0] == f"a\x02app\x02{content_md5('v1')}\x01"

    @pytest.mark.asyncio
    async def test_listener_survives_errors(self):
        polls = 0

        async def handler(request):
            nonlocal polls
            if request.url.path == LISTENER_PATH:
                polls += 1
                if polls == 1:
                    return httpx.Response(500)
                if polls == 2:
                    return httpx.Response(200, text="a%02app%01")
                await asyncio.sleep(0.01)
                return httpx.Response(200, text="")
            return httpx.Response(200, text="fresh")

        source = make_source(handler, retry_seconds=0.01)
        delivered = asyncio.Event()
        await source.subscribe("a", "app", lambda document_id, content: delivered.set())
        await asyncio.wait_for(delivered.wait(), timeout=2)
        await source.close()
        assert polls >= 2

    @pytest.mark.asyncio
    async def test_listener_survives_unexpected_errors(self):
        polls = 0

        async def handler(request):
            nonlocal polls
            if request.url.path == LISTENER_PATH:
                polls += 1
                if polls == 1:
                    raise RuntimeError("transport bug")
                if polls == 2:
                    return httpx.Response(200, text="a%02app%01")
                await asyncio.sleep(0.01)
                return httpx.Response(200, text="")
            return httpx.Response(200, text="fresh")

        source = make_source(handler, retry_seconds=0.01)
        received = []
        delivered = asyncio.Event()

        def on_change(document_id, content):
            received.append((document_id, content))
            delivered.set()

        await source.subscribe("a", "app", on_change)
        await asyncio.wait_for(delivered.wait(), timeout=2)
        await source.close()
        assert received == [("a", "fresh")]

    @pytest.mark.asyncio
    async def test_duplicate_subscription_rejected(self):
        async def handler(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, text="")

        source = make_source(handler)
        await source.subscribe("a", "app", lambda d, c: None)
        with pytest.raises(SubscriptionFailedError):
            await source.subscribe("a", "app", lambda d, c: None)
        await source.close()

    @pytest.mark.asyncio
    async def test_subscribe_after_close_rejected(self):
        source = make_source(lambda request: httpx.Response(200, text=""))
        await source.close()
        with pytest.raises(SubscriptionFailedError):
            await source.subscribe("a", "app", lambda d, c: None)
