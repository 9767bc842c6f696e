"""Shared pytest fixtures for confroad tests.

Provides bootstrap configs pointed at temp directories and an in-memory
RemoteSource that records calls and lets tests push change notifications.
"""

import fnmatch

import pytest

from confroad.common.config import SearchPattern, bootstrap_from_dict
from confroad.common.exceptions import (
    DocumentNotFoundError,
    RemoteUnavailableError,
    SubscriptionFailedError,
)
from confroad.services.config.source import RemoteSource, SearchItem, SearchPage


class FakeSource(RemoteSource):
    """In-memory remote source with failure injection."""

    def __init__(self, documents=None):
        self.documents = dict(documents or {})
        self.search_calls = []
        self.fetch_calls = []
        self.subscriptions = {}
        self.fail_search_pages = set()
        self.fail_fetch = {}
        self.fail_subscribe = set()
        # page_no -> reported totalCount, to simulate a mutating dataset
        self.total_count_by_page = {}
        self.closed = False

    def _matching_ids(self, pattern, data_id):
        ids = sorted(self.documents)
        if not data_id:
            return ids
        if SearchPattern(pattern) == SearchPattern.ACCURATE:
            return [i for i in ids if i == data_id]
        return [i for i in ids if fnmatch.fnmatch(i, data_id)]

    async def search(self, group, pattern, page_size, page_no, data_id=""):
        self.search_calls.append(page_no)
        if page_no in self.fail_search_pages:
            raise RemoteUnavailableError("search failed", "search")

        ids = self._matching_ids(pattern, data_id)
        start = (page_no - 1) * page_size
        items = [SearchItem(document_id=i, group=group) for i in ids[start:start + page_size]]
        total = self.total_count_by_page.get(page_no, len(ids))
        return SearchPage(items=items, total_count=total)

    async def fetch(self, document_id, group):
        self.fetch_calls.append(document_id)
        if document_id in self.fail_fetch:
            raise self.fail_fetch[document_id]
        if document_id not in self.documents:
            raise DocumentNotFoundError(document_id, group)
        return self.documents[document_id]

    async def subscribe(self, document_id, group, on_change):
        if document_id in self.fail_subscribe:
            raise SubscriptionFailedError("rejected", document_id)
        self.subscriptions[document_id] = on_change

    def push(self, document_id, content):
        """Simulate the remote delivering a change."""
        self.documents[document_id] = content
        self.subscriptions[document_id](document_id, content)

    async def close(self):
        self.closed = True


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "cache"


@pytest.fixture
def bootstrap(cache_dir):
    """BootstrapConfig for group 'app', page size 2, cache in tmp."""
    return bootstrap_from_dict({
        "base_config": {
            "cache_dir": str(cache_dir),
            "group": "app",
            "search_pattern": "accurate",
            "page_size": 2,
        },
    })


@pytest.fixture
def documents():
    return {
        "a": "name: alpha\ndatabase:\n  host: db-a\n",
        "b": "name: beta\nport: 8080\n",
        "c": "database:\n  port: 5432\n",
    }


@pytest.fixture
def fake_source(documents):
    return FakeSource(documents)
