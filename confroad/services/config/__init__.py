"""
Config Service - Configuration Synchronization

Responsibilities:
- Discover documents in a group on the remote config source
- Fetch and mirror each document to the local cache
- Keep the in-memory config store current from change notifications
"""

from .cache import ConfigCache
from .discovery import discover_ids
from .engine import EngineState, SyncEngine, init_from_file
from .service import ConfigService
from .source import NacosHttpSource, RemoteSource, SearchItem, SearchPage

__all__ = [
    "ConfigCache",
    "ConfigService",
    "EngineState",
    "NacosHttpSource",
    "RemoteSource",
    "SearchItem",
    "SearchPage",
    "SyncEngine",
    "discover_ids",
    "init_from_file",
]
