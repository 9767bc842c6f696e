"""
confroad - client-side configuration sync

Discovers the documents of a group on a remote config service, mirrors each
to a local cache, and keeps an in-memory ConfigStore current from change
notifications.

Usage:
    from confroad import init_from_file

    engine = await init_from_file("config.yaml")
    engine.get("app.yaml")
    engine.store.get_value("database.host")
"""

__version__ = "0.1.0"

from confroad.common import (
    BootstrapConfig,
    ConfigStore,
    RoadError,
    StartupError,
    load_bootstrap_config,
)
from confroad.services.config import (
    ConfigCache,
    ConfigService,
    EngineState,
    NacosHttpSource,
    RemoteSource,
    SyncEngine,
    init_from_file,
)

__all__ = [
    "__version__",
    "BootstrapConfig",
    "ConfigCache",
    "ConfigService",
    "ConfigStore",
    "EngineState",
    "NacosHttpSource",
    "RemoteSource",
    "RoadError",
    "StartupError",
    "SyncEngine",
    "init_from_file",
    "load_bootstrap_config",
]
