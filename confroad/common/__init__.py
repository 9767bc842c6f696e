"""
Common Utilities

Shared modules used across the engine and service:
- state.py - In-memory config store
- config.py - Bootstrap configuration dataclasses
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .state import ConfigStore
from .config import (
    BootstrapConfig,
    BaseConfig,
    NacosServer,
    NacosClient,
    HealthServer,
    SearchPattern,
    ConfigType,
    bootstrap_from_dict,
    load_bootstrap_config,
)
from .exceptions import (
    RoadError,
    RemoteUnavailableError,
    DocumentNotFoundError,
    SubscriptionFailedError,
    CacheWriteError,
    BootstrapParseError,
    ContentParseError,
    StartupError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    configure_logging,
    log_document_applied,
)

__all__ = [
    # State
    "ConfigStore",
    # Config
    "BootstrapConfig",
    "BaseConfig",
    "NacosServer",
    "NacosClient",
    "HealthServer",
    "SearchPattern",
    "ConfigType",
    "bootstrap_from_dict",
    "load_bootstrap_config",
    # Exceptions
    "RoadError",
    "RemoteUnavailableError",
    "DocumentNotFoundError",
    "SubscriptionFailedError",
    "CacheWriteError",
    "BootstrapParseError",
    "ContentParseError",
    "StartupError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "configure_logging",
    "log_document_applied",
]
