"""
Bootstrap Configuration

Type-safe startup parameters for the sync engine.
Loaded once from a YAML bootstrap file, immutable afterward.
"""

from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import BootstrapParseError


class SearchPattern(str, Enum):
    """Remote search modes"""
    ACCURATE = "accurate"
    BLUR = "blur"


class ConfigType(str, Enum):
    """Document content formats understood by key lookups"""
    YAML = "yaml"
    JSON = "json"
    TOML = "toml"


@dataclass(frozen=True)
class BaseConfig:
    """Engine settings: cache location and what to discover"""
    cache_dir: str = "tmp/nacos/config"
    data_id: str = ""  # discovery filter; with accurate search selects one document
    group: str = "DEFAULT_GROUP"
    search_pattern: SearchPattern = SearchPattern.ACCURATE
    page_size: int = 10
    config_type: ConfigType = ConfigType.YAML


@dataclass(frozen=True)
class NacosServer:
    """Remote server endpoint"""
    ip_addr: str = "127.0.0.1"
    port: int = 8848
    scheme: str = "http"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.ip_addr}:{self.port}"


@dataclass(frozen=True)
class NacosClient:
    """Remote client settings"""
    namespace_id: str = ""
    timeout_ms: int = 5000
    not_load_cache_at_start: bool = False
    log_dir: str = "tmp/nacos/log"
    cache_dir: str = "tmp/nacos/cache"
    log_level: str = "debug"


@dataclass(frozen=True)
class HealthServer:
    """Local HTTP read/health endpoints (port 0 = disabled)"""
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(frozen=True)
class BootstrapConfig:
    """Complete bootstrap configuration"""
    base_config: BaseConfig = field(default_factory=BaseConfig)
    nacos_server: NacosServer = field(default_factory=NacosServer)
    nacos_client: NacosClient = field(default_factory=NacosClient)
    health_server: HealthServer = field(default_factory=HealthServer)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict with enums flattened to their values"""
        data = asdict(self)
        data["base_config"]["search_pattern"] = self.base_config.search_pattern.value
        data["base_config"]["config_type"] = self.base_config.config_type.value
        return data


def _build_section(cls: type, data: Any, section: str) -> Any:
    """Build one frozen section, ignoring unknown keys"""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise BootstrapParseError(f"Section '{section}' must be a mapping")

    known = {f.name: f for f in fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known or value is None:
            continue
        default = known[key].default
        try:
            if isinstance(default, Enum):
                value = type(default)(str(value).lower())
            elif isinstance(default, bool):
                if not isinstance(value, bool):
                    raise TypeError(f"expected bool, got {value!r}")
            elif isinstance(default, int):
                if isinstance(value, bool):
                    raise TypeError(f"expected int, got {value!r}")
                value = int(value)
            elif isinstance(default, str):
                value = str(value)
        except (TypeError, ValueError) as e:
            raise BootstrapParseError(f"Invalid value for {section}.{key}: {e}") from e
        kwargs[key] = value

    return cls(**kwargs)


def bootstrap_from_dict(data: dict | None) -> BootstrapConfig:
    """Load BootstrapConfig from dictionary (e.g., from a parsed YAML file)"""
    data = data or {}
    if not isinstance(data, dict):
        raise BootstrapParseError("Bootstrap document must be a mapping")

    config = BootstrapConfig(
        base_config=_build_section(BaseConfig, data.get("base_config"), "base_config"),
        nacos_server=_build_section(NacosServer, data.get("nacos_server"), "nacos_server"),
        nacos_client=_build_section(NacosClient, data.get("nacos_client"), "nacos_client"),
        health_server=_build_section(HealthServer, data.get("health_server"), "health_server"),
    )

    if config.base_config.page_size < 1:
        raise BootstrapParseError(
            f"base_config.page_size must be >= 1, got {config.base_config.page_size}"
        )
    if config.nacos_client.timeout_ms < 1:
        raise BootstrapParseError(
            f"nacos_client.timeout_ms must be >= 1, got {config.nacos_client.timeout_ms}"
        )

    return config


def load_bootstrap_config(path: str | Path) -> BootstrapConfig:
    """
    Load bootstrap configuration from a YAML file.

    Missing fields fall back to defaults; unknown fields are ignored.

    Raises:
        BootstrapParseError: file missing, unreadable, or malformed
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise BootstrapParseError(f"Bootstrap file not found: {path}", str(path)) from e
    except OSError as e:
        raise BootstrapParseError(f"Cannot read {path}: {e}", str(path)) from e
    except yaml.YAMLError as e:
        raise BootstrapParseError(f"Error parsing {path}: {e}", str(path)) from e

    try:
        return bootstrap_from_dict(data)
    except BootstrapParseError as e:
        e.path = str(path)
        raise
