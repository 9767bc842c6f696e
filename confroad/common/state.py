"""
Config Store

In-memory mapping of document id to latest content, shared between the
sync engine (writer) and the hosting application (readers).

A single lock guards every mutation, so writers on any thread are safe and
readers never observe a half-applied update. Readers pull; there is no push.
"""

import json
import threading
import tomllib
from typing import Any

import yaml

from .config import ConfigType
from .exceptions import ContentParseError

_MISSING = object()


def _parse_content(content: str, config_type: ConfigType) -> Any:
    if config_type == ConfigType.JSON:
        return json.loads(content)
    if config_type == ConfigType.TOML:
        return tomllib.loads(content)
    return yaml.safe_load(content)


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into a copy of base, recursing into nested mappings"""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve(data: Any, key: str) -> Any:
    node = data
    for part in key.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


class ConfigStore:
    """
    Thread-safe document store.

    Each entry carries a version counter bumped on every set, used to
    memoize parsed content for dotted-key lookups.
    """

    def __init__(self, config_type: ConfigType = ConfigType.YAML):
        self.config_type = config_type
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[str, int]] = {}
        # document_id -> (version, parsed)
        self._parsed: dict[str, tuple[int, Any]] = {}

    def set(self, document_id: str, content: str) -> int:
        """
        Create or overwrite a document.

        Returns:
            The new version number for the document
        """
        with self._lock:
            _, version = self._entries.get(document_id, (None, 0))
            version += 1
            self._entries[document_id] = (content, version)
            return version

    def get(self, document_id: str) -> str | None:
        """Get latest content, or None if the document is unknown"""
        with self._lock:
            entry = self._entries.get(document_id)
        return entry[0] if entry else None

    def version(self, document_id: str) -> int:
        """Number of sets applied to a document (0 if unknown)"""
        with self._lock:
            entry = self._entries.get(document_id)
        return entry[1] if entry else 0

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def snapshot(self) -> dict[str, str]:
        """Point-in-time copy of all documents"""
        with self._lock:
            return {doc_id: content for doc_id, (content, _) in self._entries.items()}

    def __contains__(self, document_id: object) -> bool:
        with self._lock:
            return document_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def parsed(self, document_id: str) -> Any:
        """
        Parse a document with the store's config type.

        Raises:
            KeyError: unknown document
            ContentParseError: content is not valid for the config type
        """
        with self._lock:
            entry = self._entries.get(document_id)
            if entry is None:
                raise KeyError(document_id)
            content, version = entry
            cached = self._parsed.get(document_id)
            if cached and cached[0] == version:
                return cached[1]

        try:
            data = _parse_content(content, self.config_type)
        except (ValueError, yaml.YAMLError) as e:
            raise ContentParseError(str(e), document_id) from e

        with self._lock:
            current = self._entries.get(document_id)
            if current and current[1] == version:
                self._parsed[document_id] = (version, data)
        return data

    def merged(self) -> dict[str, Any]:
        """Deep merge of all mapping documents in sorted id order"""
        merged: dict[str, Any] = {}
        for document_id in self.keys():
            try:
                data = self.parsed(document_id)
            except (KeyError, ContentParseError):
                continue
            if isinstance(data, dict):
                merged = _deep_merge(merged, data)
        return merged

    def get_value(
        self,
        key: str,
        default: Any = None,
        document_id: str | None = None,
    ) -> Any:
        """
        Resolve a dotted key, e.g. "database.host".

        Args:
            key: Dotted path into the parsed content
            default: Returned when the key is absent
            document_id: Look only in this document; None uses the merged view
        """
        if document_id is not None:
            try:
                data = self.parsed(document_id)
            except KeyError:
                return default
        else:
            data = self.merged()

        value = _resolve(data, key)
        return default if value is _MISSING else value
