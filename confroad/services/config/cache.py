"""
Configuration Cache

Durable mirror of each document's latest content.
One file per document id under the cache root, no extension, no metadata.
"""

from pathlib import Path

from confroad.common.exceptions import CacheWriteError
from confroad.common.logging_setup import get_service_logger

logger = get_service_logger("config.cache")


class ConfigCache:
    """
    Local configuration cache.

    The directory is created lazily on first write. Writes overwrite in
    place (no temp-then-rename), so a crash mid-write can leave a truncated
    file until the next update.
    """

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, document_id: str) -> Path:
        return self.cache_dir / document_id

    def write(self, document_id: str, content: str) -> Path:
        """
        Write content for a document, overwriting any prior content.

        Raises:
            CacheWriteError: the file could not be written
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Failure surfaces through the file write below
            logger.debug(f"Cache directory not created: {e}")

        path = self.path_for(document_id)
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise CacheWriteError(str(e), document_id, str(path)) from e

        logger.debug(
            f"Cached {document_id}",
            extra={"document_id": document_id, "path": str(path), "size": len(content)},
        )
        return path

    def read(self, document_id: str) -> str | None:
        """Read cached content, or None if absent or unreadable"""
        path = self.path_for(document_id)
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading cache for {document_id}: {e}")
            return None

    def list_ids(self) -> list[str]:
        """Document ids currently present in the cache"""
        if not self.cache_dir.is_dir():
            return []
        return sorted(p.name for p in self.cache_dir.iterdir() if p.is_file())
