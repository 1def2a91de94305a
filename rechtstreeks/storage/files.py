"""Binary file storage keyed by opaque storage keys."""

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class FileStorage(Protocol):
    """Protocol for file storage backends."""

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under ``key`` and return the key."""
        ...

    def get(self, key: str) -> bytes:
        """Read bytes stored under ``key``.

        Raises:
            FileNotFoundError: If nothing is stored under the key
        """
        ...


class LocalFileStorage:
    """File storage on the local filesystem under a root directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under ``key``."""
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info(
            f"Stored {key}",
            extra={"structured": {"key": key, "content_type": content_type, "size": len(data)}},
        )
        return key

    def get(self, key: str) -> bytes:
        """Read bytes stored under ``key``."""
        return self._path(key).read_bytes()

    def check_writable(self) -> None:
        """Create and remove a marker file under the root.

        Raises:
            OSError: If the root cannot be created or written
        """
        self.root.mkdir(parents=True, exist_ok=True)
        marker = self.root / ".write-check"
        marker.write_bytes(b"")
        marker.unlink()
