"""String-keyed blob persistence (JSON files + fcntl.flock + atomic write)."""

import fcntl
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

from nihonwa.errors import PersistenceError

logger = structlog.get_logger()

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class BlobStore(Protocol):
    """Durable get/set/remove of whole string values by key."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class JsonFileBlobStore:
    """Stores each key as ``<key>.json`` under a directory.

    Writes go through a temp file and ``os.replace`` so a crash never leaves
    a half-written blob; an exclusive lock file serializes writers.

    Args:
        directory: Directory holding the blobs, created if missing.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise PersistenceError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = f.read()
                fcntl.flock(f, fcntl.LOCK_UN)
        except OSError as e:
            logger.error("blob_read_failed", key=key, error=str(e))
            raise PersistenceError(f"Failed to read {key!r}: {e}") from e
        return data

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        lock_path = self.directory / f"{key}.lock"
        tmp_path = None
        try:
            with open(lock_path, "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                with tempfile.NamedTemporaryFile(
                    "w", dir=self.directory, delete=False, suffix=".json", encoding="utf-8"
                ) as tmp:
                    tmp_path = Path(tmp.name)
                    tmp.write(value)
                os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            logger.error("blob_write_failed", key=key, error=str(e))
            raise PersistenceError(f"Failed to write {key!r}: {e}") from e

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to remove {key!r}: {e}") from e


class InMemoryBlobStore:
    """Process-local blob store, used for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
