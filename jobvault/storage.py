"""
Key-value store backends.

The backup service only needs ``get / set / remove / list_keys`` over byte
values. ``MemoryStore`` is used in tests and embedding, ``JsonFileStore``
keeps everything in one human-readable file, and ``SQLiteStore`` (in
``database.py``) is the default on-disk backend.
"""

import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .errors import StoreIOError
from .logger import get_logger
from .retry import RetryError, exponential_backoff

logger = get_logger()


class KeyValueStore(ABC):
    """Abstract persistence substrate: what was set is gettable until removed."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``. Removing an absent key is a no-op."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        """Return all keys starting with ``prefix``, sorted."""


class MemoryStore(KeyValueStore):
    """Dictionary-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


_io_retry = exponential_backoff(max_retries=3, base_delay=0.05, exceptions=(OSError,))


@_io_retry
def _read_file(path: Path) -> str:
    with path.open("r", encoding="utf-8") as f:
        return f.read()


@_io_retry
def _write_file_atomic(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(content)
    os.replace(tmp_path, path)


class JsonFileStore(KeyValueStore):
    """
    Single JSON file holding ``{"entries": {key: text}}``.

    Values must be UTF-8; every payload jobvault writes is JSON text.
    Writes go to a temp file first and replace the original atomically.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            content = _read_file(self.path).strip()
        except RetryError as e:
            raise StoreIOError(f"Failed to read store {self.path}: {e}") from e
        if not content:
            return {}
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error("Store file is not valid JSON", path=str(self.path), error=str(e))
            raise StoreIOError(f"Store file {self.path} is not valid JSON") from e
        return data.get("entries", {})

    def _save(self, entries: Dict[str, str]) -> None:
        content = json.dumps({"entries": entries}, indent=2, ensure_ascii=False)
        try:
            _write_file_atomic(self.path, content)
        except RetryError as e:
            raise StoreIOError(f"Failed to write store {self.path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            value = self._load().get(key)
        return value.encode("utf-8") if value is not None else None

    def set(self, key: str, value: bytes) -> None:
        try:
            text = value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreIOError(f"JsonFileStore only holds UTF-8 values (key {key})") from e
        with self._lock:
            entries = self._load()
            entries[key] = text
            self._save(entries)

    def remove(self, key: str) -> None:
        with self._lock:
            entries = self._load()
            if key in entries:
                del entries[key]
                self._save(entries)

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._load() if k.startswith(prefix))
