"""
Key-Value Storage Backends

The patient store only needs ``get``/``put`` on string keys holding JSON
text, so the backend is injected:

- InMemoryStorage: process-local dict, used in tests
- DiskCacheStorage: persistent diskcache directory
"""
from __future__ import annotations

from typing import Dict, Optional, Protocol, runtime_checkable

from diskcache import Cache

from caresight.utils import get_logger

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStorage(Protocol):
    """Minimal key-value contract."""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class InMemoryStorage:
    """Dict-backed storage; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def close(self) -> None:
        pass


class DiskCacheStorage:
    """Persistent storage in a diskcache directory (no expiry)."""

    def __init__(self, directory: str):
        self.directory = directory
        self._cache = Cache(directory)
        logger.info(f"Patient storage opened at {directory}")

    def get(self, key: str) -> Optional[str]:
        return self._cache.get(key)

    def put(self, key: str, value: str) -> None:
        self._cache.set(key, value)

    def close(self) -> None:
        self._cache.close()
