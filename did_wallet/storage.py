"""
Key/Value Storage for the DID Wallet
====================================

The engine only needs three operations from its persistence backend:

- save(key, value): store a JSON-serializable value, overwriting any previous one
- load(key): return the decoded value, NotFoundError if absent
- list_keys(prefix): all keys sharing a prefix (empty prefix matches all)

Keys are plain strings. The store is prefix-agnostic; the engine imposes the
`did:`, `vc:`, `vp:`, `privatekey:` and `status:` conventions.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class Store(ABC):
    """Storage contract required by the engine"""

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def load(self, key: str) -> Any:
        ...

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        ...

    def exists(self, key: str) -> bool:
        try:
            self.load(key)
        except NotFoundError:
            return False
        return True


def _encode(key: str, value: Any) -> str:
    if not key:
        raise StorageError("Key cannot be empty", operation="save")
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value is not JSON serializable: {e}", operation="save", entity_id=key) from e


class MemoryStore(Store):
    """
    In-process store

    Values are kept serialized so readers never share mutable state with
    writers, and a load always sees a complete value.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._data: Dict[str, str] = {}

    def save(self, key: str, value: Any) -> None:
        encoded = _encode(key, value)
        with self._lock:
            self._data[key] = encoded
        logger.debug("Saved %s", key)

    def load(self, key: str) -> Any:
        with self._lock:
            encoded = self._data.get(key)
        if encoded is None:
            raise NotFoundError("Key not found", operation="load", entity_id=key)
        return json.loads(encoded)

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def __repr__(self) -> str:
        return "MemoryStore()"


class FileStore(MemoryStore):
    """
    JSON-lines file store

    One `{"key": ..., "value": ...}` record per line. The whole file is
    rewritten on every save through a temporary file and an atomic rename.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        self._read()

    def _read(self):
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    self._data[record["key"]] = json.dumps(record["value"], ensure_ascii=False)
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("Skipping corrupt record at %s:%d: %s", self.path, line_no, e)

    def _persist(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".store-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for key in sorted(self._data):
                    value = json.loads(self._data[key])
                    f.write(json.dumps({"key": key, "value": value}, ensure_ascii=False) + "\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"Failed to write store file {self.path}: {e}", operation="save") from e

    def save(self, key: str, value: Any) -> None:
        encoded = _encode(key, value)
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = encoded
            try:
                self._persist()
            except StorageError:
                if previous is None:
                    del self._data[key]
                else:
                    self._data[key] = previous
                raise
        logger.debug("Saved %s to %s", key, self.path)

    def __repr__(self) -> str:
        return f"FileStore({str(self.path)!r})"


# ==================== FACTORY ====================

BACKEND_MEMORY = "memory"
BACKEND_FILE = "file"
DEFAULT_STORE_PATH = "./data/wallet_store.jsonl"


def create_store(backend: str = BACKEND_MEMORY, path: Optional[Union[str, Path]] = None) -> Store:
    """Create a storage backend by name"""
    backend = (backend or BACKEND_MEMORY).lower()

    if backend == BACKEND_MEMORY:
        return MemoryStore()
    if backend == BACKEND_FILE:
        return FileStore(path or DEFAULT_STORE_PATH)

    raise StorageError(f"Unknown storage backend: {backend}", operation="create_store")
