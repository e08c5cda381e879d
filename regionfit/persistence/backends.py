"""
Key-value persistence backends.

The stores only need per-key get/set/delete over three namespaces; anything
that can provide per-key atomicity can sit behind this interface.
"""

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from loguru import logger

from regionfit.errors import StorageError

RULES_NAMESPACE = "rules"
VERSIONS_NAMESPACE = "versions"
EXPERIMENTS_NAMESPACE = "experiments"
NAMESPACES = (RULES_NAMESPACE, VERSIONS_NAMESPACE, EXPERIMENTS_NAMESPACE)


def _check_namespace(namespace: str) -> None:
    if namespace not in NAMESPACES:
        raise StorageError(f"Unknown namespace: {namespace}")


class KeyValueBackend(ABC):
    """Abstract key-value storage over the rules/versions/experiments namespaces."""

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[Any]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, namespace: str, key: str, value: Any) -> None:
        """Store a JSON-compatible value under a key."""

    @abstractmethod
    def delete(self, namespace: str, key: str) -> bool:
        """Remove a key. Returns True if it existed."""

    @abstractmethod
    def keys(self, namespace: str) -> List[str]:
        """List keys in insertion order where the backend can preserve it."""

    def values(self, namespace: str) -> List[Any]:
        """Load every value in a namespace."""
        result = []
        for key in self.keys(namespace):
            value = self.get(namespace, key)
            if value is not None:
                result.append(value)
        return result

    def close(self) -> None:
        """Release backend resources."""


class InMemoryBackend(KeyValueBackend):
    """Dictionary-backed storage. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {ns: {} for ns in NAMESPACES}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> Optional[Any]:
        _check_namespace(namespace)
        with self._lock:
            value = self._data[namespace].get(key)
            return copy.deepcopy(value)

    def set(self, namespace: str, key: str, value: Any) -> None:
        _check_namespace(namespace)
        with self._lock:
            self._data[namespace][key] = copy.deepcopy(value)

    def delete(self, namespace: str, key: str) -> bool:
        _check_namespace(namespace)
        with self._lock:
            return self._data[namespace].pop(key, None) is not None

    def keys(self, namespace: str) -> List[str]:
        _check_namespace(namespace)
        with self._lock:
            return list(self._data[namespace].keys())


class JsonFileBackend(KeyValueBackend):
    """
    File-based storage.

    Stores each key as a JSON file in a directory structure:
    - <base_dir>/
      - rules/
        - {percent-encoded key}.json
      - versions/
        - {percent-encoded key}.json
      - experiments/
        - {percent-encoded key}.json
      - index.json  (insertion order per namespace)
    """

    def __init__(self, base_dir: Path = Path("rule_data")):
        """
        Initialize storage.

        Args:
            base_dir: Base directory for stored data
        """
        self.base_dir = Path(base_dir)
        self.index_file = self.base_dir / "index.json"
        self._lock = threading.Lock()

        for namespace in NAMESPACES:
            (self.base_dir / namespace).mkdir(parents=True, exist_ok=True)

        self._index: Dict[str, List[str]] = self._load_index()
        logger.debug(f"Initialized JsonFileBackend at {self.base_dir}")

    def _load_index(self) -> Dict[str, List[str]]:
        if self.index_file.exists():
            with open(self.index_file, "r", encoding="utf-8") as f:
                index = json.load(f)
        else:
            index = {}
        for namespace in NAMESPACES:
            index.setdefault(namespace, [])
        return index

    def _path(self, namespace: str, key: str) -> Path:
        # Percent-encoded, one file per distinct key
        safe = quote(key, safe="")
        return self.base_dir / namespace / f"{safe}.json"

    def _write_atomic(self, path: Path, payload: Any) -> None:
        fd, tmp = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"Failed to write {path}: {e}") from e

    def get(self, namespace: str, key: str) -> Optional[Any]:
        _check_namespace(namespace)
        path = self._path(namespace, key)
        with self._lock:
            if not path.exists():
                return None
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)

    def set(self, namespace: str, key: str, value: Any) -> None:
        _check_namespace(namespace)
        with self._lock:
            self._write_atomic(self._path(namespace, key), value)
            if key not in self._index[namespace]:
                self._index[namespace].append(key)
                self._write_atomic(self.index_file, self._index)

    def delete(self, namespace: str, key: str) -> bool:
        _check_namespace(namespace)
        path = self._path(namespace, key)
        with self._lock:
            existed = path.exists()
            if existed:
                path.unlink()
            if key in self._index[namespace]:
                self._index[namespace].remove(key)
                self._write_atomic(self.index_file, self._index)
            return existed

    def keys(self, namespace: str) -> List[str]:
        _check_namespace(namespace)
        with self._lock:
            return list(self._index[namespace])
