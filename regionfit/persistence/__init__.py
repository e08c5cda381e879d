"""
Persistence backends for rules, version history and experiments.
"""

from pathlib import Path

from regionfit.config import StorageConfig
from regionfit.persistence.backends import (
    EXPERIMENTS_NAMESPACE,
    NAMESPACES,
    RULES_NAMESPACE,
    VERSIONS_NAMESPACE,
    InMemoryBackend,
    JsonFileBackend,
    KeyValueBackend,
)
from regionfit.persistence.sql import SQLAlchemyBackend


def create_backend(storage: StorageConfig) -> KeyValueBackend:
    """Build the backend selected by the storage configuration."""
    if storage.backend == "file":
        return JsonFileBackend(Path(storage.data_dir))
    if storage.backend == "sql":
        return SQLAlchemyBackend(storage.database_url, timeout_seconds=storage.timeout_seconds)
    return InMemoryBackend()


__all__ = [
    "KeyValueBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    "SQLAlchemyBackend",
    "create_backend",
    "NAMESPACES",
    "RULES_NAMESPACE",
    "VERSIONS_NAMESPACE",
    "EXPERIMENTS_NAMESPACE",
]
