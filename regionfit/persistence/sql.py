"""
SQLAlchemy-backed key-value storage.

One table holds every namespace; the (namespace, key) pair is the primary key
and values are stored in a JSON column.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

import sqlalchemy as sa
from loguru import logger
from sqlalchemy import JSON, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from regionfit.errors import StorageError
from regionfit.persistence.backends import KeyValueBackend, _check_namespace


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """A single stored value."""

    __tablename__ = "kv_entries"

    namespace: Mapped[str] = mapped_column(sa.String(32), primary_key=True)
    key: Mapped[str] = mapped_column(sa.String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    # Preserves insertion order for keys()
    seq: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<KeyValueEntry({self.namespace}/{self.key})>"


class SQLAlchemyBackend(KeyValueBackend):
    """
    Relational key-value storage.

    Example:
        >>> backend = SQLAlchemyBackend("sqlite:///regionfit.db")
        >>> backend.set("rules", "gdpr-compliance-check", {...})
    """

    def __init__(
        self,
        database_url: str = "sqlite:///regionfit.db",
        timeout_seconds: float = 5.0,
        echo: bool = False,
    ):
        """
        Initialize database connection.

        Args:
            database_url: SQLAlchemy database URL
            timeout_seconds: Bound on connection acquisition / lock waits
            echo: Whether to echo SQL statements (for debugging)
        """
        self.database_url = database_url
        engine_kwargs: dict = {"echo": echo}
        if database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {
                "timeout": timeout_seconds,
                "check_same_thread": False,
            }
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_timeout"] = timeout_seconds
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine)

        Base.metadata.create_all(self.engine)
        logger.info(f"Initialized SQLAlchemyBackend: {database_url}")

    def get(self, namespace: str, key: str) -> Optional[Any]:
        _check_namespace(namespace)
        try:
            with self.SessionLocal() as session:
                entry = session.get(KeyValueEntry, (namespace, key))
                return entry.value if entry else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read {namespace}/{key}: {e}") from e

    def set(self, namespace: str, key: str, value: Any) -> None:
        _check_namespace(namespace)
        try:
            with self.SessionLocal() as session:
                entry = session.get(KeyValueEntry, (namespace, key))
                if entry is None:
                    next_seq = session.query(sa.func.coalesce(sa.func.max(KeyValueEntry.seq), 0)).scalar()
                    session.add(
                        KeyValueEntry(namespace=namespace, key=key, value=value, seq=next_seq + 1)
                    )
                else:
                    entry.value = value
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write {namespace}/{key}: {e}") from e

    def delete(self, namespace: str, key: str) -> bool:
        _check_namespace(namespace)
        try:
            with self.SessionLocal() as session:
                entry = session.get(KeyValueEntry, (namespace, key))
                if entry is None:
                    return False
                session.delete(entry)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete {namespace}/{key}: {e}") from e

    def keys(self, namespace: str) -> List[str]:
        _check_namespace(namespace)
        try:
            with self.SessionLocal() as session:
                rows = (
                    session.query(KeyValueEntry.key)
                    .filter(KeyValueEntry.namespace == namespace)
                    .order_by(KeyValueEntry.seq)
                    .all()
                )
                return [row[0] for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list {namespace}: {e}") from e

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()
