"""
Key-value stores -- durable home of the Ledger's record sets.

Responsibility:
    Stores one JSON document per named collection ("invoices", "products",
    "customers", "seller_profile"). Every ``put`` rewrites the whole
    collection; there is no partial or incremental format.

Architecture position:
    Kernel > DB.  The Ledger depends only on the KeyValueStore protocol;
    InMemoryKeyValueStore serves tests and embedded use, SqlKeyValueStore
    any SQLAlchemy database.

Failure modes:
    - Store implementations let their own errors propagate (json, SQLAlchemy
      or I/O errors). The Ledger is responsible for surfacing them as
      PersistenceFailureError.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from billing_kernel.db.base import Base
from billing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("db.store")


@runtime_checkable
class KeyValueStore(Protocol):
    """A store of whole JSON-compatible documents addressed by key."""

    def get(self, key: str) -> Any | None:
        """Return the document stored under ``key``, or None if absent."""
        ...

    def put(self, key: str, records: Any) -> None:
        """Replace the document stored under ``key``."""
        ...

    def close(self) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Dict-backed store.

    Documents are kept as JSON text so a caller can never alias stored
    state with live objects, and so anything that would not survive a real
    store fails here too.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()
        for key, records in (initial or {}).items():
            self.put(key, records)

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, records: Any) -> None:
        payload = json.dumps(records)
        with self._lock:
            self._data[key] = payload

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)

    def close(self) -> None:
        pass


class KeyValueRecord(Base):
    """
    One stored collection.

    ``key`` names the collection; ``payload`` is its whole JSON document.
    """

    __tablename__ = "kv_records"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    payload: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)


class SqlKeyValueStore:
    """
    Key-value store backed by the ``kv_records`` table.

    Usage:
        init_engine_from_url("sqlite:///billing.db")
        create_tables()
        store = SqlKeyValueStore()
        ledger = Ledger.open(store)
    """

    def __init__(self, session_factory: sessionmaker[Session] | None = None):
        self._session_factory = session_factory or get_session_factory()

    def get(self, key: str) -> Any | None:
        with session_scope(self._session_factory) as session:
            payload = session.execute(
                select(KeyValueRecord.payload).where(KeyValueRecord.key == key)
            ).scalar_one_or_none()
        return json.loads(payload) if payload is not None else None

    def put(self, key: str, records: Any) -> None:
        payload = json.dumps(records)
        now = datetime.now(timezone.utc)
        with session_scope(self._session_factory) as session:
            row = session.get(KeyValueRecord, key)
            if row is None:
                session.add(KeyValueRecord(key=key, payload=payload, updated_at=now))
            else:
                row.payload = payload
                row.updated_at = now
        logger.debug("kv_record_written", extra={"key": key, "bytes": len(payload)})

    def close(self) -> None:
        # Sessions are per call; the engine belongs to billing_kernel.db.engine.
        pass


def open_store(database_url: str | None = None) -> KeyValueStore:
    """
    Open the store named by ``database_url``.

    None gives a fresh InMemoryKeyValueStore. Any other value initializes the
    SQLAlchemy engine, creates missing tables and returns a SqlKeyValueStore.
    """
    if database_url is None:
        return InMemoryKeyValueStore()
    engine = init_engine_from_url(database_url)
    create_tables(engine)
    return SqlKeyValueStore()
