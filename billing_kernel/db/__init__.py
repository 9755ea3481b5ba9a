"""Persistence layer: SQLAlchemy engine setup and the key-value stores."""

from billing_kernel.db.store import (
    InMemoryKeyValueStore,
    KeyValueRecord,
    KeyValueStore,
    SqlKeyValueStore,
    open_store,
)

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueRecord",
    "KeyValueStore",
    "SqlKeyValueStore",
    "open_store",
]
