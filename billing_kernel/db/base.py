"""
Module: billing_kernel.db.base
Responsibility: Declarative base class for the SQLAlchemy ORM models of the
    billing kernel, with a type annotation map for consistent column types.
Architecture position: Kernel > DB.  Lowest-level import target within the
    persistence layer; MUST NOT import from services/ or domain/.

Invariants enforced:
    - datetime maps to DateTime(timezone=True) -- always timezone-aware.
    - str maps to Text -- stored record sets are whole JSON documents of
      unbounded size.
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all billing kernel models."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        str: Text,
    }
