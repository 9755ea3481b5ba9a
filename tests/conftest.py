"""
Pytest fixtures for the billing kernel test suite.

Provides:
- Structured logging configuration and log capture
- Deterministic clock
- In-memory and SQLite-backed key-value stores
- Ledger instances and common invoice builders
"""

import json
import logging
from datetime import date, datetime, timezone
from io import StringIO

import pytest

from billing_config.schema import LedgerConfig
from billing_engines.invoice_calculator import calculate_invoice
from billing_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from billing_kernel.db.store import InMemoryKeyValueStore, SqlKeyValueStore
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.invoice import Account, InvoiceDraft, InvoiceType
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.services.ledger_service import Ledger
from tests.helpers import make_address, make_line


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.create_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock, config and stores
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """SqlKeyValueStore over a throwaway SQLite file."""
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'billing.db'}")
    create_tables(engine)
    yield SqlKeyValueStore()
    reset_engine()


@pytest.fixture
def ledger(memory_store, ledger_config, clock):
    ledger = Ledger.open(memory_store, config=ledger_config, clock=clock)
    yield ledger
    ledger.close()


# =============================================================================
# Domain builders
# =============================================================================


@pytest.fixture
def seller() -> Account:
    return Account(
        name="Acme Supplies",
        email="billing@acme.test",
        address=make_address(),
        currency="USD",
        tax_id="TRN-100",
    )


@pytest.fixture
def buyer() -> Account:
    return Account(
        name="Globex Corp",
        email="ap@globex.test",
        address=make_address(),
        currency="USD",
        tax_id="TRN-200",
    )


@pytest.fixture
def calculated_invoice(buyer):
    """A costed two-line invoice ready to commit."""
    draft = InvoiceDraft(
        currency="USD",
        type=InvoiceType.SIMPLIFIED,
        issue_date=date(2024, 3, 15),
        due_date=date(2024, 4, 14),
        buyer=buyer,
        line_items=(
            make_line(150000),
            make_line(50000, rate="10"),
        ),
    )
    return calculate_invoice(draft)
