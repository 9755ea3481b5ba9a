"""
Tests for the Ledger.

Covers:
- Sequential per-year invoice numbering
- Idempotent creation
- Seller profile snapshots
- Status updates (permissive and strict)
- Write-through persistence and failure handling
- Reopening from a store
"""

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from billing_config.schema import LedgerConfig
from billing_kernel.db.store import InMemoryKeyValueStore
from billing_kernel.domain.invoice import InvoiceDraft, InvoiceStatus, InvoiceType, Product
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.serialization import invoice_to_dict
from billing_kernel.exceptions import (
    InvalidInputError,
    InvalidStatusTransitionError,
    InvoiceNotFoundError,
    LedgerClosedError,
    PersistenceFailureError,
)
from billing_kernel.services.ledger_service import (
    Ledger,
    format_invoice_number,
    parse_invoice_sequence,
)


class RecordingStore(InMemoryKeyValueStore):
    """In-memory store that counts writes and can be told to fail."""

    def __init__(self, initial=None):
        self.puts: list[str] = []
        self.fail_puts = False
        self.fail_gets = False
        super().__init__(initial)

    def get(self, key):
        if self.fail_gets:
            raise OSError("store unavailable")
        return super().get(key)

    def put(self, key, records):
        if self.fail_puts:
            raise OSError("disk full")
        self.puts.append(key)
        super().put(key, records)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def seller_ledger(store, ledger_config, clock, seller):
    ledger = Ledger.open(store, config=ledger_config, clock=clock)
    ledger.save_seller_profile(seller)
    yield ledger
    ledger.close()


class TestInvoiceNumberFormat:

    def test_format(self):
        assert format_invoice_number("INV", 2024, 1, 4) == "INV-2024-0001"

    def test_format_beyond_width(self):
        assert format_invoice_number("INV", 2024, 12345, 4) == "INV-2024-12345"

    def test_parse(self):
        assert parse_invoice_sequence("INV-2024-0012", "INV", 2024) == 12

    @pytest.mark.parametrize(
        "number",
        [None, "", "INV-2023-0012", "ACME-2024-0012", "INV-2024-12a", "INV-2024-\u00b2", "INV-2024-\u0663"],
    )
    def test_parse_foreign_numbers(self, number):
        assert parse_invoice_sequence(number, "INV", 2024) is None


class TestNumbering:

    def test_sequential_numbers(self, seller_ledger, calculated_invoice):
        numbers = [
            seller_ledger.create_invoice(calculated_invoice, f"key-{i}").invoice_number
            for i in range(3)
        ]
        assert numbers == ["INV-2024-0001", "INV-2024-0002", "INV-2024-0003"]

    def test_generate_does_not_consume(self, seller_ledger):
        assert seller_ledger.generate_invoice_number() == "INV-2024-0001"
        assert seller_ledger.generate_invoice_number() == "INV-2024-0001"

    def test_new_year_restarts_sequence(self, seller_ledger, calculated_invoice, clock):
        seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.create_invoice(calculated_invoice, "k2")
        clock.set_time(datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc))

        invoice = seller_ledger.create_invoice(calculated_invoice, "k3")
        assert invoice.invoice_number == "INV-2025-0001"

    def test_unparseable_stored_number_is_skipped(self, clock, seller, calculated_invoice):
        stored = replace(
            calculated_invoice,
            id="legacy-1",
            invoice_number="INV-2024-\u00b2",
            status=InvoiceStatus.PAID,
            idempotency_key="legacy",
            seller=seller,
        )
        store = InMemoryKeyValueStore({"invoices": [invoice_to_dict(stored)]})

        with Ledger.open(store, config=LedgerConfig(), clock=clock) as ledger:
            ledger.save_seller_profile(seller)
            assert ledger.generate_invoice_number() == "INV-2024-0001"
            assert ledger.create_invoice(calculated_invoice, "k1").invoice_number == "INV-2024-0001"

    def test_year_follows_clock_timezone(self, store, seller, calculated_invoice):
        """01:30 on 1 Jan in UTC+4 is still 31 Dec in UTC; the clock's own date wins."""
        dubai = timezone(timedelta(hours=4))
        clock = DeterministicClock(datetime(2025, 1, 1, 1, 30, tzinfo=dubai))

        with Ledger.open(store, config=LedgerConfig(), clock=clock) as ledger:
            ledger.save_seller_profile(seller)
            invoice = ledger.create_invoice(replace(calculated_invoice, issue_date=None), "k1")

        assert invoice.invoice_number == "INV-2025-0001"
        assert invoice.issue_date == date(2025, 1, 1)

    def test_configured_prefix_and_width(self, store, clock, seller, calculated_invoice):
        config = LedgerConfig(invoice_prefix="ACME", sequence_width=6)
        with Ledger.open(store, config=config, clock=clock) as ledger:
            ledger.save_seller_profile(seller)
            invoice = ledger.create_invoice(calculated_invoice, "k1")
        assert invoice.invoice_number == "ACME-2024-000001"


class TestCreateInvoice:

    def test_commit_fields(self, seller_ledger, calculated_invoice, seller):
        invoice = seller_ledger.create_invoice(calculated_invoice, "invoice-form:req-1")

        assert invoice.id is not None
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.seller == seller
        assert invoice.idempotency_key == "invoice-form:req-1"
        assert invoice.grand_total == calculated_invoice.grand_total
        assert invoice.line_items == calculated_invoice.line_items
        assert seller_ledger.invoices == (invoice,)

    def test_dates_default_to_today(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(
            replace(calculated_invoice, issue_date=None, due_date=None), "k1"
        )
        assert invoice.issue_date == date(2024, 3, 15)
        assert invoice.due_date == date(2024, 3, 15)

    def test_key_is_stripped(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "  k1 ")
        assert invoice.idempotency_key == "k1"

    @pytest.mark.parametrize("key", ["", "   ", None])
    def test_blank_key_rejected(self, seller_ledger, calculated_invoice, key):
        with pytest.raises(InvalidInputError) as exc_info:
            seller_ledger.create_invoice(calculated_invoice, key)
        assert exc_info.value.field == "idempotency_key"

    def test_uncalculated_draft_rejected(self, seller_ledger, buyer):
        with pytest.raises(InvalidInputError) as exc_info:
            seller_ledger.create_invoice(InvoiceDraft(currency="USD", buyer=buyer), "k1")
        assert exc_info.value.field == "grand_total"

    def test_buyer_required(self, seller_ledger, calculated_invoice):
        with pytest.raises(InvalidInputError) as exc_info:
            seller_ledger.create_invoice(replace(calculated_invoice, buyer=None), "k1")
        assert exc_info.value.field == "buyer"

    def test_full_invoice_requires_buyer_tax_id(self, seller_ledger, calculated_invoice, buyer):
        invoice = replace(calculated_invoice, type=InvoiceType.FULL, buyer=replace(buyer, tax_id=None))
        with pytest.raises(InvalidInputError) as exc_info:
            seller_ledger.create_invoice(invoice, "k1")
        assert exc_info.value.field == "buyer.tax_id"
        assert seller_ledger.invoices == ()

    def test_full_invoice_tax_id_check_can_be_disabled(self, store, clock, seller, calculated_invoice, buyer):
        config = LedgerConfig(require_buyer_tax_id_for_full=False)
        invoice = replace(calculated_invoice, type=InvoiceType.FULL, buyer=replace(buyer, tax_id=None))
        with Ledger.open(store, config=config, clock=clock) as ledger:
            ledger.save_seller_profile(seller)
            assert ledger.create_invoice(invoice, "k1").type == InvoiceType.FULL

    def test_seller_required(self, ledger, calculated_invoice):
        with pytest.raises(InvalidInputError) as exc_info:
            ledger.create_invoice(calculated_invoice, "k1")
        assert exc_info.value.field == "seller"

    def test_invoice_seller_used_without_profile(self, ledger, calculated_invoice, seller):
        invoice = ledger.create_invoice(replace(calculated_invoice, seller=seller), "k1")
        assert invoice.seller == seller

    def test_profile_wins_over_invoice_seller(self, seller_ledger, calculated_invoice, seller):
        other = replace(seller, name="Someone Else")
        invoice = seller_ledger.create_invoice(replace(calculated_invoice, seller=other), "k1")
        assert invoice.seller.name == "Acme Supplies"

    def test_logs_creation(self, seller_ledger, calculated_invoice, captured_logs):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")

        records = [r for r in captured_logs() if r["message"] == "invoice_created"]
        assert len(records) == 1
        assert records[0]["invoice_number"] == invoice.invoice_number
        assert records[0]["idempotency_key"] == "k1"
        assert records[0]["grand_total"] == {"amount": 205000, "currency": "USD"}


class TestIdempotency:

    def test_replay_returns_same_invoice(self, seller_ledger, calculated_invoice):
        first = seller_ledger.create_invoice(calculated_invoice, "k1")
        second = seller_ledger.create_invoice(calculated_invoice, "k1")

        assert second == first
        assert len(seller_ledger.invoices) == 1

    def test_replay_ignores_new_payload(self, seller_ledger, calculated_invoice):
        first = seller_ledger.create_invoice(calculated_invoice, "k1")
        changed = replace(calculated_invoice, notes="different")

        assert seller_ledger.create_invoice(changed, "k1").notes == first.notes

    def test_replay_does_not_write(self, seller_ledger, calculated_invoice, store):
        seller_ledger.create_invoice(calculated_invoice, "k1")
        writes = len(store.puts)
        seller_ledger.create_invoice(calculated_invoice, "k1")
        assert len(store.puts) == writes

    def test_distinct_keys_grow_ledger_by_one(self, seller_ledger, calculated_invoice):
        seller_ledger.create_invoice(calculated_invoice, "k1")
        before = len(seller_ledger.invoices)
        seller_ledger.create_invoice(calculated_invoice, "k2")
        assert len(seller_ledger.invoices) == before + 1

    def test_find_by_idempotency_key(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")

        assert seller_ledger.find_by_idempotency_key("k1") == invoice
        assert seller_ledger.find_by_idempotency_key("k2") is None

    def test_replay_logged(self, seller_ledger, calculated_invoice, captured_logs):
        seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.create_invoice(calculated_invoice, "k1")

        messages = [r["message"] for r in captured_logs()]
        assert messages.count("invoice_created") == 1
        assert messages.count("invoice_replayed") == 1


class TestSellerSnapshot:

    def test_profile_change_does_not_touch_issued_invoice(self, seller_ledger, calculated_invoice, seller, store):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.save_seller_profile(replace(seller, name="Acme Renamed", tax_id="TRN-999"))

        assert seller_ledger.get_invoice(invoice.id).seller.name == "Acme Supplies"
        assert seller_ledger.seller_profile.name == "Acme Renamed"

        reopened = Ledger.open(store, config=LedgerConfig())
        assert reopened.get_invoice(invoice.id).seller.tax_id == "TRN-100"
        assert reopened.seller_profile.tax_id == "TRN-999"

    def test_next_invoice_uses_new_profile(self, seller_ledger, calculated_invoice, seller):
        seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.save_seller_profile(replace(seller, name="Acme Renamed"))

        assert seller_ledger.create_invoice(calculated_invoice, "k2").seller.name == "Acme Renamed"


class TestStatusUpdates:

    def test_update(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        updated = seller_ledger.update_invoice_status(invoice.id, InvoiceStatus.PAID)

        assert updated.status == InvoiceStatus.PAID
        assert updated.invoice_number == invoice.invoice_number
        assert seller_ledger.get_invoice(invoice.id).status == InvoiceStatus.PAID
        assert seller_ledger.find_by_idempotency_key("k1").status == InvoiceStatus.PAID

    def test_status_by_value(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        assert seller_ledger.update_invoice_status(invoice.id, "Finalized").status == InvoiceStatus.FINALIZED

    def test_unknown_status(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        with pytest.raises(InvalidInputError) as exc_info:
            seller_ledger.update_invoice_status(invoice.id, "Archived")
        assert exc_info.value.field == "status"

    def test_unknown_invoice(self, seller_ledger):
        with pytest.raises(InvoiceNotFoundError) as exc_info:
            seller_ledger.update_invoice_status("missing", InvoiceStatus.PAID)
        assert exc_info.value.invoice_id == "missing"

    def test_permissive_by_default(self, seller_ledger, calculated_invoice):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.update_invoice_status(invoice.id, InvoiceStatus.VOID)

        assert seller_ledger.update_invoice_status(invoice.id, InvoiceStatus.DRAFT).status == InvoiceStatus.DRAFT

    def test_other_invoices_untouched(self, seller_ledger, calculated_invoice):
        first = seller_ledger.create_invoice(calculated_invoice, "k1")
        second = seller_ledger.create_invoice(calculated_invoice, "k2")
        seller_ledger.update_invoice_status(first.id, InvoiceStatus.PAID)

        assert seller_ledger.get_invoice(second.id) == second


class TestStrictStatusTransitions:

    @pytest.fixture
    def strict_ledger(self, store, clock, seller):
        ledger = Ledger.open(store, config=LedgerConfig(enforce_status_transitions=True), clock=clock)
        ledger.save_seller_profile(seller)
        yield ledger
        ledger.close()

    def test_lifecycle(self, strict_ledger, calculated_invoice):
        invoice = strict_ledger.create_invoice(calculated_invoice, "k1")
        strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.FINALIZED)
        assert strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.PAID).status == InvoiceStatus.PAID

    def test_skipping_finalize_rejected(self, strict_ledger, calculated_invoice):
        invoice = strict_ledger.create_invoice(calculated_invoice, "k1")

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.PAID)
        assert exc_info.value.from_status == "Draft"
        assert exc_info.value.to_status == "Paid"
        assert strict_ledger.get_invoice(invoice.id).status == InvoiceStatus.DRAFT

    def test_void_is_terminal(self, strict_ledger, calculated_invoice):
        invoice = strict_ledger.create_invoice(calculated_invoice, "k1")
        strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.VOID)

        with pytest.raises(InvalidStatusTransitionError):
            strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.DRAFT)

    def test_same_status_accepted(self, strict_ledger, calculated_invoice):
        invoice = strict_ledger.create_invoice(calculated_invoice, "k1")
        assert strict_ledger.update_invoice_status(invoice.id, InvoiceStatus.DRAFT).status == InvoiceStatus.DRAFT


class TestPersistence:

    def test_every_mutation_written(self, seller_ledger, calculated_invoice, buyer, store):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.update_invoice_status(invoice.id, InvoiceStatus.PAID)
        seller_ledger.add_product(Product(name="Hosting", code="HST", default_price=2500))
        seller_ledger.add_customer(buyer)

        assert store.puts == ["seller_profile", "invoices", "invoices", "products", "customers"]

    def test_reopen_restores_everything(self, seller_ledger, calculated_invoice, buyer, store, clock):
        first = seller_ledger.create_invoice(calculated_invoice, "k1")
        seller_ledger.create_invoice(calculated_invoice, "k2")
        product = Product(name="Hosting", code="HST", default_price=2500)
        seller_ledger.add_product(product)
        seller_ledger.add_customer(buyer)
        seller_ledger.close()

        with Ledger.open(store, config=LedgerConfig(), clock=clock) as reopened:
            assert reopened.get_invoice(first.id) == first
            assert reopened.products == (product,)
            assert reopened.customers == (buyer,)
            assert reopened.create_invoice(calculated_invoice, "k1") == first
            assert reopened.create_invoice(calculated_invoice, "k3").invoice_number == "INV-2024-0003"

    def test_failed_create_consumes_no_number(self, seller_ledger, calculated_invoice, store):
        store.fail_puts = True
        with pytest.raises(PersistenceFailureError) as exc_info:
            seller_ledger.create_invoice(calculated_invoice, "k1")
        assert exc_info.value.collection == "invoices"
        assert seller_ledger.invoices == ()
        assert seller_ledger.find_by_idempotency_key("k1") is None

        store.fail_puts = False
        assert seller_ledger.create_invoice(calculated_invoice, "k1").invoice_number == "INV-2024-0001"

    def test_failed_status_update_leaves_memory(self, seller_ledger, calculated_invoice, store):
        invoice = seller_ledger.create_invoice(calculated_invoice, "k1")
        store.fail_puts = True

        with pytest.raises(PersistenceFailureError):
            seller_ledger.update_invoice_status(invoice.id, InvoiceStatus.PAID)
        assert seller_ledger.get_invoice(invoice.id).status == InvoiceStatus.DRAFT

    def test_failed_profile_save_keeps_old_profile(self, seller_ledger, seller, store):
        store.fail_puts = True
        with pytest.raises(PersistenceFailureError):
            seller_ledger.save_seller_profile(replace(seller, name="New"))
        assert seller_ledger.seller_profile == seller

    def test_persist_failure_logged(self, seller_ledger, calculated_invoice, store, captured_logs):
        store.fail_puts = True
        with pytest.raises(PersistenceFailureError):
            seller_ledger.create_invoice(calculated_invoice, "k1")

        records = [r for r in captured_logs() if r["message"] == "ledger_persist_failed"]
        assert records[0]["collection"] == "invoices"
        assert records[0]["error"]["type"] == "OSError"

    def test_open_failure(self, store):
        store.fail_gets = True
        with pytest.raises(PersistenceFailureError):
            Ledger.open(store, config=LedgerConfig())

    def test_corrupt_record_fails_open(self):
        store = InMemoryKeyValueStore({"invoices": [{"invoiceNumber": "INV-2024-0001"}]})
        with pytest.raises(PersistenceFailureError) as exc_info:
            Ledger.open(store, config=LedgerConfig())
        assert exc_info.value.collection == "invoices"


class TestLifecycle:

    def test_open_with_active_config(self, store, monkeypatch):
        monkeypatch.delenv("BILLING_CONFIG", raising=False)
        with Ledger.open(store) as ledger:
            assert ledger.config == LedgerConfig()

    def test_closed_ledger_rejects_calls(self, seller_ledger, calculated_invoice):
        seller_ledger.close()

        with pytest.raises(LedgerClosedError):
            seller_ledger.create_invoice(calculated_invoice, "k1")
        with pytest.raises(LedgerClosedError):
            seller_ledger.invoices

    def test_close_is_idempotent(self, seller_ledger):
        seller_ledger.close()
        seller_ledger.close()

    def test_catalogue(self, ledger, buyer):
        product = Product(name="Hosting", code="HST", default_price=2500)
        ledger.add_product(product)
        ledger.add_customer(buyer)

        assert ledger.products == (product,)
        assert ledger.customers == (buyer,)
