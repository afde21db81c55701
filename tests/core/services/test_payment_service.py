"""Tests for PaymentService."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import psycopg2.errors
import pytest

from core.audit import AuditAction
from core.models import (
    Currency,
    ErrorKind,
    InvoiceStatus,
    PaymentCreate,
    PaymentFilters,
    PaymentMethod,
    PaymentUpdate,
    ServiceResult,
)
from core.services.invoice_service import InvoiceService
from core.services.payment_service import PaymentService
from utils.timezone import today_utc


@pytest.fixture
def invoice_service():
    return Mock(spec=InvoiceService)


@pytest.fixture
def service(db, audit, invoice_service, config):
    return PaymentService(db, audit, invoice_service, config)


def _returning_payment(query, params):
    """execute_returning side effect echoing a payment INSERT back as a row."""
    (payment_id, invoice_id, amount, currency, payment_date, method,
     transaction_id, notes, recorded_by, created_at, updated_at) = params
    return [{
        "id": payment_id, "invoice_id": invoice_id, "amount": amount, "currency": currency,
        "payment_date": payment_date, "payment_method": method,
        "transaction_id": transaction_id, "notes": notes, "recorded_by": recorded_by,
        "created_at": created_at, "updated_at": updated_at,
    }]


def _details(make_invoice_row, **overrides):
    """Minimal InvoiceDetails-like object for a mocked InvoiceService.get_by_id."""
    from core.models import InvoiceDetails

    row = make_invoice_row()
    values = {**row, "total_paid": Decimal("0"), "balance_due": row["total_amount"]}
    values.update(overrides)
    return InvoiceDetails.model_validate(values)


class TestCreate:
    """Recording payments."""

    def _data(self, invoice_id, amount="13125.00"):
        return PaymentCreate(
            invoice_id=invoice_id,
            amount=Decimal(amount),
            currency=Currency.AED,
            payment_date=today_utc(),
            payment_method=PaymentMethod.BANK_TRANSFER,
            transaction_id="TT-88812",
        )

    def test_inserts_then_recomputes(self, service, db, audit, invoice_service, test_user_id):
        invoice_id = uuid4()
        db.execute_returning.side_effect = _returning_payment
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()

        result = service.create(self._data(invoice_id), recorded_by=test_user_id)

        assert result.success
        assert result.data.amount == Decimal("13125.00")
        assert result.data.recorded_by == test_user_id
        invoice_service.update_status_from_payments.assert_called_once_with(invoice_id, test_user_id)
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.CREATE

    def test_recompute_failure_does_not_fail_payment(self, service, db, invoice_service):
        db.execute_returning.side_effect = _returning_payment
        invoice_service.update_status_from_payments.return_value = ServiceResult.fail("timeout")

        assert service.create(self._data(uuid4())).success

    def test_unknown_invoice(self, service, db, invoice_service):
        invoice_id = uuid4()
        db.execute_returning.side_effect = psycopg2.errors.ForeignKeyViolation("payments_invoice_id_fkey")

        result = service.create(self._data(invoice_id))

        assert result.kind == ErrorKind.NOT_FOUND
        assert "not found" in result.error
        invoice_service.update_status_from_payments.assert_not_called()


class TestUpdateDelete:
    """Payment mutations trigger a recompute of the payment's invoice."""

    def test_update_recomputes(self, service, db, audit, invoice_service, make_payment_row):
        current = make_payment_row(amount=Decimal("500.00"))
        db.execute_single.return_value = current
        db.execute_returning.return_value = [{**current, "amount": Decimal("750.00")}]
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()

        result = service.update(current["id"], PaymentUpdate(amount=Decimal("750.00")))

        assert result.data.amount == Decimal("750.00")
        invoice_service.update_status_from_payments.assert_called_once_with(current["invoice_id"], None)
        assert audit.log_change.call_args.kwargs["changes"]["amount"] == {"old": "500.00", "new": "750.00"}

    def test_update_rejects_zero(self, service, db, make_payment_row):
        db.execute_single.return_value = make_payment_row()

        result = service.update(uuid4(), PaymentUpdate(amount=Decimal("0")))

        assert result.kind == ErrorKind.VALIDATION
        db.execute_returning.assert_not_called()

    def test_update_not_found(self, service, db):
        db.execute_single.return_value = None

        assert service.update(uuid4(), PaymentUpdate(notes="x")).error == "Payment not found"

    def test_delete_recomputes_after_delete(self, service, db, audit, invoice_service, make_payment_row):
        current = make_payment_row()
        db.execute_single.return_value = current
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()

        result = service.delete(current["id"])

        assert result.success
        assert db.execute.call_args.args == ("DELETE FROM payments WHERE id = %s", (current["id"],))
        invoice_service.update_status_from_payments.assert_called_once_with(current["invoice_id"], None)
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.DELETE

    def test_delete_not_found(self, service, db, invoice_service):
        db.execute_single.return_value = None

        assert service.delete(uuid4()).kind == ErrorKind.NOT_FOUND
        invoice_service.update_status_from_payments.assert_not_called()


class TestQueries:
    """Lookups and listings."""

    def test_get_by_id_joins_invoice(self, service, db, make_payment_row):
        db.execute_single.return_value = make_payment_row(invoice_number="INV-2026-0001", customer_name="Ahmed")

        payment = service.get_by_id(uuid4()).data

        assert payment.invoice_number == "INV-2026-0001"
        assert payment.customer_name == "Ahmed"

    def test_get_by_id_not_found(self, service, db):
        db.execute_single.return_value = None

        assert service.get_by_id(uuid4()).error == "Payment not found"

    def test_list_filters_and_orders(self, service, db, make_payment_row):
        db.execute_scalar.return_value = 1
        db.execute.return_value = [make_payment_row()]

        result = service.list(
            PaymentFilters(search="TT-", payment_method=PaymentMethod.CASH, amount_from=Decimal("0")),
            page=1,
            limit=10,
        )

        assert len(result.data) == 1
        assert result.pagination.pages == 1
        query, params = db.execute.call_args.args
        assert "p.transaction_id ILIKE %s OR p.notes ILIKE %s" in query
        assert "p.amount >= %s" in query
        assert "ORDER BY p.payment_date DESC" in query
        assert params == ("%TT-%", "%TT-%", "cash", Decimal("0"), 10, 0)

    def test_list_for_invoice(self, service, db, make_payment_row):
        invoice_id = uuid4()
        db.execute.return_value = [make_payment_row(invoice_id=invoice_id)]

        result = service.list_for_invoice(invoice_id)

        assert result.data[0].invoice_id == invoice_id
        assert db.execute.call_args.args[1] == (invoice_id,)

    def test_recent_payments_last_thirty_days(self, service, db):
        db.execute.return_value = []

        service.get_recent_payments()

        query, params = db.execute.call_args.args
        assert "customer_name" in query
        assert params == (today_utc() - timedelta(days=30), 10)

    def test_trends_per_currency_with_total(self, service, db):
        day = today_utc()
        db.execute.return_value = [
            {"payment_date": day, "amount": Decimal("13125.00"), "currency": "AED"},
            {"payment_date": day, "amount": Decimal("2000.00"), "currency": "USD"},
            {"payment_date": day, "amount": Decimal("-500.00"), "currency": "AED"},
        ]

        trends = service.get_payment_trends().data

        assert trends == {
            day.isoformat(): {
                "AED": Decimal("12625.00"),
                "USD": Decimal("2000.00"),
                "total": Decimal("14625.00"),
            }
        }


class TestStatistics:
    """Payment aggregates."""

    def test_buckets_by_currency_and_method(self, service, db):
        db.execute.return_value = [
            {"amount": Decimal("13125.00"), "currency": "AED", "payment_method": "bank_transfer"},
            {"amount": Decimal("13125.00"), "currency": "AED", "payment_method": "cash"},
            {"amount": Decimal("-500.00"), "currency": "AED", "payment_method": "cash"},
            {"amount": Decimal("4000.00"), "currency": "CAD", "payment_method": "check"},
        ]

        stats = service.get_statistics().data

        assert stats.total == 4
        assert stats.total_value == {"AED": Decimal("25750.00"), "CAD": Decimal("4000.00")}
        assert stats.by_method["counts"] == {"bank_transfer": 1, "cash": 2, "check": 1}
        assert stats.by_method["totals"]["cash"] == Decimal("12625.00")

    def test_method_totals_are_raw_sums(self, service, db):
        """Only total_value is split by currency."""
        db.execute.return_value = [
            {"amount": Decimal("1000.00"), "currency": "AED", "payment_method": "cash"},
            {"amount": Decimal("200.00"), "currency": "USD", "payment_method": "cash"},
        ]

        stats = service.get_statistics().data

        assert stats.total_value == {"AED": Decimal("1000.00"), "USD": Decimal("200.00")}
        assert stats.by_method["totals"] == {"cash": Decimal("1200.00")}

    def test_filters_on_payment_date(self, service, db):
        db.execute.return_value = []
        start = today_utc() - timedelta(days=7)

        service.get_statistics(PaymentFilters(date_from=start, date_to=today_utc(), search="ignored"))

        query, params = db.execute.call_args.args
        assert "p.payment_date >= %s" in query
        assert "p.payment_date <= %s" in query
        assert "ILIKE" not in query
        assert params == (start, today_utc())


class TestShortcuts:
    """Quick, full and refund payments against a mocked InvoiceService."""

    def test_quick_payment_uses_invoice_currency(self, service, db, invoice_service, make_invoice_row):
        invoice = _details(make_invoice_row, currency="CAD")
        invoice_service.get_by_id.return_value = ServiceResult.ok(invoice)
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()
        db.execute_returning.side_effect = _returning_payment

        result = service.create_quick_payment(invoice.id, "1000", PaymentMethod.CASH)

        assert result.data.currency == Currency.CAD
        assert result.data.payment_date == today_utc()
        assert result.data.amount == Decimal("1000")

    def test_quick_payment_missing_invoice(self, service, db, invoice_service):
        invoice_service.get_by_id.return_value = ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

        result = service.create_quick_payment(uuid4(), 100, PaymentMethod.CASH)

        assert result.error == "Invoice not found"
        db.execute_returning.assert_not_called()

    def test_quick_payment_zero_is_validation_error(self, service, db, invoice_service, make_invoice_row):
        invoice_service.get_by_id.return_value = ServiceResult.ok(_details(make_invoice_row))

        result = service.create_quick_payment(uuid4(), 0, PaymentMethod.CASH)

        assert result.kind == ErrorKind.VALIDATION
        db.execute_returning.assert_not_called()

    @pytest.mark.parametrize("balance", ["0", "-200.00"])
    def test_full_payment_refused_when_nothing_due(self, service, db, invoice_service, make_invoice_row, balance):
        invoice_service.get_by_id.return_value = ServiceResult.ok(
            _details(make_invoice_row, balance_due=Decimal(balance))
        )

        result = service.process_full_payment(uuid4(), PaymentMethod.CASH)

        assert result.to_dict() == {"success": False, "error": "Invoice is already fully paid"}
        db.execute_returning.assert_not_called()

    def test_full_payment_pays_exact_balance(self, service, db, invoice_service, make_invoice_row):
        invoice = _details(make_invoice_row, total_paid=Decimal("10000.00"), balance_due=Decimal("16250.00"))
        invoice_service.get_by_id.return_value = ServiceResult.ok(invoice)
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()
        db.execute_returning.side_effect = _returning_payment

        payment = service.process_full_payment(invoice.id, PaymentMethod.CREDIT_CARD).data

        assert payment.amount == Decimal("16250.00")
        assert payment.notes == "Full payment"
        assert payment.payment_method == PaymentMethod.CREDIT_CARD

    def test_refund_row_shape(self, service, db, invoice_service, make_payment_row):
        original = make_payment_row(
            amount=Decimal("500.00"), currency="USD", payment_method="check", invoice_number="INV-2026-0003",
        )
        db.execute_single.return_value = original
        db.execute_returning.side_effect = _returning_payment
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()

        refund = service.create_refund(original["id"], 200, "Damaged mirror").data

        assert refund.amount == Decimal("-200")
        assert refund.is_refund
        assert refund.invoice_id == original["invoice_id"]
        assert refund.currency == Currency.USD
        assert refund.payment_method == PaymentMethod.CHECK
        assert refund.transaction_id == f"REFUND-{original['id']}"
        assert refund.notes == f"Refund for payment {original['id']}: Damaged mirror"
        assert refund.payment_date == today_utc()

    def test_refund_sign_ignored(self, service, db, invoice_service, make_payment_row):
        db.execute_single.return_value = make_payment_row(invoice_number="INV-1")
        db.execute_returning.side_effect = _returning_payment
        invoice_service.update_status_from_payments.return_value = ServiceResult.ok()

        assert service.create_refund(uuid4(), -100, "x").data.amount == Decimal("-100")

    @pytest.mark.parametrize("amount", [600, -600])
    def test_refund_larger_than_payment_rejected(self, service, db, make_payment_row, amount):
        db.execute_single.return_value = make_payment_row(amount=Decimal("500.00"), invoice_number="INV-1")

        result = service.create_refund(uuid4(), amount, "x")

        assert result.error == "Refund amount cannot exceed original payment amount"
        assert result.kind == ErrorKind.VALIDATION
        db.execute_returning.assert_not_called()

    def test_refund_missing_payment(self, service, db):
        db.execute_single.return_value = None

        assert service.create_refund(uuid4(), 100, "x").error == "Original payment not found"

    def test_refund_missing_invoice(self, service, db, make_payment_row):
        db.execute_single.return_value = make_payment_row(invoice_number=None)

        assert service.create_refund(uuid4(), 100, "x").error == "Invoice not found for payment"


class TestInvoicePaymentSummary:
    """Paid share of an invoice."""

    def _summary(self, service, invoice_service, make_invoice_row, make_payment_row, total, amounts):
        from core.models import PaymentBrief

        payments = [PaymentBrief.model_validate(make_payment_row(amount=Decimal(a))) for a in amounts]
        invoice = _details(make_invoice_row, total_amount=Decimal(total), payments=payments)
        invoice_service.get_by_id.return_value = ServiceResult.ok(invoice)
        return service.get_invoice_payment_summary(invoice.id).data

    def test_half_paid(self, service, invoice_service, make_invoice_row, make_payment_row):
        summary = self._summary(service, invoice_service, make_invoice_row, make_payment_row, "1000.00", ["500.00"])

        assert summary.total_paid == Decimal("500.00")
        assert summary.balance_due == Decimal("500.00")
        assert summary.payment_percentage == Decimal("50.00")
        assert summary.payment_count == 1

    def test_overpaid_not_capped(self, service, invoice_service, make_invoice_row, make_payment_row):
        summary = self._summary(service, invoice_service, make_invoice_row, make_payment_row, "300.00", ["500.00"])

        assert summary.payment_percentage == Decimal("166.67")
        assert summary.balance_due == Decimal("-200.00")

    def test_zero_value_invoice(self, service, invoice_service, make_invoice_row, make_payment_row):
        summary = self._summary(service, invoice_service, make_invoice_row, make_payment_row, "0.00", [])

        assert summary.payment_percentage == Decimal("0")
        assert summary.payment_count == 0

    def test_missing_invoice(self, service, invoice_service):
        invoice_service.get_by_id.return_value = ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

        assert service.get_invoice_payment_summary(uuid4()).error == "Invoice not found"


class TestSettlementScenario:
    """Real InvoiceService and PaymentService over the in-memory ledger."""

    @pytest.fixture
    def services(self, ledger, audit):
        invoices = InvoiceService(ledger, audit)
        return invoices, PaymentService(ledger, audit, invoices)

    def test_half_then_full_then_refund(self, services, ledger, make_invoice_row):
        invoices, payments = services
        invoice = ledger.add_invoice(make_invoice_row(total_amount=Decimal("26250.00"), status="sent"))

        first = payments.create_quick_payment(invoice["id"], Decimal("13125.00"), PaymentMethod.BANK_TRANSFER)
        assert first.success
        details = invoices.get_by_id(invoice["id"]).data
        assert details.status == InvoiceStatus.PARTIALLY_PAID
        assert details.balance_due == Decimal("13125.00")

        full = payments.process_full_payment(invoice["id"], PaymentMethod.CASH)
        assert full.data.amount == Decimal("13125.00")
        assert full.data.notes == "Full payment"
        details = invoices.get_by_id(invoice["id"]).data
        assert details.status == InvoiceStatus.FULLY_PAID
        assert details.balance_due == Decimal("0.00")

        inserted = ledger.inserted_payments()
        again = payments.process_full_payment(invoice["id"], PaymentMethod.CASH)
        assert again.error == "Invoice is already fully paid"
        assert ledger.inserted_payments() == inserted

        refund = payments.create_refund(first.data.id, Decimal("500.00"), "Late delivery")
        assert refund.data.amount == Decimal("-500.00")
        details = invoices.get_by_id(invoice["id"]).data
        assert details.total_paid == Decimal("25750.00")
        assert details.status == InvoiceStatus.PARTIALLY_PAID

    def test_past_due_payment_marks_overdue(self, services, ledger, make_invoice_row):
        invoices, payments = services
        invoice = ledger.add_invoice(make_invoice_row(due_date=today_utc() - timedelta(days=1)))

        payments.create_quick_payment(invoice["id"], 100, PaymentMethod.CASH)

        assert ledger.invoices[invoice["id"]]["status"] == "overdue"

    def test_refunding_everything_returns_to_sent(self, services, ledger, make_invoice_row, make_payment_row):
        invoices, payments = services
        invoice = ledger.add_invoice(make_invoice_row(total_amount=Decimal("1000.00"), status="fully_paid"))
        paid = ledger.add_payment(make_payment_row(invoice_id=invoice["id"], amount=Decimal("1000.00")))

        payments.create_refund(paid["id"], 1000, "Sale cancelled")

        assert ledger.invoices[invoice["id"]]["status"] == "sent"
