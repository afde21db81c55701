"""
Payment service.

A payment is a signed amount against one invoice; refunds are negative
payments. Every mutation (create, update, delete, refund) is followed by a
status recompute of the affected invoice. A failed recompute is logged and
does not fail the payment operation.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import psycopg2.errors
from pydantic import ValidationError

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.billing import payment_percentage, to_decimal
from core.config import AppConfig
from core.invoice_status import sum_payments
from core.models import (
    Currency,
    ErrorKind,
    InvoicePaymentSummary,
    Pagination,
    Payment,
    PaymentCreate,
    PaymentFilters,
    PaymentMethod,
    PaymentStatistics,
    PaymentUpdate,
    ServiceResult,
    page_window,
)
from core.services.invoice_service import InvoiceService
from utils.timezone import now_utc, today_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "amount", "currency", "payment_date", "payment_method",
    "transaction_id", "notes",
}

# Window for recent payments and trends
_RECENT_DAYS = 30

_PAYMENT_SELECT = """
    SELECT p.*, i.invoice_number, c.full_name AS customer_name
    FROM payments p
    LEFT JOIN invoices i ON i.id = p.invoice_id
    LEFT JOIN customers c ON c.id = i.customer_id
"""


class PaymentService:
    """Service for payment operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        invoice_service: InvoiceService,
        config: AppConfig | None = None
    ):
        self.postgres = postgres
        self.audit = audit
        self.invoice_service = invoice_service
        self.config = config or AppConfig()

    def _recompute_invoice(self, invoice_id: UUID, user_id: UUID | None) -> None:
        result = self.invoice_service.update_status_from_payments(invoice_id, user_id)
        if not result.success:
            logger.warning(f"Status recompute failed for invoice {invoice_id}: {result.error}")

    def _get_row(self, payment_id: UUID) -> dict[str, Any] | None:
        return self.postgres.execute_single(
            "SELECT * FROM payments WHERE id = %s",
            (payment_id,)
        )

    @staticmethod
    def _build_where(filters: PaymentFilters) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if filters.search:
            pattern = f"%{filters.search}%"
            clauses.append("(p.transaction_id ILIKE %s OR p.notes ILIKE %s)")
            params.extend([pattern, pattern])
        if filters.invoice_id:
            clauses.append("p.invoice_id = %s")
            params.append(filters.invoice_id)
        if filters.payment_method:
            clauses.append("p.payment_method = %s")
            params.append(filters.payment_method.value)
        if filters.currency:
            clauses.append("p.currency = %s")
            params.append(filters.currency.value)
        if filters.date_from:
            clauses.append("p.payment_date >= %s")
            params.append(filters.date_from)
        if filters.date_to:
            clauses.append("p.payment_date <= %s")
            params.append(filters.date_to)
        if filters.amount_from is not None:
            clauses.append("p.amount >= %s")
            params.append(filters.amount_from)
        if filters.amount_to is not None:
            clauses.append("p.amount <= %s")
            params.append(filters.amount_to)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, data: PaymentCreate, recorded_by: UUID | None = None) -> ServiceResult:
        """
        Record a payment and recompute the invoice's status.

        The payment currency is taken as given; it is not checked against the
        invoice currency.

        Args:
            data: Payment fields (negative amount for a refund)
            recorded_by: Acting user

        Returns:
            ServiceResult with the created Payment
        """
        try:
            now = now_utc()
            row = self.postgres.execute_returning(
                """
                INSERT INTO payments (
                    id, invoice_id, amount, currency, payment_date, payment_method,
                    transaction_id, notes, recorded_by, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), data.invoice_id, data.amount, data.currency.value,
                    data.payment_date, data.payment_method.value,
                    data.transaction_id, data.notes, recorded_by, now, now
                )
            )[0]
            payment = Payment.model_validate(row)

            self.audit.log_change(
                entity_type="payment",
                entity_id=payment.id,
                action=AuditAction.CREATE,
                changes={"created": data.model_dump(mode="json", exclude_none=True)},
                user_id=recorded_by
            )

            self._recompute_invoice(payment.invoice_id, recorded_by)

            logger.info(f"Recorded payment {payment.id} of {payment.amount} {payment.currency.value} "
                        f"on invoice {payment.invoice_id}")
            return ServiceResult.ok(payment)

        except psycopg2.errors.ForeignKeyViolation:
            return ServiceResult.fail(f"Invoice {data.invoice_id} not found", ErrorKind.NOT_FOUND)
        except Exception as e:
            logger.exception("Failed to create payment")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_by_id(self, payment_id: UUID) -> ServiceResult:
        """Payment with its invoice number and customer name."""
        try:
            row = self.postgres.execute_single(
                f"{_PAYMENT_SELECT} WHERE p.id = %s",
                (payment_id,)
            )
            if row is None:
                return ServiceResult.fail("Payment not found", ErrorKind.NOT_FOUND)
            return ServiceResult.ok(Payment.model_validate(row))
        except Exception as e:
            logger.exception(f"Failed to get payment {payment_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list(
        self,
        filters: PaymentFilters | None = None,
        page: int = 1,
        limit: int | None = None
    ) -> ServiceResult:
        """
        Filtered, paginated payments, latest payment date first.

        Search matches transaction id or notes, case-insensitively.
        """
        filters = filters or PaymentFilters()
        page, limit, offset = page_window(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )

        try:
            where, params = self._build_where(filters)

            total = self.postgres.execute_scalar(
                f"SELECT COUNT(*) FROM payments p {where}",
                tuple(params)
            ) or 0

            rows = self.postgres.execute(
                f"{_PAYMENT_SELECT} {where} "
                "ORDER BY p.payment_date DESC, p.created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [limit, offset])
            )

            return ServiceResult.ok(
                [Payment.model_validate(row) for row in rows],
                pagination=Pagination.build(page, limit, total)
            )
        except Exception as e:
            logger.exception("Failed to list payments")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list_for_invoice(self, invoice_id: UUID) -> ServiceResult:
        """All payments for an invoice, latest first."""
        try:
            rows = self.postgres.execute(
                f"{_PAYMENT_SELECT} WHERE p.invoice_id = %s ORDER BY p.payment_date DESC, p.created_at DESC",
                (invoice_id,)
            )
            return ServiceResult.ok([Payment.model_validate(row) for row in rows])
        except Exception as e:
            logger.exception(f"Failed to list payments for invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def update(self, payment_id: UUID, data: PaymentUpdate, updated_by: UUID | None = None) -> ServiceResult:
        """
        Write the supplied fields, then recompute the payment's invoice.

        Returns:
            ServiceResult with the updated Payment
        """
        try:
            current = self._get_row(payment_id)
            if current is None:
                return ServiceResult.fail("Payment not found", ErrorKind.NOT_FOUND)

            updates = data.model_dump(exclude_none=True)
            if updates.get("amount") == 0:
                return ServiceResult.fail("Payment amount cannot be zero", ErrorKind.VALIDATION)

            invalid = set(updates) - _UPDATABLE_COLUMNS
            if invalid:
                logger.warning(f"Ignoring non-updatable payment fields: {invalid}")

            valid = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
            if not valid:
                return ServiceResult.ok(Payment.model_validate(current))

            set_parts = [f"{col} = %s" for col in valid]
            set_parts.append("updated_at = %s")
            params = list(valid.values()) + [now_utc(), payment_id]

            row = self.postgres.execute_returning(
                f"""
                UPDATE payments SET {', '.join(set_parts)}
                WHERE id = %s
                RETURNING *
                """,
                tuple(params)
            )[0]
            payment = Payment.model_validate(row)

            old = Payment.model_validate(current).model_dump(mode="json")
            changes = compute_changes(old, payment.model_dump(mode="json"))
            if changes:
                self.audit.log_change(
                    entity_type="payment",
                    entity_id=payment_id,
                    action=AuditAction.UPDATE,
                    changes=changes,
                    user_id=updated_by
                )

            self._recompute_invoice(payment.invoice_id, updated_by)
            return ServiceResult.ok(payment)

        except Exception as e:
            logger.exception(f"Failed to update payment {payment_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def delete(self, payment_id: UUID, deleted_by: UUID | None = None) -> ServiceResult:
        """Delete a payment, then recompute its invoice."""
        try:
            current = self._get_row(payment_id)
            if current is None:
                return ServiceResult.fail("Payment not found", ErrorKind.NOT_FOUND)

            self.postgres.execute("DELETE FROM payments WHERE id = %s", (payment_id,))

            self.audit.log_change(
                entity_type="payment",
                entity_id=payment_id,
                action=AuditAction.DELETE,
                changes={"deleted": Payment.model_validate(current).model_dump(mode="json")},
                user_id=deleted_by
            )

            self._recompute_invoice(current["invoice_id"], deleted_by)

            logger.info(f"Deleted payment {payment_id}")
            return ServiceResult.ok()

        except Exception as e:
            logger.exception(f"Failed to delete payment {payment_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    # -------------------------------------------------------------------------
    # Shortcuts
    # -------------------------------------------------------------------------

    def create_quick_payment(
        self,
        invoice_id: UUID,
        amount: Decimal | int | float | str,
        payment_method: PaymentMethod,
        recorded_by: UUID | None = None,
        transaction_id: str | None = None,
        notes: str | None = None
    ) -> ServiceResult:
        """Payment dated today in the invoice's currency."""
        invoice_result = self.invoice_service.get_by_id(invoice_id)
        if not invoice_result.success:
            return invoice_result

        try:
            data = PaymentCreate(
                invoice_id=invoice_id,
                amount=to_decimal(amount),
                currency=invoice_result.data.currency,
                payment_date=today_utc(),
                payment_method=payment_method,
                transaction_id=transaction_id,
                notes=notes,
            )
        except ValidationError as e:
            return ServiceResult.fail(str(e), ErrorKind.VALIDATION)

        return self.create(data, recorded_by)

    def process_full_payment(
        self,
        invoice_id: UUID,
        payment_method: PaymentMethod,
        recorded_by: UUID | None = None,
        transaction_id: str | None = None,
        notes: str | None = None
    ) -> ServiceResult:
        """
        Pay exactly the invoice's outstanding balance.

        Nothing is written when the balance is zero or negative.
        """
        invoice_result = self.invoice_service.get_by_id(invoice_id)
        if not invoice_result.success:
            return invoice_result

        balance_due = invoice_result.data.balance_due
        if balance_due <= 0:
            return ServiceResult.fail("Invoice is already fully paid", ErrorKind.VALIDATION)

        return self.create_quick_payment(
            invoice_id,
            balance_due,
            payment_method,
            recorded_by=recorded_by,
            transaction_id=transaction_id,
            notes=notes or "Full payment",
        )

    def create_refund(
        self,
        original_payment_id: UUID,
        refund_amount: Decimal | int | float | str,
        reason: str,
        recorded_by: UUID | None = None
    ) -> ServiceResult:
        """
        Refund against an earlier payment.

        The refund is a negative payment on the same invoice, currency and
        method, dated today. Only this single payment's amount bounds the
        refund; earlier refunds against it are not subtracted.

        Args:
            original_payment_id: Payment being refunded
            refund_amount: Amount to refund; the sign is ignored
            reason: Free text appended to the refund's notes
            recorded_by: Acting user

        Returns:
            ServiceResult with the refund Payment
        """
        try:
            row = self.postgres.execute_single(
                f"{_PAYMENT_SELECT} WHERE p.id = %s",
                (original_payment_id,)
            )
            if row is None:
                return ServiceResult.fail("Original payment not found", ErrorKind.NOT_FOUND)
            original = Payment.model_validate(row)

            if original.invoice_number is None:
                return ServiceResult.fail("Invoice not found for payment", ErrorKind.NOT_FOUND)

            amount = abs(to_decimal(refund_amount))
            if amount > original.amount:
                return ServiceResult.fail(
                    "Refund amount cannot exceed original payment amount", ErrorKind.VALIDATION
                )

            data = PaymentCreate(
                invoice_id=original.invoice_id,
                amount=-amount,
                currency=original.currency,
                payment_date=today_utc(),
                payment_method=original.payment_method,
                transaction_id=f"REFUND-{original.id}",
                notes=f"Refund for payment {original.id}: {reason}",
            )
        except ValidationError as e:
            return ServiceResult.fail(str(e), ErrorKind.VALIDATION)
        except Exception as e:
            logger.exception(f"Failed to prepare refund for payment {original_payment_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

        return self.create(data, recorded_by)

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_invoice_payment_summary(self, invoice_id: UUID) -> ServiceResult:
        """
        How much of an invoice is paid.

        payment_percentage is 0 for a zero-value invoice and may exceed 100
        when the invoice is overpaid.
        """
        invoice_result = self.invoice_service.get_by_id(invoice_id)
        if not invoice_result.success:
            return invoice_result

        invoice = invoice_result.data
        total_paid = sum_payments(p.amount for p in invoice.payments)

        return ServiceResult.ok(InvoicePaymentSummary(
            invoice_amount=invoice.total_amount,
            total_paid=total_paid,
            balance_due=invoice.total_amount - total_paid,
            payment_percentage=payment_percentage(total_paid, invoice.total_amount),
            payment_count=len(invoice.payments),
            payments=invoice.payments,
        ))

    def get_recent_payments(self, limit: int = 10) -> ServiceResult:
        """Latest payments from the last 30 days with invoice number and customer name."""
        _, limit, _ = page_window(1, limit, 10, self.config.max_page_size)
        try:
            since = today_utc() - timedelta(days=_RECENT_DAYS)
            rows = self.postgres.execute(
                f"{_PAYMENT_SELECT} WHERE p.payment_date >= %s "
                "ORDER BY p.payment_date DESC, p.created_at DESC LIMIT %s",
                (since, limit)
            )
            return ServiceResult.ok([Payment.model_validate(row) for row in rows])
        except Exception as e:
            logger.exception("Failed to get recent payments")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_payment_trends(self) -> ServiceResult:
        """
        Daily payment totals for the last 30 days.

        Returns:
            ServiceResult with {"YYYY-MM-DD": {"<currency>": amount, ..., "total": amount}}
            for days that have payments. The "total" key sums across currencies
            and is only meaningful for single-currency days.
        """
        try:
            since = today_utc() - timedelta(days=_RECENT_DAYS)
            rows = self.postgres.execute(
                """
                SELECT payment_date, amount, currency
                FROM payments
                WHERE payment_date >= %s
                ORDER BY payment_date ASC
                """,
                (since,)
            )

            trends: dict[str, dict[str, Decimal]] = {}
            for row in rows:
                day = row["payment_date"]
                key = day.isoformat() if isinstance(day, date) else str(day)
                currency = Currency(row["currency"]).value
                amount = to_decimal(row["amount"])

                bucket = trends.setdefault(key, {"total": Decimal("0")})
                bucket[currency] = bucket.get(currency, Decimal("0")) + amount
                bucket["total"] += amount

            return ServiceResult.ok(trends)
        except Exception as e:
            logger.exception("Failed to get payment trends")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_statistics(self, filters: PaymentFilters | None = None) -> ServiceResult:
        """
        Payment aggregates over an optional payment-date range.

        Only date_from and date_to are honoured. total_value keeps one bucket
        per currency; method totals are raw sums.

        Returns:
            ServiceResult with PaymentStatistics
        """
        filters = filters or PaymentFilters()
        try:
            where, params = self._build_where(
                PaymentFilters(date_from=filters.date_from, date_to=filters.date_to)
            )
            rows = self.postgres.execute(
                f"SELECT p.amount, p.currency, p.payment_method FROM payments p {where}",
                tuple(params)
            )

            total_value: dict[str, Decimal] = {}
            counts: dict[str, int] = {}
            totals: dict[str, Decimal] = {}

            for row in rows:
                amount = to_decimal(row["amount"])
                currency = Currency(row["currency"]).value
                method = PaymentMethod(row["payment_method"]).value

                total_value[currency] = total_value.get(currency, Decimal("0")) + amount
                counts[method] = counts.get(method, 0) + 1
                totals[method] = totals.get(method, Decimal("0")) + amount

            return ServiceResult.ok(PaymentStatistics(
                total=len(rows),
                total_value=total_value,
                by_method={"counts": counts, "totals": totals},
            ))
        except Exception as e:
            logger.exception("Failed to compute payment statistics")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)
