"""
Invoice service.

Invoices bill a customer for a vehicle sale (or anything else) as a list of
line items with VAT on top. Once payments exist, an invoice's status is
recomputed from them by update_status_from_payments; see core.invoice_status.

Every public method returns a ServiceResult and never raises.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID, uuid4

import psycopg2.errors
from psycopg2.extras import Json
from pydantic import ValidationError

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.billing import calculate_totals, to_decimal, vat_rate_for_currency
from core.config import AppConfig
from core.invoice_numbering import format_invoice_number, next_sequence
from core.invoice_status import SETTLED_STATUSES, is_overdue, resolve_status, sum_payments
from core.models import (
    Currency,
    CustomerSummary,
    ErrorKind,
    Invoice,
    InvoiceCreate,
    InvoiceDetails,
    InvoiceFilters,
    InvoiceLineItem,
    InvoiceStatistics,
    InvoiceStatus,
    InvoiceUpdate,
    Pagination,
    PaymentBrief,
    ServiceResult,
    Vehicle,
    VehicleSummary,
    page_window,
)
from utils.timezone import days_from_today, now_utc, today_utc

logger = logging.getLogger(__name__)

# Columns a caller may write through update(); payment_terms maps to terms
_UPDATABLE_COLUMNS = {
    "customer_id", "vehicle_id", "line_items", "subtotal", "vat_rate",
    "vat_amount", "total_amount", "currency", "status", "due_date",
    "terms", "notes",
}

# Invoice row plus customer and vehicle summary columns, prefixed so they
# never collide with invoice columns
_DETAIL_SELECT = """
    SELECT i.*,
           c.full_name AS cust_full_name, c.email AS cust_email, c.phone AS cust_phone,
           v.year AS veh_year, v.make AS veh_make, v.model AS veh_model, v.vin AS veh_vin
    FROM invoices i
    LEFT JOIN customers c ON c.id = i.customer_id
    LEFT JOIN vehicles v ON v.id = i.vehicle_id
"""

_SETTLED_VALUES = tuple(s.value for s in SETTLED_STATUSES)


def _invoice_from_row(row: dict[str, Any]) -> Invoice:
    base = {k: v for k, v in row.items() if not k.startswith(("cust_", "veh_"))}
    if base.get("line_items") is None:
        base["line_items"] = []
    return Invoice.model_validate(base)


def _build_details(row: dict[str, Any], payment_rows: Iterable[dict[str, Any]]) -> InvoiceDetails:
    """Fold payments and joined summaries into an invoice row."""
    invoice = _invoice_from_row(row)
    payments = [PaymentBrief.model_validate(p) for p in payment_rows]
    total_paid = sum_payments(p.amount for p in payments)

    customer = None
    if row.get("cust_full_name") is not None:
        customer = CustomerSummary(
            id=invoice.customer_id,
            full_name=row["cust_full_name"],
            email=row.get("cust_email"),
            phone=row.get("cust_phone"),
        )

    vehicle = None
    if invoice.vehicle_id is not None and row.get("veh_vin") is not None:
        vehicle = VehicleSummary(
            id=invoice.vehicle_id,
            year=row["veh_year"],
            make=row["veh_make"],
            model=row["veh_model"],
            vin=row["veh_vin"],
        )

    return InvoiceDetails.model_validate({
        **invoice.model_dump(),
        "total_paid": total_paid,
        "balance_due": invoice.total_amount - total_paid,
        "payments": payments,
        "customer": customer,
        "vehicle": vehicle,
    })


def _line_items_json(line_items: list[InvoiceLineItem]) -> Json:
    return Json([item.model_dump(mode="json") for item in line_items])


class InvoiceService:
    """Service for invoice operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: AppConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or AppConfig()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _get_row(self, invoice_id: UUID) -> dict[str, Any] | None:
        return self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )

    def _payments_by_invoice(self, invoice_ids: list[UUID]) -> dict[UUID, list[dict[str, Any]]]:
        """Payment rows for many invoices in one query, grouped by invoice id."""
        if not invoice_ids:
            return {}

        rows = self.postgres.execute(
            """
            SELECT id, invoice_id, amount, currency, payment_date, payment_method, transaction_id
            FROM payments
            WHERE invoice_id = ANY(%s::uuid[])
            ORDER BY payment_date DESC, created_at DESC
            """,
            (list(invoice_ids),)
        )

        grouped: dict[UUID, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["invoice_id"], []).append(row)
        return grouped

    def _fetch_details(self, invoice_id: UUID) -> InvoiceDetails | None:
        row = self.postgres.execute_single(
            f"{_DETAIL_SELECT} WHERE i.id = %s",
            (invoice_id,)
        )
        if row is None:
            return None

        payments = self._payments_by_invoice([row["id"]])
        return _build_details(row, payments.get(row["id"], []))

    def _details_for_rows(self, rows: list[dict[str, Any]]) -> list[InvoiceDetails]:
        payments = self._payments_by_invoice([row["id"] for row in rows])
        return [_build_details(row, payments.get(row["id"], [])) for row in rows]

    def _write_status(
        self,
        invoice_id: UUID,
        old_status: InvoiceStatus,
        new_status: InvoiceStatus,
        user_id: UUID | None
    ) -> Invoice:
        row = self.postgres.execute_returning(
            """
            UPDATE invoices SET status = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (new_status.value, now_utc(), invoice_id)
        )[0]

        self.audit.log_change(
            entity_type="invoice",
            entity_id=invoice_id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": InvoiceStatus(old_status).value, "new": new_status.value}},
            user_id=user_id
        )
        return _invoice_from_row(row)

    @staticmethod
    def _build_where(filters: InvoiceFilters) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []

        if filters.search:
            pattern = f"%{filters.search}%"
            clauses.append("(i.invoice_number ILIKE %s OR i.notes ILIKE %s)")
            params.extend([pattern, pattern])
        if filters.status:
            clauses.append("i.status = %s")
            params.append(filters.status.value)
        if filters.customer_id:
            clauses.append("i.customer_id = %s")
            params.append(filters.customer_id)
        if filters.vehicle_id:
            clauses.append("i.vehicle_id = %s")
            params.append(filters.vehicle_id)
        if filters.currency:
            clauses.append("i.currency = %s")
            params.append(filters.currency.value)
        if filters.created_from:
            clauses.append("i.created_at::date >= %s")
            params.append(filters.created_from)
        if filters.created_to:
            clauses.append("i.created_at::date <= %s")
            params.append(filters.created_to)
        if filters.due_from:
            clauses.append("i.due_date >= %s")
            params.append(filters.due_from)
        if filters.due_to:
            clauses.append("i.due_date <= %s")
            params.append(filters.due_to)
        if filters.overdue_only:
            clauses.append("i.due_date < %s AND i.status NOT IN (%s, %s)")
            params.extend([today_utc(), *_SETTLED_VALUES])

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # -------------------------------------------------------------------------
    # Numbering
    # -------------------------------------------------------------------------

    def generate_invoice_number(self) -> str:
        """
        Next invoice number, INV-<current year>-<sequence>.

        The sequence continues from the most recently created invoice. If that
        lookup fails the sequence restarts at 1; this never fails.
        """
        try:
            row = self.postgres.execute_single(
                "SELECT invoice_number FROM invoices ORDER BY created_at DESC LIMIT 1"
            )
            sequence = next_sequence(row["invoice_number"] if row else None)
        except Exception:
            logger.exception("Invoice number lookup failed, restarting sequence at 1")
            sequence = 1

        return format_invoice_number(now_utc().year, sequence)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, data: InvoiceCreate, created_by: UUID | None = None) -> ServiceResult:
        """
        Create an invoice.

        Totals are stored as given. A missing invoice number is generated.

        Args:
            data: Invoice fields
            created_by: Acting user, recorded on the row and in the audit log

        Returns:
            ServiceResult with the created Invoice
        """
        invoice_number = data.invoice_number or self.generate_invoice_number()

        try:
            now = now_utc()
            row = self.postgres.execute_returning(
                """
                INSERT INTO invoices (
                    id, invoice_number, customer_id, vehicle_id, line_items,
                    subtotal, vat_rate, vat_amount, total_amount, currency,
                    status, due_date, terms, notes,
                    created_by, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), invoice_number, data.customer_id, data.vehicle_id,
                    _line_items_json(data.line_items),
                    data.subtotal, data.vat_rate, data.vat_amount, data.total_amount,
                    data.currency.value, data.status.value, data.due_date,
                    data.payment_terms, data.notes,
                    created_by, now, now
                )
            )[0]
            invoice = _invoice_from_row(row)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json")},
                user_id=created_by
            )

            logger.info(f"Created invoice {invoice.invoice_number} ({invoice.id})")
            return ServiceResult.ok(invoice)

        except psycopg2.errors.UniqueViolation:
            return ServiceResult.fail(f"Invoice number {invoice_number} already exists", ErrorKind.CONFLICT)
        except psycopg2.errors.ForeignKeyViolation:
            return ServiceResult.fail("Customer or vehicle not found", ErrorKind.NOT_FOUND)
        except Exception as e:
            logger.exception("Failed to create invoice")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_by_id(self, invoice_id: UUID) -> ServiceResult:
        """
        Invoice with customer, vehicle, payments, total_paid and balance_due.

        Returns:
            ServiceResult with InvoiceDetails, or a not-found failure
        """
        try:
            details = self._fetch_details(invoice_id)
            if details is None:
                return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)
            return ServiceResult.ok(details)
        except Exception as e:
            logger.exception(f"Failed to get invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list(
        self,
        filters: InvoiceFilters | None = None,
        page: int = 1,
        limit: int | None = None
    ) -> ServiceResult:
        """
        Filtered, paginated invoices, newest first.

        Search matches invoice number or notes, case-insensitively. Each
        invoice carries total_paid and balance_due.
        """
        filters = filters or InvoiceFilters()
        page, limit, offset = page_window(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )

        try:
            where, params = self._build_where(filters)

            total = self.postgres.execute_scalar(
                f"SELECT COUNT(*) FROM invoices i {where}",
                tuple(params)
            ) or 0

            rows = self.postgres.execute(
                f"{_DETAIL_SELECT} {where} ORDER BY i.created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [limit, offset])
            )

            return ServiceResult.ok(
                self._details_for_rows(rows),
                pagination=Pagination.build(page, limit, total)
            )
        except Exception as e:
            logger.exception("Failed to list invoices")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def update(self, invoice_id: UUID, data: InvoiceUpdate, updated_by: UUID | None = None) -> ServiceResult:
        """
        Write the supplied fields.

        Only non-None fields change. Status is written as given and is not
        recomputed from payments.

        Returns:
            ServiceResult with the updated Invoice
        """
        try:
            current = self._get_row(invoice_id)
            if current is None:
                return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

            updates = data.model_dump(exclude_none=True)
            if "payment_terms" in updates:
                updates["terms"] = updates.pop("payment_terms")

            invalid = set(updates) - _UPDATABLE_COLUMNS
            if invalid:
                logger.warning(f"Ignoring non-updatable invoice fields: {invalid}")

            valid = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
            if not valid:
                return ServiceResult.ok(_invoice_from_row(current))

            if "line_items" in valid:
                valid["line_items"] = _line_items_json(data.line_items)

            set_parts = [f"{col} = %s" for col in valid]
            set_parts.append("updated_at = %s")
            params = list(valid.values()) + [now_utc(), invoice_id]

            row = self.postgres.execute_returning(
                f"""
                UPDATE invoices SET {', '.join(set_parts)}
                WHERE id = %s
                RETURNING *
                """,
                tuple(params)
            )[0]
            invoice = _invoice_from_row(row)

            old = _invoice_from_row(current).model_dump(mode="json")
            changes = compute_changes(old, invoice.model_dump(mode="json"))
            if changes:
                self.audit.log_change(
                    entity_type="invoice",
                    entity_id=invoice_id,
                    action=AuditAction.UPDATE,
                    changes=changes,
                    user_id=updated_by
                )

            return ServiceResult.ok(invoice)

        except psycopg2.errors.ForeignKeyViolation:
            return ServiceResult.fail("Customer or vehicle not found", ErrorKind.NOT_FOUND)
        except Exception as e:
            logger.exception(f"Failed to update invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def delete(self, invoice_id: UUID, deleted_by: UUID | None = None) -> ServiceResult:
        """
        Delete an invoice that has no payments.

        Payments reference their invoice without cascade, so an invoice with
        payments is refused with a conflict.
        """
        try:
            current = self._get_row(invoice_id)
            if current is None:
                return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

            try:
                self.postgres.execute("DELETE FROM invoices WHERE id = %s", (invoice_id,))
            except psycopg2.errors.ForeignKeyViolation:
                return ServiceResult.fail(
                    f"Invoice {invoice_id} has payments and cannot be deleted",
                    ErrorKind.CONFLICT
                )

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice_id,
                action=AuditAction.DELETE,
                changes={"deleted": _invoice_from_row(current).model_dump(mode="json")},
                user_id=deleted_by
            )

            logger.info(f"Deleted invoice {current['invoice_number']} ({invoice_id})")
            return ServiceResult.ok()

        except Exception as e:
            logger.exception(f"Failed to delete invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    # -------------------------------------------------------------------------
    # Workflow
    # -------------------------------------------------------------------------

    def send(self, invoice_id: UUID, sent_by: UUID | None = None) -> ServiceResult:
        """Mark an invoice as sent. Delivery to the customer happens elsewhere."""
        try:
            current = self._get_row(invoice_id)
            if current is None:
                return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

            invoice = self._write_status(
                invoice_id, InvoiceStatus(current["status"]), InvoiceStatus.SENT, sent_by
            )
            logger.info(f"Sent invoice {invoice.invoice_number}")
            return ServiceResult.ok(invoice)

        except Exception as e:
            logger.exception(f"Failed to send invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def create_from_vehicle_sale(
        self,
        vehicle_id: UUID,
        customer_id: UUID,
        sale_price: Decimal | int | float | str,
        currency: Currency,
        created_by: UUID | None = None,
        additional_items: Iterable[InvoiceLineItem] = ()
    ) -> ServiceResult:
        """
        Draft invoice for selling a vehicle.

        The first line item describes the vehicle at sale_price. VAT is the
        AED rate for dirham sales and zero otherwise. Due in
        config.payment_terms_days days.

        Args:
            vehicle_id: Vehicle being sold
            customer_id: Buyer
            sale_price: Price of the vehicle line
            currency: Invoice currency
            created_by: Acting user
            additional_items: Extra lines (transport, fees) billed after the vehicle

        Returns:
            ServiceResult with the created Invoice
        """
        try:
            row = self.postgres.execute_single(
                "SELECT * FROM vehicles WHERE id = %s",
                (vehicle_id,)
            )
            if row is None:
                return ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)
            vehicle = Vehicle.model_validate(row)

            price = to_decimal(sale_price)
            line_items = [
                InvoiceLineItem(description=vehicle.description, quantity=1, unit_price=price, total=price),
                *additional_items,
            ]

            vat_rate = vat_rate_for_currency(currency, self.config.aed_vat_rate)
            totals = calculate_totals(line_items, vat_rate)
            terms_days = self.config.payment_terms_days

            data = InvoiceCreate(
                customer_id=customer_id,
                vehicle_id=vehicle_id,
                line_items=line_items,
                subtotal=totals.subtotal,
                vat_rate=vat_rate,
                vat_amount=totals.vat_amount,
                total_amount=totals.total,
                currency=currency,
                due_date=days_from_today(terms_days),
                payment_terms=f"Net {terms_days} days",
                status=InvoiceStatus.DRAFT,
            )
        except ValidationError as e:
            return ServiceResult.fail(str(e), ErrorKind.VALIDATION)
        except Exception as e:
            logger.exception(f"Failed to prepare invoice for vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

        return self.create(data, created_by)

    def update_status_from_payments(self, invoice_id: UUID, user_id: UUID | None = None) -> ServiceResult:
        """
        Recompute status from the invoice's payments and due date.

        Writes only when the status changes.

        Returns:
            ServiceResult with the (possibly updated) InvoiceDetails
        """
        try:
            details = self._fetch_details(invoice_id)
            if details is None:
                return ServiceResult.fail("Invoice not found", ErrorKind.NOT_FOUND)

            new_status = resolve_status(
                details.total_paid,
                details.total_amount,
                details.due_date,
                today_utc(),
                details.status,
            )
            if new_status == details.status:
                return ServiceResult.ok(details)

            invoice = self._write_status(invoice_id, details.status, new_status, user_id)
            logger.info(f"Invoice {invoice.invoice_number} status {details.status.value} -> {new_status.value}")

            return ServiceResult.ok(
                details.model_copy(update={"status": new_status, "updated_at": invoice.updated_at})
            )
        except Exception as e:
            logger.exception(f"Failed to recompute status for invoice {invoice_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_for_customer(self, customer_id: UUID) -> ServiceResult:
        """All invoices for a customer, newest first."""
        try:
            rows = self.postgres.execute(
                f"{_DETAIL_SELECT} WHERE i.customer_id = %s ORDER BY i.created_at DESC",
                (customer_id,)
            )
            return ServiceResult.ok(self._details_for_rows(rows))
        except Exception as e:
            logger.exception(f"Failed to list invoices for customer {customer_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list_for_vehicle(self, vehicle_id: UUID) -> ServiceResult:
        """All invoices for a vehicle, newest first."""
        try:
            rows = self.postgres.execute(
                f"{_DETAIL_SELECT} WHERE i.vehicle_id = %s ORDER BY i.created_at DESC",
                (vehicle_id,)
            )
            return ServiceResult.ok(self._details_for_rows(rows))
        except Exception as e:
            logger.exception(f"Failed to list invoices for vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list_overdue(self) -> ServiceResult:
        """Invoices past due and neither fully paid nor cancelled, oldest due date first."""
        try:
            rows = self.postgres.execute(
                f"""
                {_DETAIL_SELECT}
                WHERE i.due_date < %s AND i.status NOT IN (%s, %s)
                ORDER BY i.due_date ASC
                """,
                (today_utc(), *_SETTLED_VALUES)
            )
            return ServiceResult.ok(self._details_for_rows(rows))
        except Exception as e:
            logger.exception("Failed to list overdue invoices")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_statistics(self, filters: InvoiceFilters | None = None) -> ServiceResult:
        """
        Invoice aggregates over an optional created-date range.

        Only created_from and created_to are honoured. total_value keeps one
        bucket per currency; status totals and the overdue amount are raw sums.

        Returns:
            ServiceResult with InvoiceStatistics
        """
        filters = filters or InvoiceFilters()
        try:
            where, params = self._build_where(
                InvoiceFilters(created_from=filters.created_from, created_to=filters.created_to)
            )
            rows = self.postgres.execute(
                f"SELECT i.status, i.total_amount, i.currency, i.due_date FROM invoices i {where}",
                tuple(params)
            )

            today = today_utc()
            total_value: dict[str, Decimal] = {}
            counts: dict[str, int] = {}
            totals: dict[str, Decimal] = {}
            overdue_count = 0
            overdue_amount = Decimal("0")

            for row in rows:
                amount = to_decimal(row["total_amount"])
                currency = Currency(row["currency"]).value
                status = InvoiceStatus(row["status"]).value

                total_value[currency] = total_value.get(currency, Decimal("0")) + amount
                counts[status] = counts.get(status, 0) + 1
                totals[status] = totals.get(status, Decimal("0")) + amount

                if is_overdue(row["due_date"], status, today):
                    overdue_count += 1
                    overdue_amount += amount

            stats = InvoiceStatistics(
                total=len(rows),
                total_value=total_value,
                by_status={"counts": counts, "totals": totals},
                overdue={"count": overdue_count, "amount": overdue_amount},
            )
            return ServiceResult.ok(stats)
        except Exception as e:
            logger.exception("Failed to compute invoice statistics")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)
