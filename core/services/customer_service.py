"""
Customer service for CRUD operations.

Customers are the buyers invoices are billed to. Email is unique across
customers; a duplicate surfaces as an "already exists" conflict.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import AppConfig
from core.models import (
    Customer,
    CustomerCreate,
    CustomerFilters,
    CustomerUpdate,
    ErrorKind,
    Pagination,
    ServiceResult,
    page_window,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Valid columns that can be updated
_UPDATABLE_COLUMNS = {
    "full_name", "email", "phone", "address", "city", "country",
    "preferred_language", "marketing_consent",
}


class CustomerService:
    """Service for customer operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: AppConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or AppConfig()

    def _get_row(self, customer_id: UUID) -> dict[str, Any] | None:
        return self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s",
            (customer_id,)
        )

    def create(self, data: CustomerCreate, created_by: UUID | None = None) -> ServiceResult:
        """
        Create a new customer.

        Args:
            data: Customer creation data
            created_by: Acting user for the audit log

        Returns:
            ServiceResult with the created Customer
        """
        try:
            now = now_utc()
            row = self.postgres.execute_returning(
                """
                INSERT INTO customers (
                    id, full_name, email, phone, address, city, country,
                    preferred_language, marketing_consent, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), data.full_name, data.email, data.phone, data.address,
                    data.city, data.country, data.preferred_language,
                    data.marketing_consent, now, now
                )
            )[0]
            customer = Customer.model_validate(row)

            self.audit.log_change(
                entity_type="customer",
                entity_id=customer.id,
                action=AuditAction.CREATE,
                changes={"created": data.model_dump(mode="json", exclude_none=True)},
                user_id=created_by
            )

            return ServiceResult.ok(customer)

        except psycopg2.errors.UniqueViolation:
            return ServiceResult.fail(
                f"Customer with email {data.email} already exists", ErrorKind.CONFLICT
            )
        except Exception as e:
            logger.exception("Failed to create customer")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_by_id(self, customer_id: UUID) -> ServiceResult:
        try:
            row = self._get_row(customer_id)
            if row is None:
                return ServiceResult.fail("Customer not found", ErrorKind.NOT_FOUND)
            return ServiceResult.ok(Customer.model_validate(row))
        except Exception as e:
            logger.exception(f"Failed to get customer {customer_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def update(self, customer_id: UUID, data: CustomerUpdate, updated_by: UUID | None = None) -> ServiceResult:
        """
        Update customer fields.

        Args:
            customer_id: Customer UUID
            data: Fields to update (only non-None fields are changed)
            updated_by: Acting user for the audit log

        Returns:
            ServiceResult with the updated Customer
        """
        try:
            row = self._get_row(customer_id)
            if row is None:
                return ServiceResult.fail("Customer not found", ErrorKind.NOT_FOUND)
            current = Customer.model_validate(row)

            updates = data.model_dump(exclude_none=True)
            for field in updates:
                if field not in _UPDATABLE_COLUMNS:
                    logger.warning(
                        f"Attempted to update unknown field '{field}' on customer {customer_id}"
                    )

            valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
            if not valid_updates:
                return ServiceResult.ok(current)

            set_parts = [f"{field} = %s" for field in valid_updates]
            set_parts.append("updated_at = %s")
            params = list(valid_updates.values()) + [now_utc(), customer_id]

            row = self.postgres.execute_returning(
                f"""
                UPDATE customers
                SET {', '.join(set_parts)}
                WHERE id = %s
                RETURNING *
                """,
                tuple(params)
            )[0]
            updated = Customer.model_validate(row)

            changes = compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            )
            if changes:
                self.audit.log_change(
                    entity_type="customer",
                    entity_id=customer_id,
                    action=AuditAction.UPDATE,
                    changes=changes,
                    user_id=updated_by
                )

            return ServiceResult.ok(updated)

        except psycopg2.errors.UniqueViolation:
            return ServiceResult.fail(
                f"Customer with email {data.email} already exists", ErrorKind.CONFLICT
            )
        except Exception as e:
            logger.exception(f"Failed to update customer {customer_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def delete(self, customer_id: UUID, deleted_by: UUID | None = None) -> ServiceResult:
        """Delete a customer. Customers with invoices cannot be deleted."""
        try:
            row = self._get_row(customer_id)
            if row is None:
                return ServiceResult.fail("Customer not found", ErrorKind.NOT_FOUND)

            try:
                self.postgres.execute("DELETE FROM customers WHERE id = %s", (customer_id,))
            except psycopg2.errors.ForeignKeyViolation:
                return ServiceResult.fail(
                    f"Customer {customer_id} has invoices and cannot be deleted",
                    ErrorKind.CONFLICT
                )

            self.audit.log_change(
                entity_type="customer",
                entity_id=customer_id,
                action=AuditAction.DELETE,
                changes={"deleted": Customer.model_validate(row).model_dump(mode="json")},
                user_id=deleted_by
            )

            return ServiceResult.ok()

        except Exception as e:
            logger.exception(f"Failed to delete customer {customer_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list(
        self,
        filters: CustomerFilters | None = None,
        page: int = 1,
        limit: int | None = None
    ) -> ServiceResult:
        """
        Filtered, paginated customers, newest first.

        Search matches full name, email or phone, case-insensitively.
        """
        filters = filters or CustomerFilters()
        page, limit, offset = page_window(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )

        clauses: list[str] = []
        params: list[Any] = []
        if filters.search:
            pattern = f"%{filters.search}%"
            clauses.append("(full_name ILIKE %s OR email ILIKE %s OR phone ILIKE %s)")
            params.extend([pattern, pattern, pattern])
        if filters.city:
            clauses.append("city ILIKE %s")
            params.append(filters.city)
        if filters.country:
            clauses.append("country = %s")
            params.append(filters.country)
        if filters.marketing_consent is not None:
            clauses.append("marketing_consent = %s")
            params.append(filters.marketing_consent)
        if filters.created_from:
            clauses.append("created_at::date >= %s")
            params.append(filters.created_from)
        if filters.created_to:
            clauses.append("created_at::date <= %s")
            params.append(filters.created_to)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            total = self.postgres.execute_scalar(
                f"SELECT COUNT(*) FROM customers {where}",
                tuple(params)
            ) or 0
            rows = self.postgres.execute(
                f"SELECT * FROM customers {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [limit, offset])
            )
            return ServiceResult.ok(
                [Customer.model_validate(row) for row in rows],
                pagination=Pagination.build(page, limit, total)
            )
        except Exception as e:
            logger.exception("Failed to list customers")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def search(self, query: str, limit: int = 20) -> ServiceResult:
        """
        Search customers by name, email, or phone.

        Uses ILIKE for case-insensitive partial matching.
        """
        _, limit, _ = page_window(1, limit, self.config.default_page_size, self.config.max_page_size)
        pattern = f"%{query}%"

        try:
            rows = self.postgres.execute(
                """
                SELECT * FROM customers
                WHERE full_name ILIKE %s
                   OR email ILIKE %s
                   OR phone ILIKE %s
                ORDER BY full_name ASC
                LIMIT %s
                """,
                (pattern, pattern, pattern, limit)
            )
            return ServiceResult.ok([Customer.model_validate(row) for row in rows])
        except Exception as e:
            logger.exception("Failed to search customers")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def find_or_create(self, data: CustomerCreate, created_by: UUID | None = None) -> ServiceResult:
        """Existing customer with data.email, or a newly created one."""
        if data.email:
            try:
                row = self.postgres.execute_single(
                    "SELECT * FROM customers WHERE lower(email) = lower(%s)",
                    (data.email,)
                )
            except Exception as e:
                logger.exception("Failed to look up customer by email")
                return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

            if row is not None:
                return ServiceResult.ok(Customer.model_validate(row))

        return self.create(data, created_by)
