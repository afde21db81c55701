"""
Vehicle inventory service.

VINs are stored upper-case and are unique; a duplicate surfaces as an
"already exists" conflict.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import AppConfig
from core.models import (
    ErrorKind,
    Pagination,
    ServiceResult,
    Vehicle,
    VehicleCreate,
    VehicleFilters,
    VehicleStatus,
    VehicleUpdate,
    page_window,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "vin", "year", "make", "model", "lot_number", "auction_house",
    "purchase_price", "sale_price", "currency", "is_public",
}


class VehicleService:
    """Service for vehicle operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: AppConfig | None = None):
        self.postgres = postgres
        self.audit = audit
        self.config = config or AppConfig()

    def _get_row(self, vehicle_id: UUID) -> dict[str, Any] | None:
        return self.postgres.execute_single(
            "SELECT * FROM vehicles WHERE id = %s",
            (vehicle_id,)
        )

    def _write(self, vehicle_id: UUID, current: Vehicle, values: dict[str, Any], user_id: UUID | None) -> Vehicle:
        set_parts = [f"{col} = %s" for col in values]
        set_parts.append("updated_at = %s")
        params = list(values.values()) + [now_utc(), vehicle_id]

        row = self.postgres.execute_returning(
            f"""
            UPDATE vehicles
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]
        updated = Vehicle.model_validate(row)

        changes = compute_changes(current.model_dump(mode="json"), updated.model_dump(mode="json"))
        if changes:
            self.audit.log_change(
                entity_type="vehicle",
                entity_id=vehicle_id,
                action=AuditAction.UPDATE,
                changes=changes,
                user_id=user_id
            )
        return updated

    def create(self, data: VehicleCreate, created_by: UUID | None = None) -> ServiceResult:
        """
        Add a vehicle to inventory.

        Returns:
            ServiceResult with the created Vehicle
        """
        try:
            now = now_utc()
            row = self.postgres.execute_returning(
                """
                INSERT INTO vehicles (
                    id, vin, year, make, model, lot_number, auction_house,
                    purchase_price, sale_price, currency, current_status, is_public,
                    created_by, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), data.vin, data.year, data.make, data.model,
                    data.lot_number, data.auction_house,
                    data.purchase_price, data.sale_price, data.currency.value,
                    data.current_status.value, data.is_public,
                    created_by, now, now
                )
            )[0]
            vehicle = Vehicle.model_validate(row)

            self.audit.log_change(
                entity_type="vehicle",
                entity_id=vehicle.id,
                action=AuditAction.CREATE,
                changes={"created": data.model_dump(mode="json", exclude_none=True)},
                user_id=created_by
            )

            logger.info(f"Added vehicle {vehicle.vin}")
            return ServiceResult.ok(vehicle)

        except psycopg2.errors.UniqueViolation:
            return ServiceResult.fail(f"Vehicle with VIN {data.vin} already exists", ErrorKind.CONFLICT)
        except Exception as e:
            logger.exception("Failed to create vehicle")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def get_by_id(self, vehicle_id: UUID) -> ServiceResult:
        try:
            row = self._get_row(vehicle_id)
            if row is None:
                return ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)
            return ServiceResult.ok(Vehicle.model_validate(row))
        except Exception as e:
            logger.exception(f"Failed to get vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def update(self, vehicle_id: UUID, data: VehicleUpdate, updated_by: UUID | None = None) -> ServiceResult:
        """Update vehicle fields. Only non-None fields are changed; status has its own call."""
        try:
            row = self._get_row(vehicle_id)
            if row is None:
                return ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)
            current = Vehicle.model_validate(row)

            updates = data.model_dump(exclude_none=True)
            for field in updates:
                if field not in _UPDATABLE_COLUMNS:
                    logger.warning(
                        f"Attempted to update unknown field '{field}' on vehicle {vehicle_id}"
                    )

            valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
            if not valid_updates:
                return ServiceResult.ok(current)

            return ServiceResult.ok(self._write(vehicle_id, current, valid_updates, updated_by))

        except psycopg2.errors.UniqueViolation:
            return ServiceResult.fail(f"Vehicle with VIN {data.vin} already exists", ErrorKind.CONFLICT)
        except Exception as e:
            logger.exception(f"Failed to update vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def update_status(
        self,
        vehicle_id: UUID,
        status: VehicleStatus,
        updated_by: UUID | None = None
    ) -> ServiceResult:
        """Move a vehicle to another pipeline stage. Any stage may follow any other."""
        try:
            row = self._get_row(vehicle_id)
            if row is None:
                return ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)
            current = Vehicle.model_validate(row)

            if current.current_status == status:
                return ServiceResult.ok(current)

            updated = self._write(vehicle_id, current, {"current_status": status.value}, updated_by)
            logger.info(f"Vehicle {updated.vin} {current.current_status.value} -> {status.value}")
            return ServiceResult.ok(updated)

        except Exception as e:
            logger.exception(f"Failed to update status of vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def delete(self, vehicle_id: UUID, deleted_by: UUID | None = None) -> ServiceResult:
        """Remove a vehicle. Vehicles referenced by invoices cannot be deleted."""
        try:
            row = self._get_row(vehicle_id)
            if row is None:
                return ServiceResult.fail("Vehicle not found", ErrorKind.NOT_FOUND)

            try:
                self.postgres.execute("DELETE FROM vehicles WHERE id = %s", (vehicle_id,))
            except psycopg2.errors.ForeignKeyViolation:
                return ServiceResult.fail(
                    f"Vehicle {vehicle_id} has invoices and cannot be deleted",
                    ErrorKind.CONFLICT
                )

            self.audit.log_change(
                entity_type="vehicle",
                entity_id=vehicle_id,
                action=AuditAction.DELETE,
                changes={"deleted": Vehicle.model_validate(row).model_dump(mode="json")},
                user_id=deleted_by
            )
            return ServiceResult.ok()

        except Exception as e:
            logger.exception(f"Failed to delete vehicle {vehicle_id}")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def list(
        self,
        filters: VehicleFilters | None = None,
        page: int = 1,
        limit: int | None = None
    ) -> ServiceResult:
        """
        Filtered, paginated vehicles, newest first.

        Search matches VIN, make or model, case-insensitively.
        """
        filters = filters or VehicleFilters()
        page, limit, offset = page_window(
            page, limit, self.config.default_page_size, self.config.max_page_size
        )

        clauses: list[str] = []
        params: list[Any] = []
        if filters.search:
            pattern = f"%{filters.search}%"
            clauses.append("(vin ILIKE %s OR make ILIKE %s OR model ILIKE %s)")
            params.extend([pattern, pattern, pattern])
        if filters.status:
            clauses.append("current_status = %s")
            params.append(filters.status.value)
        if filters.make:
            clauses.append("make ILIKE %s")
            params.append(filters.make)
        if filters.model:
            clauses.append("model ILIKE %s")
            params.append(filters.model)
        if filters.year_min is not None:
            clauses.append("year >= %s")
            params.append(filters.year_min)
        if filters.year_max is not None:
            clauses.append("year <= %s")
            params.append(filters.year_max)
        if filters.is_public is not None:
            clauses.append("is_public = %s")
            params.append(filters.is_public)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            total = self.postgres.execute_scalar(
                f"SELECT COUNT(*) FROM vehicles {where}",
                tuple(params)
            ) or 0
            rows = self.postgres.execute(
                f"SELECT * FROM vehicles {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [limit, offset])
            )
            return ServiceResult.ok(
                [Vehicle.model_validate(row) for row in rows],
                pagination=Pagination.build(page, limit, total)
            )
        except Exception as e:
            logger.exception("Failed to list vehicles")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)

    def search_by_vin(self, vin: str) -> ServiceResult:
        """Vehicles whose VIN contains the given fragment, case-insensitively."""
        try:
            rows = self.postgres.execute(
                "SELECT * FROM vehicles WHERE vin ILIKE %s ORDER BY vin ASC",
                (f"%{vin.strip()}%",)
            )
            return ServiceResult.ok([Vehicle.model_validate(row) for row in rows])
        except Exception as e:
            logger.exception("Failed to search vehicles by VIN")
            return ServiceResult.fail(str(e), ErrorKind.INTERNAL)
