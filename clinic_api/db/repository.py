"""
Database Repository Layer

Implements repository pattern for database operations.
Provides abstraction over SQLAlchemy for cleaner business logic.

Repositories never commit: the booking service owns the transaction so that
the conflict check and the write it guards share one transaction.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_api.errors import OverlapConstraintError, PersistenceError
from clinic_api.models.schemas import ACTIVE_STATUSES, TenantScope

logger = logging.getLogger(__name__)

# SQLSTATE raised by the bookings_no_overlap exclusion constraint
EXCLUSION_VIOLATION = "23P01"

BOOKING_COLUMNS = """
    id,
    client_id,
    company_id,
    lead_id,
    professional_id,
    product_id,
    start_at,
    end_at,
    duration_minutes,
    price,
    discount,
    final_price,
    status,
    confirmed,
    confirmed_at,
    cancelled_at,
    cancellation_reason,
    notes,
    internal_notes,
    created_at,
    updated_at
"""

# Columns a caller may set through update_booking
WRITABLE_COLUMNS = frozenset({
    "lead_id",
    "professional_id",
    "product_id",
    "start_at",
    "end_at",
    "price",
    "discount",
    "status",
    "confirmed",
    "confirmed_at",
    "cancelled_at",
    "cancellation_reason",
    "notes",
    "internal_notes",
})


def _sqlstate(error: IntegrityError) -> Optional[str]:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class BaseRepository:
    """Base repository with common database operations."""

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: AsyncSession instance for database operations
        """
        self.session = session

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Execute a parametrized SQL query safely.

        Args:
            query: SQL query string
            params: Dictionary of query parameters

        Returns:
            Query result

        Raises:
            OverlapConstraintError: If the bookings exclusion constraint fired
            PersistenceError: If query execution fails
        """
        try:
            result = await self.session.execute(
                text(query),
                params or {}
            )
            return result
        except IntegrityError as e:
            if _sqlstate(e) == EXCLUSION_VIOLATION:
                logger.warning(f"Booking exclusion constraint rejected write: {e.orig}")
                raise OverlapConstraintError(
                    "Booking overlaps an existing booking"
                ) from e
            logger.error(f"Integrity error: {e}")
            raise PersistenceError(f"Database operation failed: {str(e)}") from e
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise PersistenceError(f"Database operation failed: {str(e)}") from e

    async def execute_read(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Execute a read-only query, retrying once on a storage failure.

        Only for pure reads outside a write transaction: the retry rolls the
        session back first.
        """
        try:
            return await self.execute_query(query, params)
        except PersistenceError as first:
            logger.warning(f"Read failed, retrying once: {first}")
            await self.session.rollback()
            return await self.execute_query(query, params)

    @staticmethod
    def _rows(result: Any) -> List[Dict[str, Any]]:
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    def _row(result: Any) -> Optional[Dict[str, Any]]:
        row = result.mappings().first()
        return dict(row) if row is not None else None


class BookingRepository(BaseRepository):
    """Repository for booking-related database operations."""

    async def lock_professional(self, professional_id: str) -> None:
        """
        Take a transaction-scoped advisory lock for the professional.

        Released automatically on commit or rollback, so concurrent writers in
        other processes queue behind the current check-then-write.
        """
        await self.execute_query(
            "SELECT pg_advisory_xact_lock(hashtext(:lock_key));",
            {"lock_key": f"bookings:{professional_id}"},
        )

    async def find_conflicts(
        self,
        tenant: TenantScope,
        professional_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Get active bookings of the professional overlapping ``[start_at, end_at)``.

        Args:
            tenant: Tenant scope
            professional_id: Professional to check
            start_at: Interval start (UTC)
            end_at: Interval end (UTC)
            exclude_booking_id: Booking to ignore (the one being updated)

        Returns:
            List of conflicting bookings (id, start_at, end_at, status)
        """
        query = """
            SELECT
                id,
                start_at,
                end_at,
                status
            FROM bookings
            WHERE client_id = :client_id
                AND company_id = :company_id
                AND professional_id = :professional_id
                AND status = ANY(:statuses)
                AND start_at < :end_at
                AND end_at > :start_at
        """
        params: Dict[str, Any] = {
            "client_id": tenant.client_id,
            "company_id": tenant.company_id,
            "professional_id": professional_id,
            "statuses": list(ACTIVE_STATUSES),
            "start_at": start_at,
            "end_at": end_at,
        }

        if exclude_booking_id:
            query += " AND id <> :exclude_id"
            params["exclude_id"] = exclude_booking_id

        query += " ORDER BY start_at;"

        result = await self.execute_query(query, params)
        return self._rows(result)

    async def list_active_in_window(
        self,
        tenant: TenantScope,
        professional_id: str,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Dict[str, Any]]:
        """Get active bookings of the professional overlapping a time window."""
        query = """
            SELECT
                id,
                start_at,
                end_at,
                status
            FROM bookings
            WHERE client_id = :client_id
                AND company_id = :company_id
                AND professional_id = :professional_id
                AND status = ANY(:statuses)
                AND start_at < :window_end
                AND end_at > :window_start
            ORDER BY start_at;
        """
        result = await self.execute_read(
            query,
            {
                "client_id": tenant.client_id,
                "company_id": tenant.company_id,
                "professional_id": professional_id,
                "statuses": list(ACTIVE_STATUSES),
                "window_start": window_start,
                "window_end": window_end,
            },
        )
        return self._rows(result)

    async def get_booking(
        self,
        tenant: TenantScope,
        booking_id: str,
        for_update: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Get booking details by ID.

        Args:
            tenant: Tenant scope
            booking_id: Booking identifier
            for_update: Lock the row for the current transaction

        Returns:
            Booking details or None if not found
        """
        query = f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE id = :booking_id
                AND client_id = :client_id
                AND company_id = :company_id
        """
        params = {
            "booking_id": booking_id,
            "client_id": tenant.client_id,
            "company_id": tenant.company_id,
        }

        if for_update:
            result = await self.execute_query(query + " FOR UPDATE;", params)
        else:
            result = await self.execute_read(query + ";", params)
        return self._row(result)

    async def list_bookings(
        self,
        tenant: TenantScope,
        status: Optional[str] = None,
        professional_id: Optional[str] = None,
        lead_id: Optional[str] = None,
        start_from: Optional[datetime] = None,
        start_until: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        List bookings of the tenant, newest first.

        Args:
            tenant: Tenant scope
            status: Optional status filter (scheduled, confirmed, cancelled)
            professional_id: Optional professional filter
            lead_id: Optional lead filter
            start_from: Only bookings starting at or after this instant
            start_until: Only bookings starting at or before this instant
        """
        query = f"""
            SELECT {BOOKING_COLUMNS}
            FROM bookings
            WHERE client_id = :client_id
                AND company_id = :company_id
        """
        params: Dict[str, Any] = {
            "client_id": tenant.client_id,
            "company_id": tenant.company_id,
        }

        if status:
            query += " AND status = :status"
            params["status"] = status
        if professional_id:
            query += " AND professional_id = :professional_id"
            params["professional_id"] = professional_id
        if lead_id:
            query += " AND lead_id = :lead_id"
            params["lead_id"] = lead_id
        if start_from:
            query += " AND start_at >= :start_from"
            params["start_from"] = start_from
        if start_until:
            query += " AND start_at <= :start_until"
            params["start_until"] = start_until

        query += " ORDER BY start_at DESC;"

        result = await self.execute_read(query, params)
        return self._rows(result)

    async def insert_booking(
        self,
        tenant: TenantScope,
        values: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Insert a new booking in status ``scheduled``.

        duration_minutes and final_price are generated columns and are never
        written.

        Raises:
            OverlapConstraintError: If the store detects an overlap
            PersistenceError: If the insert fails
        """
        query = f"""
            INSERT INTO bookings (
                client_id,
                company_id,
                lead_id,
                professional_id,
                product_id,
                start_at,
                end_at,
                price,
                discount,
                status,
                confirmed,
                notes,
                internal_notes,
                created_at,
                updated_at
            )
            VALUES (
                :client_id,
                :company_id,
                :lead_id,
                :professional_id,
                :product_id,
                :start_at,
                :end_at,
                :price,
                :discount,
                'scheduled',
                false,
                :notes,
                :internal_notes,
                NOW(),
                NOW()
            )
            RETURNING {BOOKING_COLUMNS};
        """

        result = await self.execute_query(
            query,
            {
                "client_id": tenant.client_id,
                "company_id": tenant.company_id,
                "lead_id": values["lead_id"],
                "professional_id": values["professional_id"],
                "product_id": values["product_id"],
                "start_at": values["start_at"],
                "end_at": values["end_at"],
                "price": values["price"],
                "discount": values.get("discount", 0),
                "notes": values.get("notes"),
                "internal_notes": values.get("internal_notes"),
            },
        )

        row = self._row(result)
        if not row:
            raise PersistenceError("Failed to create booking - no data returned")
        return row

    async def update_booking(
        self,
        tenant: TenantScope,
        booking_id: str,
        values: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Update writable booking columns.

        Returns:
            Updated booking or None if not found
        """
        update_fields = {k: v for k, v in values.items() if k in WRITABLE_COLUMNS}
        if not update_fields:
            return await self.get_booking(tenant, booking_id)

        set_clause = ", ".join([f"{field} = :{field}" for field in update_fields.keys()])
        query = f"""
            UPDATE bookings
            SET
                {set_clause},
                updated_at = NOW()
            WHERE id = :booking_id
                AND client_id = :client_id
                AND company_id = :company_id
            RETURNING {BOOKING_COLUMNS};
        """

        params = {
            **update_fields,
            "booking_id": booking_id,
            "client_id": tenant.client_id,
            "company_id": tenant.company_id,
        }
        result = await self.execute_query(query, params)
        return self._row(result)

    async def delete_booking(self, tenant: TenantScope, booking_id: str) -> bool:
        """Hard-delete a booking. Returns False if nothing was deleted."""
        query = """
            DELETE FROM bookings
            WHERE id = :booking_id
                AND client_id = :client_id
                AND company_id = :company_id
            RETURNING id;
        """
        result = await self.execute_query(
            query,
            {
                "booking_id": booking_id,
                "client_id": tenant.client_id,
                "company_id": tenant.company_id,
            },
        )
        return result.fetchone() is not None


class ProfessionalRepository(BaseRepository):
    """Read-only access to the professional directory."""

    async def get_work_hours(
        self,
        tenant: TenantScope,
        professional_id: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Get a professional's weekly work-hour template.

        Returns:
            ``{"id": ..., "work_hours": {...} | None}`` or None if the
            professional does not exist in the tenant
        """
        query = """
            SELECT
                id,
                work_hours
            FROM professionals
            WHERE id = :professional_id
                AND client_id = :client_id
                AND company_id = :company_id;
        """
        result = await self.execute_read(
            query,
            {
                "professional_id": professional_id,
                "client_id": tenant.client_id,
                "company_id": tenant.company_id,
            },
        )
        row = self._row(result)
        if not row:
            logger.debug(f"No professional found with id: {professional_id}")
        return row
