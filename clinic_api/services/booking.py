"""
Booking Service

Business logic for the booking lifecycle: create, update, confirm, cancel and
delete, plus availability queries.

Status lifecycle::

    create -> scheduled --confirm--> (confirmed flag set, status kept)
                  |                         |
                  +---------cancel----------+--> cancelled (terminal)

Every write that changes timing runs the conflict guard inside the same
transaction as the write, under the professional's lock.
"""

import datetime
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_api.config import settings
from clinic_api.db.repository import BookingRepository, ProfessionalRepository
from clinic_api.errors import (
    InvalidStatusTransition,
    NotFound,
    OverlapConstraintError,
    PersistenceError,
    SlotUnavailable,
    TenantRequired,
    ValidationError,
    format_validation_errors,
)
from clinic_api.models.schemas import (
    TIMING_FIELDS,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    TenantScope,
)
from clinic_api.scheduling.availability import AvailabilityCalculator
from clinic_api.scheduling.conflicts import ConflictGuard
from clinic_api.scheduling.locks import ProfessionalLockRegistry, professional_locks
from clinic_api.services.audit import record_booking_event
from clinic_api.utils.timezone import normalize_to_utc, to_utc_iso

logger = logging.getLogger(__name__)

# Pre-read, lock and re-check rounds before an update gives up on a moving booking
UPDATE_ATTEMPTS = 3

ModelT = TypeVar("ModelT", bound=BaseModel)


def _coerce(model: Type[ModelT], data: Union[ModelT, Mapping[str, Any]]) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = format_validation_errors(e.errors())
        summary = "; ".join(
            f"{err['field']}: {err['message']}" if err["field"] else err["message"]
            for err in errors
        )
        raise ValidationError(f"Invalid booking data: {summary}", {"errors": errors}) from e


def _parse_id(value: Any, name: str = "booking_id") -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name} must be a UUID", {name: str(value)}) from e


def _require_tenant(tenant: Optional[TenantScope]) -> TenantScope:
    if not isinstance(tenant, TenantScope):
        raise TenantRequired("Tenant scope (client and company) is required")
    return tenant


def _check_interval(start_at: datetime.datetime, end_at: datetime.datetime) -> None:
    if start_at >= end_at:
        raise ValidationError(
            "start_at must be before end_at",
            {"start_at": to_utc_iso(start_at), "end_at": to_utc_iso(end_at)},
        )


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class BookingService:
    """
    Service for managing the booking lifecycle.

    Orchestrates the availability calculator, the conflict guard and the
    booking repository. The service owns the database transaction.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        booking_repo: Optional[BookingRepository] = None,
        professional_repo: Optional[ProfessionalRepository] = None,
        locks: Optional[ProfessionalLockRegistry] = None,
    ):
        """
        Initialize BookingService.

        Args:
            db_session: Async database session
            booking_repo: Booking store (defaults to the SQL repository)
            professional_repo: Professional directory (defaults to the SQL repository)
            locks: Per-professional lock registry (defaults to the process-wide one)
        """
        self.db = db_session
        self.booking_repo = booking_repo or BookingRepository(db_session)
        self.professional_repo = professional_repo or ProfessionalRepository(db_session)
        self.locks = locks if locks is not None else professional_locks
        self.guard = ConflictGuard(self.booking_repo)
        self.availability = AvailabilityCalculator(self.booking_repo, self.professional_repo)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Commit on success; roll back on any error so no partial write remains."""
        try:
            yield
            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                raise PersistenceError(f"Commit failed: {str(e)}") from e
        except OverlapConstraintError as e:
            await self.db.rollback()
            raise SlotUnavailable(
                "The requested time is not available. "
                "Another booking already exists in this period."
            ) from e
        except Exception:
            await self.db.rollback()
            raise

    # Reads

    async def get_available_slots(
        self,
        tenant: TenantScope,
        professional_id: Any,
        day: datetime.date,
        duration_minutes: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> List[str]:
        """
        Get free start times of a professional on a date.

        Example:
            >>> await service.get_available_slots(tenant, prof_id, date(2025, 12, 1))
            ["08:00", "08:30", ..., "11:00", "13:00", ..., "17:00"]
        """
        tenant = _require_tenant(tenant)
        return await self.availability.compute_available_slots(
            tenant,
            _parse_id(professional_id, "professional_id"),
            day,
            (
                duration_minutes
                if duration_minutes is not None
                else settings.default_slot_duration_minutes
            ),
            timezone=timezone,
        )

    async def is_available(
        self,
        tenant: TenantScope,
        professional_id: Any,
        start_at: Union[str, datetime.datetime],
        end_at: Union[str, datetime.datetime],
        exclude_booking_id: Optional[Any] = None,
        timezone_hint: Optional[str] = None,
    ) -> bool:
        tenant = _require_tenant(tenant)
        start_utc = normalize_to_utc(start_at, timezone_hint)
        end_utc = normalize_to_utc(end_at, timezone_hint)
        _check_interval(start_utc, end_utc)
        return await self.guard.is_available(
            tenant,
            _parse_id(professional_id, "professional_id"),
            start_utc,
            end_utc,
            exclude_booking_id=(
                _parse_id(exclude_booking_id) if exclude_booking_id else None
            ),
        )

    async def get_booking(self, tenant: TenantScope, booking_id: Any) -> Dict[str, Any]:
        tenant = _require_tenant(tenant)
        booking_id = _parse_id(booking_id)
        booking = await self.booking_repo.get_booking(tenant, booking_id)
        if not booking:
            raise NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id})
        return booking

    async def list_bookings(
        self,
        tenant: TenantScope,
        status: Optional[str] = None,
        professional_id: Optional[Any] = None,
        lead_id: Optional[Any] = None,
        start_from: Optional[str] = None,
        start_until: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        List bookings with optional filters.

        Date filters without an offset are read in the clinic timezone.
        """
        tenant = _require_tenant(tenant)
        if status is not None:
            try:
                status = BookingStatus(status).value
            except ValueError as e:
                raise ValidationError(
                    f"Unknown status {status!r}",
                    {"allowed": [s.value for s in BookingStatus]},
                ) from e

        return await self.booking_repo.list_bookings(
            tenant,
            status=status,
            professional_id=(
                _parse_id(professional_id, "professional_id") if professional_id else None
            ),
            lead_id=_parse_id(lead_id, "lead_id") if lead_id else None,
            start_from=(
                normalize_to_utc(start_from, settings.clinic_timezone) if start_from else None
            ),
            start_until=(
                normalize_to_utc(start_until, settings.clinic_timezone) if start_until else None
            ),
        )

    # Writes

    async def create_booking(
        self,
        tenant: TenantScope,
        data: Union[BookingCreate, Mapping[str, Any]],
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a booking in status ``scheduled``.

        Args:
            tenant: Tenant scope
            data: Booking payload (timestamps as ISO 8601 strings)
            actor: User performing the change, for the audit trail

        Returns:
            The stored booking

        Raises:
            ValidationError: Missing or malformed fields
            InvalidTimestamp: Timestamp without offset and no user_timezone
            SlotUnavailable: The professional is already booked in the interval
        """
        tenant = _require_tenant(tenant)
        payload = _coerce(BookingCreate, data)

        start_at = normalize_to_utc(payload.start_at, payload.user_timezone)
        end_at = normalize_to_utc(payload.end_at, payload.user_timezone)
        _check_interval(start_at, end_at)

        professional_id = str(payload.professional_id)
        values = {
            "lead_id": str(payload.lead_id),
            "professional_id": professional_id,
            "product_id": payload.product_id,
            "start_at": start_at,
            "end_at": end_at,
            "price": payload.price,
            "discount": payload.discount,
            "notes": payload.notes,
            "internal_notes": payload.internal_notes,
        }

        logger.info(
            f"Creating booking for lead {values['lead_id']} with professional "
            f"{professional_id} at {to_utc_iso(start_at)} - {to_utc_iso(end_at)} "
            f"(input {payload.start_at}, timezone {payload.user_timezone or 'not informed'})"
        )

        async with self.locks.hold(professional_id):
            async with self._transaction():
                await self.booking_repo.lock_professional(professional_id)
                await self.guard.ensure_available(
                    tenant, professional_id, start_at, end_at
                )
                booking = await self.booking_repo.insert_booking(tenant, values)

        logger.info(f"Created booking {booking['id']} for professional {professional_id}")
        record_booking_event("created", tenant, booking["id"], actor, values)
        return booking

    async def update_booking(
        self,
        tenant: TenantScope,
        booking_id: Any,
        data: Union[BookingUpdate, Mapping[str, Any]],
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Apply a partial update.

        A change of start, end or professional re-runs the conflict guard,
        ignoring the booking itself. Derived and status fields are rejected.

        Raises:
            NotFound: Booking does not exist
            InvalidStatusTransition: Booking is cancelled
            SlotUnavailable: The new interval is taken
        """
        tenant = _require_tenant(tenant)
        booking_id = _parse_id(booking_id)
        payload = _coerce(BookingUpdate, data)

        changes: Dict[str, Any] = payload.model_dump(exclude_unset=True)
        timezone_hint = changes.pop("user_timezone", None)

        for field in ("start_at", "end_at"):
            if field in changes:
                changes[field] = normalize_to_utc(changes[field], timezone_hint)
        for field in ("lead_id", "professional_id"):
            if field in changes:
                changes[field] = str(changes[field])

        if not changes:
            raise ValidationError("No fields to update")

        for _ in range(UPDATE_ATTEMPTS):
            current = await self.get_booking(tenant, booking_id)
            professional_id = str(changes.get("professional_id", current["professional_id"]))
            booking = await self._apply_update(tenant, booking_id, changes, professional_id)
            if booking is not None:
                break
            logger.warning(
                f"Booking {booking_id} moved away from professional {professional_id} "
                f"while waiting for its lock; retrying"
            )
        else:
            raise SlotUnavailable(
                "The booking was changed by another request. Please try again."
            )

        logger.info(f"Updated booking {booking_id}: {', '.join(sorted(changes))}")
        record_booking_event("updated", tenant, booking_id, actor, changes)
        return booking

    async def _apply_update(
        self,
        tenant: TenantScope,
        booking_id: str,
        changes: Dict[str, Any],
        professional_id: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Run the guarded update under the lock of ``professional_id``.

        Returns None without writing if the locked row no longer resolves to
        that professional.
        """
        async with self.locks.hold(professional_id):
            async with self._transaction():
                await self.booking_repo.lock_professional(professional_id)
                current = await self.booking_repo.get_booking(
                    tenant, booking_id, for_update=True
                )
                if not current:
                    raise NotFound(
                        f"Booking {booking_id} not found", {"booking_id": booking_id}
                    )
                target = str(changes.get("professional_id", current["professional_id"]))
                if target != professional_id:
                    return None
                if current["status"] == BookingStatus.CANCELLED.value:
                    raise InvalidStatusTransition(
                        f"Booking {booking_id} is cancelled and can no longer be changed",
                        {"booking_id": booking_id, "status": current["status"]},
                    )

                new_start = changes.get("start_at", current["start_at"])
                new_end = changes.get("end_at", current["end_at"])
                _check_interval(new_start, new_end)

                price = changes.get("price", current["price"])
                discount = changes.get("discount", current["discount"])
                if discount > price:
                    raise ValidationError(
                        "discount cannot exceed price",
                        {"price": str(price), "discount": str(discount)},
                    )

                if TIMING_FIELDS & changes.keys():
                    await self.guard.ensure_available(
                        tenant,
                        professional_id,
                        new_start,
                        new_end,
                        exclude_booking_id=booking_id,
                    )

                booking = await self.booking_repo.update_booking(tenant, booking_id, changes)
                if not booking:
                    raise NotFound(
                        f"Booking {booking_id} not found", {"booking_id": booking_id}
                    )
        return booking

    async def _change_status(
        self,
        tenant: TenantScope,
        booking_id: str,
        action: str,
        values: Dict[str, Any],
    ) -> Dict[str, Any]:
        async with self._transaction():
            current = await self.booking_repo.get_booking(tenant, booking_id, for_update=True)
            if not current:
                raise NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id})
            if current["status"] == BookingStatus.CANCELLED.value:
                raise InvalidStatusTransition(
                    f"Cannot {action} booking {booking_id}: it is already cancelled",
                    {"booking_id": booking_id, "status": current["status"]},
                )
            booking = await self.booking_repo.update_booking(tenant, booking_id, values)
            if not booking:
                raise NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id})
        return booking

    async def confirm_booking(
        self,
        tenant: TenantScope,
        booking_id: Any,
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Mark a booking as confirmed by the patient.

        Sets the confirmed flag and stamps confirmed_at; the status is left
        as is. Confirming again re-stamps the timestamp.
        """
        tenant = _require_tenant(tenant)
        booking_id = _parse_id(booking_id)
        values = {"confirmed": True, "confirmed_at": _utcnow()}

        booking = await self._change_status(tenant, booking_id, "confirm", values)

        logger.info(f"Confirmed booking {booking_id}")
        record_booking_event("confirmed", tenant, booking_id, actor, values)
        return booking

    async def cancel_booking(
        self,
        tenant: TenantScope,
        booking_id: Any,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Cancel a scheduled or confirmed booking. Cancelled is terminal."""
        tenant = _require_tenant(tenant)
        booking_id = _parse_id(booking_id)
        values = {
            "status": BookingStatus.CANCELLED.value,
            "cancelled_at": _utcnow(),
            "cancellation_reason": reason,
        }

        booking = await self._change_status(tenant, booking_id, "cancel", values)

        logger.info(f"Cancelled booking {booking_id} (reason: {reason or 'not informed'})")
        record_booking_event("cancelled", tenant, booking_id, actor, values)
        return booking

    async def delete_booking(
        self,
        tenant: TenantScope,
        booking_id: Any,
        actor: Optional[str] = None,
    ) -> None:
        """Permanently remove a booking, whatever its status."""
        tenant = _require_tenant(tenant)
        booking_id = _parse_id(booking_id)

        async with self._transaction():
            deleted = await self.booking_repo.delete_booking(tenant, booking_id)
            if not deleted:
                raise NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id})

        logger.info(f"Deleted booking {booking_id}")
        record_booking_event("deleted", tenant, booking_id, actor)
