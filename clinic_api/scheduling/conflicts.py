"""
Conflict Guard

The single gate every create and time-affecting update passes before it
writes. A booking conflicts when it is scheduled or confirmed for the same
professional and its interval overlaps the proposed one (half-open).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from clinic_api.db.repository import BookingRepository
from clinic_api.errors import SlotUnavailable, ValidationError
from clinic_api.models.schemas import TenantScope
from clinic_api.utils.timezone import to_utc_iso

logger = logging.getLogger(__name__)


class ConflictGuard:
    def __init__(self, booking_repo: BookingRepository):
        self.booking_repo = booking_repo

    async def find_conflicts(
        self,
        tenant: TenantScope,
        professional_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if start_at >= end_at:
            raise ValidationError(
                "start_at must be before end_at",
                {"start_at": to_utc_iso(start_at), "end_at": to_utc_iso(end_at)},
            )
        return await self.booking_repo.find_conflicts(
            tenant,
            professional_id,
            start_at,
            end_at,
            exclude_booking_id=exclude_booking_id,
        )

    async def is_available(
        self,
        tenant: TenantScope,
        professional_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """True iff no active booking of the professional overlaps the interval."""
        conflicts = await self.find_conflicts(
            tenant, professional_id, start_at, end_at, exclude_booking_id
        )
        return not conflicts

    async def ensure_available(
        self,
        tenant: TenantScope,
        professional_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> None:
        """
        Raise SlotUnavailable if the interval is taken.

        The error lists the conflicting intervals so the caller can pick
        another time.
        """
        conflicts = await self.find_conflicts(
            tenant, professional_id, start_at, end_at, exclude_booking_id
        )
        if not conflicts:
            return

        logger.warning(
            f"Slot {to_utc_iso(start_at)} - {to_utc_iso(end_at)} unavailable for "
            f"professional {professional_id}: {len(conflicts)} conflicting booking(s)"
        )
        raise SlotUnavailable(
            "The requested time is not available. "
            "Another booking already exists in this period.",
            conflicts=[
                {
                    "booking_id": str(conflict["id"]),
                    "start_at": to_utc_iso(conflict["start_at"]),
                    "end_at": to_utc_iso(conflict["end_at"]),
                }
                for conflict in conflicts
            ],
        )
