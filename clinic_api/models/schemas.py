"""
Pydantic Schemas

Data validation and serialization schemas for API and database models.
"""

import datetime as dt
import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from clinic_api.utils.timezone import to_utc_iso


class BookingStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Statuses that occupy the professional's time
ACTIVE_STATUSES = (BookingStatus.SCHEDULED.value, BookingStatus.CONFIRMED.value)

# Computed by the store, never accepted as input
DERIVED_FIELDS = frozenset({"duration_minutes", "final_price"})

# Changed only through the confirm / cancel actions
STATUS_FIELDS = frozenset({
    "status",
    "confirmed",
    "confirmed_at",
    "cancelled_at",
    "cancellation_reason",
})

# Fields whose change requires a new conflict check
TIMING_FIELDS = frozenset({"start_at", "end_at", "professional_id"})


class TenantScope(BaseModel):
    """(client, company) pair isolating one customer's data."""

    model_config = ConfigDict(frozen=True)

    client_id: int = Field(..., ge=1)
    company_id: int = Field(..., ge=1)


def _reject_protected(data: Any) -> Any:
    if isinstance(data, dict):
        derived = sorted(DERIVED_FIELDS & set(data))
        if derived:
            raise ValueError(
                f"Derived fields cannot be set: {', '.join(derived)}"
            )
        status_fields = sorted(STATUS_FIELDS & set(data))
        if status_fields:
            raise ValueError(
                f"Status fields are changed through confirm/cancel: {', '.join(status_fields)}"
            )
    return data


class BookingCreate(BaseModel):
    """Payload for creating a booking."""

    model_config = ConfigDict(extra="forbid")

    lead_id: uuid.UUID
    professional_id: uuid.UUID
    product_id: int = Field(..., ge=1)
    start_at: str = Field(..., description="ISO 8601, e.g. 2025-11-28T08:00:00-03:00")
    end_at: str = Field(..., description="ISO 8601, e.g. 2025-11-28T09:00:00-03:00")
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    discount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    notes: Optional[str] = Field(default=None, max_length=2000)
    internal_notes: Optional[str] = Field(default=None, max_length=2000)
    user_timezone: Optional[str] = Field(
        default=None,
        description="IANA zone applied to timestamps that carry no offset",
    )

    @model_validator(mode="before")
    @classmethod
    def check_protected(cls, data: Any) -> Any:
        return _reject_protected(data)

    @model_validator(mode="after")
    def check_discount(self) -> "BookingCreate":
        if self.discount > self.price:
            raise ValueError("discount cannot exceed price")
        return self


class BookingUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""

    model_config = ConfigDict(extra="forbid")

    lead_id: Optional[uuid.UUID] = None
    professional_id: Optional[uuid.UUID] = None
    product_id: Optional[int] = Field(default=None, ge=1)
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    discount: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    notes: Optional[str] = Field(default=None, max_length=2000)
    internal_notes: Optional[str] = Field(default=None, max_length=2000)
    user_timezone: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def check_protected(cls, data: Any) -> Any:
        return _reject_protected(data)

    @field_validator(
        "lead_id", "professional_id", "product_id", "start_at", "end_at", "price", "discount"
    )
    @classmethod
    def not_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("field cannot be null")
        return v


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BookingResponse(BaseModel):
    id: uuid.UUID
    client_id: int
    company_id: int
    lead_id: uuid.UUID
    professional_id: uuid.UUID
    product_id: int
    start_at: datetime
    end_at: datetime
    duration_minutes: Optional[int] = None
    price: Decimal
    discount: Decimal
    final_price: Optional[Decimal] = None
    status: BookingStatus
    confirmed: bool
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer(
        "start_at",
        "end_at",
        "confirmed_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    )
    def serialize_instant(self, value: Optional[datetime]) -> Optional[str]:
        return to_utc_iso(value) if value is not None else None


class AvailabilityResponse(BaseModel):
    success: bool = True
    professional_id: uuid.UUID
    date: dt.date
    duration_minutes: int
    timezone: str
    slots: List[str]


T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Generic response wrapper."""

    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None
    total: Optional[int] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
