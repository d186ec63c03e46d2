"""
Audit Trail

Structured, fire-and-forget records of every booking write. Records go to the
``clinic_api.audit`` logger; handlers attached there decide where they land.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from clinic_api.logging_context import get_request_id
from clinic_api.models.schemas import TenantScope

audit_logger = logging.getLogger("clinic_api.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def record_booking_event(
    action: str,
    tenant: TenantScope,
    booking_id: Any,
    actor: Optional[str] = None,
    changes: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Emit one audit record.

    Args:
        action: created, updated, confirmed, cancelled or deleted
        tenant: Tenant scope of the booking
        booking_id: Affected booking
        actor: Authenticated user performing the change
        changes: Field values written

    Returns:
        The record that was logged
    """
    record = {
        "action": action,
        "booking_id": str(booking_id),
        "client_id": tenant.client_id,
        "company_id": tenant.company_id,
        "actor": actor or "anonymous",
        "request_id": get_request_id(),
        "at": datetime.now(timezone.utc).isoformat(),
        "changes": _jsonable(changes or {}),
    }
    audit_logger.info(f"booking.{action} {record['booking_id']}", extra={"audit": record})
    return record
