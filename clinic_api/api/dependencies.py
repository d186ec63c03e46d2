"""
Request Dependencies

Tenant scope and actor come from headers set by the upstream auth gateway.
There are no defaults: a request without a tenant is rejected.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_api.db.session import bind_tenant, get_db_session
from clinic_api.errors import TenantRequired
from clinic_api.models.schemas import TenantScope
from clinic_api.services.booking import BookingService

logger = logging.getLogger(__name__)


async def get_tenant_scope(
    x_client_id: Optional[str] = Header(default=None),
    x_company_id: Optional[str] = Header(default=None),
) -> TenantScope:
    """
    Build the tenant scope from ``X-Client-Id`` and ``X-Company-Id``.

    Raises:
        TenantRequired: If either header is missing or not a positive integer
    """
    if not x_client_id or not x_company_id:
        logger.warning("Request rejected: tenant headers missing")
        raise TenantRequired(
            "X-Client-Id and X-Company-Id headers are required"
        )

    try:
        return TenantScope(client_id=int(x_client_id), company_id=int(x_company_id))
    except ValueError as e:
        logger.warning(
            f"Request rejected: invalid tenant headers "
            f"(client={x_client_id!r}, company={x_company_id!r})"
        )
        raise TenantRequired(
            "X-Client-Id and X-Company-Id must be positive integers",
            {"client_id": x_client_id, "company_id": x_company_id},
        ) from e


async def get_actor(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """User performing the request, recorded in the audit trail."""
    return x_user_id


async def get_booking_service(
    tenant: TenantScope = Depends(get_tenant_scope),
    db: AsyncSession = Depends(get_db_session),
) -> BookingService:
    """Booking service on a session bound to the request's tenant."""
    bind_tenant(db, tenant)
    return BookingService(db)
