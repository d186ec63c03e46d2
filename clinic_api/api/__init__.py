"""
HTTP API package.

Exports the bookings router and the error handler registration.
"""

from clinic_api.api.bookings import router as bookings_router
from clinic_api.api.handlers import register_exception_handlers

__all__ = ["bookings_router", "register_exception_handlers"]
