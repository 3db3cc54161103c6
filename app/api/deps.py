"""API dependencies for admin access and shared services."""

import secrets
from typing import Annotated

from fastapi import Depends, Header

from app.config import settings
from app.core.background_tasks import VerificationScheduler, verification_scheduler
from app.core.exceptions import AuthorizationError
from app.database import get_db
from app.services.booking_service import BookingService, booking_service

__all__ = [
    "get_db",
    "get_booking_service",
    "get_verification_scheduler",
    "require_admin",
]


async def require_admin(
    x_admin_key: Annotated[str | None, Header()] = None,
) -> None:
    """Check the admin API key.

    Session-based admin login lives outside this service; the key is the
    boundary it hands over.
    """
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        raise AuthorizationError("Admin access required")


def get_booking_service() -> BookingService:
    return booking_service


def get_verification_scheduler() -> VerificationScheduler:
    return verification_scheduler
