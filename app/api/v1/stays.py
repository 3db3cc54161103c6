"""Stay application endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db
from app.schemas.booking import (
    ApplicationResponse,
    GuestListEntry,
    StayApplicationCreate,
    StayBookingStatusResponse,
)
from app.services.booking_service import Application, BookingService

router = APIRouter()


@router.post(
    "/{stay_id}/apply",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_for_stay(
    stay_id: str,
    request: StayApplicationCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApplicationResponse:
    """Apply for a stay (join the waitlist)."""
    booking, stay = await service.apply_for_stay(
        db, stay_id, Application(**request.model_dump())
    )
    return ApplicationResponse(
        booking_id=booking.booking_id, status=booking.status, stay_title=stay.title
    )


@router.get("/{stay_id}/booking-status", response_model=StayBookingStatusResponse)
async def get_booking_status(
    stay_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    wallet: str = Query(..., min_length=42, max_length=42),
) -> StayBookingStatusResponse:
    """Get the wallet's booking state for a stay."""
    view = await service.get_booking_status(db, stay_id, wallet)
    return StayBookingStatusResponse(**view.__dict__)


@router.get("/{stay_id}/guest-list", response_model=list[GuestListEntry])
async def get_guest_list(
    stay_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> list[GuestListEntry]:
    """Confirmed guests who opted into the public guest list."""
    bookings = await service.list_guest_list(db, stay_id)
    return [
        GuestListEntry(display_name=booking.user.display_name, confirmed_at=booking.confirmed_at)
        for booking in bookings
    ]
