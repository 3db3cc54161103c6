"""Booking endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db
from app.config import settings
from app.core.chains import CHAIN_REGISTRY
from app.models.booking import Booking
from app.schemas.booking import BookingDetailResponse, BookingResponse, BookingStateResponse
from app.schemas.payment import LockPaymentRequest, LockPaymentResponse
from app.services.booking_service import BookingService

router = APIRouter()


def _detail(booking: Booking) -> BookingDetailResponse:
    return BookingDetailResponse(
        **BookingResponse.model_validate(booking).model_dump(),
        stay_id=booking.stay.stay_id,
        stay_title=booking.stay.title,
        stay_location=booking.stay.location,
    )


@router.post("/lock-payment", response_model=LockPaymentResponse)
async def lock_payment(
    request: LockPaymentRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> LockPaymentResponse:
    """Lock token, amount and chain right before the guest pays on-chain."""
    result = await service.lock_payment(
        db,
        request.booking_id,
        request.payment_token.value,
        request.payment_amount,
        request.chain_id,
    )
    booking = result.booking
    token = CHAIN_REGISTRY.get_token(booking.chain_id, booking.payment_token)
    return LockPaymentResponse(
        booking_id=booking.booking_id,
        already_locked=result.already_locked,
        payment_token=booking.payment_token,
        payment_amount=booking.payment_amount,
        amount_base_units=booking.amount_base_units,
        chain_id=booking.chain_id,
        token_address=token.address,
        treasury_address=settings.treasury_address,
    )


@router.get("", response_model=list[BookingDetailResponse])
async def list_my_bookings(
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    wallet: str = Query(..., min_length=42, max_length=42),
) -> list[BookingDetailResponse]:
    """List every booking of a wallet for the guest dashboard."""
    return [_detail(booking) for booking in await service.list_user_bookings(db, wallet)]


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> BookingDetailResponse:
    """Get booking details."""
    return _detail(await service.get_booking(db, booking_id))


@router.get("/{booking_id}/status", response_model=BookingStateResponse)
async def get_booking_state(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> Booking:
    """Poll a booking while its payment is verified."""
    return await service.ledger.find_booking(db, booking_id)
