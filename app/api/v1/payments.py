"""Payment submission endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db, get_verification_scheduler
from app.core.background_tasks import VerificationScheduler
from app.schemas.payment import SubmitPaymentRequest, SubmitPaymentResponse
from app.services.booking_service import BookingService

router = APIRouter()


@router.post(
    "/submit-payment",
    response_model=SubmitPaymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_payment(
    request: SubmitPaymentRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    scheduler: Annotated[VerificationScheduler, Depends(get_verification_scheduler)],
) -> SubmitPaymentResponse:
    """Submit a transaction hash and start background verification.

    Returns as soon as the hash is reserved; poll
    ``GET /bookings/{booking_id}/status`` for the outcome.
    """
    booking = await service.submit_payment(
        db,
        request.booking_id,
        request.tx_hash,
        request.chain_id,
        request.payment_token.value,
    )
    scheduler.schedule(booking.booking_id, booking.tx_hash, booking.chain_id)
    return SubmitPaymentResponse(booking_id=booking.booking_id, tx_hash=booking.tx_hash)
