"""Admin booking endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service, get_db, require_admin
from app.models.activity import ActivityLog
from app.models.booking import Booking
from app.schemas.booking import (
    ActivityLogResponse,
    AdminBookingActionRequest,
    ApproveBatchFailure,
    ApproveBatchRequest,
    ApproveBatchResponse,
    ApproveBookingRequest,
    ApproveBookingResponse,
    BookingResponse,
)
from app.services.booking_service import ApprovalResult, BookingService

router = APIRouter(dependencies=[Depends(require_admin)])


def _approval_response(result: ApprovalResult) -> ApproveBookingResponse:
    return ApproveBookingResponse(
        booking_id=result.booking.booking_id,
        status=result.booking.status,
        expires_at=result.booking.expires_at,
        email_sent=result.email_sent,
        email_error=result.email_error,
    )


# ============ WAITLIST APPROVALS ============


@router.post("/bookings/approve-batch", response_model=ApproveBatchResponse)
async def approve_batch(
    request: ApproveBatchRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApproveBatchResponse:
    """Approve several waitlisted bookings."""
    batch = await service.approve_batch(db, request.booking_ids, request.session_expiry_minutes)
    return ApproveBatchResponse(
        approved=[_approval_response(r) for r in batch.approved],
        failed=[ApproveBatchFailure(**f) for f in batch.failed],
    )


@router.post("/bookings/{booking_id}/approve", response_model=ApproveBookingResponse)
async def approve_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: ApproveBookingRequest | None = None,
) -> ApproveBookingResponse:
    """Approve a waitlisted booking and email the payment link."""
    minutes = request.session_expiry_minutes if request else None
    return _approval_response(await service.approve_booking(db, booking_id, minutes))


# ============ LIFECYCLE ============


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: AdminBookingActionRequest | None = None,
) -> Booking:
    """Cancel a booking that has no transaction attached."""
    return await service.cancel_booking(db, booking_id, request.reason if request else None)


@router.post("/bookings/{booking_id}/expire", response_model=BookingResponse)
async def expire_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> Booking:
    """Expire an unpaid booking (called by the payment-window sweep)."""
    return await service.expire_booking(db, booking_id)


@router.post("/bookings/{booking_id}/refund", response_model=BookingResponse)
async def refund_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
    request: AdminBookingActionRequest | None = None,
) -> Booking:
    """Record that a confirmed booking was refunded."""
    return await service.mark_refunded(db, booking_id, request.reason if request else None)


@router.get("/bookings/{booking_id}/activity", response_model=list[ActivityLogResponse])
async def get_booking_activity(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    service: Annotated[BookingService, Depends(get_booking_service)],
) -> list[ActivityLog]:
    """Get the booking's activity log, oldest first."""
    return await service.list_activity(db, booking_id)
