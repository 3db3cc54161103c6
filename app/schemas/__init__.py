"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    ActivityLogResponse,
    AdminBookingActionRequest,
    ApplicationResponse,
    ApproveBatchFailure,
    ApproveBatchRequest,
    ApproveBatchResponse,
    ApproveBookingRequest,
    ApproveBookingResponse,
    BookingDetailResponse,
    BookingResponse,
    BookingStateResponse,
    StayApplicationCreate,
    StayBookingStatusResponse,
)
from app.schemas.payment import (
    LockPaymentRequest,
    LockPaymentResponse,
    SubmitPaymentRequest,
    SubmitPaymentResponse,
)

__all__ = [
    # Booking
    "ActivityLogResponse",
    "AdminBookingActionRequest",
    "ApplicationResponse",
    "ApproveBatchFailure",
    "ApproveBatchRequest",
    "ApproveBatchResponse",
    "ApproveBookingRequest",
    "ApproveBookingResponse",
    "BookingDetailResponse",
    "BookingResponse",
    "BookingStateResponse",
    "StayApplicationCreate",
    "StayBookingStatusResponse",
    # Payment
    "LockPaymentRequest",
    "LockPaymentResponse",
    "SubmitPaymentRequest",
    "SubmitPaymentResponse",
]
