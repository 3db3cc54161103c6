"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.utils.validators import validate_address


class StayApplicationCreate(BaseModel):
    """Schema for applying to a stay (joining the waitlist)."""

    wallet_address: str = Field(..., min_length=42, max_length=42)
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=100)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    selected_room_name: str | None = Field(None, max_length=100)
    selected_room_price_usdc: Decimal | None = Field(None, gt=0)
    selected_room_price_usdt: Decimal | None = Field(None, gt=0)
    opt_in_guest_list: bool = False

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet(cls, v: str) -> str:
        if not validate_address(v):
            raise ValueError("wallet_address must be 0x followed by 40 hex characters")
        return v.lower()


class ApplicationResponse(BaseModel):
    """Schema for a submitted application."""

    booking_id: str
    status: str
    stay_title: str


class StayBookingStatusResponse(BaseModel):
    """Schema for the guest's booking state on a stay page."""

    has_booking: bool
    status: str | None = None
    booking_id: str | None = None
    confirmed_at: datetime | None = None
    expires_at: datetime | None = None
    can_pay: bool = False


class ApproveBookingRequest(BaseModel):
    """Schema for admin approval of a waitlisted booking."""

    session_expiry_minutes: int | None = Field(None, ge=1, le=60 * 24 * 14)


class ApproveBookingResponse(BaseModel):
    booking_id: str
    status: str
    expires_at: datetime | None
    email_sent: bool
    email_error: str | None = None


class ApproveBatchRequest(ApproveBookingRequest):
    booking_ids: list[str] = Field(..., min_length=1, max_length=100)


class ApproveBatchFailure(BaseModel):
    booking_id: str
    error: str
    current_status: str | None = None


class ApproveBatchResponse(BaseModel):
    approved: list[ApproveBookingResponse]
    failed: list[ApproveBatchFailure]


class AdminBookingActionRequest(BaseModel):
    """Schema for admin cancel/refund."""

    reason: str | None = Field(None, max_length=500)


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    status: str
    guest_name: str | None
    guest_email: str | None
    selected_room_name: str | None
    expires_at: datetime | None

    # Payment lock
    payment_token: str | None
    payment_amount: Decimal | None
    amount_base_units: str | None
    chain_id: int | None

    # Transaction
    tx_hash: str | None
    confirmed_at: datetime | None
    block_number: int | None
    sender_address: str | None
    receiver_address: str | None
    total_paid: Decimal | None

    created_at: datetime
    updated_at: datetime


class BookingDetailResponse(BookingResponse):
    """Booking with its stay summary."""

    stay_id: str
    stay_title: str
    stay_location: str


class BookingStateResponse(BaseModel):
    """Schema for polling a booking during verification."""

    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    status: str
    tx_hash: str | None
    confirmed_at: datetime | None


class ActivityLogResponse(BaseModel):
    """Schema for one activity entry."""

    model_config = ConfigDict(from_attributes=True)

    action: str
    entity: str
    details: dict[str, Any] | None
    created_at: datetime


class GuestListEntry(BaseModel):
    """Public view of a confirmed guest. Carries no contact details."""

    display_name: str | None
    confirmed_at: datetime | None
