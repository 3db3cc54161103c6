"""Payment-related Pydantic schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field

from app.domain.booking_state import PaymentToken
from app.utils.units import MAX_AMOUNT


class LockPaymentRequest(BaseModel):
    """Schema for locking token, amount and chain before paying."""

    booking_id: str = Field(..., min_length=1)
    payment_token: PaymentToken
    payment_amount: Decimal = Field(..., gt=0, lt=MAX_AMOUNT, max_digits=38, decimal_places=18)
    chain_id: int


class LockPaymentResponse(BaseModel):
    booking_id: str
    status: str = "locked"
    already_locked: bool = False
    payment_token: str
    payment_amount: Decimal
    amount_base_units: str
    chain_id: int
    token_address: str
    treasury_address: str


class SubmitPaymentRequest(BaseModel):
    """Schema for submitting an on-chain transaction hash."""

    booking_id: str = Field(..., min_length=1)
    tx_hash: str = Field(..., pattern=r"^0x[a-fA-F0-9]{64}$")
    chain_id: int
    payment_token: PaymentToken


class SubmitPaymentResponse(BaseModel):
    booking_id: str
    tx_hash: str
    status: str = "verifying"
    message: str = "Transaction submitted. Verification in progress."
