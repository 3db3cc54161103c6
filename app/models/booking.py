"""Booking database model."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base
from app.domain.booking_state import BookingStatus

if TYPE_CHECKING:
    from app.models.activity import ActivityLog
    from app.models.stay import Stay
    from app.models.user import User


class Booking(Base):
    """One application for a stay, reused across re-applications."""

    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("user_id", "stay_id", name="uq_bookings_user_stay"),
        # Payment group is all-null or all-set
        CheckConstraint(
            "(payment_token IS NULL AND payment_amount IS NULL"
            " AND amount_base_units IS NULL AND chain_id IS NULL)"
            " OR (payment_token IS NOT NULL AND payment_amount IS NOT NULL"
            " AND amount_base_units IS NOT NULL AND chain_id IS NOT NULL)",
            name="ck_bookings_payment_group",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[str] = mapped_column(
        String(120), unique=True, nullable=False, index=True
    )  # <stay slug>-<epoch ms>
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    stay_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("stays.id"), nullable=False, index=True
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=BookingStatus.WAITLISTED.value, nullable=False, index=True
    )  # WAITLISTED, PENDING, CONFIRMED, CANCELLED, EXPIRED, FAILED, REFUNDED

    # Guest details captured on application
    guest_name: Mapped[str | None] = mapped_column(String(100))
    guest_email: Mapped[str | None] = mapped_column(String(255))
    opt_in_guest_list: Mapped[bool] = mapped_column(Boolean, default=False)  # public guest list

    # Reservation context
    selected_room_name: Mapped[str | None] = mapped_column(String(100))
    selected_room_price_usdc: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    selected_room_price_usdt: Mapped[Decimal | None] = mapped_column(Numeric(18, 6))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Payment lock (all null or all set)
    payment_token: Mapped[str | None] = mapped_column(String(10))  # USDC, USDT
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 18))  # human units
    amount_base_units: Mapped[str | None] = mapped_column(String(78))  # integer string
    chain_id: Mapped[int | None] = mapped_column(Integer)

    # Submitted transaction
    tx_hash: Mapped[str | None] = mapped_column(String(66), index=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # On-chain receipt data recorded on confirmation
    block_number: Mapped[int | None] = mapped_column(BigInteger)
    sender_address: Mapped[str | None] = mapped_column(String(42))
    receiver_address: Mapped[str | None] = mapped_column(String(42))
    gas_used: Mapped[str | None] = mapped_column(String(78))
    total_paid: Mapped[Decimal | None] = mapped_column(Numeric(38, 18))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="bookings")
    stay: Mapped["Stay"] = relationship("Stay", back_populates="bookings")
    activity: Mapped[list["ActivityLog"]] = relationship(
        "ActivityLog", back_populates="booking", order_by="ActivityLog.created_at"
    )

    @property
    def is_verifying(self) -> bool:
        """PENDING with a submitted hash awaiting the verifier."""
        return self.status == BookingStatus.PENDING.value and self.tx_hash is not None
