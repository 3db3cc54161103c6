"""Stay (event slot) model."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base

if TYPE_CHECKING:
    from app.models.booking import Booking


class Stay(Base):
    """A limited-slot stay guests apply for."""

    __tablename__ = "stays"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    stay_id: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )  # public slug, e.g. "lisbon-2026"
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    location: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Base prices in human token units
    price_usdc: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    price_usdt: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    slots_total: Mapped[int] = mapped_column(Integer, default=0)
    allow_waitlist: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    bookings: Mapped[list["Booking"]] = relationship("Booking", back_populates="stay")
