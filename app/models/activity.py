"""Activity log model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.booking import Booking


class ActivityLog(Base):
    """Append-only record of every booking mutation."""

    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), index=True
    )

    # Event
    action: Mapped[str] = mapped_column(
        String(50), nullable=False, index=True
    )  # application_submitted, waitlist_approved, payment_details_locked, ...
    entity: Mapped[str] = mapped_column(String(30), default="booking", nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON().with_variant(JSONB, "postgresql"))

    # Microsecond precision keeps same-second events ordered
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="activity")
