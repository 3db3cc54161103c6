"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class UsedTransactionHash(Base):
    """Replay guard: every transaction hash ever accepted for verification.

    The primary key on tx_hash is the atomic check-and-reserve. Rows are
    never deleted, so a hash is burned even if its booking later fails.
    """

    __tablename__ = "used_transaction_hashes"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)  # lowercase
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, index=True
    )
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
