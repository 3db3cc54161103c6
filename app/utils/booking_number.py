"""Booking id generation utilities."""

import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def generate_booking_id(db: AsyncSession, stay_slug: str) -> str:
    """Generate a unique booking id in format <stay-slug>-<epoch-ms>.

    Args:
        db: Database session for uniqueness check
        stay_slug: Public stay identifier

    Returns:
        str: Unique booking id like 'bali-retreat-1717171717171'
    """
    from app.models.booking import Booking

    millis = int(time.time() * 1000)
    while True:
        booking_id = f"{stay_slug}-{millis}"

        # Check uniqueness
        result = await db.execute(
            select(Booking.id).where(Booking.booking_id == booking_id)
        )
        if not result.scalar_one_or_none():
            return booking_id
        millis += 1
