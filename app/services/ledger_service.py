"""Booking ledger: the transactional record store behind every transition.

Every status change goes through ``conditional_update`` so that concurrent
handlers serialize on the row instead of on an in-process lock.
"""

import logging
from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from app.core.exceptions import InvalidState, NotFoundError
from app.domain.booking_state import BookingStatus
from app.models.activity import ActivityLog
from app.models.booking import Booking
from app.models.payment import UsedTransactionHash

logger = logging.getLogger(__name__)


def _status_values(expected: str | BookingStatus | Iterable[str | BookingStatus]) -> list[str]:
    if isinstance(expected, (str, BookingStatus)):
        expected = [expected]
    return [BookingStatus(s).value for s in expected]


class BookingLedger:
    """Data-layer primitives for bookings, activity and the replay guard."""

    async def find_booking(
        self,
        db: AsyncSession,
        booking_id: str,
        *,
        with_relations: bool = False,
    ) -> Booking:
        """Load a booking by its external id.

        Raises:
            NotFoundError: If no booking has this id
        """
        query = select(Booking).where(Booking.booking_id == booking_id)
        if with_relations:
            query = query.options(selectinload(Booking.user), selectinload(Booking.stay))
        result = await db.execute(query.execution_options(populate_existing=True))
        booking = result.scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def find_by_user_and_stay(
        self, db: AsyncSession, user_id: UUID, stay_id: UUID
    ) -> Booking | None:
        result = await db.execute(
            select(Booking)
            .where(Booking.user_id == user_id, Booking.stay_id == stay_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def conditional_update(
        self,
        db: AsyncSession,
        booking_id: str,
        expected_status: str | BookingStatus | Iterable[str | BookingStatus],
        patch: dict[str, Any],
        *conditions: ColumnElement[bool],
    ) -> Booking:
        """Atomically apply ``patch`` if the row still has the expected status.

        Extra SQL ``conditions`` narrow the guard further (e.g. no tx_hash
        attached yet).

        Returns:
            The refreshed booking

        Raises:
            NotFoundError: If the booking does not exist
            InvalidState: If the guard did not match, carrying the current status
        """
        values = {
            key: (value.value if isinstance(value, BookingStatus) else value)
            for key, value in patch.items()
        }
        stmt = (
            update(Booking)
            .where(
                Booking.booking_id == booking_id,
                Booking.status.in_(_status_values(expected_status)),
                *conditions,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)

        booking = await self.find_booking(db, booking_id)
        if result.rowcount != 1:
            logger.info(
                f"Conditional update on {booking_id} lost: expected "
                f"{_status_values(expected_status)}, found {booking.status}"
            )
            raise InvalidState(current_status=booking.status)
        return booking

    async def insert_if_absent(
        self,
        db: AsyncSession,
        tx_hash: str,
        booking: Booking,
        chain_id: int,
    ) -> bool:
        """Reserve a transaction hash in the replay guard.

        Must be the first write of the caller's transaction: on conflict the
        whole transaction is rolled back.

        Returns:
            True if reserved, False if the hash was already used
        """
        db.add(UsedTransactionHash(tx_hash=tx_hash, booking_id=booking.id, chain_id=chain_id))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            return False
        return True

    async def is_hash_used(self, db: AsyncSession, tx_hash: str) -> bool:
        result = await db.execute(
            select(UsedTransactionHash.tx_hash).where(UsedTransactionHash.tx_hash == tx_hash)
        )
        return result.scalar_one_or_none() is not None

    async def append_activity_log(
        self,
        db: AsyncSession,
        booking: Booking,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> ActivityLog:
        """Append one immutable activity entry for a booking."""
        entry = ActivityLog(
            booking_id=booking.id,
            user_id=booking.user_id,
            action=action,
            entity="booking",
            details=details,
        )
        db.add(entry)
        await db.flush()
        return entry

    async def list_activity(self, db: AsyncSession, booking: Booking) -> list[ActivityLog]:
        result = await db.execute(
            select(ActivityLog)
            .where(ActivityLog.booking_id == booking.id)
            .order_by(ActivityLog.created_at.asc())
        )
        return list(result.scalars().all())


booking_ledger = BookingLedger()
