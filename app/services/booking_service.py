"""Booking lifecycle service.

Owns every guest and admin transition of a booking: application, waitlist
approval, the payment lock, transaction submission and the admin
cancel/expire/refund moves. All writes go through the booking ledger's
conditional update so concurrent requests cannot both win.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.chains import CHAIN_REGISTRY, ChainRegistry
from app.core.exceptions import (
    AppException,
    ChainMismatch,
    ConflictError,
    InvalidState,
    NotFoundError,
    NotificationError,
    StayNotAccepting,
    TokenMismatch,
    TransactionAlreadyUsed,
    ValidationError,
)
from app.domain.booking_state import (
    ACTIVE_STATUSES,
    CLEARED_PAYMENT_FIELDS,
    LOCKABLE_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    assert_booking_transition,
    is_payment_locked,
)
from app.models.activity import ActivityLog
from app.models.booking import Booking
from app.models.stay import Stay
from app.models.user import User
from app.services.ledger_service import BookingLedger, booking_ledger
from app.services.notification_service import (
    ApprovalEmail,
    NotificationService,
    notification_service,
)
from app.utils.booking_number import generate_booking_id
from app.utils.units import to_base_units
from app.utils.validators import normalize_address, normalize_tx_hash, validate_address, validate_tx_hash

logger = logging.getLogger(__name__)

# Everything a fresh application resets on a reused row
_RESET_ON_REAPPLY = {
    **CLEARED_PAYMENT_FIELDS,
    "tx_hash": None,
    "confirmed_at": None,
    "expires_at": None,
    "block_number": None,
    "sender_address": None,
    "receiver_address": None,
    "gas_used": None,
    "total_paid": None,
}


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _holds_lock(booking: Booking, token: str, chain_id: int, amount_base_units: str) -> bool:
    return (
        booking.status == BookingStatus.PENDING.value
        and booking.payment_token == token
        and booking.chain_id == chain_id
        and booking.amount_base_units == amount_base_units
    )


@dataclass
class Application:
    """Guest application for a stay."""

    wallet_address: str
    email: str
    display_name: str
    first_name: str | None = None
    last_name: str | None = None
    selected_room_name: str | None = None
    selected_room_price_usdc: Decimal | None = None
    selected_room_price_usdt: Decimal | None = None
    opt_in_guest_list: bool = False


@dataclass
class ApprovalResult:
    booking: Booking
    email_sent: bool = False
    email_error: str | None = None


@dataclass
class BatchApprovalResult:
    approved: list[ApprovalResult] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class LockResult:
    booking: Booking
    already_locked: bool = False


@dataclass
class BookingStatusView:
    """What the stay page needs to render the guest's booking state."""

    has_booking: bool
    status: str | None = None
    booking_id: str | None = None
    confirmed_at: datetime | None = None
    expires_at: datetime | None = None
    can_pay: bool = False


class BookingService:
    """Service for booking lifecycle transitions."""

    def __init__(
        self,
        ledger: BookingLedger = booking_ledger,
        registry: ChainRegistry = CHAIN_REGISTRY,
        notifier: NotificationService = notification_service,
    ):
        self.ledger = ledger
        self.registry = registry
        self.notifier = notifier

    # ==================== APPLICATION ====================

    async def _get_stay(self, db: AsyncSession, stay_slug: str) -> Stay:
        result = await db.execute(select(Stay).where(Stay.stay_id == stay_slug))
        stay = result.scalar_one_or_none()
        if not stay:
            raise NotFoundError("Stay", stay_slug)
        return stay

    async def _upsert_user(self, db: AsyncSession, application: Application) -> User:
        """Find or create the applicant by wallet address."""
        wallet = normalize_address(application.wallet_address)
        email = application.email.strip().lower()

        result = await db.execute(select(User).where(User.wallet_address == wallet))
        user = result.scalar_one_or_none()

        email_owner = (
            await db.execute(select(User).where(User.email == email))
        ).scalar_one_or_none()

        if user:
            user.display_name = application.display_name
            user.first_name = application.first_name
            user.last_name = application.last_name
            # Keep the stored email if the new one belongs to someone else
            if user.email != email and email_owner is None:
                user.email = email
        else:
            if email_owner is not None:
                raise ConflictError(
                    "This email is already registered with another wallet"
                )
            user = User(
                wallet_address=wallet,
                email=email,
                display_name=application.display_name,
                first_name=application.first_name,
                last_name=application.last_name,
            )
            db.add(user)
        await db.flush()
        return user

    async def apply_for_stay(
        self, db: AsyncSession, stay_slug: str, application: Application
    ) -> tuple[Booking, Stay]:
        """Create a WAITLISTED booking, or reset a terminal one for the same guest.

        Raises:
            NotFoundError: Unknown stay
            StayNotAccepting: Stay closed to applications
            ValidationError: Malformed wallet address
            ConflictError: Email registered to another wallet
            InvalidState: Guest already has an active or confirmed booking
        """
        if not validate_address(application.wallet_address.strip()):
            raise ValidationError("Invalid wallet address format")

        stay = await self._get_stay(db, stay_slug)
        if not stay.allow_waitlist:
            raise StayNotAccepting(stay_slug)

        user = await self._upsert_user(db, application)
        guest_fields = {
            "guest_name": application.display_name,
            "guest_email": user.email,
            "selected_room_name": application.selected_room_name,
            "selected_room_price_usdc": application.selected_room_price_usdc,
            "selected_room_price_usdt": application.selected_room_price_usdt,
            "opt_in_guest_list": application.opt_in_guest_list,
        }

        existing = await self.ledger.find_by_user_and_stay(db, user.id, stay.id)
        if existing is not None:
            previous_status = existing.status
            if BookingStatus(previous_status) not in TERMINAL_STATUSES:
                raise InvalidState(
                    current_status=previous_status,
                    detail="You have already applied for this stay",
                )
            booking = await self.ledger.conditional_update(
                db,
                existing.booking_id,
                TERMINAL_STATUSES,
                {"status": BookingStatus.WAITLISTED, **_RESET_ON_REAPPLY, **guest_fields},
            )
            await self.ledger.append_activity_log(
                db,
                booking,
                "application_submitted",
                {"stay_id": stay_slug, "reapplied": True, "previous_status": previous_status},
            )
            logger.info(f"Booking {booking.booking_id} re-opened from {previous_status}")
            return booking, stay

        user_id, stay_id = user.id, stay.id
        booking = Booking(
            booking_id=await generate_booking_id(db, stay_slug),
            user_id=user_id,
            stay_id=stay_id,
            status=BookingStatus.WAITLISTED.value,
            **guest_fields,
        )
        db.add(booking)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("You have already applied for this stay") from None

        await self.ledger.append_activity_log(
            db, booking, "application_submitted", {"stay_id": stay_slug}
        )
        logger.info(f"Booking {booking.booking_id} created for stay {stay_slug}")
        return booking, stay

    async def get_booking_status(
        self, db: AsyncSession, stay_slug: str, wallet_address: str
    ) -> BookingStatusView:
        stay = await self._get_stay(db, stay_slug)
        result = await db.execute(
            select(User).where(User.wallet_address == normalize_address(wallet_address))
        )
        user = result.scalar_one_or_none()
        if not user:
            return BookingStatusView(has_booking=False)

        booking = await self.ledger.find_by_user_and_stay(db, user.id, stay.id)
        if not booking:
            return BookingStatusView(has_booking=False)

        expires_at = _as_utc(booking.expires_at)
        can_pay = (
            booking.status == BookingStatus.PENDING.value
            and booking.tx_hash is None
            and expires_at is not None
            and expires_at > datetime.now(UTC)
        )
        return BookingStatusView(
            has_booking=True,
            status=booking.status,
            booking_id=booking.booking_id,
            confirmed_at=_as_utc(booking.confirmed_at),
            expires_at=expires_at,
            can_pay=can_pay,
        )

    # ==================== ADMIN APPROVAL ====================

    async def approve_booking(
        self,
        db: AsyncSession,
        booking_id: str,
        session_expiry_minutes: int | None = None,
    ) -> ApprovalResult:
        """Move a WAITLISTED booking onto the payment track.

        The approval email is best effort: a delivery failure is reported in
        the result and the activity log, never rolled back.
        """
        minutes = session_expiry_minutes or settings.payment_window_minutes
        expires_at = datetime.now(UTC) + timedelta(minutes=minutes)

        booking = await self.ledger.conditional_update(
            db,
            booking_id,
            BookingStatus.WAITLISTED,
            {"status": BookingStatus.PENDING, "expires_at": expires_at},
        )
        await self.ledger.append_activity_log(
            db,
            booking,
            "waitlist_approved",
            {"expires_at": expires_at.isoformat(), "session_expiry_minutes": minutes},
        )
        await db.commit()
        logger.info(f"Booking {booking_id} approved, payment window {minutes} min")

        result = ApprovalResult(booking=booking)
        try:
            await self._send_approval_email(db, booking_id, expires_at)
            result.email_sent = True
        except NotificationError as e:
            result.email_error = str(e)
            logger.warning(f"Approval email for {booking_id} failed: {e}")
            await self.ledger.append_activity_log(
                db, booking, "email_failed", {"email": "approval", "error": str(e)}
            )
            await db.commit()

        result.booking = await self.ledger.find_booking(db, booking_id)
        return result

    async def _send_approval_email(
        self, db: AsyncSession, booking_id: str, expires_at: datetime
    ) -> None:
        booking = await self.ledger.find_booking(db, booking_id, with_relations=True)
        recipient = booking.guest_email or booking.user.email
        if not recipient:
            raise NotificationError("No email address on file")

        stay = booking.stay
        # Display only; the guest chooses the amount when locking
        amount = booking.selected_room_price_usdc or stay.price_usdc
        await self.notifier.send_approval_email(
            ApprovalEmail(
                recipient_email=recipient,
                recipient_name=booking.guest_name or booking.user.display_name or "Guest",
                booking_id=booking.booking_id,
                stay_title=stay.title,
                stay_location=stay.location,
                start_date=stay.start_date,
                end_date=stay.end_date,
                payment_amount=amount,
                payment_token="USDC",
                payment_url=f"{settings.frontend_base_url}/booking/{booking.booking_id}",
                expires_at=expires_at,
            )
        )

    async def approve_batch(
        self,
        db: AsyncSession,
        booking_ids: list[str],
        session_expiry_minutes: int | None = None,
    ) -> BatchApprovalResult:
        """Approve several bookings; one failure does not stop the rest.

        Each approval commits on its own. A rejected id has written nothing,
        so there is nothing to roll back.
        """
        batch = BatchApprovalResult()
        for booking_id in booking_ids:
            try:
                batch.approved.append(
                    await self.approve_booking(db, booking_id, session_expiry_minutes)
                )
            except AppException as e:
                failure: dict[str, Any] = {"booking_id": booking_id, "error": e.detail}
                if isinstance(e, InvalidState):
                    failure["current_status"] = e.current_status
                batch.failed.append(failure)
        return batch

    # ==================== PAYMENT LOCK ====================

    async def lock_payment(
        self,
        db: AsyncSession,
        booking_id: str,
        token: str,
        amount: Decimal,
        chain_id: int,
    ) -> LockResult:
        """Fix the token, amount and chain the guest is about to pay with.

        Re-locking the identical details is a no-op. Any other change to a
        locked booking is rejected.

        Raises:
            UnsupportedChain / UnsupportedToken: Not in the chain registry
            ValidationError: Non-positive amount or too many decimals
            InvalidState: Status not lockable, or locked to other details
        """
        token_config = self.registry.get_token(chain_id, token)
        amount_base_units = to_base_units(amount, token_config.decimals)

        booking = await self.ledger.find_booking(db, booking_id)

        if is_payment_locked(booking):
            if _holds_lock(booking, token, chain_id, amount_base_units):
                return LockResult(booking=booking, already_locked=True)
            raise InvalidState(
                current_status=booking.status,
                detail="Payment details are already locked for this booking",
            )

        if BookingStatus(booking.status) not in LOCKABLE_STATUSES:
            raise InvalidState(
                current_status=booking.status,
                detail=f"Cannot lock payment. Booking status is: {booking.status}",
            )

        try:
            booking = await self.ledger.conditional_update(
                db,
                booking_id,
                LOCKABLE_STATUSES,
                {
                    "status": BookingStatus.PENDING,
                    "payment_token": token,
                    "payment_amount": Decimal(str(amount)),
                    "amount_base_units": amount_base_units,
                    "chain_id": chain_id,
                    "tx_hash": None,
                    "confirmed_at": None,
                },
                Booking.payment_token.is_(None),
            )
        except InvalidState:
            # A concurrent lock won; the same details still count as locked
            winner = await self.ledger.find_booking(db, booking_id)
            if _holds_lock(winner, token, chain_id, amount_base_units):
                return LockResult(booking=winner, already_locked=True)
            raise
        await self.ledger.append_activity_log(
            db,
            booking,
            "payment_details_locked",
            {
                "token": token,
                "amount": str(amount),
                "amount_base_units": amount_base_units,
                "chain_id": chain_id,
            },
        )
        logger.info(
            f"Booking {booking_id} locked: {amount} {token} on chain {chain_id} "
            f"({amount_base_units} base units)"
        )
        return LockResult(booking=booking)

    # ==================== SUBMISSION ====================

    async def submit_payment(
        self,
        db: AsyncSession,
        booking_id: str,
        tx_hash: str,
        chain_id: int,
        token: str,
    ) -> Booking:
        """Attach a transaction hash to a locked booking.

        The replay guard insert is the first write of the transaction and the
        booking update the second; both commit together or not at all. The
        caller schedules verification after this returns.

        Raises:
            ValidationError: Malformed hash
            UnsupportedChain: Chain not in the registry
            TokenMismatch / ChainMismatch: Differs from the lock
            InvalidState: Not PENDING, not locked, or a hash is already attached
            TransactionAlreadyUsed: Hash accepted before
        """
        if not validate_tx_hash(tx_hash.strip()):
            raise ValidationError("Invalid transaction hash format")
        tx_hash = normalize_tx_hash(tx_hash)
        self.registry.get_chain(chain_id)

        booking = await self.ledger.find_booking(db, booking_id)
        if booking.status != BookingStatus.PENDING.value:
            raise InvalidState(
                current_status=booking.status,
                detail=f"Cannot submit payment. Booking status is: {booking.status}",
            )
        if not is_payment_locked(booking):
            raise InvalidState(
                current_status=booking.status,
                detail="Payment details must be locked before submitting a transaction",
            )
        if booking.payment_token != token:
            raise TokenMismatch(booking.payment_token, token)
        if booking.chain_id != chain_id:
            raise ChainMismatch(booking.chain_id, chain_id)
        if booking.tx_hash is not None:
            raise InvalidState(
                current_status=booking.status,
                detail="A transaction is already being verified for this booking",
            )

        if not await self.ledger.insert_if_absent(db, tx_hash, booking, chain_id):
            logger.warning(f"Replay rejected for booking {booking_id}: {tx_hash}")
            raise TransactionAlreadyUsed(tx_hash)

        try:
            booking = await self.ledger.conditional_update(
                db,
                booking_id,
                BookingStatus.PENDING,
                {"tx_hash": tx_hash},
                Booking.tx_hash.is_(None),
                Booking.payment_token == token,
                Booking.chain_id == chain_id,
            )
        except InvalidState:
            # Nothing is burned if the booking moved underneath us
            await db.rollback()
            raise

        await self.ledger.append_activity_log(
            db,
            booking,
            "payment_submitted",
            {
                "tx_hash": tx_hash,
                "chain_id": chain_id,
                "token": token,
                "amount_base_units": booking.amount_base_units,
            },
        )
        await db.commit()
        logger.info(f"Booking {booking_id} submitted {tx_hash} on chain {chain_id}")
        return booking

    # ==================== ADMIN TRANSITIONS ====================

    async def cancel_booking(
        self, db: AsyncSession, booking_id: str, reason: str | None = None
    ) -> Booking:
        """Cancel a waitlisted or unpaid booking."""
        booking = await self.ledger.find_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.CANCELLED)
        booking = await self.ledger.conditional_update(
            db,
            booking_id,
            ACTIVE_STATUSES,
            {"status": BookingStatus.CANCELLED, **CLEARED_PAYMENT_FIELDS},
            Booking.tx_hash.is_(None),
        )
        await self.ledger.append_activity_log(db, booking, "booking_cancelled", {"reason": reason})
        return booking

    async def expire_booking(self, db: AsyncSession, booking_id: str) -> Booking:
        """Close an unpaid PENDING booking whose payment window ran out."""
        booking = await self.ledger.find_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.EXPIRED)
        booking = await self.ledger.conditional_update(
            db,
            booking_id,
            BookingStatus.PENDING,
            {"status": BookingStatus.EXPIRED, **CLEARED_PAYMENT_FIELDS},
            Booking.tx_hash.is_(None),
        )
        await self.ledger.append_activity_log(
            db,
            booking,
            "booking_expired",
            {"expires_at": booking.expires_at.isoformat() if booking.expires_at else None},
        )
        return booking

    async def mark_refunded(
        self, db: AsyncSession, booking_id: str, reason: str | None = None
    ) -> Booking:
        """Record an off-chain refund of a confirmed booking.

        The hash leaves the booking but stays burned in the replay guard.
        """
        booking = await self.ledger.find_booking(db, booking_id)
        assert_booking_transition(booking.status, BookingStatus.REFUNDED)
        refunded_hash = booking.tx_hash
        booking = await self.ledger.conditional_update(
            db,
            booking_id,
            BookingStatus.CONFIRMED,
            {"status": BookingStatus.REFUNDED, "tx_hash": None},
        )
        await self.ledger.append_activity_log(
            db, booking, "booking_refunded", {"tx_hash": refunded_hash, "reason": reason}
        )
        return booking

    # ==================== READS ====================

    async def get_booking(self, db: AsyncSession, booking_id: str) -> Booking:
        return await self.ledger.find_booking(db, booking_id, with_relations=True)

    async def list_activity(self, db: AsyncSession, booking_id: str) -> list[ActivityLog]:
        booking = await self.ledger.find_booking(db, booking_id)
        return await self.ledger.list_activity(db, booking)

    async def list_guest_list(self, db: AsyncSession, stay_slug: str) -> list[Booking]:
        """Confirmed bookings whose guests opted into the public guest list.

        Ordered by confirmation time, earliest first.

        Raises:
            NotFoundError: Unknown stay
        """
        stay = await self._get_stay(db, stay_slug)
        result = await db.execute(
            select(Booking)
            .options(selectinload(Booking.user))
            .where(
                Booking.stay_id == stay.id,
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.opt_in_guest_list.is_(True),
            )
            .order_by(Booking.confirmed_at.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_user_bookings(self, db: AsyncSession, wallet_address: str) -> list[Booking]:
        """Every booking of a wallet, newest first. Unknown wallets have none."""
        result = await db.execute(
            select(Booking)
            .join(User, Booking.user_id == User.id)
            .options(selectinload(Booking.stay))
            .where(User.wallet_address == normalize_address(wallet_address))
            .order_by(Booking.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


booking_service = BookingService()
