"""On-chain payment verification.

Polls the chain a payment was locked on for the submitted transaction's
receipt, looks for an ERC-20 Transfer of the locked token to the treasury
for exactly the locked amount, and resolves the booking to CONFIRMED or
FAILED. Runs detached from the request that submitted the hash.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.chains import CHAIN_REGISTRY, ChainRegistry
from app.core.exceptions import ExternalServiceError, InvalidState, NotificationError
from app.database import async_session_maker
from app.domain.booking_state import CLEARED_PAYMENT_FIELDS, BookingStatus
from app.gateways.base import ReceiptLog, TransactionReceipt
from app.models.booking import Booking
from app.services.chain_service import ChainService, chain_service
from app.services.ledger_service import BookingLedger, booking_ledger
from app.services.notification_service import (
    ConfirmationEmail,
    NotificationService,
    notification_service,
)
from app.utils.units import from_base_units
from app.utils.validators import normalize_address, topic_to_address

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class VerificationFailure(str, Enum):
    RECEIPT_NOT_FOUND = "ReceiptNotFound"
    TRANSACTION_REVERTED = "TransactionReverted"
    RECIPIENT_MISMATCH = "RecipientMismatch"
    AMOUNT_MISMATCH = "AmountMismatch"
    VERIFICATION_ERROR = "VerificationError"


@dataclass
class VerificationOutcome:
    booking_id: str
    tx_hash: str
    confirmed: bool = False
    skipped: bool = False
    reason: VerificationFailure | None = None
    detail: str | None = None


@dataclass(frozen=True)
class TransferMatch:
    log: ReceiptLog
    value: int


def _log_value(log: ReceiptLog) -> int | None:
    data = (log.data or "0x")[2:]
    if not data:
        return None
    try:
        return int(data[:64], 16)
    except ValueError:
        return None


def match_transfer(
    receipt: TransactionReceipt,
    token_address: str,
    treasury_address: str,
    amount_base_units: str,
) -> TransferMatch | VerificationFailure:
    """Find a Transfer of the token to the treasury for exactly the amount.

    Returns:
        The matching log, or the failure reason
    """
    token_address = normalize_address(token_address)
    treasury_address = normalize_address(treasury_address)
    expected = int(amount_base_units)

    to_treasury = [
        log
        for log in receipt.logs
        if normalize_address(log.address) == token_address
        and len(log.topics) >= 3
        and log.topics[0].lower() == TRANSFER_TOPIC
        and topic_to_address(log.topics[2]) == treasury_address
    ]
    if not to_treasury:
        return VerificationFailure.RECIPIENT_MISMATCH

    for log in to_treasury:
        value = _log_value(log)
        if value == expected:
            return TransferMatch(log=log, value=value)
    return VerificationFailure.AMOUNT_MISMATCH


class TransactionVerifier:
    """Resolves one submitted transaction to CONFIRMED or FAILED."""

    def __init__(
        self,
        chains: ChainService = chain_service,
        session_factory: async_sessionmaker[AsyncSession] = async_session_maker,
        ledger: BookingLedger = booking_ledger,
        notifier: NotificationService = notification_service,
        registry: ChainRegistry = CHAIN_REGISTRY,
        treasury_address: str | None = None,
        max_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        poll_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.chains = chains
        self.session_factory = session_factory
        self.ledger = ledger
        self.notifier = notifier
        self.registry = registry
        self._treasury_address = treasury_address
        self.max_attempts = max_attempts or settings.verification_max_attempts
        self.retry_delay_seconds = (
            retry_delay_seconds
            if retry_delay_seconds is not None
            else settings.verification_retry_delay_ms / 1000
        )
        self.poll_timeout = poll_timeout or settings.rpc_timeout_seconds
        self._sleep = sleep

    @property
    def treasury_address(self) -> str:
        return normalize_address(self._treasury_address or settings.treasury_address)

    async def verify(self, booking_id: str, tx_hash: str, chain_id: int) -> VerificationOutcome:
        """Run the full verification for a submitted hash."""
        tx_hash = tx_hash.lower()
        outcome = VerificationOutcome(booking_id=booking_id, tx_hash=tx_hash)

        async with self.session_factory() as db:
            booking = await self.ledger.find_booking(db, booking_id)
            if not self._is_awaiting(booking, tx_hash):
                return await self._skip(db, booking, outcome)
            token = booking.payment_token
            amount_base_units = booking.amount_base_units

        token_config = self.registry.get_token(chain_id, token)
        logger.info(
            f"Verifying {tx_hash} for booking {booking_id}: "
            f"{amount_base_units} {token} on chain {chain_id}"
        )

        attempts_left = self.max_attempts
        receipt, attempts_left, last_error = await self._poll_receipt(tx_hash, chain_id, attempts_left)
        if receipt is None:
            detail = f"No receipt after {self.max_attempts} attempts"
            if last_error:
                detail = f"{detail}; last error: {last_error}"
            return await self._fail(outcome, VerificationFailure.RECEIPT_NOT_FOUND, detail)

        if not receipt.status:
            return await self._fail(
                outcome,
                VerificationFailure.TRANSACTION_REVERTED,
                f"Transaction reverted in block {receipt.block_number}",
            )

        required = self.registry.get_chain(chain_id).confirmations_required
        if required > 1 and not await self._await_confirmations(
            receipt, chain_id, required, attempts_left
        ):
            return await self._fail(
                outcome,
                VerificationFailure.RECEIPT_NOT_FOUND,
                f"Fewer than {required} confirmations after {self.max_attempts} attempts",
            )

        match = match_transfer(receipt, token_config.address, self.treasury_address, amount_base_units)
        if isinstance(match, VerificationFailure):
            detail = (
                "No transfer of the locked token to the treasury"
                if match is VerificationFailure.RECIPIENT_MISMATCH
                else f"Transferred amount does not equal {amount_base_units}"
            )
            return await self._fail(outcome, match, detail)

        return await self._confirm(outcome, receipt, match, token_config.decimals)

    def _is_awaiting(self, booking: Booking, tx_hash: str) -> bool:
        return booking.status == BookingStatus.PENDING.value and booking.tx_hash == tx_hash

    async def _poll_receipt(
        self, tx_hash: str, chain_id: int, attempts_left: int
    ) -> tuple[TransactionReceipt | None, int, str | None]:
        last_error = None
        while attempts_left > 0:
            attempts_left -= 1
            try:
                receipt = await asyncio.wait_for(
                    self.chains.get_transaction_receipt(tx_hash, chain_id),
                    timeout=self.poll_timeout,
                )
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.poll_timeout}s"
                logger.warning(f"Receipt poll for {tx_hash} {last_error}")
                receipt = None
            except ExternalServiceError as e:
                last_error = e.detail
                logger.warning(f"Receipt poll for {tx_hash} failed: {e.detail}")
                receipt = None

            if receipt is not None:
                return receipt, attempts_left, last_error
            if attempts_left > 0:
                await self._sleep(self.retry_delay_seconds)
        return None, 0, last_error

    async def _await_confirmations(
        self, receipt: TransactionReceipt, chain_id: int, required: int, attempts_left: int
    ) -> bool:
        while True:
            try:
                head = await asyncio.wait_for(
                    self.chains.get_block_number(chain_id), timeout=self.poll_timeout
                )
                if head - receipt.block_number + 1 >= required:
                    return True
            except (asyncio.TimeoutError, ExternalServiceError) as e:
                logger.warning(f"Head block lookup on chain {chain_id} failed: {e}")
            if attempts_left <= 0:
                return False
            attempts_left -= 1
            await self._sleep(self.retry_delay_seconds)

    async def _skip(
        self, db: AsyncSession, booking: Booking, outcome: VerificationOutcome
    ) -> VerificationOutcome:
        logger.info(
            f"Skipping verification of {outcome.tx_hash}: booking {outcome.booking_id} "
            f"is {booking.status} with hash {booking.tx_hash}"
        )
        await self.ledger.append_activity_log(
            db,
            booking,
            "verification_skipped",
            {"tx_hash": outcome.tx_hash, "status": booking.status},
        )
        await db.commit()
        outcome.skipped = True
        return outcome

    async def _fail(
        self,
        outcome: VerificationOutcome,
        reason: VerificationFailure,
        detail: str,
    ) -> VerificationOutcome:
        """FAILED with the payment group cleared so the guest can lock again."""
        outcome.reason = reason
        outcome.detail = detail
        async with self.session_factory() as db:
            try:
                booking = await self.ledger.conditional_update(
                    db,
                    outcome.booking_id,
                    BookingStatus.PENDING,
                    {"status": BookingStatus.FAILED, **CLEARED_PAYMENT_FIELDS},
                    Booking.tx_hash == outcome.tx_hash,
                )
            except InvalidState:
                await db.rollback()
                return await self._skip(
                    db, await self.ledger.find_booking(db, outcome.booking_id), outcome
                )
            await self.ledger.append_activity_log(
                db,
                booking,
                "payment_failed",
                {"tx_hash": outcome.tx_hash, "reason": reason.value, "detail": detail},
            )
            await db.commit()
        logger.warning(
            f"Payment {outcome.tx_hash} for booking {outcome.booking_id} failed: "
            f"{reason.value} ({detail})"
        )
        return outcome

    async def _confirm(
        self,
        outcome: VerificationOutcome,
        receipt: TransactionReceipt,
        match: TransferMatch,
        decimals: int,
    ) -> VerificationOutcome:
        async with self.session_factory() as db:
            try:
                booking = await self.ledger.conditional_update(
                    db,
                    outcome.booking_id,
                    BookingStatus.PENDING,
                    {
                        "status": BookingStatus.CONFIRMED,
                        "confirmed_at": datetime.now(UTC),
                        "block_number": receipt.block_number,
                        "sender_address": receipt.from_address,
                        "receiver_address": self.treasury_address,
                        "gas_used": str(receipt.gas_used),
                        "total_paid": from_base_units(match.value, decimals),
                    },
                    Booking.tx_hash == outcome.tx_hash,
                )
            except InvalidState:
                await db.rollback()
                return await self._skip(
                    db, await self.ledger.find_booking(db, outcome.booking_id), outcome
                )
            await self.ledger.append_activity_log(
                db,
                booking,
                "payment_confirmed",
                {
                    "tx_hash": outcome.tx_hash,
                    "block_number": receipt.block_number,
                    "sender_address": receipt.from_address,
                    "amount_base_units": str(match.value),
                    "gas_used": str(receipt.gas_used),
                },
            )
            await db.commit()
            outcome.confirmed = True
            logger.info(f"Booking {outcome.booking_id} confirmed by {outcome.tx_hash}")

            try:
                await self._send_confirmation_email(db, outcome.booking_id)
            except NotificationError as e:
                logger.warning(f"Confirmation email for {outcome.booking_id} failed: {e}")
                await self.ledger.append_activity_log(
                    db, booking, "email_failed", {"email": "confirmation", "error": str(e)}
                )
                await db.commit()
        return outcome

    async def _send_confirmation_email(self, db: AsyncSession, booking_id: str) -> None:
        booking = await self.ledger.find_booking(db, booking_id, with_relations=True)
        recipient = booking.guest_email or booking.user.email
        if not recipient:
            raise NotificationError("No email address on file")
        await self.notifier.send_confirmation_email(
            ConfirmationEmail(
                recipient_email=recipient,
                recipient_name=booking.guest_name or booking.user.display_name or "Guest",
                booking_id=booking.booking_id,
                stay_title=booking.stay.title,
                stay_location=booking.stay.location,
                start_date=booking.stay.start_date,
                end_date=booking.stay.end_date,
                paid_amount=booking.total_paid,
                paid_token=booking.payment_token,
                tx_hash=booking.tx_hash,
                chain_id=booking.chain_id,
            )
        )

    async def record_error(self, booking_id: str, tx_hash: str, error: BaseException) -> None:
        """Error channel for a verification that crashed.

        Commits a ``verification_error`` entry, then fails the booking if it
        is still waiting on this hash. The entry survives even when a
        concurrent verifier resolves the booking first.
        """
        tx_hash = tx_hash.lower()
        detail = f"{type(error).__name__}: {error}"
        async with self.session_factory() as db:
            booking = await self.ledger.find_booking(db, booking_id)
            await self.ledger.append_activity_log(
                db, booking, "verification_error", {"tx_hash": tx_hash, "error": detail}
            )
            await db.commit()
            logger.error(f"Verification of {tx_hash} for booking {booking_id} crashed: {detail}")

            if self._is_awaiting(booking, tx_hash):
                try:
                    await self.ledger.conditional_update(
                        db,
                        booking_id,
                        BookingStatus.PENDING,
                        {"status": BookingStatus.FAILED, **CLEARED_PAYMENT_FIELDS},
                        Booking.tx_hash == tx_hash,
                    )
                except InvalidState as exc:
                    await db.rollback()
                    logger.info(
                        f"Booking {booking_id} resolved to {exc.current_status} "
                        f"before the crash of {tx_hash} was recorded"
                    )
                    return
                await self.ledger.append_activity_log(
                    db,
                    booking,
                    "payment_failed",
                    {
                        "tx_hash": tx_hash,
                        "reason": VerificationFailure.VERIFICATION_ERROR.value,
                        "detail": detail,
                    },
                )
                await db.commit()


transaction_verifier = TransactionVerifier()
