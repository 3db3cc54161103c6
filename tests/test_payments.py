"""Payment lock and transaction submission tests."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    ChainMismatch,
    InvalidState,
    TokenMismatch,
    TransactionAlreadyUsed,
    UnsupportedChain,
    UnsupportedToken,
    ValidationError,
)
from app.models.payment import UsedTransactionHash
from app.services.booking_service import BookingService
from app.services.ledger_service import BookingLedger
from conftest import (
    ARBITRUM,
    apply,
    approved_booking,
    locked_booking,
    new_tx_hash,
)

pytestmark = pytest.mark.usefixtures("stay")

BASE = 8453
BSC = 56


async def _actions(service, db, booking_id):
    return [entry.action for entry in await service.list_activity(db, booking_id)]


# ==================== LOCK ====================


async def test_lock_converts_amount_to_base_units(db, service):
    booking = await approved_booking(db, service)

    result = await service.lock_payment(db, booking.booking_id, "USDC", Decimal("300"), ARBITRUM)
    await db.commit()

    assert not result.already_locked
    locked = result.booking
    assert locked.status == "PENDING"
    assert (locked.payment_token, locked.chain_id) == ("USDC", ARBITRUM)
    assert locked.amount_base_units == "300000000"
    assert locked.payment_amount == Decimal("300")


async def test_lock_uses_chain_specific_decimals(db, service):
    booking = await locked_booking(db, service, token="USDT", amount=Decimal("0.1"), chain_id=BSC)
    assert booking.amount_base_units == "100000000000000000"


async def test_identical_relock_is_a_noop(db, service):
    booking = await locked_booking(db, service)

    result = await service.lock_payment(db, booking.booking_id, "USDC", Decimal("300.0"), ARBITRUM)

    assert result.already_locked
    actions = await _actions(service, db, booking.booking_id)
    assert actions.count("payment_details_locked") == 1


@pytest.mark.parametrize(
    "token,amount,chain_id",
    [
        ("USDT", Decimal("300"), ARBITRUM),
        ("USDC", Decimal("250"), ARBITRUM),
        ("USDC", Decimal("300"), BASE),
    ],
)
async def test_relock_with_other_details_is_rejected(db, service, token, amount, chain_id):
    booking = await locked_booking(db, service)

    with pytest.raises(InvalidState) as exc_info:
        await service.lock_payment(db, booking.booking_id, token, amount, chain_id)
    assert exc_info.value.current_status == "PENDING"

    current = await service.get_booking(db, booking.booking_id)
    assert current.amount_base_units == "300000000"
    assert current.chain_id == ARBITRUM


async def test_lock_rejects_unsupported_pairs(db, service):
    booking = await approved_booking(db, service)
    with pytest.raises(UnsupportedToken):
        await service.lock_payment(db, booking.booking_id, "USDT", Decimal("300"), BASE)
    with pytest.raises(UnsupportedChain):
        await service.lock_payment(db, booking.booking_id, "USDC", Decimal("300"), 1)
    with pytest.raises(ValidationError):
        await service.lock_payment(db, booking.booking_id, "USDC", Decimal("0.0000001"), ARBITRUM)


async def test_lock_requires_approval(db, service):
    booking = await apply(db, service)
    with pytest.raises(InvalidState) as exc_info:
        await service.lock_payment(db, booking.booking_id, "USDC", Decimal("300"), ARBITRUM)
    assert exc_info.value.current_status == "WAITLISTED"


async def test_lock_again_after_failed_verification(db, service, verifier):
    booking = await locked_booking(db, service)
    tx_hash = new_tx_hash()
    await service.submit_payment(db, booking.booking_id, tx_hash, ARBITRUM, "USDC")
    await verifier.verify(booking.booking_id, tx_hash, ARBITRUM)

    result = await service.lock_payment(db, booking.booking_id, "USDT", Decimal("300"), ARBITRUM)
    await db.commit()

    assert result.booking.status == "PENDING"
    assert result.booking.payment_token == "USDT"
    assert result.booking.tx_hash is None


async def test_lock_rejects_oversized_amount(db, service):
    booking = await approved_booking(db, service)
    with pytest.raises(ValidationError):
        await service.lock_payment(db, booking.booking_id, "USDC", Decimal("1e80"), ARBITRUM)

    current = await service.get_booking(db, booking.booking_id)
    assert current.amount_base_units is None


class RacingLedger(BookingLedger):
    """Commits a competing lock right before this ledger's guarded update."""

    def __init__(self, session_factory, competitor, token):
        self.session_factory = session_factory
        self.competitor = competitor
        self.token = token

    async def conditional_update(self, db, booking_id, *args, **kwargs):
        async with self.session_factory() as other:
            await self.competitor.lock_payment(other, booking_id, self.token, Decimal("300"), ARBITRUM)
            await other.commit()
        return await super().conditional_update(db, booking_id, *args, **kwargs)


async def test_identical_lock_losing_the_race_is_idempotent(db, session_factory, service, notifier):
    booking = await approved_booking(db, service)
    racing = BookingService(ledger=RacingLedger(session_factory, service, "USDC"), notifier=notifier)

    result = await racing.lock_payment(db, booking.booking_id, "USDC", Decimal("300"), ARBITRUM)
    await db.commit()

    assert result.already_locked
    assert result.booking.amount_base_units == "300000000"
    actions = await _actions(service, db, booking.booking_id)
    assert actions.count("payment_details_locked") == 1


async def test_different_lock_losing_the_race_is_rejected(db, session_factory, service, notifier):
    booking_id = (await approved_booking(db, service)).booking_id
    racing = BookingService(ledger=RacingLedger(session_factory, service, "USDT"), notifier=notifier)

    with pytest.raises(InvalidState) as exc_info:
        await racing.lock_payment(db, booking_id, "USDC", Decimal("300"), ARBITRUM)
    await db.rollback()

    assert exc_info.value.current_status == "PENDING"
    assert (await service.get_booking(db, booking_id)).payment_token == "USDT"


async def test_concurrent_identical_locks_both_succeed(session_factory, service):
    for _ in range(20):
        async with session_factory() as setup:
            booking = await approved_booking(setup, service)

        async def lock():
            async with session_factory() as session:
                result = await service.lock_payment(
                    session, booking.booking_id, "USDC", Decimal("300"), ARBITRUM
                )
                await session.commit()
                return result.already_locked

        results = await asyncio.gather(lock(), lock())
        assert sorted(results) == [False, True]


# ==================== SUBMIT ====================


async def test_submit_attaches_hash_and_burns_it(db, service, ledger):
    booking = await locked_booking(db, service)
    tx_hash = "0x" + "AB" * 32

    submitted = await service.submit_payment(db, booking.booking_id, tx_hash, ARBITRUM, "USDC")

    assert submitted.status == "PENDING"
    assert submitted.tx_hash == tx_hash.lower()
    assert submitted.is_verifying
    assert await ledger.is_hash_used(db, tx_hash.lower())
    assert (await _actions(service, db, booking.booking_id))[-1] == "payment_submitted"


async def test_submit_rejects_malformed_hash(db, service):
    booking = await locked_booking(db, service)
    with pytest.raises(ValidationError):
        await service.submit_payment(db, booking.booking_id, "0xdeadbeef", ARBITRUM, "USDC")


async def test_submit_must_match_lock(db, service):
    booking = await locked_booking(db, service)
    with pytest.raises(TokenMismatch):
        await service.submit_payment(db, booking.booking_id, new_tx_hash(), ARBITRUM, "USDT")
    with pytest.raises(ChainMismatch):
        await service.submit_payment(db, booking.booking_id, new_tx_hash(), BASE, "USDC")


async def test_submit_without_lock_is_rejected(db, service):
    booking = await approved_booking(db, service)
    with pytest.raises(InvalidState):
        await service.submit_payment(db, booking.booking_id, new_tx_hash(), ARBITRUM, "USDC")


async def test_second_hash_for_same_booking_is_rejected(db, service, ledger):
    booking = await locked_booking(db, service)
    await service.submit_payment(db, booking.booking_id, new_tx_hash(), ARBITRUM, "USDC")

    other = new_tx_hash()
    with pytest.raises(InvalidState):
        await service.submit_payment(db, booking.booking_id, other, ARBITRUM, "USDC")
    assert not await ledger.is_hash_used(db, other)


async def test_replayed_hash_is_rejected_and_booking_untouched(db, service):
    first = await locked_booking(db, service)
    second = await locked_booking(db, service)
    tx_hash = new_tx_hash()
    await service.submit_payment(db, first.booking_id, tx_hash, ARBITRUM, "USDC")

    with pytest.raises(TransactionAlreadyUsed):
        await service.submit_payment(db, second.booking_id, tx_hash, ARBITRUM, "USDC")

    untouched = await service.get_booking(db, second.booking_id)
    assert untouched.tx_hash is None
    assert untouched.status == "PENDING"
    assert "payment_submitted" not in await _actions(service, db, second.booking_id)


async def test_hash_stays_burned_after_failure(db, service, verifier):
    booking = await locked_booking(db, service)
    tx_hash = new_tx_hash()
    await service.submit_payment(db, booking.booking_id, tx_hash, ARBITRUM, "USDC")
    await verifier.verify(booking.booking_id, tx_hash, ARBITRUM)
    await service.lock_payment(db, booking.booking_id, "USDC", Decimal("300"), ARBITRUM)
    await db.commit()

    with pytest.raises(TransactionAlreadyUsed):
        await service.submit_payment(db, booking.booking_id, tx_hash, ARBITRUM, "USDC")


async def test_concurrent_submissions_of_one_hash(session_factory, service):
    """Two bookings racing with the same hash: exactly one wins, every time."""
    for _ in range(100):
        async with session_factory() as setup:
            first = await locked_booking(setup, service)
            second = await locked_booking(setup, service)
        tx_hash = new_tx_hash()

        async def submit(booking_id):
            async with session_factory() as session:
                return await service.submit_payment(session, booking_id, tx_hash, ARBITRUM, "USDC")

        results = await asyncio.gather(
            submit(first.booking_id), submit(second.booking_id), return_exceptions=True
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1 and isinstance(losers[0], TransactionAlreadyUsed)

    async with session_factory() as check:
        burned = await check.scalar(select(func.count()).select_from(UsedTransactionHash))
    assert burned == 100
