"""Randomized operation sequences checked against the booking invariants."""

import random
from collections import Counter
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.chains import CHAIN_REGISTRY
from app.core.exceptions import AppException
from app.domain.booking_state import ACTIVE_STATUSES, TX_HASH_STATUSES, payment_group_state
from app.models.booking import Booking
from app.models.payment import UsedTransactionHash
from conftest import (
    ARBITRUM,
    RPC_DOWN,
    STAY_SLUG,
    application,
    make_receipt,
    new_tx_hash,
    new_wallet,
    transfer_log,
)

pytestmark = pytest.mark.usefixtures("stay")

LOCK_CHOICES = [
    ("USDC", ARBITRUM, Decimal("300")),
    ("USDT", ARBITRUM, Decimal("300")),
    ("USDC", 8453, Decimal("299.5")),
    ("USDT", 56, Decimal("0.1")),
    ("USDT", 8453, Decimal("300")),  # unsupported
    ("USDC", ARBITRUM, Decimal("0.0000001")),  # too precise
]


def _receipt_for(rng, booking):
    """A scripted chain answer for the booking's locked payment."""
    token = CHAIN_REGISTRY.get_token(booking.chain_id, booking.payment_token).address
    value = int(booking.amount_base_units)
    return rng.choice(
        [
            make_receipt(transfer_log(value, token=token)),
            make_receipt(transfer_log(value - 1, token=token)),
            make_receipt(transfer_log(value, token=token), status=False),
            None,
            RPC_DOWN,
        ]
    )


async def _check_invariants(db):
    bookings = (
        (await db.execute(select(Booking).execution_options(populate_existing=True)))
        .scalars()
        .all()
    )
    burned = set((await db.execute(select(UsedTransactionHash.tx_hash))).scalars().all())

    for booking in bookings:
        assert payment_group_state(booking) != "partial", booking.booking_id
        if booking.tx_hash is not None:
            assert booking.status in {s.value for s in TX_HASH_STATUSES}, booking.booking_id
            assert booking.tx_hash in burned
        else:
            assert booking.status != "CONFIRMED", booking.booking_id
        if booking.status == "CONFIRMED":
            assert payment_group_state(booking) == "locked"

    per_pair = Counter(
        (b.user_id, b.stay_id) for b in bookings if b.status in {s.value for s in ACTIVE_STATUSES}
    )
    assert all(count == 1 for count in per_pair.values())

    hashes = Counter(b.tx_hash for b in bookings if b.tx_hash is not None)
    assert all(count == 1 for count in hashes.values())


@pytest.mark.parametrize("seed", range(8))
async def test_random_operations_preserve_invariants(seed, db, service, verifier, chain_clients):
    rng = random.Random(seed)
    wallets = [new_wallet() for _ in range(3)]
    booking_ids: list[str] = []
    seen_hashes: list[str] = []

    async def op_apply():
        booking, _ = await service.apply_for_stay(db, STAY_SLUG, application(wallet=rng.choice(wallets)))
        if booking.booking_id not in booking_ids:
            booking_ids.append(booking.booking_id)

    async def op_approve(booking_id):
        await service.approve_booking(db, booking_id, rng.choice([None, 1, 60]))

    async def op_lock(booking_id):
        token, chain_id, amount = rng.choice(LOCK_CHOICES)
        await service.lock_payment(db, booking_id, token, amount, chain_id)

    async def op_submit(booking_id):
        booking = await service.get_booking(db, booking_id)
        reuse = seen_hashes and rng.random() < 0.3
        tx_hash = rng.choice(seen_hashes) if reuse else new_tx_hash()
        await service.submit_payment(
            db, booking_id, tx_hash, booking.chain_id or ARBITRUM, booking.payment_token or "USDC"
        )
        seen_hashes.append(tx_hash)

    async def op_verify(booking_id):
        booking = await service.get_booking(db, booking_id)
        if not booking.is_verifying:
            return
        chain_clients[booking.chain_id].script(booking.tx_hash, _receipt_for(rng, booking))
        await verifier.verify(booking_id, booking.tx_hash, booking.chain_id)

    async def op_crash(booking_id):
        booking = await service.get_booking(db, booking_id)
        if booking.tx_hash:
            await verifier.record_error(booking_id, booking.tx_hash, RuntimeError("boom"))

    async def op_cancel(booking_id):
        await service.cancel_booking(db, booking_id)

    async def op_expire(booking_id):
        await service.expire_booking(db, booking_id)

    async def op_refund(booking_id):
        await service.mark_refunded(db, booking_id)

    targeted = [
        op_approve,
        op_lock,
        op_lock,
        op_submit,
        op_verify,
        op_verify,
        op_crash,
        op_cancel,
        op_expire,
        op_refund,
    ]

    for _ in range(60):
        try:
            if not booking_ids or rng.random() < 0.15:
                await op_apply()
            else:
                await rng.choice(targeted)(rng.choice(booking_ids))
            await db.commit()
        except AppException:
            await db.rollback()
        await _check_invariants(db)

    assert booking_ids
