"""Verification scheduler tests: detached runs, error channel, shutdown."""

import asyncio
from types import SimpleNamespace

import pytest

from app.core.background_tasks import VerificationScheduler
from conftest import ARBITRUM, locked_booking, make_receipt, new_tx_hash, transfer_log


class CrashingVerifier:
    """Delegates the error channel to a real verifier but crashes on verify."""

    def __init__(self, inner):
        self.inner = inner

    async def verify(self, booking_id, tx_hash, chain_id):
        raise RuntimeError("database went away")

    async def record_error(self, booking_id, tx_hash, error):
        await self.inner.record_error(booking_id, tx_hash, error)


class BlockingVerifier:
    def __init__(self):
        self.release = asyncio.Event()
        self.started = 0

    async def verify(self, booking_id, tx_hash, chain_id):
        self.started += 1
        await self.release.wait()
        return SimpleNamespace(confirmed=True, skipped=False, reason=None)


async def _submitted(db, service):
    booking = await locked_booking(db, service)
    tx_hash = new_tx_hash()
    await service.submit_payment(db, booking.booking_id, tx_hash, ARBITRUM, "USDC")
    return booking.booking_id, tx_hash


async def test_inline_verification_runs_detached(db, stay, service, verifier, chain_clients):
    booking_id, tx_hash = await _submitted(db, service)
    chain_clients[ARBITRUM].script(tx_hash, make_receipt(transfer_log(300_000_000)))
    scheduler = VerificationScheduler(verifier=verifier, backend="inline")

    scheduler.schedule(booking_id, tx_hash, ARBITRUM)
    assert scheduler.pending == 1
    await scheduler.drain()

    assert scheduler.pending == 0
    assert (await service.get_booking(db, booking_id)).status == "CONFIRMED"


async def test_crash_goes_to_error_channel(db, stay, service, verifier):
    booking_id, tx_hash = await _submitted(db, service)
    scheduler = VerificationScheduler(verifier=CrashingVerifier(verifier), backend="inline")

    scheduler.schedule(booking_id, tx_hash, ARBITRUM)
    await scheduler.drain()

    booking = await service.get_booking(db, booking_id)
    assert booking.status == "FAILED"
    activity = {e.action: e.details for e in await service.list_activity(db, booking_id)}
    assert activity["verification_error"]["error"] == "RuntimeError: database went away"
    assert activity["payment_failed"]["reason"] == "VerificationError"


async def test_shutdown_cancels_stragglers_and_refuses_new_work():
    blocking = BlockingVerifier()
    scheduler = VerificationScheduler(verifier=blocking, backend="inline")
    scheduler.schedule("stay-1", "0x" + "1" * 64, ARBITRUM)
    await asyncio.sleep(0)
    assert blocking.started == 1

    await scheduler.shutdown(timeout=0.01)

    assert scheduler.pending == 0
    with pytest.raises(RuntimeError):
        scheduler.schedule("stay-2", "0x" + "2" * 64, ARBITRUM)


async def test_shutdown_waits_for_quick_tasks():
    blocking = BlockingVerifier()
    scheduler = VerificationScheduler(verifier=blocking, backend="inline")
    scheduler.schedule("stay-1", "0x" + "1" * 64, ARBITRUM)
    await asyncio.sleep(0)
    blocking.release.set()

    await scheduler.shutdown(timeout=1)

    assert scheduler.pending == 0


def test_celery_backend_enqueues(monkeypatch):
    queued = []
    monkeypatch.setattr(
        "app.tasks.verify_payment_task",
        SimpleNamespace(delay=lambda *args: queued.append(args)),
    )
    scheduler = VerificationScheduler(verifier=BlockingVerifier(), backend="celery")

    scheduler.schedule("stay-1", "0x" + "1" * 64, ARBITRUM)

    assert queued == [("stay-1", "0x" + "1" * 64, ARBITRUM)]
    assert scheduler.pending == 0
