"""Celery background tasks.

This module contains the out-of-process payment verification task, used
when VERIFICATION_BACKEND=celery.
"""

import asyncio
import logging

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.config import settings
from app.services.chain_service import ChainService
from app.services.notification_service import NotificationService
from app.services.verification_service import TransactionVerifier

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


async def _verify_payment(booking_id: str, tx_hash: str, chain_id: int, final_attempt: bool) -> dict:
    """Verify on a private engine and clients bound to this task's event loop."""
    engine = create_async_engine(settings.database_url)
    chains = ChainService()
    notifier = NotificationService()
    verifier = TransactionVerifier(
        chains=chains,
        session_factory=async_sessionmaker(engine, expire_on_commit=False),
        notifier=notifier,
    )
    try:
        try:
            outcome = await verifier.verify(booking_id, tx_hash, chain_id)
        except Exception as e:
            if final_attempt:
                await verifier.record_error(booking_id, tx_hash, e)
            raise
        return {
            "booking_id": booking_id,
            "tx_hash": outcome.tx_hash,
            "confirmed": outcome.confirmed,
            "skipped": outcome.skipped,
            "reason": outcome.reason.value if outcome.reason else None,
        }
    finally:
        await chains.close()
        await notifier.close()
        await engine.dispose()


# ==================== VERIFICATION TASKS ====================


@shared_task(bind=True, max_retries=3)
def verify_payment_task(self, booking_id: str, tx_hash: str, chain_id: int):
    """Verify a submitted payment transaction.

    The verifier does its own receipt polling; Celery retries only cover
    crashes (database or worker errors). The last retry fails the booking
    through the verifier's error channel.
    """
    final_attempt = self.request.retries >= self.max_retries
    try:
        return run_async(_verify_payment(booking_id, tx_hash, chain_id, final_attempt))
    except Exception as exc:
        if final_attempt:
            logger.error(f"Verification of {tx_hash} for booking {booking_id} gave up: {exc}")
            raise
        self.retry(exc=exc, countdown=60)
