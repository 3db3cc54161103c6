"""Background scheduling of payment verification."""

import asyncio
import logging
from typing import TYPE_CHECKING

from app.config import settings

if TYPE_CHECKING:
    from app.services.verification_service import TransactionVerifier

logger = logging.getLogger(__name__)


class VerificationScheduler:
    """Runs verifications detached from the request that submitted them.

    ``inline`` keeps them as asyncio tasks in this process; ``celery`` hands
    them to the worker. Crashes are routed to the verifier's error channel.
    """

    def __init__(
        self,
        verifier: "TransactionVerifier | None" = None,
        backend: str | None = None,
    ):
        self._verifier = verifier
        self.backend = backend or settings.verification_backend
        self._tasks: set[asyncio.Task] = set()
        self._stopping = False

    @property
    def verifier(self) -> "TransactionVerifier":
        if self._verifier is None:
            from app.services.verification_service import transaction_verifier

            self._verifier = transaction_verifier
        return self._verifier

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, booking_id: str, tx_hash: str, chain_id: int) -> None:
        """Start verification and return immediately."""
        if self._stopping:
            raise RuntimeError("Verification scheduler is shutting down")

        if self.backend == "celery":
            from app.tasks import verify_payment_task
            from app.worker import celery_app  # noqa: F401  binds the broker

            verify_payment_task.delay(booking_id, tx_hash, chain_id)
            logger.info(f"Queued verification of {tx_hash} for booking {booking_id}")
            return

        task = asyncio.create_task(
            self._run(booking_id, tx_hash, chain_id), name=f"verify:{booking_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Scheduled verification of {tx_hash} for booking {booking_id}")

    async def _run(self, booking_id: str, tx_hash: str, chain_id: int) -> None:
        try:
            outcome = await self.verifier.verify(booking_id, tx_hash, chain_id)
            logger.info(
                f"Verification of {tx_hash} finished: confirmed={outcome.confirmed} "
                f"skipped={outcome.skipped} reason={outcome.reason}"
            )
        except asyncio.CancelledError:
            logger.warning(f"Verification of {tx_hash} for booking {booking_id} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Verification of {tx_hash} for booking {booking_id} crashed")
            await self._report_error(booking_id, tx_hash, e)

    async def _report_error(self, booking_id: str, tx_hash: str, error: Exception) -> None:
        try:
            await self.verifier.record_error(booking_id, tx_hash, error)
        except Exception:
            logger.exception(f"Could not record verification error for booking {booking_id}")

    async def drain(self) -> None:
        """Wait for every scheduled verification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting work, give running tasks ``timeout`` seconds, cancel the rest."""
        self._stopping = True
        if not self._tasks:
            return
        done, pending = await asyncio.wait(list(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} unfinished verifications on shutdown")


verification_scheduler = VerificationScheduler()
