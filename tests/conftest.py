"""Shared fixtures: per-test SQLite database, stub chain, recording notifier."""

from __future__ import annotations

import os
import tempfile

# Settings are read at import time; point them at throwaway values first.
_TMP_DIR = tempfile.mkdtemp(prefix="deden-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/import.db"
os.environ["TREASURY_ADDRESS"] = "0x1111111111111111111111111111111111111111"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["VERIFICATION_BACKEND"] = "inline"

import itertools
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.chains import CHAIN_REGISTRY
from app.core.exceptions import ExternalServiceError, NotificationError
from app.database import Base
from app.gateways.base import ChainClient, ReceiptLog, TransactionReceipt
from app.models.stay import Stay
from app.services.booking_service import Application, BookingService
from app.services.chain_service import ChainService
from app.services.ledger_service import BookingLedger
from app.services.verification_service import TRANSFER_TOPIC, TransactionVerifier

TREASURY = "0x1111111111111111111111111111111111111111"
PAYER = "0x2222222222222222222222222222222222222222"
ARBITRUM = 42161
STAY_SLUG = "lisbon-2026"
USDC_ARBITRUM = CHAIN_REGISTRY.get_token(ARBITRUM, "USDC").address

_wallets = itertools.count(1)
_hashes = itertools.count(1)


def new_wallet() -> str:
    return "0x" + f"{next(_wallets):040x}"


def new_tx_hash() -> str:
    return "0x" + f"{next(_hashes):064x}"


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def transfer_log(
    value: int,
    to: str = TREASURY,
    token: str = USDC_ARBITRUM,
    sender: str = PAYER,
) -> ReceiptLog:
    return ReceiptLog(
        address=token,
        topics=[TRANSFER_TOPIC, address_topic(sender), address_topic(to)],
        data="0x" + f"{value:064x}",
    )


def make_receipt(
    *logs: ReceiptLog, status: bool = True, block_number: int = 1000
) -> TransactionReceipt:
    return TransactionReceipt(
        status=status,
        block_number=block_number,
        from_address=PAYER,
        gas_used=52000,
        logs=list(logs),
    )


class StubChainClient(ChainClient):
    """Answers receipt polls from a scripted sequence per hash.

    Each entry is a receipt, None (not mined yet) or an exception to raise.
    The last entry repeats once the script runs out.
    """

    def __init__(self, chain_id: int):
        self._chain_id = chain_id
        self.scripts: dict[str, list] = {}
        self.calls: list[str] = []
        self.head = 10_000

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def script(self, tx_hash: str, *responses) -> None:
        self.scripts[tx_hash.lower()] = list(responses)

    async def get_transaction_receipt(self, tx_hash: str):
        self.calls.append(tx_hash)
        script = self.scripts.get(tx_hash.lower(), [None])
        response = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def get_block_number(self) -> int:
        if isinstance(self.head, Exception):
            raise self.head
        return self.head


class FakeNotifier:
    """Records emails instead of sending them."""

    def __init__(self):
        self.approvals = []
        self.confirmations = []
        self.fail = False

    async def send_approval_email(self, email):
        if self.fail:
            raise NotificationError("smtp down")
        self.approvals.append(email)

    async def send_confirmation_email(self, email):
        if self.fail:
            raise NotificationError("smtp down")
        self.confirmations.append(email)

    async def close(self):
        return None


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/test.db", connect_args={"timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def stay(db) -> Stay:
    stay = Stay(
        stay_id=STAY_SLUG,
        title="Lisbon Builders Week",
        location="Lisbon, Portugal",
        start_date=datetime(2026, 5, 1, tzinfo=UTC),
        end_date=datetime(2026, 5, 8, tzinfo=UTC),
        price_usdc=Decimal("300"),
        price_usdt=Decimal("300"),
        slots_total=20,
        allow_waitlist=True,
    )
    db.add(stay)
    await db.commit()
    return stay


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def ledger() -> BookingLedger:
    return BookingLedger()


@pytest.fixture
def service(ledger, notifier) -> BookingService:
    return BookingService(ledger=ledger, notifier=notifier)


@pytest.fixture
def chain_clients() -> dict[int, StubChainClient]:
    return {chain_id: StubChainClient(chain_id) for chain_id in CHAIN_REGISTRY.chain_ids}


@pytest.fixture
def chains(chain_clients) -> ChainService:
    chain_service = ChainService()
    chain_service.bind(chain_clients)
    return chain_service


@pytest.fixture
def verifier(chains, session_factory, ledger, notifier) -> TransactionVerifier:
    return TransactionVerifier(
        chains=chains,
        session_factory=session_factory,
        ledger=ledger,
        notifier=notifier,
        treasury_address=TREASURY,
        max_attempts=3,
        retry_delay_seconds=0,
        poll_timeout=1.0,
    )


def application(wallet: str | None = None, email: str | None = None, **overrides) -> Application:
    wallet = wallet or new_wallet()
    return Application(
        wallet_address=wallet,
        email=email or f"{wallet[-8:]}@example.com",
        display_name="Ada Guest",
        **overrides,
    )


# Helpers take the slug, not the Stay row: a rollback in the test session
# expires loaded instances.
async def apply(db, service, stay_slug=STAY_SLUG, **kwargs):
    booking, _ = await service.apply_for_stay(db, stay_slug, application(**kwargs))
    await db.commit()
    return booking


async def approved_booking(db, service, **kwargs):
    booking = await apply(db, service, **kwargs)
    result = await service.approve_booking(db, booking.booking_id)
    await db.commit()
    return result.booking


async def locked_booking(
    db, service, token="USDC", amount=Decimal("300"), chain_id=ARBITRUM, **kwargs
):
    booking = await approved_booking(db, service, **kwargs)
    result = await service.lock_payment(db, booking.booking_id, token, amount, chain_id)
    await db.commit()
    return result.booking


RPC_DOWN = ExternalServiceError("rpc:42161", "connection refused")
