"""Base chain client interface.

All chain adapters must implement this interface.
Business logic should NOT live in adapters - only RPC communication.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReceiptLog:
    """One event log emitted by a transaction."""

    address: str
    topics: list[str] = field(default_factory=list)
    data: str = "0x"


@dataclass(frozen=True)
class TransactionReceipt:
    """Mined transaction receipt."""

    status: bool  # False = reverted
    block_number: int
    from_address: str
    to_address: str | None = None
    gas_used: int = 0
    logs: list[ReceiptLog] = field(default_factory=list)


class ChainClient(ABC):
    """Abstract base class for read-only chain RPC clients."""

    @property
    @abstractmethod
    def chain_id(self) -> int:
        """Return the chain id this client is bound to."""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        """Fetch a transaction receipt.

        Args:
            tx_hash: 0x-prefixed transaction hash

        Returns:
            TransactionReceipt, or None if the transaction is not mined yet

        Raises:
            ExternalServiceError: On transport or RPC errors
        """
        pass

    @abstractmethod
    async def get_block_number(self) -> int:
        """Return the current head block number."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
