"""Chain RPC service.

Routes receipt and head-block lookups to the client bound for each chain.
No business logic here - only client coordination.
"""

import logging

from app.config import Settings, settings
from app.core.chains import CHAIN_REGISTRY, ChainConfig, ChainRegistry
from app.core.exceptions import ExternalServiceError
from app.gateways.base import ChainClient, TransactionReceipt
from app.gateways.jsonrpc import JsonRpcChainClient

logger = logging.getLogger(__name__)

_ALCHEMY_KEYS = {
    42161: "alchemy_api_key_arbitrum",
    56: "alchemy_api_key_bnb",
    8453: "alchemy_api_key_base",
}


def resolve_rpc_url(chain: ChainConfig, config: Settings) -> str | None:
    """Pick the RPC endpoint for a chain.

    Explicit ``rpc_urls`` entries win, then the Alchemy key for the chain,
    then the chain's public fallback.
    """
    if chain.chain_id in config.rpc_urls:
        return config.rpc_urls[chain.chain_id]
    key_field = _ALCHEMY_KEYS.get(chain.chain_id)
    api_key = getattr(config, key_field, None) if key_field else None
    if api_key:
        return chain.rpc_url_template.format(api_key=api_key)
    return chain.fallback_rpc_url


class ChainService:
    """Process-wide registry of chain RPC clients."""

    def __init__(self, registry: ChainRegistry = CHAIN_REGISTRY):
        self.registry = registry
        self._clients: dict[int, ChainClient] = {}

    @property
    def is_bound(self) -> bool:
        return bool(self._clients)

    def bind(self, clients: dict[int, ChainClient]) -> None:
        """Install pre-built clients (startup or tests)."""
        self._clients = dict(clients)

    def bind_from_settings(self, config: Settings = settings) -> None:
        """Build one JSON-RPC client per registered chain that has an endpoint."""
        clients: dict[int, ChainClient] = {}
        for chain_id in self.registry.chain_ids:
            chain = self.registry.get_chain(chain_id)
            url = resolve_rpc_url(chain, config)
            if not url:
                logger.warning(f"No RPC endpoint configured for {chain.name} ({chain_id})")
                continue
            clients[chain_id] = JsonRpcChainClient(
                chain_id, url, timeout=config.rpc_timeout_seconds
            )
        self._clients = clients
        logger.info(f"Chain clients bound for chains: {sorted(clients)}")

    def _get_client(self, chain_id: int) -> ChainClient:
        self.registry.get_chain(chain_id)
        if not self._clients:
            # Celery workers never run the app lifespan
            self.bind_from_settings()
        client = self._clients.get(chain_id)
        if client is None:
            raise ExternalServiceError(f"rpc:{chain_id}", "no RPC endpoint configured")
        return client

    async def get_transaction_receipt(
        self, tx_hash: str, chain_id: int
    ) -> TransactionReceipt | None:
        """Fetch a receipt from the chain the payment was locked on."""
        return await self._get_client(chain_id).get_transaction_receipt(tx_hash)

    async def get_block_number(self, chain_id: int) -> int:
        return await self._get_client(chain_id).get_block_number()

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients = {}


chain_service = ChainService()
