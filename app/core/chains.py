"""Chain registry: supported networks and their stablecoin contracts.

Immutable after import. Safe for unsynchronized concurrent reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from app.core.exceptions import UnsupportedChain, UnsupportedToken

SUPPORTED_TOKENS = ("USDC", "USDT")


@dataclass(frozen=True)
class TokenConfig:
    """ERC-20 stablecoin deployment on one chain."""

    symbol: str
    address: str
    decimals: int
    name: str


@dataclass(frozen=True)
class ChainConfig:
    """EVM network the treasury accepts payments on."""

    chain_id: int
    name: str
    rpc_url_template: str  # formatted with the Alchemy API key
    block_explorer: str
    native_symbol: str
    tokens: Mapping[str, TokenConfig]
    confirmations_required: int = 1
    fallback_rpc_url: str | None = None

    def token(self, symbol: str) -> TokenConfig:
        try:
            return self.tokens[symbol]
        except KeyError:
            raise UnsupportedToken(symbol, self.chain_id) from None


def _tokens(*configs: TokenConfig) -> Mapping[str, TokenConfig]:
    return MappingProxyType({t.symbol: t for t in configs})


@dataclass(frozen=True)
class ChainRegistry:
    """Read-only lookup of chain id -> ChainConfig."""

    chains: Mapping[int, ChainConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "chains", MappingProxyType(dict(self.chains)))

    @property
    def chain_ids(self) -> list[int]:
        return sorted(self.chains)

    def get_chain(self, chain_id: int) -> ChainConfig:
        """Return chain config or raise UnsupportedChain."""
        chain = self.chains.get(chain_id)
        if chain is None:
            raise UnsupportedChain(chain_id)
        return chain

    def get_token(self, chain_id: int, symbol: str) -> TokenConfig:
        """Return token config or raise UnsupportedChain / UnsupportedToken."""
        return self.get_chain(chain_id).token(symbol)

    def supported_tokens(self, chain_id: int) -> list[str]:
        chain = self.chains.get(chain_id)
        return list(chain.tokens) if chain else []

    def supports(self, chain_id: int, symbol: str) -> bool:
        chain = self.chains.get(chain_id)
        return chain is not None and symbol in chain.tokens

    def chain_name(self, chain_id: int) -> str:
        chain = self.chains.get(chain_id)
        return chain.name if chain else "Unknown Chain"


# Mainnet deployments
CHAIN_REGISTRY = ChainRegistry(
    chains={
        42161: ChainConfig(
            chain_id=42161,
            name="Arbitrum One",
            rpc_url_template="https://arb-mainnet.g.alchemy.com/v2/{api_key}",
            block_explorer="https://arbiscan.io",
            native_symbol="ETH",
            tokens=_tokens(
                TokenConfig("USDC", "0xaf88d065e77c8cC2239327C5EDb3A432268e5831", 6, "USD Coin"),
                TokenConfig("USDT", "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9", 6, "Tether USD"),
            ),
        ),
        56: ChainConfig(
            chain_id=56,
            name="BNB Smart Chain",
            rpc_url_template="https://bnb-mainnet.g.alchemy.com/v2/{api_key}",
            block_explorer="https://bscscan.com",
            native_symbol="BNB",
            tokens=_tokens(
                TokenConfig("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", 18, "USD Coin"),
                TokenConfig("USDT", "0x55d398326f99059fF775485246999027B3197955", 18, "Tether USD"),
            ),
            fallback_rpc_url="https://bsc-dataseed.binance.org",
        ),
        # USDC only
        8453: ChainConfig(
            chain_id=8453,
            name="Base",
            rpc_url_template="https://base-mainnet.g.alchemy.com/v2/{api_key}",
            block_explorer="https://basescan.org",
            native_symbol="ETH",
            tokens=_tokens(
                TokenConfig("USDC", "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6, "USD Coin"),
            ),
        ),
    }
)
