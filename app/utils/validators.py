"""Custom validation utilities for on-chain identifiers."""

import re

_TX_HASH_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")
_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def validate_tx_hash(tx_hash: str) -> bool:
    """Validate a 32-byte transaction hash.

    Format: 0x followed by 64 hexadecimal characters.

    Args:
        tx_hash: Hash to validate

    Returns:
        bool: True if valid format
    """
    return bool(_TX_HASH_RE.match(tx_hash))


def normalize_tx_hash(tx_hash: str) -> str:
    """Canonical form used by the replay guard (lowercase)."""
    return tx_hash.strip().lower()


def validate_address(address: str) -> bool:
    """Validate a 20-byte EVM account address."""
    return bool(_ADDRESS_RE.match(address))


def normalize_address(address: str) -> str:
    """Lowercase an address for case-insensitive comparison."""
    return address.strip().lower()


def topic_to_address(topic: str) -> str:
    """Extract the address from a left-padded 32-byte log topic."""
    return "0x" + topic[-40:].lower()
