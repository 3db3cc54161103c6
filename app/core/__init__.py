"""Core utilities: errors and chain registry."""

from app.core.chains import CHAIN_REGISTRY, ChainConfig, ChainRegistry, TokenConfig
from app.core.exceptions import (
    AppException,
    AuthorizationError,
    ChainMismatch,
    ConflictError,
    ExternalServiceError,
    InvalidState,
    NotFoundError,
    NotificationError,
    StayNotAccepting,
    TokenMismatch,
    TransactionAlreadyUsed,
    UnsupportedChain,
    UnsupportedToken,
    ValidationError,
)

__all__ = [
    "CHAIN_REGISTRY",
    "ChainConfig",
    "ChainRegistry",
    "TokenConfig",
    "AppException",
    "AuthorizationError",
    "ChainMismatch",
    "ConflictError",
    "ExternalServiceError",
    "InvalidState",
    "NotFoundError",
    "NotificationError",
    "StayNotAccepting",
    "TokenMismatch",
    "TransactionAlreadyUsed",
    "UnsupportedChain",
    "UnsupportedToken",
    "ValidationError",
]
