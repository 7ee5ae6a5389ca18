"""
ADX Core Module.

The sealed-bid batch auction engine:
- Access control (owner, providers, pause, rate limits)
- Batch lifecycle
- Homomorphic winner resolution
- Decryption oracle bridge
"""

from adx.core.access import AccessControl, RateLimitedAction
from adx.core.batch import Batch, BatchBook, BatchState, Bid
from adx.core.bridge import (
    AuctionResult,
    DecryptionBridge,
    DecryptionContext,
    compute_state_hash,
)
from adx.core.config import ExchangeConfig, load_config
from adx.core.context import Msg
from adx.core.errors import (
    CooldownActive,
    ExchangeError,
    InvalidBatch,
    InvalidProof,
    InvalidState,
    NotInitialized,
    NotOwner,
    NotProvider,
    Paused,
    ReplayDetected,
)
from adx.core.exchange import BatchInfo, SealedBidExchange, exchange_address
from adx.core.resolver import Winner, resolve_winner

__all__ = [
    # Access
    "AccessControl",
    "RateLimitedAction",
    # Batches
    "Batch",
    "BatchBook",
    "BatchState",
    "Bid",
    "BatchInfo",
    # Resolver
    "Winner",
    "resolve_winner",
    # Bridge
    "AuctionResult",
    "DecryptionBridge",
    "DecryptionContext",
    "compute_state_hash",
    # Exchange
    "SealedBidExchange",
    "exchange_address",
    "Msg",
    "ExchangeConfig",
    "load_config",
    # Errors
    "ExchangeError",
    "NotOwner",
    "NotProvider",
    "Paused",
    "CooldownActive",
    "InvalidBatch",
    "NotInitialized",
    "InvalidState",
    "InvalidProof",
    "ReplayDetected",
]
