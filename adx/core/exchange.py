"""
Sealed-Bid Exchange - the batch auction engine.

Composes the access control layer, batch book and decryption bridge into
one permissioned state machine. Every mutating entry point runs under a
single lock, so calls are applied one at a time and a rejected call
raises before touching state. The one deliberate exception is the rate
limiter charge, see `ExchangeConfig.charge_cooldown_on_failure`.

Events raised by a call are published only once the call has finished.
If publishing fails (e.g. the event store cannot write) or the call
dies on an unexpected error, the state saved at the start is restored.

Flow:
    provider: open_batch -> bidders: submit_bid -> provider: close_batch
    -> provider: request_auction_result_decryption
    -> oracle: resolve_auction_callback (any caller, hash + proof gated)
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from functools import partial
from typing import List, Optional, Tuple

from adx.core.access import AccessControl, RateLimitedAction
from adx.core.batch import Batch, BatchBook, BatchState, Bid
from adx.core.bridge import AuctionResult, DecryptionBridge, DecryptionContext
from adx.core.config import ExchangeConfig
from adx.core.context import Msg
from adx.core.errors import ExchangeError
from adx.core.events import EventLog
from adx.crypto import ADDRESS_SIZE, keccak256, short_hex
from adx.fhe import Ciphertext, FHEBackend
from adx.oracle import DecryptionOracle
from adx.utils.logger import get_logger
from adx.utils.validation import (
    MAX_PROOF_SIZE,
    require,
    validate_address,
    validate_bytes,
    validate_instance,
    validate_integer,
)

logger = get_logger("exchange")


def exchange_address(deployer: bytes, nonce: int = 0) -> bytes:
    """Deterministic exchange address from deployer and deployment nonce."""
    return keccak256(deployer + nonce.to_bytes(8, "big"))[-ADDRESS_SIZE:]


@dataclass(frozen=True)
class BatchInfo:
    """Read-only view of a batch."""
    batch_id: int
    active: bool
    closed: bool
    bids: Tuple[Bid, ...]

    @property
    def state(self) -> BatchState:
        return Batch(self.batch_id, self.active, self.closed).state


class SealedBidExchange:
    """
    Confidential sealed-bid batch auction.

    Args:
        owner: Initial owner address
        fhe: Ciphertext capability
        oracle: Decryption oracle capability
        config: Initial global configuration
        address: This exchange's address (state hash domain separator)
        storage: Optional EventStore that persists every event
    """

    def __init__(
        self,
        owner: bytes,
        fhe: FHEBackend,
        oracle: DecryptionOracle,
        config: Optional[ExchangeConfig] = None,
        address: Optional[bytes] = None,
        storage=None,
    ):
        self.config = config or ExchangeConfig()
        self.address = address or exchange_address(owner)
        require(validate_address(self.address, "exchange address"))

        self.fhe = fhe
        self.oracle = oracle
        self.events = EventLog()
        self.storage = storage
        if storage is not None:
            self.events.subscribe(partial(storage.append_events, self.address))

        self.access = AccessControl(
            owner=owner,
            events=self.events,
            paused=self.config.paused,
            cooldown_seconds=self.config.cooldown_seconds,
        )
        self.batches = BatchBook(fhe, self.events)
        self.bridge = DecryptionBridge(fhe, oracle, self.batches, self.events, self.address)

        self._lock = threading.RLock()

        logger.info(f"Exchange deployed at {short_hex(self.address)} "
                    f"(owner={short_hex(owner)}, cooldown={self.config.cooldown_seconds}s)")

    @contextmanager
    def _call(self, operation: str, sender: Optional[bytes] = None):
        """Serialize a mutating call, publish its events, roll back on failure."""
        with self._lock:
            saved = self._snapshot()
            try:
                with self.events.deferred():
                    yield
            except (ExchangeError, ValueError) as e:
                who = short_hex(sender) if sender else "anonymous"
                logger.warning(f"{operation} rejected for {who}: {type(e).__name__}: {e}")
                raise
            except Exception as e:
                self._restore(saved)
                logger.error(f"{operation} failed and was rolled back: {type(e).__name__}: {e}")
                raise

    def _snapshot(self) -> tuple:
        return self.access.snapshot(), self.batches.snapshot(), self.bridge.snapshot()

    def _restore(self, saved: tuple) -> None:
        access, batches, bridge = saved
        self.access.restore(access)
        self.batches.restore(batches)
        self.bridge.restore(bridge)

    @contextmanager
    def _rate_limited(self, msg: Msg, action: RateLimitedAction):
        """Check and charge the sender's cooldown for `action`."""
        self.access.check_cooldown(msg.sender, action, msg.timestamp)
        previous = self.access.charge(msg.sender, action, msg.timestamp)
        try:
            yield
        except Exception:
            if not self.config.charge_cooldown_on_failure:
                self.access.refund(msg.sender, action, previous)
            raise

    # =========================================================================
    # Access control
    # =========================================================================

    def transfer_ownership(self, new_owner: bytes, msg: Msg) -> None:
        with self._call("transfer_ownership", msg.sender):
            self.access.transfer_ownership(msg.sender, new_owner)

    def add_provider(self, provider: bytes, msg: Msg) -> None:
        with self._call("add_provider", msg.sender):
            self.access.add_provider(msg.sender, provider)

    def remove_provider(self, provider: bytes, msg: Msg) -> None:
        with self._call("remove_provider", msg.sender):
            self.access.remove_provider(msg.sender, provider)

    def set_paused(self, paused: bool, msg: Msg) -> None:
        with self._call("set_paused", msg.sender):
            self.access.set_paused(msg.sender, paused)

    def set_cooldown_seconds(self, seconds: int, msg: Msg) -> None:
        with self._call("set_cooldown_seconds", msg.sender):
            self.access.set_cooldown_seconds(msg.sender, seconds)

    # =========================================================================
    # Batch lifecycle
    # =========================================================================

    def open_batch(self, batch_id: int, msg: Msg) -> None:
        require(validate_integer(batch_id, "batch_id"))
        with self._call("open_batch", msg.sender):
            self.access.only_provider(msg.sender)
            self.access.when_not_paused()
            self.batches.open(batch_id)

    def close_batch(self, batch_id: int, msg: Msg) -> None:
        require(validate_integer(batch_id, "batch_id"))
        with self._call("close_batch", msg.sender):
            self.access.only_provider(msg.sender)
            self.access.when_not_paused()
            self.batches.close(batch_id)

    def submit_bid(self, batch_id: int, enc_bid: Ciphertext, enc_score: Ciphertext, msg: Msg) -> None:
        """
        Append an encrypted bid to an active batch.

        Open to any caller. The submission cooldown is charged before the
        batch and ciphertext checks run.
        """
        require(validate_integer(batch_id, "batch_id"))
        require(validate_instance(enc_bid, Ciphertext, "enc_bid"))
        require(validate_instance(enc_score, Ciphertext, "enc_score"))
        with self._call("submit_bid", msg.sender):
            self.access.when_not_paused()
            with self._rate_limited(msg, RateLimitedAction.SUBMISSION):
                self.batches.append_bid(batch_id, msg.sender, enc_bid, enc_score)

    # =========================================================================
    # Decryption
    # =========================================================================

    def request_auction_result_decryption(self, batch_id: int, msg: Msg) -> int:
        """
        Ask the oracle to reveal the winning amount of a closed batch.

        Returns:
            Oracle request id
        """
        require(validate_integer(batch_id, "batch_id"))
        with self._call("request_auction_result_decryption", msg.sender):
            self.access.only_provider(msg.sender)
            self.access.when_not_paused()
            with self._rate_limited(msg, RateLimitedAction.DECRYPTION_REQUEST):
                return self.bridge.request(batch_id, self.resolve_auction_callback)

    def resolve_auction_callback(self, request_id: int, cleartexts: bytes, proof: bytes) -> AuctionResult:
        """
        Oracle callback. Anyone may deliver it; acceptance depends only on
        the stored state hash and the oracle proof.
        """
        require(validate_integer(request_id, "request_id"))
        require(validate_bytes(cleartexts, "cleartexts"))
        require(validate_bytes(proof, "proof", max_length=MAX_PROOF_SIZE))
        with self._call("resolve_auction_callback"):
            return self.bridge.complete(request_id, bytes(cleartexts), bytes(proof))

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def owner(self) -> bytes:
        with self._lock:
            return self.access.owner

    @property
    def paused(self) -> bool:
        with self._lock:
            return self.access.paused

    @property
    def cooldown_seconds(self) -> int:
        with self._lock:
            return self.access.cooldown_seconds

    def is_available(self) -> bool:
        """Whether the exchange currently accepts bidding and batch calls."""
        with self._lock:
            return not self.access.paused

    def is_owner(self, addr: bytes) -> bool:
        with self._lock:
            return self.access.is_owner(addr)

    def is_provider(self, addr: bytes) -> bool:
        with self._lock:
            return self.access.is_provider(addr)

    def last_submission_time(self, addr: bytes) -> Optional[int]:
        with self._lock:
            return self.access.last_action_time(addr, RateLimitedAction.SUBMISSION)

    def last_decryption_request_time(self, addr: bytes) -> Optional[int]:
        with self._lock:
            return self.access.last_action_time(addr, RateLimitedAction.DECRYPTION_REQUEST)

    def get_batch(self, batch_id: int) -> BatchInfo:
        with self._lock:
            batch = self.batches.get(batch_id)
            return BatchInfo(batch_id, batch.active, batch.closed, tuple(batch.bids))

    def batch_state(self, batch_id: int) -> BatchState:
        with self._lock:
            return self.batches.state(batch_id)

    def get_bids(self, batch_id: int) -> Tuple[Bid, ...]:
        with self._lock:
            return self.batches.bids(batch_id)

    def bid_count(self, batch_id: int) -> int:
        with self._lock:
            return len(self.batches.get(batch_id).bids)

    def get_decryption_context(self, request_id: int) -> Optional[DecryptionContext]:
        with self._lock:
            context = self.bridge.get_context(request_id)
            return replace(context) if context is not None else None

    def get_result(self, batch_id: int) -> Optional[AuctionResult]:
        with self._lock:
            return self.bridge.results.get(batch_id)

    def pending_requests(self) -> List[int]:
        with self._lock:
            return self.bridge.pending_requests()

    def stats(self) -> dict:
        with self._lock:
            states = [b.state for b in self.batches.batches.values()]
            pending = len(self.bridge.pending_requests())
            return {
                "address": "0x" + self.address.hex(),
                "paused": self.access.paused,
                "cooldown_seconds": self.access.cooldown_seconds,
                "providers": len(self.access.providers),
                "batches_active": states.count(BatchState.ACTIVE),
                "batches_closed": states.count(BatchState.CLOSED),
                "bids": sum(len(b.bids) for b in self.batches.batches.values()),
                "decryptions_pending": pending,
                "decryptions_completed": len(self.bridge.contexts) - pending,
                "events": len(self.events),
            }

    def __repr__(self) -> str:
        return f"SealedBidExchange(address={short_hex(self.address)}, batches={len(self.batches.batches)})"
