"""
Batch Lifecycle - provider-controlled bidding rounds.

A batch id moves through UNOPENED -> ACTIVE -> CLOSED exactly once.
Bids accumulate only while ACTIVE and are immutable once stored. Batches
are created implicitly by the first open and never deleted.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Tuple

from adx.core.errors import InvalidBatch, NotInitialized
from adx.core.events import BatchClosed, BatchOpened, BidSubmitted, EventLog
from adx.crypto import short_hex
from adx.fhe import Ciphertext, FHEBackend
from adx.utils.logger import get_logger

logger = get_logger("batch")


class BatchState(IntEnum):
    """Lifecycle state of a batch id."""
    UNOPENED = 0
    ACTIVE = 1
    CLOSED = 2


@dataclass(frozen=True)
class Bid:
    """An encrypted bid. The bidder address is public."""
    encrypted_bid_amount: Ciphertext
    encrypted_targeting_score: Ciphertext
    bidder: bytes


@dataclass
class Batch:
    """Flags and bids stored under one batch id."""
    batch_id: int
    active: bool = False
    closed: bool = False
    bids: List[Bid] = field(default_factory=list)

    @property
    def state(self) -> BatchState:
        if self.closed:
            return BatchState.CLOSED
        if self.active:
            return BatchState.ACTIVE
        return BatchState.UNOPENED


class BatchBook:
    """
    All batches, keyed by caller-supplied id.

    Role and pause checks are the caller's job; this class enforces the
    lifecycle and ciphertext validity.
    """

    def __init__(self, fhe: FHEBackend, events: EventLog):
        self.fhe = fhe
        self.events = events
        self.batches: Dict[int, Batch] = {}

    def get(self, batch_id: int) -> Batch:
        """Batch under `batch_id`; an unopened placeholder if never opened."""
        return self.batches.get(batch_id) or Batch(batch_id=batch_id)

    def state(self, batch_id: int) -> BatchState:
        return self.get(batch_id).state

    def bids(self, batch_id: int) -> Tuple[Bid, ...]:
        return tuple(self.get(batch_id).bids)

    def snapshot(self) -> Dict[int, Tuple[bool, bool, int]]:
        """Flags and bid count per batch. Bids are append-only."""
        return {batch_id: (b.active, b.closed, len(b.bids)) for batch_id, b in self.batches.items()}

    def restore(self, snapshot: Dict[int, Tuple[bool, bool, int]]) -> None:
        for batch_id in list(self.batches):
            if batch_id not in snapshot:
                del self.batches[batch_id]
        for batch_id, (active, closed, bid_count) in snapshot.items():
            batch = self.batches[batch_id]
            batch.active = active
            batch.closed = closed
            del batch.bids[bid_count:]

    # =========================================================================
    # Transitions
    # =========================================================================

    def open(self, batch_id: int) -> None:
        batch = self.get(batch_id)
        if batch.active or batch.closed:
            raise InvalidBatch(f"Batch {batch_id} cannot be opened (state: {batch.state.name})")

        batch.active = True
        self.batches[batch_id] = batch
        self.events.emit(BatchOpened(batch_id=batch_id))
        logger.info(f"Batch {batch_id} opened")

    def close(self, batch_id: int) -> None:
        batch = self.get(batch_id)
        if not batch.active:
            raise InvalidBatch(f"Batch {batch_id} is not active (state: {batch.state.name})")

        batch.active = False
        batch.closed = True
        self.events.emit(BatchClosed(batch_id=batch_id))
        logger.info(f"Batch {batch_id} closed with {len(batch.bids)} bid(s)")

    def check_accepts_bid(self, batch_id: int, enc_bid: Ciphertext, enc_score: Ciphertext) -> None:
        """Raise unless a bid with these ciphertexts may be appended."""
        if not self.get(batch_id).active:
            raise InvalidBatch(f"Batch {batch_id} is not accepting bids")
        if not self.fhe.is_initialized(enc_bid):
            raise NotInitialized("Encrypted bid amount is not initialized")
        if not self.fhe.is_initialized(enc_score):
            raise NotInitialized("Encrypted targeting score is not initialized")

    def append_bid(self, batch_id: int, bidder: bytes, enc_bid: Ciphertext, enc_score: Ciphertext) -> Bid:
        self.check_accepts_bid(batch_id, enc_bid, enc_score)

        bid = Bid(
            encrypted_bid_amount=enc_bid,
            encrypted_targeting_score=enc_score,
            bidder=bidder,
        )
        self.batches[batch_id].bids.append(bid)
        self.events.emit(BidSubmitted(bidder=bidder, batch_id=batch_id))
        logger.debug(f"Bid #{len(self.batches[batch_id].bids)} from {short_hex(bidder)} in batch {batch_id}")
        return bid
