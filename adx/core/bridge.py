"""
Decryption Oracle Bridge - reveal only the winning amount, exactly once.

Request side: resolve the winner of a closed batch, commit to the winning
ciphertext with a state hash bound to this exchange's address, and hand
only that handle to the oracle.

Callback side: an untrusted entry point. Safety comes from the stored
commitment and the oracle proof, not from who calls:

1. processed context           -> ReplayDetected
2. recompute winner and hash
3. hash mismatch / no context  -> InvalidState
4. proof rejected by oracle    -> InvalidProof
5. decode cleartext amount
6. mark processed, record result, emit DecryptionCompleted
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from adx.core.batch import BatchBook
from adx.core.errors import InvalidBatch, InvalidProof, InvalidState, ReplayDetected
from adx.core.events import DecryptionCompleted, DecryptionRequested, EventLog
from adx.core.resolver import resolve_winner
from adx.crypto import decode_uint256, keccak256, short_hex
from adx.fhe import FHEBackend
from adx.oracle import DecryptionCallback, DecryptionOracle
from adx.utils.logger import get_logger

logger = get_logger("bridge")


def compute_state_hash(handles: List[bytes], exchange_address: bytes) -> bytes:
    """
    Commitment over ciphertext handles, bound to the exchange address.

    state_hash = keccak256(handle_0 || ... || handle_n || exchange_address)
    """
    return keccak256(b"".join(handles) + exchange_address)


@dataclass
class DecryptionContext:
    """Pending or completed decryption, keyed by oracle request id."""
    batch_id: int
    state_hash: bytes
    processed: bool = False


@dataclass(frozen=True)
class AuctionResult:
    """Revealed outcome of a batch."""
    batch_id: int
    request_id: int
    winner: bytes
    winning_amount: int


class DecryptionBridge:
    """Request/callback state machine over the decryption oracle."""

    def __init__(
        self,
        fhe: FHEBackend,
        oracle: DecryptionOracle,
        batches: BatchBook,
        events: EventLog,
        exchange_address: bytes,
    ):
        self.fhe = fhe
        self.oracle = oracle
        self.batches = batches
        self.events = events
        self.exchange_address = exchange_address

        # request_id -> context
        self.contexts: Dict[int, DecryptionContext] = {}

        # batch_id -> latest completed result
        self.results: Dict[int, AuctionResult] = {}

    # =========================================================================
    # Request
    # =========================================================================

    def check_can_request(self, batch_id: int) -> None:
        batch = self.batches.get(batch_id)
        if not batch.closed:
            raise InvalidBatch(f"Batch {batch_id} is not closed")
        if not batch.bids:
            raise InvalidBatch(f"Batch {batch_id} has no bids")

    def request(self, batch_id: int, callback: DecryptionCallback) -> int:
        """
        Submit the winning amount of a closed batch for decryption.

        Returns:
            Oracle-assigned request id
        """
        self.check_can_request(batch_id)

        winner = resolve_winner(self.fhe, self.batches.bids(batch_id))
        handles = [self.fhe.to_bytes32(winner.encrypted_amount)]
        state_hash = compute_state_hash(handles, self.exchange_address)

        request_id = self.oracle.request_decryption(handles, callback)
        self.contexts[request_id] = DecryptionContext(batch_id=batch_id, state_hash=state_hash)
        self.events.emit(DecryptionRequested(request_id=request_id, batch_id=batch_id))

        logger.info(f"Decryption requested: request={request_id}, batch={batch_id}, "
                    f"state_hash={short_hex(state_hash)}")
        return request_id

    # =========================================================================
    # Callback
    # =========================================================================

    def complete(self, request_id: int, cleartexts: bytes, proof: bytes) -> AuctionResult:
        """Verify and finalize an oracle callback."""
        context = self.contexts.get(request_id)
        if context is not None and context.processed:
            raise ReplayDetected(f"Request {request_id} already processed")

        if context is None:
            raise InvalidState(f"No decryption context for request {request_id}")

        batch = self.batches.get(context.batch_id)
        if not batch.bids:
            raise InvalidState(f"Batch {context.batch_id} has no bids to verify against")

        winner = resolve_winner(self.fhe, batch.bids)
        current_hash = compute_state_hash(
            [self.fhe.to_bytes32(winner.encrypted_amount)], self.exchange_address
        )
        if current_hash != context.state_hash:
            raise InvalidState(f"State hash mismatch for request {request_id}")

        if not self.oracle.check_signatures(request_id, cleartexts, proof):
            raise InvalidProof(f"Decryption proof rejected for request {request_id}")

        try:
            winning_amount = decode_uint256(cleartexts)
        except ValueError as e:
            raise InvalidProof(f"Malformed cleartext for request {request_id}: {e}") from e

        context.processed = True
        result = AuctionResult(
            batch_id=context.batch_id,
            request_id=request_id,
            winner=winner.bidder,
            winning_amount=winning_amount,
        )
        self.results[context.batch_id] = result
        self.events.emit(DecryptionCompleted(
            request_id=request_id,
            batch_id=context.batch_id,
            winning_amount=winning_amount,
            winner=winner.bidder,
        ))

        logger.info(f"Auction result: batch={context.batch_id}, winner={short_hex(winner.bidder)}, "
                    f"amount={winning_amount}")
        return result

    # =========================================================================
    # Rollback
    # =========================================================================

    def snapshot(self) -> Tuple[Dict[int, bool], Dict[int, AuctionResult]]:
        processed = {rid: ctx.processed for rid, ctx in self.contexts.items()}
        return processed, dict(self.results)

    def restore(self, snapshot: Tuple[Dict[int, bool], Dict[int, AuctionResult]]) -> None:
        """
        Drop contexts created since `snapshot` and reset processed flags.

        A request already handed to the oracle cannot be withdrawn; if its
        callback arrives it finds no context and is rejected.
        """
        processed, results = snapshot
        self.contexts = {
            rid: ctx for rid, ctx in self.contexts.items() if rid in processed
        }
        for rid, ctx in self.contexts.items():
            ctx.processed = processed[rid]
        self.results = dict(results)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_context(self, request_id: int) -> Optional[DecryptionContext]:
        return self.contexts.get(request_id)

    def pending_requests(self) -> List[int]:
        return sorted(rid for rid, ctx in self.contexts.items() if not ctx.processed)
