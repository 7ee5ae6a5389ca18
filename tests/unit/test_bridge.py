"""
Tests for the Decryption Oracle Bridge.

Tests cover:
1. Request preconditions and what gets submitted
2. Callback verification (replay, state hash, proof)
3. Finalization and results
4. Decryption rate limiting
5. Rollback when events cannot be published
"""

import sqlite3

import pytest

from adx.core import (
    CooldownActive,
    ExchangeConfig,
    InvalidBatch,
    InvalidProof,
    InvalidState,
    Msg,
    NotProvider,
    ReplayDetected,
    SealedBidExchange,
    compute_state_hash,
)
from adx.core.events import DecryptionCompleted, DecryptionRequested
from adx.crypto import encode_uint256, generate_keypair, sign
from adx.fhe import MockFHE
from adx.oracle import MockDecryptionOracle, proof_digest
from adx.utils.validation import MAX_PROOF_SIZE


OWNER = b"\x01" * 20
PROVIDER = b"\x02" * 20
OTHER_PROVIDER = b"\x03" * 20
BIDDERS = [bytes([0x10 + i]) * 20 for i in range(4)]
AMOUNTS = [10, 30, 20, 30]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fhe():
    return MockFHE()


@pytest.fixture
def oracle(fhe):
    return MockDecryptionOracle(fhe)


@pytest.fixture
def exchange(fhe, oracle):
    exchange = SealedBidExchange(
        OWNER, fhe, oracle,
        config=ExchangeConfig(cooldown_seconds=60),
    )
    exchange.add_provider(PROVIDER, Msg(OWNER, 0))
    exchange.add_provider(OTHER_PROVIDER, Msg(OWNER, 0))
    return exchange


@pytest.fixture
def closed_exchange(exchange, fhe):
    """Batch 1 closed with bids [10, 30, 20, 30]."""
    exchange.open_batch(1, Msg(PROVIDER, 1000))
    for bidder, amount in zip(BIDDERS, AMOUNTS):
        exchange.submit_bid(1, fhe.encrypt(amount), fhe.encrypt(5), Msg(bidder, 1001))
    exchange.close_batch(1, Msg(PROVIDER, 1002))
    return exchange


@pytest.fixture
def request_id(closed_exchange):
    return closed_exchange.request_auction_result_decryption(1, Msg(PROVIDER, 1003))


# =============================================================================
# Request Tests
# =============================================================================


class TestRequestDecryption:
    """Tests for requesting decryption."""

    def test_request_records_pending_context(self, closed_exchange, request_id):
        context = closed_exchange.get_decryption_context(request_id)

        assert context.batch_id == 1
        assert context.processed is False
        assert closed_exchange.pending_requests() == [request_id]

        event = closed_exchange.events.last(DecryptionRequested)
        assert (event.request_id, event.batch_id) == (request_id, 1)

    def test_only_winning_amount_submitted(self, closed_exchange, oracle, request_id):
        """Losing bids and targeting scores never reach the oracle."""
        winning = closed_exchange.get_bids(1)[3].encrypted_bid_amount

        assert oracle.pending[request_id].handles == [winning.handle]

    def test_state_hash_bound_to_exchange_address(self, closed_exchange, request_id):
        winning = closed_exchange.get_bids(1)[3].encrypted_bid_amount
        context = closed_exchange.get_decryption_context(request_id)

        assert context.state_hash == compute_state_hash([winning.handle], closed_exchange.address)
        assert context.state_hash != compute_state_hash([winning.handle], b"\xee" * 20)

    def test_context_read_is_a_copy(self, closed_exchange, request_id):
        context = closed_exchange.get_decryption_context(request_id)
        context.processed = True

        assert closed_exchange.get_decryption_context(request_id).processed is False

    def test_request_on_active_batch_fails(self, exchange, fhe):
        exchange.open_batch(2, Msg(PROVIDER, 1000))
        exchange.submit_bid(2, fhe.encrypt(1), fhe.encrypt(1), Msg(BIDDERS[0], 1001))

        with pytest.raises(InvalidBatch):
            exchange.request_auction_result_decryption(2, Msg(PROVIDER, 1002))

        assert exchange.pending_requests() == []

    def test_request_on_empty_closed_batch_fails(self, exchange):
        exchange.open_batch(2, Msg(PROVIDER, 1000))
        exchange.close_batch(2, Msg(PROVIDER, 1001))

        with pytest.raises(InvalidBatch):
            exchange.request_auction_result_decryption(2, Msg(PROVIDER, 1002))

    def test_request_on_unopened_batch_fails(self, exchange):
        with pytest.raises(InvalidBatch):
            exchange.request_auction_result_decryption(9, Msg(PROVIDER, 1000))

    def test_request_requires_provider(self, closed_exchange):
        with pytest.raises(NotProvider):
            closed_exchange.request_auction_result_decryption(1, Msg(BIDDERS[0], 1003))

    def test_request_rate_limited_per_provider(self, closed_exchange, request_id):
        with pytest.raises(CooldownActive):
            closed_exchange.request_auction_result_decryption(1, Msg(PROVIDER, 1004))

        # Another provider has its own counter
        closed_exchange.request_auction_result_decryption(1, Msg(OTHER_PROVIDER, 1004))

        # And the original provider may go again after the cooldown
        closed_exchange.request_auction_result_decryption(1, Msg(PROVIDER, 1063))
        assert len(closed_exchange.pending_requests()) == 3

    def test_decryption_and_submission_counters_independent(self, exchange, fhe):
        exchange.open_batch(4, Msg(PROVIDER, 1000))
        exchange.submit_bid(4, fhe.encrypt(8), fhe.encrypt(1), Msg(PROVIDER, 1000))
        exchange.close_batch(4, Msg(PROVIDER, 1000))

        exchange.request_auction_result_decryption(4, Msg(PROVIDER, 1001))

        assert exchange.last_submission_time(PROVIDER) == 1000
        assert exchange.last_decryption_request_time(PROVIDER) == 1001


# =============================================================================
# Callback Tests
# =============================================================================


class TestCallback:
    """Tests for the oracle callback."""

    def test_fulfill_completes_auction(self, closed_exchange, oracle, request_id):
        result = oracle.fulfill(request_id)

        assert result.winner == BIDDERS[3]
        assert result.winning_amount == 30
        assert closed_exchange.get_decryption_context(request_id).processed
        assert closed_exchange.get_result(1) == result
        assert closed_exchange.pending_requests() == []

        event = closed_exchange.events.last(DecryptionCompleted)
        assert event.request_id == request_id
        assert event.batch_id == 1
        assert event.winning_amount == 30
        assert event.winner == BIDDERS[3]

    def test_replay_always_rejected(self, closed_exchange, oracle, request_id):
        cleartexts, proof = oracle.decrypt(request_id)
        closed_exchange.resolve_auction_callback(request_id, cleartexts, proof)

        with pytest.raises(ReplayDetected):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, proof)

        with pytest.raises(ReplayDetected):
            closed_exchange.resolve_auction_callback(request_id, b"junk", b"junk")

        assert len(closed_exchange.events.of_type(DecryptionCompleted)) == 1

    def test_state_hash_mismatch_rejected(self, closed_exchange, oracle, request_id):
        cleartexts, proof = oracle.decrypt(request_id)
        closed_exchange.bridge.contexts[request_id].state_hash = bytes(32)

        with pytest.raises(InvalidState):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, proof)

        assert not closed_exchange.get_decryption_context(request_id).processed
        assert closed_exchange.get_result(1) is None

    def test_unknown_request_rejected(self, closed_exchange, oracle):
        cleartexts = encode_uint256(30)
        proof = sign(proof_digest(77, cleartexts), oracle.signer.private_key)

        with pytest.raises(InvalidState):
            closed_exchange.resolve_auction_callback(77, cleartexts, proof)

        assert closed_exchange.get_decryption_context(77) is None

    def test_forged_proof_rejected(self, closed_exchange, request_id):
        cleartexts = encode_uint256(1)
        forged = sign(proof_digest(request_id, cleartexts), generate_keypair().private_key)

        with pytest.raises(InvalidProof):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, forged)

        assert not closed_exchange.get_decryption_context(request_id).processed

    def test_tampered_cleartext_rejected(self, closed_exchange, oracle, request_id):
        _, proof = oracle.decrypt(request_id)

        with pytest.raises(InvalidProof):
            closed_exchange.resolve_auction_callback(request_id, encode_uint256(1), proof)

    def test_proof_for_other_request_rejected(self, closed_exchange, oracle, request_id):
        cleartexts, _ = oracle.decrypt(request_id)
        other_proof = sign(proof_digest(request_id + 1, cleartexts), oracle.signer.private_key)

        with pytest.raises(InvalidProof):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, other_proof)

    def test_valid_delivery_after_failed_attempt(self, closed_exchange, oracle, request_id):
        """A rejected callback leaves the request open for a genuine one."""
        with pytest.raises(InvalidProof):
            closed_exchange.resolve_auction_callback(request_id, encode_uint256(1), b"\x00" * 64)

        result = oracle.fulfill(request_id)
        assert result.winning_amount == 30

    def test_rejected_fulfill_keeps_request_queued(self, closed_exchange, oracle, request_id):
        closed_exchange.bridge.contexts[request_id].state_hash = bytes(32)

        with pytest.raises(InvalidState):
            oracle.fulfill(request_id)

        assert request_id in oracle.pending

    def test_callback_not_gated_by_pause(self, closed_exchange, oracle, request_id):
        """Delivery is hash and proof gated only."""
        closed_exchange.set_paused(True, Msg(OWNER, 1004))

        result = oracle.fulfill(request_id)

        assert result.winning_amount == 30

    def test_latest_completion_is_the_batch_result(self, closed_exchange, oracle, request_id):
        second = closed_exchange.request_auction_result_decryption(1, Msg(OTHER_PROVIDER, 1004))

        oracle.fulfill(request_id)
        oracle.fulfill(second)

        assert closed_exchange.get_result(1).request_id == second

    def test_oversized_proof_rejected_at_boundary(self, closed_exchange, oracle, request_id):
        cleartexts, _ = oracle.decrypt(request_id)

        with pytest.raises(ValueError):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, b"\x00" * (MAX_PROOF_SIZE + 1))

        assert closed_exchange.pending_requests() == [request_id]
        assert oracle.fulfill(request_id).winning_amount == 30

    @pytest.mark.parametrize("cleartexts,proof", [
        (None, b"\x00" * 64),
        (encode_uint256(30), "0x00"),
    ])
    def test_non_bytes_payload_rejected(self, closed_exchange, request_id, cleartexts, proof):
        with pytest.raises(ValueError):
            closed_exchange.resolve_auction_callback(request_id, cleartexts, proof)

        assert not closed_exchange.get_decryption_context(request_id).processed


# =============================================================================
# Rollback Tests
# =============================================================================


def _broken_listener(numbered):
    raise sqlite3.OperationalError("disk I/O error")


class TestRollback:
    """A call whose events cannot be published leaves no state change."""

    def test_failed_request_leaves_no_context(self, closed_exchange, oracle):
        closed_exchange.events.subscribe(_broken_listener)
        events_before = len(closed_exchange.events)

        with pytest.raises(sqlite3.OperationalError):
            closed_exchange.request_auction_result_decryption(1, Msg(PROVIDER, 1003))

        assert closed_exchange.pending_requests() == []
        assert closed_exchange.last_decryption_request_time(PROVIDER) is None
        assert len(closed_exchange.events) == events_before

        # The oracle already queued the request; its callback finds no context
        closed_exchange.events.listeners.remove(_broken_listener)
        orphan = next(iter(oracle.pending))
        with pytest.raises(InvalidState):
            oracle.fulfill(orphan)

    def test_failed_callback_can_be_redelivered(self, closed_exchange, oracle, request_id):
        closed_exchange.events.subscribe(_broken_listener)

        with pytest.raises(sqlite3.OperationalError):
            oracle.fulfill(request_id)

        assert not closed_exchange.get_decryption_context(request_id).processed
        assert closed_exchange.get_result(1) is None
        assert closed_exchange.events.last(DecryptionCompleted) is None

        closed_exchange.events.listeners.remove(_broken_listener)
        result = oracle.fulfill(request_id)

        assert result.winning_amount == 30
        assert closed_exchange.get_result(1) == result
