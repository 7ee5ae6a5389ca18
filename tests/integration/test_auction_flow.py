"""
Integration tests for the sealed-bid batch auction.

Tests the complete flow from batch opening to revealed winner, the global
pause switch, and the CLI.
"""

import re

import pytest
from click.testing import CliRunner

from adx.cli.main import cli
from adx.core import (
    BatchState,
    ExchangeConfig,
    InvalidBatch,
    Msg,
    Paused,
    SealedBidExchange,
)
from adx.core.events import (
    BatchClosed,
    BatchOpened,
    BidSubmitted,
    DecryptionCompleted,
    DecryptionRequested,
)
from adx.crypto import generate_keypair
from adx.fhe import MockFHE
from adx.oracle import MockDecryptionOracle


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def parties():
    """Owner, provider and three advertisers with real addresses."""
    return {
        "owner": generate_keypair().address,
        "provider": generate_keypair().address,
        "advertisers": [generate_keypair().address for _ in range(3)],
    }


@pytest.fixture
def fhe():
    return MockFHE()


@pytest.fixture
def oracle(fhe):
    return MockDecryptionOracle(fhe)


@pytest.fixture
def exchange(parties, fhe, oracle):
    exchange = SealedBidExchange(
        parties["owner"], fhe, oracle,
        config=ExchangeConfig(cooldown_seconds=30),
    )
    exchange.add_provider(parties["provider"], Msg(parties["owner"], 0))
    return exchange


# =============================================================================
# Full Flow Tests
# =============================================================================


class TestFullAuctionFlow:
    """End-to-end auction flow tests."""

    def test_complete_auction_flow(self, exchange, parties, fhe, oracle):
        """open -> bid -> close -> request -> callback."""
        provider = parties["provider"]
        advertisers = parties["advertisers"]

        exchange.open_batch(10, Msg(provider, 100))
        for advertiser, amount, score in zip(advertisers, [250, 900, 400], [70, 20, 95]):
            exchange.submit_bid(10, fhe.encrypt(amount), fhe.encrypt(score), Msg(advertiser, 101))
        exchange.close_batch(10, Msg(provider, 102))

        request_id = exchange.request_auction_result_decryption(10, Msg(provider, 103))
        assert exchange.get_result(10) is None

        result = oracle.fulfill(request_id)

        assert result.winner == advertisers[1]
        assert result.winning_amount == 900
        assert exchange.get_result(10) == result

        assert [type(e) for e in exchange.events.entries[1:]] == [
            BatchOpened,
            BidSubmitted,
            BidSubmitted,
            BidSubmitted,
            BatchClosed,
            DecryptionRequested,
            DecryptionCompleted,
        ]

    def test_independent_batches(self, exchange, parties, fhe, oracle):
        provider = parties["provider"]
        a, b, c = parties["advertisers"]

        exchange.open_batch(1, Msg(provider, 100))
        exchange.open_batch(2, Msg(provider, 100))
        exchange.submit_bid(1, fhe.encrypt(5), fhe.encrypt(1), Msg(a, 101))
        exchange.submit_bid(2, fhe.encrypt(50), fhe.encrypt(1), Msg(b, 101))
        exchange.submit_bid(1, fhe.encrypt(6), fhe.encrypt(1), Msg(c, 101))
        exchange.close_batch(1, Msg(provider, 102))

        # Batch 2 still open: bidding continues there
        exchange.submit_bid(2, fhe.encrypt(70), fhe.encrypt(1), Msg(a, 140))
        with pytest.raises(InvalidBatch):
            exchange.submit_bid(1, fhe.encrypt(99), fhe.encrypt(1), Msg(b, 140))

        exchange.close_batch(2, Msg(provider, 141))
        first = exchange.request_auction_result_decryption(1, Msg(provider, 142))
        oracle.fulfill(first)
        second = exchange.request_auction_result_decryption(2, Msg(provider, 172))
        oracle.fulfill(second)

        assert (exchange.get_result(1).winner, exchange.get_result(1).winning_amount) == (c, 6)
        assert (exchange.get_result(2).winner, exchange.get_result(2).winning_amount) == (a, 70)

    def test_out_of_order_callbacks(self, exchange, parties, fhe, oracle):
        """Callbacks may arrive in any order; each finalizes its own batch."""
        provider = parties["provider"]
        a, b, _ = parties["advertisers"]
        second_provider = generate_keypair().address
        exchange.add_provider(second_provider, Msg(parties["owner"], 0))

        for batch_id, bidder, amount in [(1, a, 11), (2, b, 22)]:
            exchange.open_batch(batch_id, Msg(provider, 100))
            exchange.submit_bid(batch_id, fhe.encrypt(amount), fhe.encrypt(1), Msg(bidder, 100))
            exchange.close_batch(batch_id, Msg(provider, 101))

        first = exchange.request_auction_result_decryption(1, Msg(provider, 102))
        second = exchange.request_auction_result_decryption(2, Msg(second_provider, 102))
        assert exchange.pending_requests() == [first, second]

        oracle.fulfill(second)
        oracle.fulfill(first)

        assert exchange.get_result(1).winning_amount == 11
        assert exchange.get_result(2).winning_amount == 22
        assert exchange.pending_requests() == []

    def test_never_delivered_request_stays_unprocessed(self, exchange, parties, fhe):
        provider = parties["provider"]
        exchange.open_batch(1, Msg(provider, 100))
        exchange.submit_bid(1, fhe.encrypt(1), fhe.encrypt(1), Msg(parties["advertisers"][0], 100))
        exchange.close_batch(1, Msg(provider, 101))

        request_id = exchange.request_auction_result_decryption(1, Msg(provider, 102))

        assert exchange.get_decryption_context(request_id).processed is False
        assert exchange.stats()["decryptions_pending"] == 1


# =============================================================================
# Pause Tests
# =============================================================================


class TestPause:
    """Global pause blocks every bidding, batch and decryption call."""

    def test_pause_blocks_and_unpause_restores(self, exchange, parties, fhe, oracle):
        owner = parties["owner"]
        provider = parties["provider"]
        advertiser = parties["advertisers"][0]

        # Batch 1 closed with a bid, batch 2 active
        exchange.open_batch(1, Msg(provider, 100))
        exchange.submit_bid(1, fhe.encrypt(40), fhe.encrypt(1), Msg(advertiser, 100))
        exchange.close_batch(1, Msg(provider, 101))
        exchange.open_batch(2, Msg(provider, 101))
        before = exchange.stats()

        exchange.set_paused(True, Msg(owner, 200))
        assert not exchange.is_available()

        with pytest.raises(Paused):
            exchange.submit_bid(2, fhe.encrypt(1), fhe.encrypt(1), Msg(advertiser, 300))
        with pytest.raises(Paused):
            exchange.open_batch(3, Msg(provider, 300))
        with pytest.raises(Paused):
            exchange.close_batch(2, Msg(provider, 300))
        with pytest.raises(Paused):
            exchange.request_auction_result_decryption(1, Msg(provider, 300))

        # Rejected calls leave no trace, including rate-limit state
        assert exchange.last_submission_time(advertiser) == 100
        assert exchange.last_decryption_request_time(provider) is None

        exchange.set_paused(False, Msg(owner, 400))
        stats = exchange.stats()
        assert {k: v for k, v in stats.items() if k != "events"} == \
            {k: v for k, v in before.items() if k != "events"}

        exchange.submit_bid(2, fhe.encrypt(1), fhe.encrypt(1), Msg(advertiser, 500))
        exchange.open_batch(3, Msg(provider, 500))
        exchange.close_batch(2, Msg(provider, 500))
        request_id = exchange.request_auction_result_decryption(1, Msg(provider, 500))

        assert exchange.batch_state(2) == BatchState.CLOSED
        assert exchange.batch_state(3) == BatchState.ACTIVE
        assert oracle.fulfill(request_id).winning_amount == 40


# =============================================================================
# CLI Tests
# =============================================================================


class TestCLI:
    """Tests for the adx command line."""

    @pytest.fixture
    def env_file(self, tmp_path, monkeypatch):
        for key in ("ADX_DATA_DIR", "ADX_LOG_DIR", "ADX_COOLDOWN_SECONDS", "ADX_LOG_LEVEL", "ADX_LOG_TO_FILE"):
            monkeypatch.delenv(key, raising=False)
        path = tmp_path / ".env"
        path.write_text(
            f"ADX_DATA_DIR={tmp_path / 'data'}\n"
            f"ADX_LOG_DIR={tmp_path / 'logs'}\n"
        )
        return path

    def test_demo(self, env_file):
        result = CliRunner().invoke(cli, ["--env-file", str(env_file), "demo", "--bids", "10,30,20,30"])

        assert result.exit_code == 0, result.output
        assert "Winning bid: 30" in result.output
        assert "Winner position: #4 of 4" in result.output

    def test_demo_rejects_bad_bids(self, env_file):
        result = CliRunner().invoke(cli, ["--env-file", str(env_file), "demo", "--bids", "a,b"])

        assert result.exit_code != 0

    def test_demo_persist_then_events(self, env_file, tmp_path):
        runner = CliRunner()
        demo = runner.invoke(cli, ["--env-file", str(env_file), "demo", "--bids", "3,9", "--persist"])
        assert demo.exit_code == 0, demo.output
        assert (tmp_path / "data" / "exchange.db").exists()

        listing = runner.invoke(cli, ["--env-file", str(env_file), "events", "--name", "DecryptionCompleted"])

        assert listing.exit_code == 0, listing.output
        assert "DecryptionCompleted" in listing.output
        assert '"winning_amount": 9' in listing.output

    def test_repeated_persisted_demos(self, env_file):
        """Each run appends to the same event store."""
        runner = CliRunner()
        first = runner.invoke(cli, ["--env-file", str(env_file), "demo", "--bids", "3,9", "--persist"])
        second = runner.invoke(cli, ["--env-file", str(env_file), "demo", "--bids", "4,2", "--persist"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 0, second.output

        listing = runner.invoke(cli, ["--env-file", str(env_file), "events", "--name", "DecryptionCompleted"])
        assert '"winning_amount": 9' in listing.output
        assert '"winning_amount": 4' in listing.output

        address = re.search(r"Exchange deployed at (0x[0-9a-f]{40})", second.output).group(1)
        only_second = runner.invoke(cli, [
            "--env-file", str(env_file), "events", "--name", "DecryptionCompleted", "--exchange", address,
        ])
        assert only_second.exit_code == 0, only_second.output
        assert '"winning_amount": 4' in only_second.output
        assert '"winning_amount": 9' not in only_second.output

    def test_events_rejects_bad_exchange_address(self, env_file):
        result = CliRunner().invoke(cli, ["--env-file", str(env_file), "events", "--exchange", "0x1234"])

        assert result.exit_code != 0

    def test_config_command(self, env_file, tmp_path):
        result = CliRunner().invoke(cli, ["--env-file", str(env_file), "config"])

        assert result.exit_code == 0, result.output
        assert str(tmp_path / "data") in result.output
