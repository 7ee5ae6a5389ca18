"""
ADX CLI - Command Line Interface for the Confidential Ad Exchange

Main entry point for all CLI commands.
"""

import json
import logging
from pathlib import Path

import click

from adx.utils.logger import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, help="Path to a .env file with ADX_* settings")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file):
    """Confidential Ad Exchange - sealed-bid batch auctions over encrypted bids"""
    from adx.core.config import load_config

    config = load_config(env_file)
    setup_logging(
        level=logging.DEBUG if debug else config.log_level,
        log_dir=config.log_dir,
        log_to_file=config.log_to_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Demo Command
# =============================================================================


def _parse_bids(raw: str):
    try:
        bids = [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise click.BadParameter("bids must be comma-separated integers")
    if not bids:
        raise click.BadParameter("at least one bid is required")
    return bids


@cli.command("demo")
@click.option("--bids", default="10,30,20,30", help="Comma-separated cleartext bid amounts")
@click.option("--batch-id", default=1, type=int, help="Batch id to run")
@click.option("--persist/--no-persist", default=False, help="Write events to the data directory")
@click.pass_context
def demo(ctx, bids, batch_id, persist):
    """Run one sealed-bid batch end to end with reference capabilities"""
    from adx.core import Msg, SealedBidExchange
    from adx.crypto import bytes_to_hex, generate_keypair
    from adx.fhe import MockFHE
    from adx.oracle import MockDecryptionOracle
    from adx.storage import EventStore

    config = ctx.obj["config"]
    amounts = _parse_bids(bids)

    click.echo("=" * 60)
    click.echo("  CONFIDENTIAL AD EXCHANGE - DEMO")
    click.echo("=" * 60)
    click.echo()

    owner = generate_keypair().address
    provider = generate_keypair().address
    bidders = [generate_keypair().address for _ in amounts]

    fhe = MockFHE()
    oracle = MockDecryptionOracle(fhe)

    storage = None
    if persist:
        config.ensure_dirs()
        storage = EventStore(Path(config.data_dir))

    exchange = SealedBidExchange(owner, fhe, oracle, config=config, storage=storage)
    if storage is not None:
        storage.save_exchange_info(exchange.address, owner)

    now = 1_700_000_000
    click.echo(f"📦 Exchange deployed at {bytes_to_hex(exchange.address)}")
    exchange.add_provider(provider, Msg(owner, now))
    click.echo(f"  ✓ Provider registered: {bytes_to_hex(provider)[:14]}...")
    click.echo()

    exchange.open_batch(batch_id, Msg(provider, now))
    click.echo(f"🗂️  Batch {batch_id} opened")

    for bidder, amount in zip(bidders, amounts):
        enc_bid = fhe.encrypt(amount)
        enc_score = fhe.encrypt(100)
        exchange.submit_bid(batch_id, enc_bid, enc_score, Msg(bidder, now))
        click.echo(f"  ✓ Sealed bid from {bytes_to_hex(bidder)[:14]}... ({enc_bid!r})")

    exchange.close_batch(batch_id, Msg(provider, now + 1))
    click.echo(f"🔒 Batch {batch_id} closed with {exchange.bid_count(batch_id)} bid(s)")
    click.echo()

    request_id = exchange.request_auction_result_decryption(batch_id, Msg(provider, now + 2))
    click.echo(f"🔐 Decryption requested (request {request_id}); comparisons so far: {fhe.comparison_count}")

    result = oracle.fulfill(request_id)
    click.echo(f"🔓 Oracle delivered result for request {request_id}")
    click.echo()

    click.echo("📊 Result:")
    click.echo(f"  Winner: {bytes_to_hex(result.winner)}")
    click.echo(f"  Winning bid: {result.winning_amount}")
    click.echo(f"  Winner position: #{bidders.index(result.winner) + 1} of {len(bidders)}")
    click.echo()
    click.echo(f"  Stats: {exchange.stats()}")
    if storage is not None:
        click.echo(f"  Events persisted: {storage.event_count()} -> {storage.db_path}")
        storage.close()
    click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# Inspection Commands
# =============================================================================


@cli.command("events")
@click.option("--name", default=None, help="Only show events with this name")
@click.option("--exchange", "exchange_hex", default=None, help="Only show events of this exchange (0x address)")
@click.option("--limit", default=50, type=int, help="Max events to show")
@click.pass_context
def events(ctx, name, exchange_hex, limit):
    """List events persisted by previous runs"""
    from adx.crypto import hex_to_bytes, is_valid_address
    from adx.storage import EventStore

    exchange = None
    if exchange_hex is not None:
        if not is_valid_address(exchange_hex):
            raise click.BadParameter("exchange must be a 0x-prefixed 20-byte address", param_hint="--exchange")
        exchange = hex_to_bytes(exchange_hex)

    config = ctx.obj["config"]
    db_path = Path(config.data_dir) / "exchange.db"
    if not db_path.exists():
        click.echo(f"No event store at {db_path}. Run: adx demo --persist")
        return

    store = EventStore(Path(config.data_dir))
    info = store.exchange_info()
    click.echo(f"Last deployed exchange {info['address']} (owner {info['owner']})")
    click.echo("-" * 40)
    for entry in store.events(name=name, exchange=exchange, limit=limit):
        click.echo(
            f"  {entry['id']:>4}  {entry['exchange'][:12]}... #{entry['seq']:<3} "
            f"{entry['name']:<22} {json.dumps(entry['payload'])}"
        )
    store.close()


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Show effective configuration"""
    config = ctx.obj["config"]
    click.echo(json.dumps(config.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    cli()
