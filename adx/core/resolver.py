"""
Auction Resolver - homomorphic highest-bid selection.

Scans bids left to right keeping a running highest. A candidate replaces
the running highest whenever ge(candidate, highest) is true, so on equal
amounts the later bid in submission order wins. Only encrypted operands
are compared; the encrypted comparison result is turned into a native
boolean by the FHE backend purely for branching.
"""

from dataclasses import dataclass
from typing import Sequence

from adx.core.batch import Bid
from adx.fhe import Ciphertext, FHEBackend


@dataclass(frozen=True)
class Winner:
    """Winning bid: encrypted amount, public bidder, position in batch."""
    encrypted_amount: Ciphertext
    bidder: bytes
    index: int


def resolve_winner(fhe: FHEBackend, bids: Sequence[Bid]) -> Winner:
    """
    Select the highest bid without decrypting any amount.

    Args:
        fhe: Backend providing ge/decrypt_bool
        bids: Non-empty bids in submission order

    Returns:
        Winner

    Raises:
        ValueError: if `bids` is empty
    """
    if not bids:
        raise ValueError("No bids provided")

    highest_index = 0
    highest = bids[0]

    # A single bid wins without any comparison
    for index in range(1, len(bids)):
        candidate = bids[index]
        is_higher = fhe.ge(candidate.encrypted_bid_amount, highest.encrypted_bid_amount)
        if fhe.decrypt_bool(is_higher):
            highest = candidate
            highest_index = index

    return Winner(
        encrypted_amount=highest.encrypted_bid_amount,
        bidder=highest.bidder,
        index=highest_index,
    )
