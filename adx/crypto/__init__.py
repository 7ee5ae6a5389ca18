"""
Cryptographic primitives for ADX.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Key generation and address derivation (secp256k1, Ethereum-style)
- Digital signatures (ECDSA on secp256k1) used by the decryption oracle
- ABI-style word encoding for oracle cleartexts

Design Notes:
-------------
Addresses are the last 20 bytes of keccak256(public_key), as on the EVM, so
identities produced here line up with wallet addresses seen by the frontend.

Keccak-256 is used for:
- Ciphertext handle derivation in the reference FHE backend
- Decryption state hashes (handle || engine address)
- Oracle proof digests (request id || cleartexts)
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ADDRESS_SIZE = 20
WORD_SIZE = 32
MAX_UINT256 = 2**256 - 1


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """Compute SHA-256 hash."""
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation, handle derivation, state hashes.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> bytes:
        """20-byte address derived from the public key."""
        return address_from_public_key(self.public_key)


def generate_keypair() -> KeyPair:
    """
    Generate a new random keypair.

    Uses cryptographically secure random number generator.
    """
    private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


def address_from_public_key(public_key: bytes) -> bytes:
    """
    Derive a 20-byte address from a 64-byte public key.

    Address = last 20 bytes of keccak256(public_key).
    """
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return keccak256(public_key)[-ADDRESS_SIZE:]


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Normalize s to lower half of curve order (EIP-2)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an ECDSA signature.

    Args:
        message_hash: 32-byte hash of the signed message
        signature: 64-byte signature (r || s)
        public_key: 64-byte public key (x || y)

    Returns:
        True if signature is valid, False otherwise
    """
    if len(message_hash) != 32 or len(signature) != 64 or len(public_key) != 64:
        return False

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if r < 1 or r >= SECP256K1_ORDER:
        return False
    if s < 1 or s >= SECP256K1_ORDER:
        return False

    public_key_point = (
        int.from_bytes(public_key[:32], byteorder="big"),
        int.from_bytes(public_key[32:], byteorder="big"),
    )

    # No recovery id is carried, so try both parities (v=27, v=28)
    for v in (27, 28):
        try:
            recovered = secp256k1.ecdsa_raw_recover(message_hash, (v, r, s))
        except Exception:
            continue
        if recovered == public_key_point:
            return True

    return False


# =============================================================================
# Encoding
# =============================================================================


def encode_uint256(value: int) -> bytes:
    """Encode an unsigned integer as a 32-byte big-endian word."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"Value {value} out of uint256 range")
    return value.to_bytes(WORD_SIZE, byteorder="big")


def decode_uint256(data: bytes, index: int = 0) -> int:
    """Decode the 32-byte word at position `index` of `data`."""
    start = index * WORD_SIZE
    word = data[start:start + WORD_SIZE]
    if len(word) != WORD_SIZE:
        raise ValueError(f"Expected a 32-byte word at index {index}, got {len(word)} bytes")
    return int.from_bytes(word, byteorder="big")


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to hex string with 0x prefix."""
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: Optional[bytes], length: int = 10) -> str:
    """Abbreviated hex for log lines."""
    if data is None:
        return "None"
    return bytes_to_hex(data)[:length] + "..."


def is_valid_address(address: str) -> bool:
    """Check if string is a valid address format."""
    if not address.startswith("0x"):
        return False
    if len(address) != 42:  # 0x + 40 hex chars
        return False
    try:
        int(address, 16)
        return True
    except ValueError:
        return False
