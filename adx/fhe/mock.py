"""
Reference FHE backend for local runs and tests.

Stands in for the FHE coprocessor: ciphertexts are handles into a private
plaintext table that only the backend (and a decryption oracle bound to it)
can read. The exchange only ever sees handles.
"""

import itertools
from typing import Dict, Optional

from adx.crypto import keccak256
from adx.fhe import Ciphertext, EncryptedBool, FHEBackend, HANDLE_SIZE, ZERO_HANDLE
from adx.utils.logger import get_logger

logger = get_logger("fhe")

# Domain tags for handle derivation
_TAG_UINT = b"\x01"
_TAG_BOOL = b"\x02"


class MockFHE(FHEBackend):
    """
    Handle-table FHE backend.

    Attributes:
        comparison_count: Number of `ge` evaluations performed
    """

    def __init__(self, bit_width: int = 64, seed: bytes = b""):
        self.bit_width = bit_width
        self._seed = seed
        self._counter = itertools.count(1)
        self._uints: Dict[bytes, int] = {}
        self._bools: Dict[bytes, bool] = {}
        self.comparison_count = 0

    def _next_handle(self, tag: bytes) -> bytes:
        n = next(self._counter)
        return keccak256(tag + self._seed + n.to_bytes(HANDLE_SIZE, "big"))

    # =========================================================================
    # Client side
    # =========================================================================

    def encrypt(self, value: int) -> Ciphertext:
        """Encrypt a cleartext amount into a fresh handle."""
        if value < 0 or value >= 2**self.bit_width:
            raise ValueError(f"Value {value} out of range for euint{self.bit_width}")
        handle = self._next_handle(_TAG_UINT)
        self._uints[handle] = value
        return Ciphertext(handle)

    # =========================================================================
    # Capability surface
    # =========================================================================

    def is_initialized(self, ct: Ciphertext) -> bool:
        return ct.handle != ZERO_HANDLE and ct.handle in self._uints

    def ge(self, a: Ciphertext, b: Ciphertext) -> EncryptedBool:
        if not (self.is_initialized(a) and self.is_initialized(b)):
            raise ValueError("ge() requires initialized operands")
        self.comparison_count += 1
        handle = self._next_handle(_TAG_BOOL)
        self._bools[handle] = self._uints[a.handle] >= self._uints[b.handle]
        return EncryptedBool(handle)

    def decrypt_bool(self, value: EncryptedBool) -> bool:
        try:
            return self._bools[value.handle]
        except KeyError:
            raise ValueError("Unknown encrypted boolean handle") from None

    # =========================================================================
    # Decryption network side
    # =========================================================================

    def reveal(self, handle: bytes) -> Optional[int]:
        """Cleartext behind a handle. Reserved for the decryption oracle."""
        return self._uints.get(handle)
