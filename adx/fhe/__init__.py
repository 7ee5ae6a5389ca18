"""
FHE capability interface.

The exchange never touches encrypted arithmetic itself. It consumes an
`FHEBackend` that exposes a narrow operation set over opaque 32-byte
ciphertext handles:

- is_initialized(ct)   validity marker for a handle
- ge(a, b)             homomorphic a >= b, yielding an encrypted boolean
- decrypt_bool(eb)     branchable native boolean from an encrypted boolean
- to_bytes32(ct)       fixed-size binary form for hashing and oracle requests
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

HANDLE_SIZE = 32
ZERO_HANDLE = bytes(HANDLE_SIZE)


@dataclass(frozen=True)
class Ciphertext:
    """Opaque handle to an encrypted unsigned integer."""
    handle: bytes

    def __post_init__(self):
        if len(self.handle) != HANDLE_SIZE:
            raise ValueError(f"Ciphertext handle must be {HANDLE_SIZE} bytes, got {len(self.handle)}")

    def __repr__(self) -> str:
        return f"Ciphertext(0x{self.handle.hex()[:12]}...)"


@dataclass(frozen=True)
class EncryptedBool:
    """Opaque handle to an encrypted boolean."""
    handle: bytes

    def __repr__(self) -> str:
        return f"EncryptedBool(0x{self.handle.hex()[:12]}...)"


class FHEBackend(ABC):
    """Operations the exchange may perform on ciphertexts."""

    @abstractmethod
    def is_initialized(self, ct: Ciphertext) -> bool:
        """Whether `ct` refers to a validly-formed ciphertext."""

    @abstractmethod
    def ge(self, a: Ciphertext, b: Ciphertext) -> EncryptedBool:
        """Encrypted result of a >= b."""

    @abstractmethod
    def decrypt_bool(self, value: EncryptedBool) -> bool:
        """Native boolean for branching on an encrypted comparison."""

    def to_bytes32(self, ct: Ciphertext) -> bytes:
        """Fixed 32-byte form of a ciphertext handle."""
        return ct.handle


from adx.fhe.mock import MockFHE  # noqa: E402

__all__ = [
    "Ciphertext",
    "EncryptedBool",
    "FHEBackend",
    "MockFHE",
    "HANDLE_SIZE",
    "ZERO_HANDLE",
]
