"""
Decryption oracle capability.

The oracle accepts ciphertext handles and a callback, returns a request id
immediately, and later delivers `(request_id, cleartexts, proof)` to the
callback on its own schedule. Cleartexts are ABI-style: one 32-byte
big-endian word per requested handle, in request order.
"""

from abc import ABC, abstractmethod
from typing import Callable, List

DecryptionCallback = Callable[[int, bytes, bytes], object]


class DecryptionOracle(ABC):
    """Asynchronous threshold-decryption service."""

    @abstractmethod
    def request_decryption(self, handles: List[bytes], callback: DecryptionCallback) -> int:
        """
        Queue a decryption request.

        Args:
            handles: 32-byte ciphertext handles to decrypt
            callback: Entry point to invoke with the result

        Returns:
            Oracle-assigned request id
        """

    @abstractmethod
    def check_signatures(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        """Whether `proof` authenticates `cleartexts` for `request_id`."""


from adx.oracle.mock import MockDecryptionOracle, PendingRequest, proof_digest  # noqa: E402

__all__ = [
    "DecryptionCallback",
    "DecryptionOracle",
    "MockDecryptionOracle",
    "PendingRequest",
    "proof_digest",
]
