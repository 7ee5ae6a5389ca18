"""
Reference decryption oracle (KMS stand-in).

Holds a secp256k1 signer key. Requests are queued until `fulfill` is called,
which decrypts the handles through the bound FHE backend, encodes them as
32-byte words and signs keccak256(request_id || cleartexts).
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from adx.crypto import (
    KeyPair,
    encode_uint256,
    generate_keypair,
    keccak256,
    sign,
    verify,
)
from adx.fhe.mock import MockFHE
from adx.oracle import DecryptionCallback, DecryptionOracle
from adx.utils.logger import get_logger

logger = get_logger("oracle")


def proof_digest(request_id: int, cleartexts: bytes) -> bytes:
    """Message hash the oracle signs for a decryption result."""
    return keccak256(encode_uint256(request_id) + cleartexts)


@dataclass
class PendingRequest:
    """A decryption request waiting for delivery."""
    request_id: int
    handles: List[bytes]
    callback: DecryptionCallback


class MockDecryptionOracle(DecryptionOracle):
    """
    Deterministic single-signer oracle.

    Request ids start at 1 and increase by one per request.
    """

    def __init__(self, fhe: MockFHE, signer: Optional[KeyPair] = None):
        self.fhe = fhe
        self.signer = signer or generate_keypair()
        self.pending: Dict[int, PendingRequest] = {}
        self._next_request_id = 1

    def request_decryption(self, handles: List[bytes], callback: DecryptionCallback) -> int:
        request_id = self._next_request_id
        self._next_request_id += 1
        self.pending[request_id] = PendingRequest(request_id, list(handles), callback)
        logger.debug(f"Decryption request {request_id} queued for {len(handles)} handle(s)")
        return request_id

    def check_signatures(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        return verify(proof_digest(request_id, cleartexts), proof, self.signer.public_key)

    # =========================================================================
    # Off-chain side
    # =========================================================================

    def decrypt(self, request_id: int) -> Tuple[bytes, bytes]:
        """
        Produce (cleartexts, proof) for a pending request without delivering.

        Raises:
            KeyError: if the request is unknown or already delivered
            ValueError: if a handle has no ciphertext behind it
        """
        request = self.pending[request_id]
        words = []
        for handle in request.handles:
            value = self.fhe.reveal(handle)
            if value is None:
                raise ValueError(f"Handle 0x{handle.hex()[:12]}... cannot be decrypted")
            words.append(encode_uint256(value))
        cleartexts = b"".join(words)
        proof = sign(proof_digest(request_id, cleartexts), self.signer.private_key)
        return cleartexts, proof

    def fulfill(self, request_id: int):
        """
        Decrypt and deliver a pending request to its callback.

        The request leaves the queue only if the callback returns normally;
        a rejected callback propagates and the request stays pending.
        """
        cleartexts, proof = self.decrypt(request_id)
        request = self.pending[request_id]
        result = request.callback(request_id, cleartexts, proof)
        del self.pending[request_id]
        logger.info(f"Decryption request {request_id} fulfilled")
        return result

    def fulfill_all(self) -> int:
        """Deliver every pending request. Returns the number delivered."""
        delivered = 0
        for request_id in sorted(self.pending):
            self.fulfill(request_id)
            delivered += 1
        return delivered
