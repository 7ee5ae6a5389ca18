"""Call context carried into every exchange entry point."""

from dataclasses import dataclass

from adx.utils.validation import require, validate_address, validate_timestamp


@dataclass(frozen=True)
class Msg:
    """
    Who is calling, and when.

    Attributes:
        sender: 20-byte caller address
        timestamp: Block timestamp of the call, in seconds
    """
    sender: bytes
    timestamp: int

    def __post_init__(self):
        require(validate_address(self.sender, "sender"))
        require(validate_timestamp(self.timestamp))
