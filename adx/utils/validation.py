"""
Input Validation - boundary checks for values entering the exchange.

Mirrors what the host ABI layer guarantees on-chain: addresses are 20
bytes, ids and durations are non-negative integers in range.
"""

from typing import Any, Optional, Tuple

from adx.crypto import ADDRESS_SIZE, MAX_UINT256

# =============================================================================
# Constants
# =============================================================================

MAX_TIMESTAMP = 2**64 - 1
MAX_PROOF_SIZE = 4096


# =============================================================================
# Validation Functions
# =============================================================================


def validate_bytes(
    data: Any,
    name: str,
    expected_length: Optional[int] = None,
    max_length: Optional[int] = None,
) -> Tuple[bool, str]:
    """
    Validate bytes input.

    Args:
        data: Data to validate
        name: Field name for error messages
        expected_length: Exact expected length
        max_length: Maximum allowed length

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(data, (bytes, bytearray)):
        return False, f"{name} must be bytes, got {type(data).__name__}"

    if expected_length is not None and len(data) != expected_length:
        return False, f"{name} must be {expected_length} bytes, got {len(data)}"

    if max_length is not None and len(data) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(data)}"

    return True, ""


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 20-byte address."""
    return validate_bytes(address, name, expected_length=ADDRESS_SIZE)


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 0,
    max_val: int = MAX_UINT256,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass but never a valid id or duration
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_instance(value: Any, expected_type: type, name: str) -> Tuple[bool, str]:
    """Validate that `value` is an `expected_type`."""
    if not isinstance(value, expected_type):
        return False, f"{name} must be {expected_type.__name__}, got {type(value).__name__}"
    return True, ""


def validate_timestamp(value: Any) -> Tuple[bool, str]:
    """Validate a block timestamp."""
    return validate_integer(value, "timestamp", max_val=MAX_TIMESTAMP)


def require(result: Tuple[bool, str]) -> None:
    """Raise ValueError for a failed validation result."""
    ok, err = result
    if not ok:
        raise ValueError(err)
