"""
Exchange error conditions.

Every rejected call raises exactly one of these and leaves exchange state
as it was before the call.
"""


class ExchangeError(Exception):
    """Base class for all exchange rejections."""


# Authorization

class NotOwner(ExchangeError):
    """Caller is not the exchange owner."""


class NotProvider(ExchangeError):
    """Caller is not a registered provider."""


# Availability

class Paused(ExchangeError):
    """Exchange is globally paused."""


# Rate

class CooldownActive(ExchangeError):
    """Caller repeated a rate-limited action inside the cooldown window."""


# Lifecycle

class InvalidBatch(ExchangeError):
    """Batch state does not permit the requested transition."""


# Data integrity

class NotInitialized(ExchangeError):
    """A submitted ciphertext handle is not a valid ciphertext."""


# Oracle protocol

class InvalidState(ExchangeError):
    """Recomputed decryption state hash does not match the stored one."""


class InvalidProof(ExchangeError):
    """Oracle decryption proof failed verification."""


class ReplayDetected(ExchangeError):
    """Decryption callback delivered for an already processed request."""


__all__ = [
    "ExchangeError",
    "NotOwner",
    "NotProvider",
    "Paused",
    "CooldownActive",
    "InvalidBatch",
    "NotInitialized",
    "InvalidState",
    "InvalidProof",
    "ReplayDetected",
]
