"""
Access Control - roles, pause switch and per-address rate limiting.

Roles:
- owner: single address; sole mutator of the provider set and global config
- providers: any number of addresses allowed to manage batches and
  request decryption

Rate limiting keeps two independent timestamps per address, one for bid
submission and one for decryption requests. An address may repeat an
action once `cooldown_seconds` have elapsed since its last use of that
action (now >= last + cooldown). An address with no record is not limited.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Set

from adx.core.errors import CooldownActive, NotOwner, NotProvider, Paused
from adx.core.events import (
    CooldownSet,
    EventLog,
    OwnershipTransferred,
    PausedSet,
    ProviderAdded,
    ProviderRemoved,
)
from adx.crypto import short_hex
from adx.utils.logger import get_logger
from adx.utils.validation import require, validate_address, validate_integer

logger = get_logger("access")


class RateLimitedAction(Enum):
    """Actions that share the cooldown duration but not the counter."""
    SUBMISSION = "submission"
    DECRYPTION_REQUEST = "decryption_request"


@dataclass
class AccessControl:
    """
    Role registry, global config and rate-limit state.

    Attributes:
        owner: Current owner address
        providers: Addresses holding the provider role
        paused: Global pause flag
        cooldown_seconds: Shared cooldown for both rate limiters
        last_submission_time: address -> timestamp of last bid submission
        last_decryption_request_time: address -> timestamp of last request
    """
    owner: bytes
    events: EventLog = field(default_factory=EventLog)
    providers: Set[bytes] = field(default_factory=set)
    paused: bool = False
    cooldown_seconds: int = 60
    last_submission_time: Dict[bytes, int] = field(default_factory=dict)
    last_decryption_request_time: Dict[bytes, int] = field(default_factory=dict)

    def __post_init__(self):
        require(validate_address(self.owner, "owner"))
        require(validate_integer(self.cooldown_seconds, "cooldown_seconds"))

    # =========================================================================
    # Guards
    # =========================================================================

    def is_owner(self, addr: bytes) -> bool:
        return addr == self.owner

    def is_provider(self, addr: bytes) -> bool:
        return addr in self.providers

    def only_owner(self, sender: bytes) -> None:
        if sender != self.owner:
            raise NotOwner(f"{short_hex(sender)} is not the owner")

    def only_provider(self, sender: bytes) -> None:
        if sender not in self.providers:
            raise NotProvider(f"{short_hex(sender)} is not a provider")

    def when_not_paused(self) -> None:
        if self.paused:
            raise Paused("Exchange is paused")

    # =========================================================================
    # Rate limiting
    # =========================================================================

    def _timestamps(self, action: RateLimitedAction) -> Dict[bytes, int]:
        if action is RateLimitedAction.SUBMISSION:
            return self.last_submission_time
        return self.last_decryption_request_time

    def last_action_time(self, addr: bytes, action: RateLimitedAction) -> Optional[int]:
        return self._timestamps(action).get(addr)

    def check_cooldown(self, sender: bytes, action: RateLimitedAction, now: int) -> None:
        """Raise CooldownActive if `sender` is still inside its window."""
        last = self._timestamps(action).get(sender)
        if last is not None and now < last + self.cooldown_seconds:
            remaining = last + self.cooldown_seconds - now
            raise CooldownActive(
                f"{action.value} cooldown active for {short_hex(sender)}: {remaining}s remaining"
            )

    def charge(self, sender: bytes, action: RateLimitedAction, now: int) -> Optional[int]:
        """
        Record `now` as the sender's last use of `action`.

        Returns:
            The previous timestamp (None if there was none), for rollback
        """
        timestamps = self._timestamps(action)
        previous = timestamps.get(sender)
        timestamps[sender] = now
        return previous

    def refund(self, sender: bytes, action: RateLimitedAction, previous: Optional[int]) -> None:
        """Undo a `charge`, restoring the previous timestamp."""
        timestamps = self._timestamps(action)
        if previous is None:
            timestamps.pop(sender, None)
        else:
            timestamps[sender] = previous

    # =========================================================================
    # Rollback
    # =========================================================================

    def snapshot(self) -> tuple:
        return (
            self.owner,
            frozenset(self.providers),
            self.paused,
            self.cooldown_seconds,
            dict(self.last_submission_time),
            dict(self.last_decryption_request_time),
        )

    def restore(self, snapshot: tuple) -> None:
        owner, providers, paused, cooldown, submissions, requests = snapshot
        self.owner = owner
        self.providers = set(providers)
        self.paused = paused
        self.cooldown_seconds = cooldown
        self.last_submission_time = dict(submissions)
        self.last_decryption_request_time = dict(requests)

    # =========================================================================
    # Owner operations
    # =========================================================================

    def transfer_ownership(self, sender: bytes, new_owner: bytes) -> None:
        self.only_owner(sender)
        require(validate_address(new_owner, "new_owner"))
        previous = self.owner
        self.owner = new_owner
        self.events.emit(OwnershipTransferred(previous_owner=previous, new_owner=new_owner))
        logger.info(f"Ownership transferred {short_hex(previous)} -> {short_hex(new_owner)}")

    def add_provider(self, sender: bytes, provider: bytes) -> None:
        self.only_owner(sender)
        require(validate_address(provider, "provider"))
        self.providers.add(provider)
        self.events.emit(ProviderAdded(provider=provider))
        logger.info(f"Provider added: {short_hex(provider)}")

    def remove_provider(self, sender: bytes, provider: bytes) -> None:
        self.only_owner(sender)
        require(validate_address(provider, "provider"))
        self.providers.discard(provider)
        self.events.emit(ProviderRemoved(provider=provider))
        logger.info(f"Provider removed: {short_hex(provider)}")

    def set_paused(self, sender: bytes, paused: bool) -> None:
        self.only_owner(sender)
        self.paused = bool(paused)
        self.events.emit(PausedSet(by=sender, paused=self.paused))
        logger.info(f"Exchange {'paused' if self.paused else 'unpaused'} by {short_hex(sender)}")

    def set_cooldown_seconds(self, sender: bytes, seconds: int) -> None:
        self.only_owner(sender)
        require(validate_integer(seconds, "cooldown_seconds"))
        old = self.cooldown_seconds
        self.cooldown_seconds = seconds
        self.events.emit(CooldownSet(old_cooldown=old, new_cooldown=seconds))
        logger.info(f"Cooldown set: {old}s -> {seconds}s")
