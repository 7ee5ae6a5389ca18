"""
Exchange events - the public, append-only log.

Events are the only externally observable outputs of the exchange besides
return values and raised errors.
"""

from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Callable, ClassVar, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from adx.crypto import bytes_to_hex


@dataclass(frozen=True)
class Event:
    """Base event. Subclasses set `name`."""
    name: ClassVar[str] = "Event"

    def to_dict(self) -> Dict[str, object]:
        """JSON-friendly payload (bytes rendered as 0x-hex)."""
        out = {}
        for key, value in asdict(self).items():
            out[key] = bytes_to_hex(value) if isinstance(value, bytes) else value
        return out


@dataclass(frozen=True)
class OwnershipTransferred(Event):
    name: ClassVar[str] = "OwnershipTransferred"
    previous_owner: bytes
    new_owner: bytes


@dataclass(frozen=True)
class ProviderAdded(Event):
    name: ClassVar[str] = "ProviderAdded"
    provider: bytes


@dataclass(frozen=True)
class ProviderRemoved(Event):
    name: ClassVar[str] = "ProviderRemoved"
    provider: bytes


@dataclass(frozen=True)
class PausedSet(Event):
    name: ClassVar[str] = "PausedSet"
    by: bytes
    paused: bool


@dataclass(frozen=True)
class CooldownSet(Event):
    name: ClassVar[str] = "CooldownSet"
    old_cooldown: int
    new_cooldown: int


@dataclass(frozen=True)
class BatchOpened(Event):
    name: ClassVar[str] = "BatchOpened"
    batch_id: int


@dataclass(frozen=True)
class BatchClosed(Event):
    name: ClassVar[str] = "BatchClosed"
    batch_id: int


@dataclass(frozen=True)
class BidSubmitted(Event):
    name: ClassVar[str] = "BidSubmitted"
    bidder: bytes
    batch_id: int


@dataclass(frozen=True)
class DecryptionRequested(Event):
    name: ClassVar[str] = "DecryptionRequested"
    request_id: int
    batch_id: int


@dataclass(frozen=True)
class DecryptionCompleted(Event):
    name: ClassVar[str] = "DecryptionCompleted"
    request_id: int
    batch_id: int
    winning_amount: int
    winner: bytes


E = TypeVar("E", bound=Event)


NumberedEvents = List[Tuple[int, Event]]
Listener = Callable[[NumberedEvents], None]


@dataclass
class EventLog:
    """
    Append-only event log.

    Listeners (e.g. persistent storage) receive each published group of
    events as (index, event) pairs in emission order. Inside `deferred()`
    events are held back and published as one group when the block
    completes; an entry is appended only after every listener accepted it.
    """
    entries: List[Event] = field(default_factory=list)
    listeners: List[Listener] = field(default_factory=list)
    _pending: Optional[List[Event]] = field(default=None, init=False, repr=False)

    def emit(self, event: Event) -> None:
        if self._pending is not None:
            self._pending.append(event)
            return
        self._publish([event])

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """Hold events emitted in the block; drop them if it raises."""
        if self._pending is not None:
            yield
            return

        self._pending = []
        try:
            yield
            pending = self._pending
        finally:
            self._pending = None
        self._publish(pending)

    def _publish(self, events: List[Event]) -> None:
        if not events:
            return
        numbered = list(enumerate(events, start=len(self.entries)))
        for listener in self.listeners:
            listener(numbered)
        self.entries.extend(events)

    def subscribe(self, listener: Listener) -> None:
        self.listeners.append(listener)

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [e for e in self.entries if isinstance(e, event_type)]

    def last(self, event_type: Optional[Type[E]] = None) -> Optional[Event]:
        candidates = self.entries if event_type is None else self.of_type(event_type)
        return candidates[-1] if candidates else None

    def __len__(self) -> int:
        return len(self.entries)


__all__ = [
    "Event",
    "EventLog",
    "OwnershipTransferred",
    "ProviderAdded",
    "ProviderRemoved",
    "PausedSet",
    "CooldownSet",
    "BatchOpened",
    "BatchClosed",
    "BidSubmitted",
    "DecryptionRequested",
    "DecryptionCompleted",
]
