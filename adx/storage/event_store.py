from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from adx.core.events import Event
from adx.crypto import bytes_to_hex, short_hex
from adx.storage.sqlite_adapter import SQLiteAdapter
from adx.utils.logger import get_logger

logger = get_logger("storage.events")


class EventStore:
    """
    Persists exchange event logs.

    Subscribes to an EventLog (see SealedBidExchange(storage=...)) and
    writes each published group of events in one transaction, tagged with
    the emitting exchange's address. Several exchanges may share a store.
    Also keeps metadata about the most recently deployed exchange so a log
    can be inspected without the running exchange.
    """

    def __init__(self, data_dir: Path, db_name: str = "exchange.db"):
        self.data_dir = data_dir
        self.db_path = data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"EventStore initialized at {self.db_path}")

    def append_events(self, exchange: bytes, numbered: List[Tuple[int, Event]]):
        """EventLog listener."""
        self.adapter.append_events(
            bytes_to_hex(exchange),
            [(seq, event.name, event.to_dict()) for seq, event in numbered],
        )
        logger.debug(f"Persisted {len(numbered)} event(s) for {short_hex(exchange)}")

    def events(
        self,
        name: Optional[str] = None,
        exchange: Optional[bytes] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        key = bytes_to_hex(exchange) if exchange is not None else None
        return self.adapter.get_events(name=name, exchange=key, limit=limit)

    def event_count(self, exchange: Optional[bytes] = None) -> int:
        return self.adapter.count_events(bytes_to_hex(exchange) if exchange is not None else None)

    def save_exchange_info(self, address: bytes, owner: bytes):
        self.adapter.set_meta("address", bytes_to_hex(address))
        self.adapter.set_meta("owner", bytes_to_hex(owner))

    def exchange_info(self) -> Dict[str, Optional[str]]:
        return {
            "address": self.adapter.get_meta("address"),
            "owner": self.adapter.get_meta("owner"),
        }

    def close(self):
        self.adapter.close()
