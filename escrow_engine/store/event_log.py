"""Append-only transaction event log."""

import threading
from dataclasses import dataclass, field, replace

from escrow_engine.models.escrow import TransactionEvent


@dataclass
class EventLog:
    """Append-only store of immutable events, grouped per transaction.

    Appending an event whose ``event_id`` is already recorded returns the
    recorded event unchanged, so replays of the same transition are harmless.
    """

    _events: dict[str, list[TransactionEvent]] = field(default_factory=dict)
    _by_id: dict[str, TransactionEvent] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def append(self, event: TransactionEvent) -> TransactionEvent:
        """Append an event and return it with its sequence number assigned."""
        with self._lock:
            existing = self._by_id.get(event.event_id)
            if existing is not None:
                return existing

            events = self._events.setdefault(event.transaction_id, [])
            recorded = replace(event, sequence=len(events) + 1)
            events.append(recorded)
            self._by_id[recorded.event_id] = recorded
            return recorded

    def read_all(self, transaction_id: str) -> list[TransactionEvent]:
        """Events for a transaction in creation order."""
        with self._lock:
            events = list(self._events.get(transaction_id, []))
        return sorted(events, key=lambda e: (e.created_at, e.sequence))

    def latest(self, transaction_id: str) -> TransactionEvent | None:
        events = self.read_all(transaction_id)
        return events[-1] if events else None

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)
