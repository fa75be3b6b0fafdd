"""In-memory persistence for the escrow engine."""

from escrow_engine.store.escrow import EscrowDataStore, UnitOfWork
from escrow_engine.store.event_log import EventLog
from escrow_engine.store.locks import KeyedLocks
from escrow_engine.store.retry import call_with_retries

__all__ = ["EscrowDataStore", "EventLog", "KeyedLocks", "UnitOfWork", "call_with_retries"]
