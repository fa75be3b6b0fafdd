"""Per-key mutual exclusion for transaction commands."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # holders plus waiters


class KeyedLocks:
    """One lock per transaction id.

    Commands on the same id serialize; commands on different ids never
    contend beyond the brief registry lookup. An entry is dropped when its
    last holder or waiter leaves, so the registry only holds ids in use.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _Entry] = {}
        self._registry_lock = threading.Lock()

    def _acquire_entry(self, key: str) -> _Entry:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
            return entry

    def _release_entry(self, key: str, entry: _Entry) -> None:
        with self._registry_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        entry = self._acquire_entry(key)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(key, entry)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
