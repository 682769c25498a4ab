"""Per-owner serialization of subscription writes within a process."""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterator


@dataclass
class _OwnerLock:
    lock: Lock = field(default_factory=Lock)
    waiters: int = 0


class OwnerSerializer:
    """Single-writer gate keyed by ``owner_id``.

    Holding the gate makes find-current-then-write sequences atomic for one
    owner inside this process. Entries are dropped once nobody waits on them.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, _OwnerLock] = {}

    @contextmanager
    def hold(self, owner_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(owner_id)
            if entry is None:
                entry = self._locks[owner_id] = _OwnerLock()
            entry.waiters += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.waiters -= 1
                if entry.waiters == 0:
                    self._locks.pop(owner_id, None)

    def active_owners(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["OwnerSerializer"]
