from __future__ import annotations

import contextlib
import threading
from typing import Dict, Iterator, List


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.holders = 0


class KeyedLocks:
    """
    One re-entrant lock per key (user id, family id, ...). Unrelated keys never
    contend; the guard lock is held only while looking a lock up.

    Entries are reference counted: a key's lock exists only while some thread
    holds or waits on it, so the table does not grow with every id ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    @contextlib.contextmanager
    def hold(self, key: str) -> Iterator[None]:
        key = str(key)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def keys(self) -> List[str]:
        with self._guard:
            return list(self._entries)
