from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional

from hearth.core.interactions.models import TimeRange, UserInteraction
from hearth.core.locks import KeyedLocks


class InteractionStore:
    """
    In-memory, per-user list of sanitized interactions.

    Writers for a user serialize on that user's lock and swap in a new list;
    readers take the current list reference without locking, so they never
    see a half-applied append or deletion and never wait on other users.
    """

    def __init__(self) -> None:
        self._locks = KeyedLocks()
        self._data: Dict[str, List[UserInteraction]] = {}

    def lock_for(self, user_id: str):
        return self._locks.hold(f"user:{user_id}")

    def append(self, user_id: str, interaction: UserInteraction) -> int:
        with self.lock_for(user_id):
            updated = self._data.get(user_id, []) + [interaction]
            self._data[user_id] = updated
            return len(updated)

    def discard(self, user_id: str, interaction: UserInteraction) -> bool:
        """Removes this exact record (by identity). False if it is gone already."""
        with self.lock_for(user_id):
            current = self._data.get(user_id, [])
            kept = [i for i in current if i is not interaction]
            if len(kept) == len(current):
                return False
            if kept:
                self._data[user_id] = kept
            else:
                self._data.pop(user_id, None)
            return True

    def list(self, user_id: str, time_range: Optional[TimeRange] = None) -> List[UserInteraction]:
        items = list(self._data.get(user_id, []))
        if time_range is None:
            return items
        return [i for i in items if time_range.contains(i.timestamp)]

    def count(self, user_id: str) -> int:
        return len(self._data.get(user_id, []))

    def users(self) -> List[str]:
        return list(self._data)

    def remove_older_than(
        self,
        user_id: str,
        cutoff: datetime,
        *,
        on_expired: Optional[Callable[[str, List[UserInteraction]], None]] = None,
    ) -> int:
        """
        Drops every record with timestamp < cutoff. `on_expired` sees the
        expired records first; if it raises, nothing is deleted.
        """
        with self.lock_for(user_id):
            current = self._data.get(user_id, [])
            kept = [i for i in current if i.timestamp >= cutoff]
            expired = [i for i in current if i.timestamp < cutoff]
            if not expired:
                return 0
            if on_expired is not None:
                on_expired(user_id, expired)
            self._data[user_id] = kept
            return len(expired)

    def purge(self, user_id: str) -> int:
        with self.lock_for(user_id):
            return len(self._data.pop(user_id, []))
