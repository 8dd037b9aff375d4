from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from hearth.core.events.models import SourceSubsystem
from hearth.core.events.registry import RETENTION_APPLIED
from hearth.core.interactions.models import UserInteraction
from hearth.core.interactions.store import InteractionStore
from hearth.core.privacy.mapping import MAX_RETENTION_DAYS, retention_days_for
from hearth.core.privacy.models import RetentionPolicy
from hearth.core.privacy.policy import PrivacyPolicyStore, parse_retention_policy


# (user_id, expired_records) -> None; records are already sanitized
ArchiveSink = Callable[[str, List[UserInteraction]], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RetentionEnforcer:
    """
    Deletes stored interactions older than the user's effective retention.

    Deletion is a pure filter on timestamp under the per-user store lock, so
    repeated or interleaved runs converge on the same result.
    """

    def __init__(
        self,
        *,
        store: InteractionStore,
        policy_store: PrivacyPolicyStore,
        event_bus=None,
        archive_sink: Optional[ArchiveSink] = None,
        user_ref: Optional[Callable[[str], str]] = None,
        clock: Callable[[], datetime] = utc_now,
        logger=None,
    ):
        self.store = store
        self.policy_store = policy_store
        self.event_bus = event_bus
        self.archive_sink = archive_sink
        self.user_ref = user_ref or (lambda _uid: "anonymous")
        self.clock = clock
        self.logger = logger

    def effective_policy(self, user_id: str) -> RetentionPolicy:
        return self.policy_store.retention_policy(user_id)

    def effective_days(self, user_id: str) -> int:
        pol = self.effective_policy(user_id)
        if not pol.auto_delete:
            # stricter override is advisory only; the level's period still applies
            return min(MAX_RETENTION_DAYS, retention_days_for(self.policy_store.effective_level(user_id)))
        return min(MAX_RETENTION_DAYS, int(pol.retention_days))

    def configure_retention(self, user_id: str, policy: Any) -> RetentionPolicy:
        pol = parse_retention_policy(policy)
        with self.store.lock_for(user_id):
            previous = self.policy_store.retention_override(user_id, pol.data_type)
            self.policy_store.set_retention_override(user_id, pol)
            try:
                self.apply_retention(user_id)
            except Exception:
                self.policy_store.restore_retention_override(user_id, pol.data_type, previous)
                raise
        return pol

    def apply_retention(self, user_id: str, now: Optional[datetime] = None) -> int:
        pol = self.effective_policy(user_id)
        days = self.effective_days(user_id)
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - timedelta(days=days)

        on_expired = None
        if pol.archive_before_delete:
            if self.archive_sink is not None:
                on_expired = self.archive_sink
            elif self.logger is not None:
                self.logger.warning(f"Archive requested but no archive sink configured (user={self.user_ref(user_id)}).")

        removed = self.store.remove_older_than(user_id, cutoff, on_expired=on_expired)
        if removed:
            if self.logger is not None:
                self.logger.info(f"Retention removed {removed} interaction(s) for user={self.user_ref(user_id)} days={days}")
            if self.event_bus is not None:
                self.event_bus.emit(
                    RETENTION_APPLIED,
                    {
                        "user_ref": self.user_ref(user_id),
                        "removed_count": removed,
                        "retention_days": days,
                        "archived": on_expired is not None,
                        "user_notification": bool(pol.user_notification),
                    },
                    source_subsystem=SourceSubsystem.retention,
                )
        return removed

    def apply_all(self, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or self.clock()
        out: Dict[str, int] = {}
        for user_id in self.store.users():
            try:
                out[user_id] = self.apply_retention(user_id, now=now)
            except Exception as e:  # noqa: BLE001
                if self.logger is not None:
                    self.logger.error(f"Retention sweep failed for user={self.user_ref(user_id)}: {type(e).__name__}")
        return out


class RetentionScheduler:
    """Runs `apply_all()` on a daemon thread every `interval_seconds`."""

    def __init__(self, *, enforcer: RetentionEnforcer, interval_seconds: float = 3600.0, logger=None):
        self.enforcer = enforcer
        self.interval_seconds = max(0.05, float(interval_seconds))
        self.logger = logger
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="retention-sweep", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def run_once(self) -> Dict[str, int]:
        self.runs += 1
        return self.enforcer.apply_all()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:  # noqa: BLE001
                if self.logger is not None:
                    self.logger.warning(f"Retention sweep error: {type(e).__name__}")
