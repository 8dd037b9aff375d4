from __future__ import annotations

import json
import secrets
import threading
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from hearth.core.crypto import KeyedHasher
from hearth.core.errors import ChildSafetyViolation, ValidationError, normalize_exception
from hearth.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from hearth.core.events.registry import (
    DATA_PURGED,
    INTERACTION_CAPTURED,
    INTERACTION_ERROR,
    PATTERNS_DETECTED,
    PRIVACY_VIOLATION,
    RETENTION_CONFIGURED,
    SOURCE_ERROR,
    SOURCE_REGISTERED,
    SYSTEM_SHUTDOWN,
    source_interaction_event,
)
from hearth.core.interactions.extractor import PatternExtractor
from hearth.core.interactions.models import (
    InteractionSource,
    InteractionSummary,
    InteractionTrend,
    InteractionType,
    InteractionTypeSummary,
    PatternSummary,
    TimeRange,
    UserInteraction,
    day_of_week,
    time_of_day_bucket,
)
from hearth.core.interactions.retention import RetentionEnforcer, utc_now
from hearth.core.interactions.safety import KeywordSafetyFilter, SafetyPredicate
from hearth.core.interactions.store import InteractionStore
from hearth.core.privacy.detector import PiiDetector
from hearth.core.privacy.models import ConfidenceTier, RetentionPolicy
from hearth.core.privacy.policy import PrivacyPolicyStore
from hearth.core.privacy.sanitizer import Sanitizer
from hearth.core.trace import current_trace_id, resolve_trace_id, trace_context


# Accepted clock skew between a source and this device.
FUTURE_SKEW_SECONDS = 5


class InteractionCollector:
    """
    Capture path: validate -> safety gate -> sanitize -> extract patterns ->
    store -> retention -> publish.

    Nothing is stored or published before validation and the safety gate
    pass. Stored records and published payloads are sanitized or derived;
    events name users by a keyed pseudonym, never the raw id.
    """

    def __init__(
        self,
        *,
        policy_store: PrivacyPolicyStore,
        hasher: KeyedHasher,
        store: Optional[InteractionStore] = None,
        sanitizer: Optional[Sanitizer] = None,
        extractor: Optional[PatternExtractor] = None,
        retention: Optional[RetentionEnforcer] = None,
        safety: Optional[SafetyPredicate] = None,
        detector: Optional[PiiDetector] = None,
        event_bus=None,
        clock: Callable[[], datetime] = utc_now,
        logger=None,
    ):
        self.policy_store = policy_store
        self.hasher = hasher
        self.store = store or InteractionStore()
        self.detector = detector or PiiDetector()
        self.sanitizer = sanitizer or Sanitizer(self.detector)
        self.extractor = extractor or PatternExtractor()
        self.retention = retention or RetentionEnforcer(
            store=self.store, policy_store=policy_store, event_bus=event_bus, user_ref=hasher.user_ref, clock=clock, logger=logger
        )
        self.safety: SafetyPredicate = safety or KeywordSafetyFilter()
        self.event_bus = event_bus
        self.clock = clock
        self.logger = logger

        self._lock = threading.Lock()
        self._in_flight = 0
        self._sources: Dict[str, InteractionSource] = {}
        self._source_handlers: Dict[str, Callable[[BaseEvent], None]] = {}
        self._closed = False

        if self.event_bus is not None:
            self.event_bus.subscribe(PRIVACY_VIOLATION, self._on_privacy_violation)
            self.event_bus.subscribe(SYSTEM_SHUTDOWN, self._on_shutdown)

    # ---------- capture ----------
    def capture_interaction(self, interaction: Any) -> UserInteraction:
        """
        Stores the privacy-safe form of `interaction` and returns it.

        Raises ValidationError / ChildSafetyViolation before any side effect;
        later failures are published as `interaction:error` and re-raised.
        Events of one capture share a trace id (the caller's, when one is set).
        """
        with trace_context(resolve_trace_id()):
            return self._capture(interaction)

    def _capture(self, interaction: Any) -> UserInteraction:
        with self._lock:
            self._in_flight += 1
        user_ref = "anonymous"
        stage = "validate"
        try:
            ui = self._validate(interaction)
            user_ref = self.hasher.user_ref(ui.user_id)
            stage = "safety"
            self._check_safety(ui)

            stage = "sanitize"
            level = self.policy_store.effective_level(ui.user_id, ui.context.participants)
            sanitized = self.sanitizer.sanitize_interaction(ui, level)
            stage = "extract"
            patterns = self.extractor.extract(sanitized)
            record = sanitized.model_copy(update={"patterns": patterns})

            stage = "store"
            with self.store.lock_for(ui.user_id):
                self.store.append(ui.user_id, record)
                stage = "retention"
                try:
                    self.retention.apply_retention(ui.user_id)
                except Exception:
                    self.store.discard(ui.user_id, record)
                    raise

            stage = "publish"
            self._emit(
                INTERACTION_CAPTURED,
                {
                    "user_ref": user_ref,
                    "source": record.source.value,
                    "type": record.type.value,
                    "privacy_level": level.value,
                    "timestamp": record.timestamp.isoformat(),
                    "patterns": [{"type": p.type.value, "strength": p.strength} for p in patterns],
                },
            )
            if patterns:
                self._emit(PATTERNS_DETECTED, {"user_ref": user_ref, "patterns": [p.model_dump(mode="json") for p in patterns]})
            return record
        except Exception as e:
            err = normalize_exception(e, subsystem="collector")
            if self.logger is not None:
                self.logger.warning(f"[{current_trace_id('-')}] Capture failed at {stage}: {err.code} (user={user_ref})")
            self._emit(INTERACTION_ERROR, {"user_ref": user_ref, "error_code": err.code, "stage": stage}, severity=EventSeverity.WARN)
            raise
        finally:
            with self._lock:
                self._in_flight -= 1

    def _validate(self, interaction: Any) -> UserInteraction:
        if isinstance(interaction, UserInteraction):
            ui = interaction
        elif isinstance(interaction, dict):
            try:
                ui = UserInteraction.model_validate(interaction)
            except PydanticValidationError as e:
                fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
                raise ValidationError("Invalid interaction: missing or malformed fields.", fields=fields) from None
        else:
            raise ValidationError("Invalid interaction: unsupported input type.", input_type=type(interaction).__name__)

        if ui.timestamp > self.clock() + timedelta(seconds=FUTURE_SKEW_SECONDS):
            raise ValidationError("Invalid interaction: timestamp cannot be in the future.", fields=["timestamp"])
        for name, value in (("user_id", ui.user_id), ("session_id", ui.session_id)):
            if self.detector.contains_pii(value, tiers=[ConfidenceTier.HIGH]):
                raise ValidationError("Invalid interaction: identifier contains personal data.", fields=[name])
        return ui

    def _check_safety(self, ui: UserInteraction) -> None:
        content = json.dumps(
            {
                "type": ui.type.value,
                "context": ui.context.model_dump(),
                "outcome": ui.outcome.model_dump(),
                "description": ui.description,
                "metadata": ui.metadata,
            },
            ensure_ascii=False,
            default=str,
        )
        if not self.safety(content):
            raise ChildSafetyViolation()

    # ---------- sources ----------
    def register_interaction_source(self, source: Any) -> InteractionSource:
        try:
            src = source if isinstance(source, InteractionSource) else InteractionSource(str(source).strip().lower())
        except ValueError:
            raise ValidationError("Unknown interaction source.", allowed=[s.value for s in InteractionSource]) from None
        with self._lock:
            if src.value in self._sources:
                return src
            self._sources[src.value] = src
        if self.event_bus is not None:
            handler = self._make_source_handler(src)
            self._source_handlers[src.value] = handler
            self.event_bus.subscribe(source_interaction_event(src.value), handler)
        if self.logger is not None:
            self.logger.info(f"Interaction source registered: {src.value}")
        self._emit(SOURCE_REGISTERED, {"source": src.value}, subsystem=SourceSubsystem.sources)
        return src

    def registered_sources(self) -> List[InteractionSource]:
        with self._lock:
            return list(self._sources.values())

    def _make_source_handler(self, source: InteractionSource) -> Callable[[BaseEvent], None]:
        def _handle(ev: BaseEvent) -> None:
            if self._closed:
                return
            with trace_context(ev.trace_id):
                try:
                    self.capture_interaction(self.interaction_from_source(source, ev.payload))
                except Exception as e:  # noqa: BLE001
                    err = normalize_exception(e, subsystem="sources")
                    self._emit(SOURCE_ERROR, {"source": source.value, "error_code": err.code}, subsystem=SourceSubsystem.sources, severity=EventSeverity.WARN)

        _handle.__name__ = f"capture_{source.value}"
        return _handle

    def interaction_from_source(self, source: InteractionSource, data: Dict[str, Any]) -> Dict[str, Any]:
        """Raw source payload -> interaction dict, filling in defaults for a bare event."""
        now = self.clock()
        data = dict(data or {})
        return {
            "user_id": data.get("user_id") or "anonymous",
            "session_id": data.get("session_id") or f"session_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
            "timestamp": data.get("timestamp") or now,
            "source": source.value,
            "type": data.get("type") or InteractionType.QUERY.value,
            "context": data.get("context") or {"time_of_day": time_of_day_bucket(now).value, "day_of_week": day_of_week(now).value},
            "outcome": data.get("outcome") or {},
            "description": data.get("description") or "",
            "metadata": data.get("metadata") or {},
        }

    # ---------- retention / purge ----------
    def configure_data_retention(self, user_id: str, policy: Any) -> RetentionPolicy:
        pol = self.retention.configure_retention(user_id, policy)
        self._emit(
            RETENTION_CONFIGURED,
            {
                "user_ref": self.hasher.user_ref(user_id),
                "data_type": pol.data_type,
                "retention_days": pol.retention_days,
                "auto_delete": pol.auto_delete,
                "archive_before_delete": pol.archive_before_delete,
                "user_notification": pol.user_notification,
            },
            subsystem=SourceSubsystem.retention,
        )
        return pol

    def purge_user_data(self, user_id: str) -> int:
        count = self.store.purge(user_id)
        self.policy_store.clear_retention_overrides(user_id)
        if self.logger is not None:
            self.logger.info(f"Purged {count} interaction(s) for user={self.hasher.user_ref(user_id)}")
        self._emit(DATA_PURGED, {"user_ref": self.hasher.user_ref(user_id), "interaction_count": count})
        return count

    # ---------- read side ----------
    def get_interaction_summary(self, user_id: str, time_range: Any) -> InteractionSummary:
        tr = time_range if isinstance(time_range, TimeRange) else TimeRange.model_validate(time_range)
        items = sorted(self.store.list(user_id, tr), key=lambda i: i.timestamp)

        by_type: Dict[InteractionType, List[UserInteraction]] = {}
        sources: Dict[str, int] = {}
        for i in items:
            by_type.setdefault(i.type, []).append(i)
            sources[i.source.value] = sources.get(i.source.value, 0) + 1

        type_summaries = [
            InteractionTypeSummary(
                type=t,
                count=len(group),
                average_duration_ms=sum(i.outcome.completion_time_ms for i in group) / len(group),
                success_rate=sum(1 for i in group if i.outcome.success) / len(group),
                satisfaction=sum(i.outcome.user_satisfaction for i in group) / len(group),
            )
            for t, group in by_type.items()
        ]
        return InteractionSummary(
            user_id=user_id,
            time_range=tr,
            total_interactions=len(items),
            interaction_types=type_summaries,
            patterns=self._aggregate_patterns(items),
            trends=self._satisfaction_trends(items),
            sources=sources,
        )

    def _aggregate_patterns(self, items: List[UserInteraction]) -> List[PatternSummary]:
        acc: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for i in items:
            for p in i.patterns:
                key = (p.type.value, p.pattern_id)
                cur = acc.get(key)
                if cur is None:
                    acc[key] = {"pattern_id": p.pattern_id, "type": p.type, "frequency": p.frequency, "strength": p.strength, "last_seen": i.timestamp}
                else:
                    cur["frequency"] += p.frequency
                    cur["strength"] = max(cur["strength"], p.strength)
                    cur["last_seen"] = max(cur["last_seen"], i.timestamp)
        return [PatternSummary(**v) for v in acc.values()]

    def _satisfaction_trends(self, items: List[UserInteraction]) -> List[InteractionTrend]:
        if len(items) < 2:
            return []
        mid = len(items) // 2
        first = sum(i.outcome.user_satisfaction for i in items[:mid]) / mid
        second = sum(i.outcome.user_satisfaction for i in items[mid:]) / (len(items) - mid)
        if second > first:
            return [InteractionTrend(trend_id="satisfaction_improving", direction="up", strength=second - first, description="User satisfaction is improving over time")]
        if second < first:
            return [InteractionTrend(trend_id="satisfaction_declining", direction="down", strength=first - second, description="User satisfaction is declining over time")]
        return []

    # ---------- status / lifecycle ----------
    def is_processing(self) -> bool:
        with self._lock:
            return self._in_flight > 0

    def close(self) -> None:
        """Stops listening to source events. Direct capture calls keep working."""
        self._closed = True
        if self.event_bus is None:
            return
        for handler in list(self._source_handlers.values()):
            self.event_bus.unsubscribe(handler)
        self._source_handlers.clear()

    def _on_privacy_violation(self, ev: BaseEvent) -> None:
        user_id = ev.payload.get("user_id")
        if isinstance(user_id, str) and user_id:
            self.purge_user_data(user_id)

    def _on_shutdown(self, ev: BaseEvent) -> None:
        if self.logger is not None:
            self.logger.info("Interaction collector shutting down.")
        self.close()

    def _emit(
        self,
        event_type: str,
        payload: Dict[str, Any],
        *,
        subsystem: SourceSubsystem = SourceSubsystem.collector,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> None:
        if self.event_bus is None:
            return
        try:
            self.event_bus.emit(event_type, payload, source_subsystem=subsystem, severity=severity, trace_id=current_trace_id())
        except Exception as e:  # noqa: BLE001
            if self.logger is not None:
                self.logger.warning(f"Event publish failed for {event_type}: {type(e).__name__}")
