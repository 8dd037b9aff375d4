from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from hearth.core.config.manager import ConfigManager
from hearth.core.config.models import HearthConfig
from hearth.core.config.paths import ConfigFsPaths
from hearth.core.crypto import KeyedHasher
from hearth.core.events.bus import EventBus, EventBusConfig, OverflowPolicy
from hearth.core.events.models import SourceSubsystem
from hearth.core.events.registry import SYSTEM_SHUTDOWN
from hearth.core.events.subscribers import EventJsonlSubscriber, LoggingSubscriber
from hearth.core.interactions.collector import InteractionCollector
from hearth.core.interactions.extractor import PatternExtractor
from hearth.core.interactions.retention import ArchiveSink, RetentionEnforcer, RetentionScheduler, utc_now
from hearth.core.interactions.safety import KeywordSafetyFilter, SafetyPredicate
from hearth.core.interactions.store import InteractionStore
from hearth.core.logger import get_logger, setup_logging
from hearth.core.privacy.compliance import ComplianceValidator
from hearth.core.privacy.detector import PiiDetector
from hearth.core.privacy.filter import PrivacyFilter
from hearth.core.privacy.noise import build_noise_generator
from hearth.core.privacy.policy import PrivacyPolicyStore
from hearth.core.privacy.sanitizer import Sanitizer


@dataclass
class HearthPipeline:
    config: HearthConfig
    config_manager: ConfigManager
    event_bus: EventBus
    policy_store: PrivacyPolicyStore
    collector: InteractionCollector
    privacy_filter: PrivacyFilter
    retention: RetentionEnforcer
    scheduler: RetentionScheduler
    logger: logging.Logger

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.event_bus.emit(SYSTEM_SHUTDOWN, {}, source_subsystem=SourceSubsystem.system)
        self.event_bus.wait_idle(timeout=1.0)
        self.collector.close()
        self.event_bus.shutdown()
        self.logger.info("Hearth pipeline stopped.")


def _resolve(root: str, path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(root, path)


def build_pipeline(
    root: str = ".",
    *,
    logger: Optional[logging.Logger] = None,
    safety: Optional[SafetyPredicate] = None,
    archive_sink: Optional[ArchiveSink] = None,
    clock: Callable[[], datetime] = utc_now,
    noise_seed: Optional[int] = None,
    start_scheduler: bool = True,
) -> HearthPipeline:
    """
    Wires every component from the config under `root`:
    config/*.json, secure/hash.key and logs/ (when no logger is given).
    """
    fs = ConfigFsPaths(root)
    if logger is None:
        setup_logging(fs.logs_dir)
        logger = get_logger("pipeline")
    cm = ConfigManager(fs=fs, logger=logger)
    cfg = cm.load_all()
    p = cfg.pipeline
    ev = cfg.events

    bus = EventBus(
        cfg=EventBusConfig(
            enabled=ev.enabled,
            max_queue_size=ev.max_queue_size,
            max_subscriber_backlog=ev.max_subscriber_backlog,
            overflow_policy=OverflowPolicy(ev.overflow_policy),
            shutdown_grace_seconds=ev.shutdown_grace_seconds,
            log_dropped_events=ev.log_dropped_events,
        ),
        logger=logger,
    )
    if ev.jsonl_enabled:
        bus.subscribe("*", EventJsonlSubscriber(path=_resolve(root, ev.jsonl_path)), priority=100)
    if ev.log_events:
        bus.subscribe("*", LoggingSubscriber(logger=logger), priority=90)

    hasher = KeyedHasher.from_file(_resolve(root, p.hash_key_path) if p.hash_key_path else fs.hash_key, logger=logger)
    detector = PiiDetector()
    sanitizer = Sanitizer(detector, max_depth=p.sanitizer_max_depth, max_passes=p.sanitizer_max_passes)
    policy_store = PrivacyPolicyStore(default_level=p.default_privacy_level, config_manager=cm, logger=logger)
    store = InteractionStore()
    retention = RetentionEnforcer(
        store=store,
        policy_store=policy_store,
        event_bus=bus,
        archive_sink=archive_sink,
        user_ref=hasher.user_ref,
        clock=clock,
        logger=logger,
    )
    collector = InteractionCollector(
        policy_store=policy_store,
        hasher=hasher,
        store=store,
        sanitizer=sanitizer,
        extractor=PatternExtractor(),
        retention=retention,
        safety=safety or KeywordSafetyFilter(p.blocked_safety_terms),
        detector=detector,
        event_bus=bus,
        clock=clock,
        logger=logger,
    )
    privacy_filter = PrivacyFilter(
        policy_store=policy_store,
        hasher=hasher,
        detector=detector,
        compliance=ComplianceValidator(detector=detector, policy_store=policy_store, logger=logger),
        noise=build_noise_generator(p.noise_mechanism, delta=p.gaussian_delta, seed=noise_seed),
        sensitivity=p.sensitivity,
        event_bus=bus,
        logger=logger,
    )
    scheduler = RetentionScheduler(enforcer=retention, interval_seconds=p.retention_sweep_seconds, logger=logger)
    if start_scheduler:
        scheduler.start()

    logger.info(f"Hearth pipeline ready: level={p.default_privacy_level} noise={p.noise_mechanism} sweep={p.retention_sweep_seconds}s")
    return HearthPipeline(
        config=cfg,
        config_manager=cm,
        event_bus=bus,
        policy_store=policy_store,
        collector=collector,
        privacy_filter=privacy_filter,
        retention=retention,
        scheduler=scheduler,
        logger=logger,
    )
