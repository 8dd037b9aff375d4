from __future__ import annotations

import json
import os

from hearth.core.config.manager import ConfigManager
from hearth.core.config.paths import ConfigFsPaths
from hearth.core.pipeline import build_pipeline
from hearth.core.privacy.models import PrivacyLevel
from hearth.core.privacy.noise import GaussianNoise

from helpers.builders import make_interaction
from helpers.fakes import DummyLogger, FakeClock


def _enable_event_logs(root: str) -> None:
    cm = ConfigManager(fs=ConfigFsPaths(root=root))
    events = cm.load_all().events.model_dump()
    events["jsonl_enabled"] = True
    events["log_events"] = True
    cm.save_non_sensitive("events.json", events)


def test_pipeline_capture_filter_and_event_log(tmp_path):
    root = str(tmp_path)
    _enable_event_logs(root)
    log = DummyLogger()
    pipe = build_pipeline(root, logger=log, clock=FakeClock().now, noise_seed=1, start_scheduler=False)
    try:
        assert os.path.getsize(os.path.join(root, "secure", "hash.key")) == 32
        pipe.collector.register_interaction_source("voice")

        rec = pipe.collector.capture_interaction(make_interaction(description="email jane@example.com", location="Grandma's house"))
        assert "jane@example.com" not in rec.description
        filtered = pipe.privacy_filter.filter_interaction(rec)
        assert filtered.user_id != "user-1"
        assert not filtered.metadata.degraded

        pipe.event_bus.emit("voice:interaction", {"user_id": "user-2", "description": "jane@example.com"})
        assert pipe.event_bus.wait_idle(2.0)
        assert pipe.collector.store.count("user-2") == 1
    finally:
        pipe.shutdown()

    text = (tmp_path / "logs" / "events" / "hearth_events.jsonl").read_text(encoding="utf-8")
    types = [json.loads(line)["event_type"] for line in text.splitlines()]
    assert "interaction:captured" in types
    assert "voice:interaction" in types
    assert "jane@example.com" not in text
    assert "user-1" not in text
    assert "Grandma" not in text
    assert "event interaction:captured from collector" in log.text()
    assert "jane@example.com" not in log.text()
    assert "Hearth pipeline stopped." in log.text()


def test_pipeline_state_survives_restart(tmp_path):
    root = str(tmp_path)
    first = build_pipeline(root, logger=DummyLogger(), clock=FakeClock().now, start_scheduler=False)
    first.privacy_filter.configure_privacy_level("user-1", "MAXIMUM")
    h1 = first.privacy_filter.hash_user_id("user-2")
    first.shutdown()

    with open(os.path.join(root, "config", "privacy.json"), "r", encoding="utf-8") as f:
        assert json.load(f)["users"]["user-1"]["privacy_level"] == "MAXIMUM"

    second = build_pipeline(root, logger=DummyLogger(), clock=FakeClock().now, start_scheduler=False)
    try:
        assert second.policy_store.effective_level("user-1") == PrivacyLevel.MAXIMUM
        assert second.privacy_filter.hash_user_id("user-2") == h1
    finally:
        second.shutdown()


def test_pipeline_honours_config(tmp_path):
    root = str(tmp_path)
    cm = ConfigManager(fs=ConfigFsPaths(root=root))
    p = cm.load_all().pipeline.model_dump()
    p["noise_mechanism"] = "gaussian"
    p["default_privacy_level"] = "ENHANCED"
    p["blocked_safety_terms"] = ["spoiler"]
    p["hash_key_path"] = "keys/custom.key"
    cm.save_non_sensitive("pipeline.json", p)

    pipe = build_pipeline(root, logger=DummyLogger(), clock=FakeClock().now, start_scheduler=True)
    try:
        assert isinstance(pipe.privacy_filter.noise, GaussianNoise)
        assert pipe.policy_store.effective_level("anyone") == PrivacyLevel.ENHANCED
        assert os.path.exists(os.path.join(root, "keys", "custom.key"))
        assert pipe.scheduler.is_running()
        assert pipe.collector.safety("violence")
        assert not pipe.collector.safety("no spoiler")
    finally:
        pipe.shutdown()
    assert not pipe.scheduler.is_running()
