from __future__ import annotations

import os

import pytest

from hearth.core.config.manager import ConfigManager
from hearth.core.config.paths import ConfigFsPaths
from hearth.core.crypto import KeyedHasher
from hearth.core.interactions.collector import InteractionCollector
from hearth.core.interactions.store import InteractionStore
from hearth.core.privacy.filter import PrivacyFilter
from hearth.core.privacy.noise import LaplaceNoise
from hearth.core.privacy.policy import PrivacyPolicyStore

from helpers.fakes import FakeClock, RecordingEventBus


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated root with config/ and secure/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    os.makedirs(fs.secure_dir, exist_ok=True)
    return fs


@pytest.fixture
def config_manager(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=None, read_only=False)
    cm.load_all()
    return cm


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return RecordingEventBus()


@pytest.fixture
def hasher():
    return KeyedHasher.ephemeral()


@pytest.fixture
def policy_store():
    return PrivacyPolicyStore()


@pytest.fixture
def store():
    return InteractionStore()


@pytest.fixture
def collector(policy_store, hasher, store, bus, clock):
    return InteractionCollector(policy_store=policy_store, hasher=hasher, store=store, event_bus=bus, clock=clock.now)


@pytest.fixture
def privacy_filter(policy_store, hasher, bus):
    return PrivacyFilter(policy_store=policy_store, hasher=hasher, noise=LaplaceNoise(seed=7), event_bus=bus)
