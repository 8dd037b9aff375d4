from __future__ import annotations

import os
import threading
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from hearth.core.config.io import (
    ReadResult,
    atomic_write_json,
    ensure_dirs,
    read_json_file,
    recover_from_corrupt,
    snapshot_last_known_good,
)
from hearth.core.config.models import (
    EventsBusConfigFile,
    HearthConfig,
    PipelineConfigFile,
    PrivacyPolicyFile,
    default_files,
)
from hearth.core.config.paths import ConfigFsPaths
from hearth.core.errors import ConfigurationError


CONFIG_FILES = ("pipeline.json", "events.json", "privacy.json")


class ConfigManager:
    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False, max_backups: int = 10):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = bool(read_only)
        self.max_backups = int(max_backups)
        self._lock = threading.RLock()
        self._cfg: Optional[HearthConfig] = None

    # ---------- public API ----------
    def load_all(self) -> HearthConfig:
        with self._lock:
            if not self.read_only:
                ensure_dirs(self.fs.config_dir, self.fs.backups_dir, self.fs.last_known_good_dir, self.fs.secure_dir)
            files = self._ensure_defaults(self._load_raw_files())
            cfg = self._validate_all(files)
            self._cfg = cfg
            if not self.read_only:
                snapshot_last_known_good(self.fs.config_dir, self.fs.last_known_good_dir)
            return cfg

    def get(self) -> HearthConfig:
        with self._lock:
            if self._cfg is None:
                raise ConfigurationError(user_message="Config not loaded.")
            return self._cfg

    def read_non_sensitive(self, filename: str) -> Dict[str, Any]:
        """
        Read a single config file from config/ (safe recovery applied).
        """
        path = os.path.join(self.fs.config_dir, filename)
        rr = read_json_file(path)
        if rr.ok:
            return rr.data
        if rr.error and rr.error.startswith("corrupt_json"):
            data, _ = recover_from_corrupt(path, self.fs.backups_dir, self.fs.last_known_good_dir, max_backups=self.max_backups)
            return data
        return {}

    def save_non_sensitive(self, filename: str, data: Dict[str, Any]) -> HearthConfig:
        """
        Validate, then atomic write + backup, then reload the whole set.
        Invalid data is rejected before anything touches the disk.
        """
        if self.read_only:
            raise ConfigurationError(user_message="Config manager is read-only.")
        if filename not in CONFIG_FILES:
            raise ConfigurationError(user_message=f"Unknown config file: {filename}")
        if not isinstance(data, dict):
            raise ConfigurationError(user_message="Config data must be an object.")
        with self._lock:
            files = self._load_raw_files()
            files[filename] = dict(data)
            self._validate_all(self._ensure_defaults(files, write=False))
            atomic_write_json(os.path.join(self.fs.config_dir, filename), data, self.fs.backups_dir, max_backups=self.max_backups)
            return self.load_all()

    # ---------- internals ----------
    def _load_raw_files(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name in CONFIG_FILES:
            path = os.path.join(self.fs.config_dir, name)
            rr: ReadResult = read_json_file(path)
            if rr.ok:
                out[name] = rr.data
                continue
            if rr.error and rr.error.startswith("corrupt_json"):
                data, recovered = recover_from_corrupt(path, self.fs.backups_dir, self.fs.last_known_good_dir, max_backups=self.max_backups)
                if self.logger:
                    self.logger.warning(f"Corrupt config {name} -> recovered={recovered}")
                out[name] = data
                continue
            # missing or other error: treat as missing -> defaults later
            out[name] = {}
        return out

    def _ensure_defaults(self, files: Dict[str, Dict[str, Any]], *, write: bool = True) -> Dict[str, Dict[str, Any]]:
        out = dict(files)
        for name, dflt in default_files().items():
            if out.get(name):
                continue
            out[name] = dflt
            if not write:
                continue
            if self.logger:
                self.logger.warning(f"Missing config {name}; creating defaults.")
            if not self.read_only:
                atomic_write_json(os.path.join(self.fs.config_dir, name), dflt, self.fs.backups_dir, max_backups=self.max_backups)
        return out

    def _validate_all(self, files: Dict[str, Dict[str, Any]]) -> HearthConfig:
        try:
            return HearthConfig(
                pipeline=PipelineConfigFile.model_validate(files.get("pipeline.json") or {}),
                events=EventsBusConfigFile.model_validate(files.get("events.json") or {}),
                privacy=PrivacyPolicyFile.model_validate(files.get("privacy.json") or {}),
            )
        except PydanticValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise ConfigurationError("Config validation failed.", fields=fields) from e
