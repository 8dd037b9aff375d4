from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def secure_dir(self) -> str:
        return os.path.join(self.root, "secure")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.backups_dir, "last_known_good")

    # Files
    @property
    def pipeline(self) -> str:
        return os.path.join(self.config_dir, "pipeline.json")

    @property
    def events(self) -> str:
        return os.path.join(self.config_dir, "events.json")

    @property
    def privacy(self) -> str:
        return os.path.join(self.config_dir, "privacy.json")

    @property
    def hash_key(self) -> str:
        return os.path.join(self.secure_dir, "hash.key")
