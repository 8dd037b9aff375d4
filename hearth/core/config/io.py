from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ReadResult:
    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None


def _ts() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        if d:
            os.makedirs(d, exist_ok=True)


def read_json_file(path: str) -> ReadResult:
    if not os.path.exists(path):
        return ReadResult(ok=False, data={}, error="missing")
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e.msg}")
    except OSError as e:
        return ReadResult(ok=False, data={}, error=f"unreadable:{type(e).__name__}")
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="not_object")
    return ReadResult(ok=True, data=obj)


def _prune_backups(backups_dir: str, base: str, max_backups: int) -> None:
    prefix = f"{base}."
    try:
        items = [os.path.join(backups_dir, f) for f in os.listdir(backups_dir) if f.startswith(prefix)]
    except OSError:
        return
    items.sort(key=lambda p: os.path.getmtime(p), reverse=True)
    for p in items[max(0, int(max_backups)):]:
        try:
            os.remove(p)
        except OSError:
            pass


def backup_file(path: str, backups_dir: str, *, reason: str, max_backups: int = 10) -> Optional[str]:
    if not os.path.exists(path):
        return None
    ensure_dirs(backups_dir)
    base = os.path.basename(path)
    out = os.path.join(backups_dir, f"{base}.{_ts()}.{reason}.json")
    try:
        shutil.copy2(path, out)
    except OSError:
        return None
    _prune_backups(backups_dir, base, max_backups)
    return out


def _atomic_replace(path: str, payload: bytes, *, mode: Optional[int] = None) -> None:
    ensure_dirs(os.path.dirname(path))
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            try:
                os.remove(tmp)
            except OSError:
                pass


def atomic_write_json(path: str, data: Dict[str, Any], backups_dir: str, *, max_backups: int = 10) -> None:
    backup_file(path, backups_dir, reason="prewrite", max_backups=max_backups)
    text = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
    _atomic_replace(path, text.encode("utf-8"))


def atomic_write_bytes(path: str, data: bytes, *, mode: int = 0o600) -> None:
    """Write a secret file in one step with owner-only permissions (no backups)."""
    _atomic_replace(path, bytes(data), mode=mode)


def recover_from_corrupt(path: str, backups_dir: str, last_known_good_dir: str, *, max_backups: int = 10) -> Tuple[Dict[str, Any], bool]:
    """
    On corrupt JSON:
    - move corrupt file to backups/<name>.<ts>.corrupt.json
    - try restore from last_known_good/<name>
    Returns (data, recovered)
    """
    ensure_dirs(backups_dir, last_known_good_dir)
    if os.path.exists(path):
        corrupt_path = os.path.join(backups_dir, f"{os.path.basename(path)}.{_ts()}.corrupt.json")
        try:
            shutil.move(path, corrupt_path)
        except OSError:
            pass
    rr = read_json_file(os.path.join(last_known_good_dir, os.path.basename(path)))
    if rr.ok:
        atomic_write_json(path, rr.data, backups_dir, max_backups=max_backups)
        return rr.data, True
    return {}, False


def snapshot_last_known_good(config_dir: str, last_known_good_dir: str) -> None:
    ensure_dirs(last_known_good_dir)
    for name in os.listdir(config_dir):
        src = os.path.join(config_dir, name)
        if not name.endswith(".json") or not os.path.isfile(src):
            continue
        try:
            shutil.copy2(src, os.path.join(last_known_good_dir, name))
        except OSError:
            pass
