from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from typing import Dict, Optional

from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from hearth.core.config.io import atomic_write_bytes


KEY_BYTES = 32


class HashKeyError(RuntimeError):
    pass


def generate_key_bytes() -> bytes:
    return secrets.token_bytes(KEY_BYTES)


def write_key(path: str, key_bytes: bytes) -> None:
    if len(key_bytes) != KEY_BYTES:
        raise HashKeyError(f"Hash key must be {KEY_BYTES} bytes.")
    atomic_write_bytes(path, key_bytes, mode=0o600)


def read_key(path: str) -> bytes:
    if not os.path.exists(path):
        raise HashKeyError(f"Hash key not found at {path!r}")
    with open(path, "rb") as f:
        b = f.read()
    if len(b) != KEY_BYTES:
        raise HashKeyError(f"Hash key must be {KEY_BYTES} bytes.")
    return b


def load_or_create_key(path: str, *, logger=None) -> bytes:
    """
    Deployment secret for keyed hashing. Created on first use (owner-only
    permissions); later runs reuse it so hashed ids stay stable per device.
    """
    if os.path.exists(path):
        return read_key(path)
    key = generate_key_bytes()
    write_key(path, key)
    if logger is not None:
        logger.info("Created new deployment hash key.")
    return key


def derive_subkey(master: bytes, purpose: str) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_BYTES, salt=None, info=f"hearth.{purpose}.v1".encode("utf-8"))
    return hkdf.derive(master)


def hmac_sha256_hex(key: bytes, data: bytes) -> str:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(data)
    return h.finalize().hex()


@dataclass
class KeyedHasher:
    """
    HMAC-SHA256 over a master secret, one HKDF subkey per purpose
    ("user_id", "context", "token", "pattern", ...).
    """

    master: bytes
    _subkeys: Dict[str, bytes] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if len(self.master) != KEY_BYTES:
            raise HashKeyError(f"Hash key must be {KEY_BYTES} bytes.")

    @classmethod
    def from_file(cls, path: str, *, logger=None) -> "KeyedHasher":
        return cls(master=load_or_create_key(path, logger=logger))

    @classmethod
    def ephemeral(cls) -> "KeyedHasher":
        return cls(master=generate_key_bytes())

    def _subkey(self, purpose: str) -> bytes:
        k = self._subkeys.get(purpose)
        if k is None:
            k = derive_subkey(self.master, purpose)
            self._subkeys[purpose] = k
        return k

    def digest(self, purpose: str, value: str, *, salt: Optional[str] = None, length: int = 64) -> str:
        msg = str(value) if salt is None else f"{salt}\x1f{value}"
        return hmac_sha256_hex(self._subkey(purpose), msg.encode("utf-8"))[: max(8, min(64, int(length)))]

    def user_ref(self, user_id: str) -> str:
        """Short stable pseudonym used in events and log lines instead of the raw id."""
        return self.digest("user_ref", user_id, length=16)
