from __future__ import annotations

import hashlib
from typing import Any, Dict


REDACT_KEYS = {
    "passphrase",
    "password",
    "secret",
    "token",
    "api_key",
    "key",
    "hash_key",
    "authorization",
}

# Keys that usually carry raw user content. Events and logs keep metadata only.
CONTENT_KEYS = {"text", "message", "messages", "prompt", "transcript", "audio", "utterance", "raw", "content"}


def _hash8(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8", errors="ignore")).hexdigest()[:8]


def _redact(obj: Any, depth: int) -> Any:
    if depth > 32:
        return "***TRUNCATED***"
    if isinstance(obj, dict):
        out: Dict[str, Any] = {}
        for k, v in obj.items():
            kk = str(k)
            low = kk.lower()
            if low in REDACT_KEYS:
                out[kk] = "***REDACTED***"
            elif low in CONTENT_KEYS:
                # preserve minimal metadata
                if isinstance(v, str):
                    out[f"{kk}_len"] = len(v)
                    out[f"{kk}_hash8"] = _hash8(v)
                else:
                    out[f"{kk}_present"] = True
            else:
                out[kk] = _redact(v, depth + 1)
        return out
    if isinstance(obj, (list, tuple)):
        return [_redact(x, depth + 1) for x in obj]
    return obj


def redact(obj: Any) -> Any:
    """
    Key-based redaction for event payloads and error contexts:
    secrets are masked, raw content fields are replaced by length + short hash.
    """
    return _redact(obj, 0)
