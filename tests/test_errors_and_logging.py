from __future__ import annotations

import logging
import os

import pytest

from hearth.core.errors import (
    ChildSafetyViolation,
    ConfigurationError,
    HearthError,
    ProcessingError,
    Severity,
    ValidationError,
    normalize_exception,
)
from hearth.core.logger import get_logger, setup_logging


def test_error_to_dict_redacts_context():
    err = ValidationError("Invalid interaction.", fields=["user_id"], token="abc", content="call mum")
    d = err.to_dict()
    assert d["code"] == "validation_error"
    assert d["severity"] == "WARN"
    assert d["recoverable"] is False
    assert d["context"]["fields"] == ["user_id"]
    assert d["context"]["token"] == "***REDACTED***"
    assert "content" not in d["context"]
    assert d["context"]["content_len"] == 8
    assert str(err) == "validation_error: Invalid interaction."


@pytest.mark.parametrize(
    "cls,code",
    [
        (ValidationError, "validation_error"),
        (ChildSafetyViolation, "child_safety_violation"),
        (ConfigurationError, "configuration_error"),
        (ProcessingError, "processing_error"),
    ],
)
def test_error_codes(cls, code):
    err = cls()
    assert isinstance(err, HearthError)
    assert err.code == code
    assert err.user_message


def test_normalize_exception():
    e = ValidationError()
    assert normalize_exception(e, subsystem="collector") is e

    p = normalize_exception(ValueError("jane@example.com"), subsystem="filter", context={"op": "x"})
    assert isinstance(p, ProcessingError)
    assert p.recoverable
    assert p.context == {"op": "x", "exception_type": "ValueError"}

    assert isinstance(normalize_exception(KeyError("k"), subsystem="config"), ConfigurationError)

    other = normalize_exception(RuntimeError("jane@example.com"), subsystem="collector")
    assert other.code == "internal_error"
    assert other.severity == Severity.ERROR
    assert "jane" not in str(other.to_dict())


def test_setup_logging_writes_rotating_file(tmp_path):
    root = logging.getLogger("hearth")
    saved = list(root.handlers)
    saved_level, saved_propagate = root.level, root.propagate
    for h in saved:
        root.removeHandler(h)
    try:
        log_dir = str(tmp_path / "logs")
        logger = setup_logging(log_dir)
        assert logger is root
        assert setup_logging(log_dir) is root
        assert len(root.handlers) == 2
        get_logger("pipeline").info("pipeline ready")
        for h in root.handlers:
            h.flush()
        with open(os.path.join(log_dir, "hearth.log"), "r", encoding="utf-8") as f:
            text = f.read()
        assert "hearth.pipeline" in text
        assert "pipeline ready" in text
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved:
            root.addHandler(h)
        root.setLevel(saved_level)
        root.propagate = saved_propagate
