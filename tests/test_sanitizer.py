from __future__ import annotations

from hearth.core.privacy.detector import PiiDetector
from hearth.core.privacy.models import PrivacyLevel
from hearth.core.privacy.sanitizer import (
    CYCLE_MARKER,
    DEPTH_MARKER,
    REDACTED_MARKER,
    UNSUPPORTED_MARKER,
    Sanitizer,
)

from helpers.builders import make_interaction


def _strings(value):
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for k, v in value.items():
            if isinstance(k, str):
                yield k
            yield from _strings(v)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _strings(v)


def test_phone_replaced_with_marker():
    assert Sanitizer().sanitize("Contact me at 555-123-4567") == "Contact me at [PHONE_REMOVED]"


def test_nested_values_are_sanitized_and_scalars_kept():
    s = Sanitizer()
    value = {
        "note": "mail jane.doe@example.com",
        "items": ["ssn 123-45-6789", 42, 3.5, True, None, ""],
        "pair": ("192.168.1.20", 7),
    }
    out = s.sanitize(value)
    assert out["note"] == "mail [EMAIL_REMOVED]"
    assert out["items"] == ["ssn [SSN_REMOVED]", 42, 3.5, True, None, ""]
    assert out["pair"] == ("[IP_ADDRESS_REMOVED]", 7)
    # input untouched
    assert value["note"] == "mail jane.doe@example.com"


def test_unicode_is_preserved():
    assert Sanitizer().sanitize("🎉 party at 123 Maple Street, café") == "🎉 party at [ADDRESS_REMOVED], café"


def test_no_nested_string_matches_after_sanitize():
    d = PiiDetector()
    s = Sanitizer(d)
    value = {
        "a": ["call 555-123-4567 or 555.987.6543", {"b": "card 4111 1111 1111 1111"}],
        "c": "Ask Timmy Brown at 42 Oak Avenue",
        "jane@example.com": "key holds an email",
    }
    for level in PrivacyLevel:
        out = s.sanitize(value, level)
        for text in _strings(out):
            assert d.detect(text, level) == []


def test_cycles_and_depth_are_cut():
    d = {"name": "x"}
    d["self"] = d
    out = Sanitizer().sanitize(d)
    assert out == {"name": "x", "self": CYCLE_MARKER}

    shallow = Sanitizer(max_depth=2)
    assert shallow.sanitize([[["deep"]]]) == [[DEPTH_MARKER]]


def test_shared_references_are_not_cycles():
    shared = ["ok"]
    assert Sanitizer().sanitize({"a": shared, "b": shared}) == {"a": ["ok"], "b": ["ok"]}


def test_unsupported_objects_become_markers():
    class Thing:
        email = "jane@example.com"

    assert Sanitizer().sanitize({"x": Thing(), "y": {1, 2}}) == {"x": UNSUPPORTED_MARKER, "y": UNSUPPORTED_MARKER}


def test_dict_keys_are_sanitized_without_collisions():
    out = Sanitizer().sanitize({"a@b.co": 1, "c@d.co": 2, 5: "five"})
    assert out == {"[EMAIL_REMOVED]": 1, "[EMAIL_REMOVED]#2": 2, 5: "five"}


def test_maximum_level_removes_low_tier_names():
    s = Sanitizer()
    assert s.sanitize("Ask Timmy about homework", PrivacyLevel.STANDARD) == "Ask Timmy about homework"
    assert s.sanitize("Ask Timmy about homework", PrivacyLevel.MAXIMUM) == "Ask [GIVEN_NAME_REMOVED] about homework"


def test_unclean_text_after_bounded_passes_is_redacted():
    class StickyDetector(PiiDetector):
        def detect(self, text, level=PrivacyLevel.STANDARD, *, tiers=None):  # noqa: ANN001
            return super().detect("x 555-123-4567", level, tiers=tiers)

    assert Sanitizer(StickyDetector(), max_passes=2).sanitize_text("anything") == REDACTED_MARKER


def test_sanitize_interaction_returns_new_clean_copy():
    ui = make_interaction(
        description="Text me at 555-123-4567",
        location="123 Maple Street",
        metadata={"contact": "jane@example.com", "count": 3},
        environmental_factors={"note": "ssn 123-45-6789"},
    )
    out = Sanitizer().sanitize_interaction(ui)
    assert out is not ui
    assert out.description == "Text me at [PHONE_REMOVED]"
    assert out.context.location == "[ADDRESS_REMOVED]"
    assert out.metadata == {"contact": "[EMAIL_REMOVED]", "count": 3}
    assert out.context.environmental_factors == {"note": "ssn [SSN_REMOVED]"}
    assert out.user_id == ui.user_id
    assert out.timestamp == ui.timestamp
    assert ui.description == "Text me at 555-123-4567"
