from __future__ import annotations

import pytest

from hearth.core.interactions.safety import DEFAULT_BLOCKED_TERMS, KeywordSafetyFilter, allow_all


@pytest.mark.parametrize(
    "content,allowed",
    [
        ("play a bedtime story", True),
        ("this is UNSAFE", False),
        ("drive unsafely", True),
        ('{"description": "harmful"}', False),
        ("", True),
    ],
)
def test_default_terms_match_whole_words(content, allowed):
    assert KeywordSafetyFilter()(content) is allowed


def test_custom_terms():
    f = KeywordSafetyFilter(["Spoiler ", " ", ""])
    assert f.terms == ("spoiler",)
    assert not f("no spoiler please")
    assert f("this is unsafe")


def test_empty_term_list_allows_everything():
    assert KeywordSafetyFilter([])("violence")
    assert allow_all("violence")
    assert "violence" in DEFAULT_BLOCKED_TERMS
