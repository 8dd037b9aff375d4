from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from hearth.core.privacy.models import ConfidenceTier, PrivacyLevel, RiskLevel, ViolationType


def luhn_ok(candidate: str) -> bool:
    digits = [int(c) for c in candidate if c.isdigit()]
    if len(digits) < 13:
        return False
    total = 0
    for i, d in enumerate(reversed(digits)):
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total % 10 == 0


# Capitalized words that start sentences, name rooms/devices or are calendar
# terms. They never count as a given or full name.
COMMON_WORDS: FrozenSet[str] = frozenset(
    """
    The This That These Those There Then Than What When Where Which Who Whom Why How
    Hello Hey Good Morning Afternoon Evening Night Today Tomorrow Yesterday Tonight
    Please Thanks Thank You Your Yours Our Ours Their They Them She Her His Him Its
    Can Could Would Should Will Shall May Might Must Did Does Have Has Had Was Were
    Are And But For Not Yes Okay Sure Maybe Also Just Only Very Much Many Some Any
    All None Each Every Other Another Set Turn Play Stop Start Call Contact Remind
    Show Tell Open Close Add Remove Find Search Check Send Read Write Make Take Give
    Get Let Help Ask Answer Reply Schedule Cancel Update Create Delete Save Load
    New Old Next Last First Second Third Happy Birthday Dear Welcome Sorry Great
    Nice Fine Cool Wow Hmm Living Room Kitchen Bedroom Bathroom Garage Office Garden
    Hall Hallway Basement Attic Home House Smart Speaker Light Lights Lamp Door Lock
    Thermostat Camera Sensor Screen Display Tablet Phone Voice Avatar Assistant
    Monday Tuesday Wednesday Thursday Friday Saturday Sunday January February March
    April June July August September October November December Street Avenue Road
    Boulevard Lane Drive Court Place Way Terrace Circle Mom Dad Mommy Daddy Grandma
    Grandpa Family Music Timer Alarm Weather News Movie Game Games Story Homework
    School Dinner Lunch Breakfast Bedtime User System Error Warning Info Debug
    """.split()
)

_COMMON = "|".join(sorted(COMMON_WORDS, key=len, reverse=True))
_NAME_TOKEN = rf"(?!(?:{_COMMON})\b)[A-Z][a-z]+"

_STREET_TYPES = (
    "Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Way|Place|Pl|Terrace|Ter|Circle|Cir|Parkway|Pkwy"
)
_OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"


@dataclass(frozen=True)
class PiiPattern:
    category: str
    regex: "re.Pattern[str]"
    tier: ConfidenceTier
    validator: Optional[Callable[[str], bool]] = None


@dataclass(frozen=True)
class PiiMatch:
    category: str
    tier: ConfidenceTier
    start: int
    end: int
    matched_text: str

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)


def _p(category: str, pattern: str, tier: ConfidenceTier, validator: Optional[Callable[[str], bool]] = None) -> PiiPattern:
    return PiiPattern(category=category, regex=re.compile(pattern), tier=tier, validator=validator)


# Adding a category is adding a row. Row order breaks ties between
# overlapping matches of equal start and length.
PII_CATALOG: Tuple[PiiPattern, ...] = (
    # ---- high confidence ----
    _p(
        "credit_card",
        r"(?<![\d-])(?:4\d{3}(?:[ -]?\d{4}){3}|5[1-5]\d{2}(?:[ -]?\d{4}){3}|6011(?:[ -]?\d{4}){3}|3[47]\d{2}[ -]?\d{6}[ -]?\d{5})(?![\d-])",
        ConfidenceTier.HIGH,
        luhn_ok,
    ),
    _p("ssn", r"(?<![\d-])(?!000|666|9\d\d)\d{3}([- ])(?!00)\d{2}\1(?!0000)\d{4}(?![\d-])", ConfidenceTier.HIGH),
    _p("email", r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}\b", ConfidenceTier.HIGH),
    # bare ten digit runs read as unix timestamps; separators or parentheses required
    _p(
        "phone",
        r"(?<![\w+])(?:\+?1[-. ]?)?(?:\([2-9]\d{2}\)\s?\d{3}[-. ]?\d{4}|[2-9]\d{2}[-. ]\d{3}[-. ]\d{4})(?!\w)",
        ConfidenceTier.HIGH,
    ),
    _p("ip_address", rf"(?<![\w.]){_OCTET}(?:\.{_OCTET}){{3}}(?!\.?\d)", ConfidenceTier.HIGH),
    # ---- medium confidence ----
    _p("address", rf"\b\d{{1,5}}\s+(?:[A-Z][a-z]+\s+){{1,3}}(?:{_STREET_TYPES})\b\.?", ConfidenceTier.MEDIUM),
    _p("zip_code", r"(?<![\w.-])\d{5}(?:-\d{4})?(?![\w.-])", ConfidenceTier.MEDIUM),
    _p("full_name", rf"\b{_NAME_TOKEN}(?:[ \t]+{_NAME_TOKEN}){{1,2}}\b", ConfidenceTier.MEDIUM),
    _p("date_of_birth", r"(?<![\d/-])(?:0?[1-9]|1[0-2])([/-])(?:0?[1-9]|[12]\d|3[01])\1(?:19|20)\d{2}(?![\d/-])", ConfidenceTier.MEDIUM),
    # ---- low confidence (MAXIMUM only) ----
    _p("given_name", rf"\b{_NAME_TOKEN}\b", ConfidenceTier.LOW),
    _p("coordinates", r"(?<![\d.])-?(?:[1-8]?\d|90)\.\d{2,}\s*,\s*-?(?:1[0-7]\d|[1-9]?\d|180)\.\d{2,}(?![\d.])", ConfidenceTier.LOW),
    # 10 and 13 digit runs are read as unix timestamps (seconds, milliseconds)
    _p("long_number", r"(?<![\w.-])(?!\d{10}(?!\d)|\d{13}(?!\d))\d{6,}(?![\w.-])", ConfidenceTier.LOW),
)


TIER_SEVERITY: Dict[ConfidenceTier, RiskLevel] = {
    ConfidenceTier.HIGH: RiskLevel.CRITICAL,
    ConfidenceTier.MEDIUM: RiskLevel.HIGH,
    ConfidenceTier.LOW: RiskLevel.MEDIUM,
}

TIER_VIOLATION: Dict[ConfidenceTier, ViolationType] = {
    ConfidenceTier.HIGH: ViolationType.PII_EXPOSURE,
    ConfidenceTier.MEDIUM: ViolationType.POTENTIAL_PII_EXPOSURE,
    ConfidenceTier.LOW: ViolationType.PRIVACY_LEVEL_VIOLATION,
}

_TIER_RANK = {ConfidenceTier.HIGH: 0, ConfidenceTier.MEDIUM: 1, ConfidenceTier.LOW: 2}


class PiiDetector:
    """
    Table-driven PII detection.

    HIGH and MEDIUM tiers are always active; LOW tier patterns are surfaced only
    at PrivacyLevel.MAXIMUM. Overlapping matches are resolved left to right,
    longest first, so every character belongs to at most one match.
    """

    def __init__(self, catalog: Iterable[PiiPattern] = PII_CATALOG):
        self.catalog: Tuple[PiiPattern, ...] = tuple(catalog)

    def active_patterns(self, level: PrivacyLevel = PrivacyLevel.STANDARD, *, tiers: Optional[Iterable[ConfidenceTier]] = None) -> List[PiiPattern]:
        allowed = set(tiers) if tiers is not None else None
        out: List[PiiPattern] = []
        for p in self.catalog:
            if p.tier == ConfidenceTier.LOW and level != PrivacyLevel.MAXIMUM:
                continue
            if allowed is not None and p.tier not in allowed:
                continue
            out.append(p)
        return out

    def detect(
        self,
        text: str,
        level: PrivacyLevel = PrivacyLevel.STANDARD,
        *,
        tiers: Optional[Iterable[ConfidenceTier]] = None,
    ) -> List[PiiMatch]:
        if not isinstance(text, str) or not text:
            return []
        found: List[Tuple[int, PiiMatch]] = []
        for order, p in enumerate(self.active_patterns(level, tiers=tiers)):
            for m in p.regex.finditer(text):
                s = m.group(0)
                if p.validator is not None and not p.validator(s):
                    continue
                found.append((order, PiiMatch(category=p.category, tier=p.tier, start=m.start(), end=m.end(), matched_text=s)))
        found.sort(key=lambda t: (t[1].start, -(t[1].end - t[1].start), _TIER_RANK[t[1].tier], t[0]))
        out: List[PiiMatch] = []
        cursor = -1
        for _, m in found:
            if m.start < cursor:
                continue
            out.append(m)
            cursor = m.end
        return out

    def contains_pii(self, text: str, level: PrivacyLevel = PrivacyLevel.STANDARD, *, tiers: Optional[Iterable[ConfidenceTier]] = None) -> bool:
        return bool(self.detect(text, level, tiers=tiers))

    def categories(self, text: str, level: PrivacyLevel = PrivacyLevel.STANDARD) -> List[str]:
        seen: List[str] = []
        for m in self.detect(text, level):
            if m.category not in seen:
                seen.append(m.category)
        return seen
