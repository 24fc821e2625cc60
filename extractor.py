"""
Answer extraction for onboarding.

Primary path asks the LLM to map the user's message onto the full profile
schema, so volunteered extras ("MS in CS in the USA") are captured too.
When the LLM fails or misses the field being asked about, a deterministic
keyword/regex parser takes over for that field.
"""

import re
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from models import EducationLevel, IntendedDegree, FundingSource, SopStatus
from profile_fields import FIELD_ORDER, get_field_value, is_present
from prompts import get_extraction_prompt
from schemas import ExtractedProfile

logger = logging.getLogger(__name__)

# Free-text answers longer than this are treated as "not an answer"
MAX_ANSWER_WORDS = 8
MAX_FREE_TEXT_CHARS = 50
MAX_INTAKE_CHARS = 20
MAX_COUNTRY_CHARS = 30

NOT_APPLICABLE = "N/A"

# Canonical name -> patterns, matched on lowercase text
SUPPORTED_COUNTRIES = {
    "USA": [r"\busa\b", r"\bu\.s\.a?\.?", r"united states", r"\bamerica\b"],
    "UK": [r"\buk\b", r"united kingdom", r"\bbritain\b", r"\bengland\b"],
    "Canada": [r"\bcanada\b"],
    "Australia": [r"\baustralia\b"],
    "Germany": [r"\bgermany\b"],
}

# Matched on the original text so the pronoun "us" is not a country
CASE_SENSITIVE_COUNTRIES = {
    "USA": [r"\bUS\b"],
}

# Plausible score range per test
TEST_SCORE_RANGES = {
    "ielts": (0, 9),
    "toefl": (0, 120),
    "pte": (10, 90),
    "gre": (260, 340),
    "gmat": (200, 800),
}
EXAM_FIELD_TESTS = {
    "ielts_toefl_score": ("ielts", "toefl", "pte"),
    "gre_gmat_score": ("gre", "gmat"),
}

BUDGET_RANGES = [
    (10000, "Under $10,000"),
    (20000, "$10,000 - $20,000"),
    (30000, "$20,000 - $30,000"),
    (50000, "$30,000 - $50,000"),
]
BUDGET_TOP_RANGE = "Above $50,000"

_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")
_GPA_RE = re.compile(r"\d+(?:\.\d+)?(?:\s*/\s*\d+(?:\.\d+)?|\s*%)?")
_INTAKE_RE = re.compile(r"\b(fall|spring|summer|winter|autumn)\s*(20\d{2})\b")
_AMOUNT_RE = re.compile(r"(\$\s*)?(\d+(?:[.,]\d+)*)(\s*(?:k\b|thousand\b))?")
_RANGE_SEP_RE = re.compile(r"\s*(?:-|to)\s*\$?\s*\d")
_SCORE_RE = re.compile(r"\b\d{1,3}(?:\.\d+)?\b")
_NOT_TAKEN_RE = re.compile(r"\b(no|not|none|never|nope|haven'?t|havent|didn'?t|n/a|na|yet|plan(?:ning)?|will|going to|booked|scheduled)\b")
_NAMED_SCORE_RE = re.compile(r"\b(ielts|toefl|pte|gre|gmat)\b[^\d,;.]{0,15}?(\d{1,3}(?:\.\d+)?)")
_SOP_NOT_STARTED_RE = re.compile(
    r"\b(?:haven'?t|havent|have not|not|never|yet to)\s+(?:\w+\s+)?(?:start|begun|begin|write|written|draft)"
    r"|\bnot\s+(?:yet|started)\b|^\s*(?:no|nope|none)\b"
)
_UNDER_RE = re.compile(r"\b(under|below|less than|up to|max(?:imum)?|within)\b")


class ExtractionResult:
    """Outcome of one extraction: the target value plus opportunistic extras."""

    def __init__(self, field: str, value: Any = None, extras: Optional[Dict[str, Any]] = None, source: Optional[str] = None):
        self.field = field
        self.value = value
        self.extras = extras or {}
        self.source = source  # "llm" | "fallback" | None

    @property
    def found(self) -> bool:
        return is_present(self.value)

    def updates(self) -> Dict[str, Any]:
        """All field values to persist, target field included."""
        values = dict(self.extras)
        if self.found:
            values[self.field] = self.value
        return values

    def __repr__(self):
        return f"ExtractionResult(field={self.field!r}, value={self.value!r}, extras={self.extras!r}, source={self.source!r})"


# ============================================
# RULE-BASED FALLBACK
# ============================================

def _short_answer(text: str, max_chars: int) -> Optional[str]:
    stripped = text.strip().strip(".!")
    if not stripped or len(stripped) >= max_chars or len(stripped.split()) > MAX_ANSWER_WORDS:
        return None
    return stripped


def _education_level(text: str) -> Optional[str]:
    if "bachelor" in text or "undergraduate" in text:
        return EducationLevel.BACHELORS.value
    if "master" in text or "graduate" in text:
        return EducationLevel.MASTERS.value
    if "phd" in text or "ph.d" in text or "doctorate" in text:
        return EducationLevel.PHD.value
    if "high school" in text or "12th" in text:
        return EducationLevel.HIGH_SCHOOL.value
    return None


def _intended_degree(text: str) -> Optional[str]:
    if "mba" in text:
        return IntendedDegree.MBA.value
    if "bachelor" in text:
        return IntendedDegree.BACHELORS.value
    if "master" in text or re.search(r"\bm\.?sc?\b", text):
        return IntendedDegree.MASTERS.value
    if "phd" in text or "ph.d" in text or "doctorate" in text:
        return IntendedDegree.PHD.value
    return None


def _target_intake(text: str, raw: str) -> Optional[str]:
    match = _INTAKE_RE.search(text)
    if match:
        return f"{match.group(1).capitalize()} {match.group(2)}"
    year = _YEAR_RE.search(text)
    if year:
        return f"Fall {year.group(0)}"
    return _short_answer(raw, MAX_INTAKE_CHARS)


def match_countries(raw_text: str) -> list:
    """Supported countries mentioned in text, in order of first mention."""
    text = raw_text.lower()
    positions = []
    for country, patterns in SUPPORTED_COUNTRIES.items():
        hits = [m.start() for p in patterns for m in [re.search(p, text)] if m]
        # Case-sensitive aliases ("US" but not the pronoun "us")
        hits += [m.start() for p in CASE_SENSITIVE_COUNTRIES.get(country, []) for m in [re.search(p, raw_text)] if m]
        if hits:
            positions.append((min(hits), country))
    return [country for _, country in sorted(positions)]


def _preferred_countries(raw: str) -> Optional[list]:
    countries = match_countries(raw)
    if countries:
        return countries
    answer = _short_answer(raw, MAX_COUNTRY_CHARS)
    return [answer] if answer else None


def parse_budget_amount(text: str) -> Optional[int]:
    """
    Annual amount in USD implied by a budget answer, or None.

    A number counts as money when it carries "$", "k" or "thousand", is at
    least 1000, or is one end of an "X - Y" / "X to Y" range. Other numbers
    ("for 2 years") are ignored.
    """
    matches = list(_AMOUNT_RE.finditer(text))
    ranged = [False] * len(matches)
    for i, match in enumerate(matches[:-1]):
        if _RANGE_SEP_RE.match(text, match.end()):
            ranged[i] = ranged[i + 1] = True

    amounts = []
    for match, in_range in zip(matches, ranged):
        dollar, number, unit = match.groups()
        value = float(number.replace(",", ""))
        if not (dollar or unit or in_range or value >= 1000):
            continue
        if unit or value < 1000:
            value *= 1000
        amounts.append(value)
    if not amounts:
        return None
    if _UNDER_RE.search(text):
        return int(max(amounts)) - 1
    # A range is binned by its midpoint
    return int(sum(amounts[:2]) / len(amounts[:2]))


def bin_budget(amount: int) -> str:
    for upper, label in BUDGET_RANGES:
        if amount < upper:
            return label
    return BUDGET_TOP_RANGE


def _budget_range(text: str) -> Optional[str]:
    amount = parse_budget_amount(text)
    if amount is None or amount <= 0:
        return None
    return bin_budget(amount)


def _funding_source(text: str) -> Optional[str]:
    if "self" in text or "family" in text or "parents" in text or "savings" in text:
        return FundingSource.SELF_FUNDED.value
    if "scholarship" in text:
        return FundingSource.SCHOLARSHIP.value
    if "loan" in text:
        return FundingSource.EDUCATION_LOAN.value
    if "sponsor" in text or "employer" in text:
        return FundingSource.SPONSORSHIP.value
    return None


def _named_score(field: str, text: str) -> Optional[str]:
    """First in-range score that directly follows one of the field's test names."""
    for match in _NAMED_SCORE_RE.finditer(text):
        test, score = match.group(1), match.group(2)
        if test not in EXAM_FIELD_TESTS[field]:
            continue
        low, high = TEST_SCORE_RANGES[test]
        if low <= float(score) <= high:
            return score
    return None


def _exam_score(field: str, text: str) -> Optional[str]:
    named = _named_score(field, text)
    if named:
        return named
    # "No, not yet. Planning to take it in 3 months" carries no score
    if _NOT_TAKEN_RE.search(text):
        return NOT_APPLICABLE
    score = _SCORE_RE.search(text.replace("/", " / "))
    return score.group(0) if score else None


def _sop_status(text: str) -> Optional[str]:
    if _SOP_NOT_STARTED_RE.search(text):
        return SopStatus.NOT_STARTED.value
    if "draft" in text or "working" in text or "progress" in text or "writing" in text:
        return SopStatus.DRAFT.value
    if re.search(r"\b(not|no|haven'?t|havent|yet to)\b", text):
        return SopStatus.NOT_STARTED.value
    if "done" in text or "complete" in text or "ready" in text or "finished" in text:
        return SopStatus.READY.value
    return None


def parse_fallback(field: str, raw_text: str) -> Optional[Any]:
    """
    Deterministic parser for a single onboarding field.

    Args:
        field: Field being asked about
        raw_text: User's message

    Returns:
        Typed value for the field, or None when nothing usable was found
    """
    if not raw_text or not raw_text.strip():
        return None
    text = raw_text.lower()

    if field == "education_level":
        return _education_level(text)
    if field in ("degree_major", "field_of_study"):
        return _short_answer(raw_text, MAX_FREE_TEXT_CHARS)
    if field == "graduation_year":
        year = _YEAR_RE.search(text)
        return int(year.group(0)) if year else None
    if field == "gpa_percentage":
        gpa = _GPA_RE.search(text)
        return re.sub(r"\s+", "", gpa.group(0)) if gpa else None
    if field == "intended_degree":
        return _intended_degree(text)
    if field == "target_intake":
        return _target_intake(text, raw_text)
    if field == "preferred_countries":
        return _preferred_countries(raw_text)
    if field == "budget_range":
        return _budget_range(text)
    if field == "funding_source":
        return _funding_source(text)
    if field in ("ielts_toefl_score", "gre_gmat_score"):
        return _exam_score(field, text)
    if field == "sop_status":
        return _sop_status(text)
    return None


# ============================================
# EXTRACTOR
# ============================================

class Extractor:
    """
    Extract a typed value for the field being asked about.

    Args:
        llm: Collaborator exposing extract_structured(prompt) -> dict, or None
             to use the rule-based parser only
    """

    def __init__(self, llm=None):
        self.llm = llm

    def _extract_with_llm(self, field: str, raw_text: str) -> Dict[str, Any]:
        if self.llm is None:
            return {}
        prompt = get_extraction_prompt(field, raw_text, ExtractedProfile.model_json_schema())
        try:
            payload = self.llm.extract_structured(prompt)
            extracted = ExtractedProfile.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"[ONBOARDING] LLM output did not match schema: {e}")
            return {}
        except Exception as e:
            logger.error(f"[ONBOARDING] Extraction failed: {e}")
            return {}
        values = extracted.model_dump(mode="json", exclude_none=True)
        return {k: v for k, v in values.items() if is_present(v)}

    def extract(self, field: str, raw_text: str, profile_so_far=None) -> ExtractionResult:
        if not raw_text or not raw_text.strip():
            return ExtractionResult(field)

        logger.info(f"[ONBOARDING] Extracting '{field}' from: {raw_text!r}")
        extracted = self._extract_with_llm(field, raw_text)

        # Extras only fill gaps; they never overwrite an answered field
        extras = {
            k: v for k, v in extracted.items()
            if k != field and k in FIELD_ORDER and not is_present(get_field_value(profile_so_far, k))
        }

        if field in extracted:
            logger.info(f"[ONBOARDING] Extracted via LLM: {extracted}")
            return ExtractionResult(field, extracted[field], extras, source="llm")

        logger.info(f"[ONBOARDING] Field '{field}' missing in LLM output. Trying manual fallback...")
        value = parse_fallback(field, raw_text)
        if value is not None:
            logger.info(f"[ONBOARDING] Fallback extracted {field}={value!r}")
            return ExtractionResult(field, value, extras, source="fallback")
        return ExtractionResult(field, None, extras)
