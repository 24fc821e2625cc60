"""
Onboarding field catalogue and next-missing-field resolution.

The resolver is a pure function over a profile snapshot: it never writes,
so the onboarding engine decides when (and whether) to persist.
"""

from typing import Any, Dict, Mapping, Optional

COMPLETE = "complete"

# Section -> fields, in the order they are asked.
SECTION_FIELDS = {
    "academic_background": ["education_level", "degree_major", "graduation_year", "gpa_percentage"],
    "study_goal": ["intended_degree", "field_of_study", "target_intake", "preferred_countries"],
    "budget": ["budget_range", "funding_source"],
    "exam_readiness": ["ielts_toefl_score", "gre_gmat_score", "sop_status"],
}

FIELD_ORDER = [field for fields in SECTION_FIELDS.values() for field in fields]

FIELD_SECTIONS = {
    field: section
    for section, fields in SECTION_FIELDS.items()
    for field in fields
}

# Short aliases accepted by the profile edit endpoint
SECTION_ALIASES = {
    "academic": "academic_background",
    "academic_background": "academic_background",
    "study_goal": "study_goal",
    "goal": "study_goal",
    "budget": "budget",
    "exams": "exam_readiness",
    "exam_readiness": "exam_readiness",
}


def is_present(value: Any) -> bool:
    """A field is present when it is set and, for lists and strings, non-empty."""
    if value is None:
        return False
    if isinstance(value, (list, tuple, set)):
        return len(value) > 0
    if isinstance(value, str):
        return value.strip() != ""
    return True


def profile_sections(profile) -> Dict[str, Mapping]:
    """Read the four sections from an ORM row, a dict, or None."""
    if profile is None:
        return {section: {} for section in SECTION_FIELDS}
    if isinstance(profile, Mapping):
        return {section: profile.get(section) or {} for section in SECTION_FIELDS}
    return {section: getattr(profile, section, None) or {} for section in SECTION_FIELDS}


def get_field_value(profile, field: str) -> Optional[Any]:
    section = FIELD_SECTIONS[field]
    return profile_sections(profile)[section].get(field)


def next_missing_field(profile) -> str:
    """Return the first absent field in priority order, or COMPLETE."""
    sections = profile_sections(profile)
    for field in FIELD_ORDER:
        if not is_present(sections[FIELD_SECTIONS[field]].get(field)):
            return field
    return COMPLETE
