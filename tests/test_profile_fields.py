"""Tests for the onboarding field catalogue and next-field resolution."""

from profile_fields import (
    COMPLETE, FIELD_ORDER, SECTION_FIELDS, is_present, next_missing_field,
)
from tests.conftest import COMPLETE_SECTIONS


class TestFieldOrder:

    def test_thirteen_fields_in_priority_order(self):
        assert len(FIELD_ORDER) == 13
        assert FIELD_ORDER[0] == "education_level"
        assert FIELD_ORDER[-1] == "sop_status"
        assert FIELD_ORDER.index("gre_gmat_score") == FIELD_ORDER.index("ielts_toefl_score") + 1

    def test_every_field_belongs_to_one_section(self):
        fields = [f for section in SECTION_FIELDS.values() for f in section]
        assert sorted(fields) == sorted(set(fields))


class TestIsPresent:

    def test_empty_values_are_absent(self):
        assert not is_present(None)
        assert not is_present("")
        assert not is_present("   ")
        assert not is_present([])

    def test_falsy_but_set_values_are_present(self):
        assert is_present(0)
        assert is_present(["USA"])
        assert is_present("N/A")


class TestNextMissingField:

    def test_empty_profile_starts_with_education_level(self):
        assert next_missing_field(None) == "education_level"
        assert next_missing_field({}) == "education_level"

    def test_complete_profile(self):
        assert next_missing_field(COMPLETE_SECTIONS) == COMPLETE

    def test_skips_answered_fields(self):
        profile = {
            "academic_background": {"education_level": "Bachelors", "degree_major": "CS"},
        }
        assert next_missing_field(profile) == "graduation_year"

    def test_empty_country_list_counts_as_missing(self):
        profile = {**COMPLETE_SECTIONS, "study_goal": {**COMPLETE_SECTIONS["study_goal"], "preferred_countries": []}}
        assert next_missing_field(profile) == "preferred_countries"

    def test_resolution_is_pure(self):
        profile = {"budget": {"budget_range": "Under $10,000"}}
        next_missing_field(profile)
        assert profile == {"budget": {"budget_range": "Under $10,000"}}

    def test_reads_orm_like_objects(self):
        class Row:
            academic_background = None
            study_goal = None
            budget = None
            exam_readiness = None

        assert next_missing_field(Row()) == "education_level"
