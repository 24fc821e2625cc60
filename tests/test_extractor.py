"""Tests for onboarding answer extraction (LLM path and rule-based fallback)."""

import pytest

from errors import TransientServiceError
from extractor import Extractor, bin_budget, match_countries, parse_budget_amount, parse_fallback
from tests.conftest import FakeLLM


class TestParseFallback:

    @pytest.mark.parametrize("field,text,expected", [
        ("education_level", "I have a bachelor's degree", "Bachelors"),
        ("education_level", "Just finished high school", "High School"),
        ("degree_major", "Computer Science", "Computer Science"),
        ("graduation_year", "I graduated in 2024", 2024),
        ("gpa_percentage", "8.5/10", "8.5/10"),
        ("gpa_percentage", "about 85%", "85%"),
        ("intended_degree", "I want a Masters", "Masters"),
        ("intended_degree", "an MBA", "MBA"),
        ("field_of_study", "Data Science", "Data Science"),
        ("target_intake", "Fall 2026", "Fall 2026"),
        ("target_intake", "sometime in 2027", "Fall 2027"),
        ("preferred_countries", "USA and Canada", ["USA", "Canada"]),
        ("preferred_countries", "Canada, let us see", ["Canada"]),
        ("preferred_countries", "US and UK", ["USA", "UK"]),
        ("budget_range", "around 25k", "$20,000 - $30,000"),
        ("budget_range", "$60,000", "Above $50,000"),
        ("budget_range", "under 10k", "Under $10,000"),
        ("budget_range", "15k per year for 2 years", "$10,000 - $20,000"),
        ("funding_source", "education loan", "Education Loan"),
        ("funding_source", "my parents will pay", "Self-funded"),
        ("ielts_toefl_score", "IELTS 7.5", "7.5"),
        ("gre_gmat_score", "No, I haven't taken it", "N/A"),
        ("ielts_toefl_score", "No, not yet. Planning to take it in 3 months", "N/A"),
        ("ielts_toefl_score", "IELTS 7.5, no GRE", "7.5"),
        ("gre_gmat_score", "no GRE, IELTS 7", "N/A"),
        ("gre_gmat_score", "GRE 318", "318"),
        ("sop_status", "I have a draft", "draft"),
        ("sop_status", "not started", "not_started"),
        ("sop_status", "I haven't started drafting it", "not_started"),
        ("sop_status", "still writing it", "draft"),
        ("sop_status", "done", "ready"),
    ])
    def test_field_values(self, field, text, expected):
        assert parse_fallback(field, text) == expected

    def test_long_free_text_is_not_an_answer(self):
        text = "well it is a long story about how I ended up studying many different things over the years"
        assert parse_fallback("degree_major", text) is None

    def test_blank_input(self):
        assert parse_fallback("education_level", "   ") is None

    def test_unrecognized_answer(self):
        assert parse_fallback("funding_source", "not sure yet") is None


class TestBudgetHelpers:

    def test_range_binned_by_midpoint(self):
        assert parse_budget_amount("20k - 40k") == 30000
        assert bin_budget(30000) == "$30,000 - $50,000"

    def test_bin_boundaries(self):
        assert bin_budget(9999) == "Under $10,000"
        assert bin_budget(10000) == "$10,000 - $20,000"
        assert bin_budget(50000) == "Above $50,000"

    def test_no_amount(self):
        assert parse_budget_amount("flexible") is None

    def test_duration_is_not_money(self):
        assert parse_budget_amount("15k per year for 2 years") == 15000
        assert parse_budget_amount("for 2 years") is None


class TestMatchCountries:

    def test_order_of_mention(self):
        assert match_countries("canada or the uk, maybe germany") == ["Canada", "UK", "Germany"]

    def test_aliases(self):
        assert match_countries("united states") == ["USA"]

    def test_pronoun_us_is_not_a_country(self):
        assert match_countries("let us see, maybe Canada") == ["Canada"]
        assert match_countries("the US or Canada") == ["USA", "Canada"]


class TestExtractor:

    def test_llm_value_and_extras(self):
        llm = FakeLLM(extractions={
            "I want a Masters in Data Science": {"intended_degree": "masters", "field_of_study": "Data Science"},
        })
        result = Extractor(llm).extract("intended_degree", "I want a Masters in Data Science", {})

        assert result.source == "llm"
        assert result.value == "Masters"
        assert result.updates() == {"intended_degree": "Masters", "field_of_study": "Data Science"}

    def test_extras_never_overwrite_answered_fields(self):
        llm = FakeLLM(extractions={
            "Masters in Physics": {"intended_degree": "Masters", "field_of_study": "Physics"},
        })
        profile = {"study_goal": {"field_of_study": "Data Science"}}
        result = Extractor(llm).extract("intended_degree", "Masters in Physics", profile)

        assert result.updates() == {"intended_degree": "Masters"}

    def test_falls_back_when_llm_misses_field(self):
        llm = FakeLLM(extractions={})
        result = Extractor(llm).extract("graduation_year", "2024", {})

        assert result.source == "fallback"
        assert result.value == 2024

    def test_falls_back_when_llm_fails(self):
        llm = FakeLLM(error=TransientServiceError("timeout"))
        result = Extractor(llm).extract("sop_status", "I have a draft", {})

        assert result.source == "fallback"
        assert result.value == "draft"

    def test_invalid_llm_values_are_dropped(self):
        llm = FakeLLM(extractions={"Bachelors": {"education_level": "kindergarten"}})
        result = Extractor(llm).extract("education_level", "Bachelors", {})

        assert result.source == "fallback"
        assert result.value == "Bachelors"

    def test_nothing_extracted(self):
        result = Extractor().extract("funding_source", "hmm", {})

        assert not result.found
        assert result.updates() == {}

    def test_empty_message_skips_llm(self):
        llm = FakeLLM(error=AssertionError("should not be called"))
        result = Extractor(llm).extract("education_level", "", {})

        assert result.updates() == {}
