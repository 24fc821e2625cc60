"""Tests for dashboard profile strength."""

import pytest

from scoring import academics_strength, calculate_profile_strength, exams_strength, parse_gpa, sop_strength
from tests.conftest import COMPLETE_SECTIONS


class TestAcademics:

    @pytest.mark.parametrize("gpa,status", [
        ("3.8", "strong"),
        ("3.0", "average"),
        ("2.1", "weak"),
        ("9.1/10", "strong"),
        ("85%", "average"),
        ("92%", "strong"),
        (None, "missing"),
    ])
    def test_scales(self, gpa, status):
        assert academics_strength(gpa)["status"] == status

    def test_parse_gpa(self):
        assert parse_gpa("8.5/10") == 8.5
        assert parse_gpa("n/a") == 0.0


class TestExamsAndSop:

    def test_exams(self):
        assert exams_strength("7.5", "320")["status"] == "completed"
        assert exams_strength("7.5", "N/A")["status"] == "in_progress"
        assert exams_strength(None, None)["status"] == "not_started"

    def test_sop_accepts_legacy_spellings(self):
        assert sop_strength("Complete") == {"status": "ready", "percent": 100}
        assert sop_strength("Draft")["percent"] == 50
        assert sop_strength(None)["status"] == "not_started"


def test_calculate_profile_strength():
    strength = calculate_profile_strength(COMPLETE_SECTIONS)

    assert strength["academics"]["status"] == "average"
    assert strength["exams"]["status"] == "in_progress"
    assert strength["sop"]["status"] == "draft"
