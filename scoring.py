"""
Profile strength scoring for the dashboard.
"""

import re
from typing import Dict, Optional

from models import SopStatus
from profile_fields import profile_sections
from schemas import normalize_sop_status

NOT_TAKEN = {"", "N/A", "NA", "NOT TAKEN", "NONE"}


def parse_gpa(gpa: Optional[str]) -> float:
    """
    Leading number of a GPA answer ("3.5", "85%", "8.5/10").

    Returns:
        Parsed number, 0.0 when absent
    """
    if not gpa:
        return 0.0
    match = re.search(r"\d+(?:\.\d+)?", str(gpa))
    return float(match.group(0)) if match else 0.0

def academics_strength(gpa: Optional[str]) -> Dict:
    """
    Grade academics from GPA on any common scale.

    Strong above 3.5 (4-point) / 85 (percent), weak below 2.5 / 60.
    """
    value = parse_gpa(gpa)
    if value == 0:
        return {"status": "missing", "percent": 0}
    # 4-point, 10-point and percentage scales
    if value <= 4:
        strong, weak = value > 3.5, value < 2.5
    elif value <= 10:
        strong, weak = value > 8.5, value < 6.0
    else:
        strong, weak = value > 85, value < 60
    if strong:
        return {"status": "strong", "percent": 100}
    if weak:
        return {"status": "weak", "percent": 30}
    return {"status": "average", "percent": 60}

def _taken(score) -> bool:
    return score is not None and str(score).strip().upper() not in NOT_TAKEN

def exams_strength(ielts: Optional[str], gre: Optional[str]) -> Dict:
    if _taken(ielts) and _taken(gre):
        return {"status": "completed", "percent": 100}
    if _taken(ielts):
        return {"status": "in_progress", "percent": 50}
    return {"status": "not_started", "percent": 5}

def sop_strength(sop_status: Optional[str]) -> Dict:
    status = normalize_sop_status(sop_status) or SopStatus.NOT_STARTED.value
    if status == SopStatus.READY.value:
        return {"status": status, "percent": 100}
    if status == SopStatus.DRAFT.value:
        return {"status": status, "percent": 50}
    return {"status": status, "percent": 5}

def calculate_profile_strength(profile) -> Dict:
    """
    Strength of the three sections the dashboard tracks.

    Returns:
        {"academics": {...}, "exams": {...}, "sop": {...}}, each with status and percent
    """
    sections = profile_sections(profile)
    academic, exams = sections["academic_background"], sections["exam_readiness"]
    return {
        "academics": academics_strength(academic.get("gpa_percentage")),
        "exams": exams_strength(exams.get("ielts_toefl_score"), exams.get("gre_gmat_score")),
        "sop": sop_strength(exams.get("sop_status")),
    }
