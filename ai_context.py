# AI Counsellor Context Builder
# ==============================
# Builds the context sent to the counsellor: profile snapshot plus a summary
# of the universities the student has shortlisted or locked.

from typing import Dict, Iterable, List, Mapping

from models import LockStatus


def profile_snapshot(profile) -> Dict:
    """Plain-dict view of a profile row for prompt embedding."""
    return {
        "academic_background": profile.academic_background or {},
        "study_goal": profile.study_goal or {},
        "budget": profile.budget or {},
        "exam_readiness": profile.exam_readiness or {},
        "onboarding_completed": bool(profile.onboarding_completed),
        "current_stage": profile.current_stage,
    }


def format_university_for_ai(university, status: str) -> str:
    """
    Format a university row into one entry of the "My Universities" list.

    Args:
        university: University row
        status: Lock status for this user (shortlisted | locked)

    Returns:
        Multi-line summary string
    """
    location = ", ".join(part for part in (university.city, university.country) if part)
    return (
        f"- {university.name} ({location}) [Status: {status.upper()}]\n"
        f"  Risks: {university.known_risks or 'None listed'}\n"
        f"  Why fits: {university.why_students_choose_it or 'N/A'}"
    )


def build_universities_context(universities: Iterable, statuses: Mapping[str, str]) -> str:
    """
    Build the "My Universities" block.

    Args:
        universities: University rows associated with the user
        statuses: university_id -> lock status

    Returns:
        Newline-joined summaries, locked universities first; "" when empty
    """
    rows: List = list(universities)
    rows.sort(key=lambda u: statuses.get(u.university_id) != LockStatus.LOCKED.value)
    return "\n".join(
        format_university_for_ai(u, statuses.get(u.university_id, LockStatus.SHORTLISTED.value))
        for u in rows
    )
