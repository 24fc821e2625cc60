"""
Application checklist generation for a locked university.

Tasks come from the university's requirement profile: one documentation
task per required document, one test-prep task per required test the
student has no score for yet, and an early-visa task for high visa risk.
Generation runs inside the lock transaction, after the caller has checked
under the per-user row lock that no AI-generated tasks exist yet.
"""

import logging
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError

import crud
from models import TaskCategory, Task
from profile_fields import profile_sections, is_present

logger = logging.getLogger(__name__)

DOCUMENT_PRIORITY = 2
DOCUMENT_HOURS = 3
TEST_PRIORITY = 1
TEST_HOURS = 40
VISA_PRIORITY = 1
VISA_HOURS = 5
HIGH_VISA_RISK = "High"

DOCUMENT_LABELS = {
    "sop": "Statement of Purpose",
    "lor": "Letters of Recommendation",
    "transcript": "official academic transcripts",
    "transcripts": "official academic transcripts",
    "cv": "CV / resume",
    "resume": "CV / resume",
    "passport": "a valid passport",
    "financials": "proof of funds",
    "portfolio": "portfolio",
}

# Requirement test code -> exam readiness field holding its score
TEST_SCORE_FIELDS = {
    "ielts": "ielts_toefl_score",
    "toefl": "ielts_toefl_score",
    "pte": "ielts_toefl_score",
    "gre": "gre_gmat_score",
    "gmat": "gre_gmat_score",
}


def has_test_score(profile, test_code: str) -> bool:
    """True when the exam section shows an actual score for the test ("N/A" is not one)."""
    exams = profile_sections(profile)["exam_readiness"]
    code = test_code.lower()
    values = [exams.get(f"{code}_score"), exams.get(code)]
    if code in TEST_SCORE_FIELDS:
        values.append(exams.get(TEST_SCORE_FIELDS[code]))
    return any(is_present(v) and str(v).strip().upper() != "N/A" for v in values)


def build_task_specs(university, profile, requirement_profile) -> List[Dict]:
    """Task field dicts for a university, in priority-independent creation order."""
    name = university.name
    university_id = university.university_id
    specs = []

    for doc in requirement_profile.doc_codes or []:
        specs.append({
            "university_id": university_id,
            "title": f"{name} - Prepare {doc.upper()}",
            "description": f"Prepare {DOCUMENT_LABELS.get(doc.lower(), doc.upper())} for your {name} application",
            "category": TaskCategory.DOCUMENTATION.value,
            "ai_generated": True,
            "ai_meta": {"source": "requirement_profile", "doc": doc},
            "priority": DOCUMENT_PRIORITY,
            "est_hours": DOCUMENT_HOURS,
        })

    for test in requirement_profile.test_codes or []:
        if has_test_score(profile, test):
            continue
        specs.append({
            "university_id": university_id,
            "title": f"{name} - Prepare {test.upper()}",
            "description": f"{name} requires a {test.upper()} score. Book a test date and start preparing.",
            "category": TaskCategory.TEST_PREP.value,
            "ai_generated": True,
            "ai_meta": {"source": "requirement_profile", "test": test},
            "priority": TEST_PRIORITY,
            "est_hours": TEST_HOURS,
        })

    if university.visa_risk_level == HIGH_VISA_RISK:
        specs.append({
            "university_id": university_id,
            "title": f"{name} - Start visa documentation early",
            "description": f"Student visas for {university.country or 'this country'} carry high refusal risk. Gather financial and sponsorship documents early.",
            "category": TaskCategory.APPLICATION.value,
            "ai_generated": True,
            "ai_meta": {"source": "visa_risk", "visa_risk_level": university.visa_risk_level},
            "priority": VISA_PRIORITY,
            "est_hours": VISA_HOURS,
        })

    return specs


class TaskGenerator:
    """Creates the checklist inside the caller's transaction."""

    def generate(self, db, user_id: str, university, profile) -> List[Task]:
        """
        Create the checklist for a locked university.

        Each task is inserted under its own savepoint so one failed insert
        does not block the rest.

        Args:
            db: Session holding the caller's lock transaction
            user_id: Owner of the tasks
            university: University row being locked
            profile: Profile snapshot used to skip tests already taken

        Returns:
            Tasks that were created (empty when no requirement profile exists)
        """
        logger.info(f"[GEN TASKS] Generating for: {university.name} Code: {university.requirement_profile_code}")

        requirement_profile = crud.get_requirement_profile(db, university.requirement_profile_code)
        if not requirement_profile:
            logger.warning(f"[GEN TASKS] No requirement profile found for code: {university.requirement_profile_code}")
            return []

        created = []
        for spec in build_task_specs(university, profile, requirement_profile):
            try:
                with db.begin_nested():
                    created.append(crud.create_task(db, user_id=user_id, **spec))
            except SQLAlchemyError as e:
                logger.error(f"[GEN TASKS] Task insert failed ({spec['title']}): {e}")

        logger.info(f"[GEN TASKS] Created {len(created)} tasks for {university.name}")
        return created
