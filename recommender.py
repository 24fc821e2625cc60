import logging
from typing import Dict, Iterable, List

from classifier import classify_university, classify_universities, default_fit
from errors import TransientServiceError
from profile_fields import profile_sections
from schemas import RecommendedUniversity, RecommendResponse, UniversityFit

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 12
FIT_SEARCH_LIMIT = 50


def build_profile_query(profile) -> str:
    """Short text summary of a profile, embedded as the search query."""
    sections = profile_sections(profile)
    academic, goal = sections["academic_background"], sections["study_goal"]
    budget, exams = sections["budget"], sections["exam_readiness"]
    return (
        f"Student: {academic.get('degree_major') or ''}.\n"
        f"Degree wanted: {goal.get('intended_degree') or ''} in {goal.get('field_of_study') or ''}.\n"
        f"Budget: {budget.get('budget_range') or ''}.\n"
        f"Intake: {goal.get('target_intake') or ''}.\n"
        f"Scores: IELTS {exams.get('ielts_toefl_score') or 'N/A'}, GRE {exams.get('gre_gmat_score') or 'N/A'}."
    )


def search_filters(profile) -> Dict:
    countries = profile_sections(profile)["study_goal"].get("preferred_countries") or []
    return {"country": countries[0] if countries else None, "max_tuition": None}


class RecommendationEngine:
    """
    Rank and bucket universities for a profile.

    Args:
        search: Collaborator exposing search(query_text, k, filters) -> list[dict]
                where each dict carries a "distance"
    """

    def __init__(self, search):
        self.search = search

    def _ranked(self, profile, k: int) -> List[Dict]:
        return self.search.search(build_profile_query(profile), k, search_filters(profile))

    def recommend(self, profile, k: int = DEFAULT_LIMIT) -> RecommendResponse:
        """
        Args:
            profile: Completed profile (ORM row or dict)
            k: Maximum universities to return

        Returns:
            RecommendResponse; on search failure the list is empty and error is set
        """
        try:
            ranked = self._ranked(profile, k)
        except Exception as e:
            logger.error(f"[RECOMMEND] University search failed: {e}")
            return RecommendResponse(universities=[], count=0, error="University search is unavailable. Please try again.")

        universities = [RecommendedUniversity(**classify_university(u)) for u in ranked[:k]]
        groups = classify_universities(ranked[:k])
        logger.info(
            f"[RECOMMEND] {len(universities)} universities: "
            f"{len(groups['safe'])} safe, {len(groups['target'])} target, {len(groups['dream'])} dream"
        )
        return RecommendResponse(universities=universities, count=len(universities))

    def fit_for(self, profile, university_ids: Iterable[str], k: int = FIT_SEARCH_LIMIT) -> Dict[str, UniversityFit]:
        """
        Bucket specific universities using a capped search.

        Universities outside the top-k results default to Dream / Low / High.
        """
        try:
            ranked = self._ranked(profile, k)
        except Exception as e:
            logger.error(f"[RECOMMEND] Vector search failed: {e}")
            raise TransientServiceError("Search failed") from e

        by_id = {u["university_id"]: u for u in ranked}
        fit_data = {}
        for university_id in university_ids:
            match = by_id.get(university_id)
            if match:
                tagged = classify_university(match)
                fit = {key: tagged[key] for key in ("bucket", "acceptance_chance", "cost_level")}
            else:
                fit = default_fit()
            fit_data[university_id] = UniversityFit(**fit)
        return fit_data
