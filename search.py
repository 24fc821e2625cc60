"""
Semantic university search.

University rows carry a precomputed embedding (see load_universities.py).
A query is embedded with the same model and candidates are ranked by
cosine distance, lower meaning more similar. On PostgreSQL the ranking runs
in the database through pgvector's `<=>` operator; other backends rank the
filtered candidates with numpy.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy import func

from database import db_session, normalize_country
from models import University

logger = logging.getLogger(__name__)

UNIVERSITY_FIELDS = [
    "university_id", "name", "country", "city", "global_ranking_band",
    "program_strengths", "avg_annual_tuition_usd", "cost_of_living_usd",
    "total_annual_cost_usd", "competition_level", "intl_acceptance_estimate",
    "visa_risk_level", "budget_category", "why_students_choose_it",
    "known_risks", "confidence_note", "req_gpa_range", "req_ielts_min",
    "req_gre_requirement", "image_url", "requirement_profile_code",
]


def cosine_distances(query_vector: Sequence[float], vectors) -> np.ndarray:
    """
    1 - cosine similarity of the query against each row of vectors.

    Rows (or a query) with zero norm get distance 1.0.
    """
    query = np.asarray(query_vector, dtype=float)
    matrix = np.atleast_2d(np.asarray(vectors, dtype=float))
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.where(norms > 0, dots / norms, 0.0)
    return 1.0 - similarity


def university_to_dict(university: University) -> Dict:
    return {name: getattr(university, name) for name in UNIVERSITY_FIELDS}


class UniversitySearch:
    """
    Args:
        session_factory: SQLAlchemy sessionmaker
        embedder: Collaborator exposing embed(text) -> list[float]
    """

    def __init__(self, session_factory, embedder):
        self.session_factory = session_factory
        self.embedder = embedder

    def search(self, query_text: str, k: int, filters: Optional[Dict] = None) -> List[Dict]:
        """
        Rank corpus universities against a query.

        Args:
            query_text: Text summary of the student profile
            k: Maximum results
            filters: Optional {"country": str, "max_tuition": number}

        Returns:
            Up to k university dicts, each with a "distance" key, nearest first
        """
        filters = filters or {}
        query_vector = self.embedder.embed(query_text)
        country = normalize_country(filters.get("country"))

        with db_session(self.session_factory) as db:
            query = db.query(University).filter(University.embedding.isnot(None))
            if country:
                query = query.filter(func.lower(University.country) == country.lower())
            if filters.get("max_tuition"):
                query = query.filter(University.avg_annual_tuition_usd <= filters["max_tuition"])

            if db.get_bind().dialect.name == "postgresql":
                distance = University.embedding.cosine_distance(query_vector).label("distance")
                rows = query.add_columns(distance).order_by(distance).limit(k).all()
                ranked = [{**university_to_dict(u), "distance": float(d)} for u, d in rows]
            else:
                candidates = query.all()
                ranked = []
                if candidates:
                    distances = cosine_distances(query_vector, [u.embedding for u in candidates])
                    for index in np.argsort(distances, kind="stable")[:k]:
                        ranked.append({**university_to_dict(candidates[index]), "distance": float(distances[index])})

        logger.info(f"[SEARCH] k={k}, filter_country={country or None}, returned={len(ranked)}")
        return ranked
