"""
Load the university corpus.

Reads universities and requirement profiles from CSV, upserts them, then
embeds each university's summary document with the Gemini embedding model.

Usage:
    python load_universities.py universities.csv requirement_profiles.csv
"""

import sys
import logging

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from database import db_session, get_engine, get_session_factory, verify_tables_exist
from errors import TransientServiceError
from gemini_client import GeminiClient
from models import RequirementProfile, University
from search import UNIVERSITY_FIELDS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

INTEGER_COLUMNS = ["avg_annual_tuition_usd", "cost_of_living_usd", "total_annual_cost_usd"]

def _clean(value):
    return None if pd.isna(value) else value

def _codes(value):
    """'sop|lor|cv' -> ['sop', 'lor', 'cv']"""
    if pd.isna(value):
        return []
    return [code.strip().lower() for code in str(value).replace(",", "|").split("|") if code.strip()]

def build_summary_row(row) -> str:
    """Compact text document describing a university, used for its embedding."""
    strengths = (row.get("program_strengths") or "").replace("|", ", ")[:300]
    def field(name):
        value = row.get(name)
        return "N/A" if value is None else value
    return (
        f"{row['name']} - {row.get('city') or row.get('country')}.\n"
        f"Ranking: {field('global_ranking_band')}.\n"
        f"Strengths: {strengths}.\n"
        f"Tuition: {field('avg_annual_tuition_usd')} USD / yr. Cost of living: {field('cost_of_living_usd')} USD/yr.\n"
        f"Competition: {field('competition_level')}. Visa risk: {field('visa_risk_level')}.\n"
        f"Ideal GPA: {field('req_gpa_range')}."
    )

def load_universities_frame(csv_path: str) -> pd.DataFrame:
    df = pd.read_csv(csv_path)
    print("Original columns:", df.columns.tolist())

    df = df[[c for c in UNIVERSITY_FIELDS if c in df.columns]].copy()
    df = df.dropna(subset=["university_id", "name"])
    df["university_id"] = df["university_id"].astype(str).str.strip()

    for column in INTEGER_COLUMNS:
        if column in df.columns:
            df[column] = pd.to_numeric(df[column], errors="coerce")

    # Derive total cost when only its parts are given
    if "total_annual_cost_usd" not in df.columns and {"avg_annual_tuition_usd", "cost_of_living_usd"} <= set(df.columns):
        df["total_annual_cost_usd"] = df["avg_annual_tuition_usd"] + df["cost_of_living_usd"]

    return df

def load_requirement_profiles(session_factory, csv_path: str) -> int:
    df = pd.read_csv(csv_path).dropna(subset=["code"])
    with db_session(session_factory) as db:
        for record in df.to_dict(orient="records"):
            db.merge(RequirementProfile(
                code=str(record["code"]).strip(),
                doc_codes=_codes(record.get("doc_codes")),
                test_codes=_codes(record.get("test_codes")),
            ))
    return len(df)

def load_universities(session_factory, df: pd.DataFrame) -> int:
    with db_session(session_factory) as db:
        for record in df.to_dict(orient="records"):
            values = {key: _clean(value) for key, value in record.items()}
            for column in INTEGER_COLUMNS:
                if values.get(column) is not None:
                    values[column] = int(values[column])
            db.merge(University(**values))
    return len(df)

def embed_universities(session_factory, client: GeminiClient) -> int:
    """Embed every university that has no embedding yet; failures are logged and skipped."""
    with db_session(session_factory) as db:
        pending = db.query(University).filter(University.embedding.is_(None)).all()

    embedded = 0
    for university in pending:
        row = {name: getattr(university, name) for name in UNIVERSITY_FIELDS}
        try:
            vector = client.embed(build_summary_row(row), task_type="retrieval_document")
            with db_session(session_factory) as db:
                db.query(University).filter(
                    University.university_id == university.university_id
                ).update({"embedding": vector})
            embedded += 1
            logger.info(f"✅ Embedded and updated: {university.name}")
        except (TransientServiceError, SQLAlchemyError) as e:
            logger.error(f"Embedding error for {university.university_id}: {e}")
    return embedded

def main(argv):
    if len(argv) < 2:
        print(__doc__)
        return 1

    engine = get_engine(settings.DATABASE_URL)
    verify_tables_exist(engine)
    session_factory = get_session_factory(engine)

    if len(argv) > 2:
        print(f"Requirement profiles loaded: {load_requirement_profiles(session_factory, argv[2])}")

    df = load_universities_frame(argv[1])
    print(f"Total universities after cleaning: {load_universities(session_factory, df)}")

    embedded = embed_universities(session_factory, GeminiClient.from_settings(settings))
    print(f"Done embedding {embedded} universities.")
    return 0

if __name__ == "__main__":
    sys.exit(main(sys.argv))
