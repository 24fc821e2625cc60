"""Shared fixtures: SQLite databases, seeded corpus, fake LLM and search."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

import main
from database import db_session, get_session_factory
from gemini_client import Completion, ToolInvocation
from models import Base, Profile, RequirementProfile, University, StageEnum
from recommender import RecommendationEngine

USER_ID = "user-1"

COMPLETE_SECTIONS = {
    "academic_background": {
        "education_level": "Bachelors",
        "degree_major": "Computer Science",
        "graduation_year": 2024,
        "gpa_percentage": "8.5/10",
    },
    "study_goal": {
        "intended_degree": "Masters",
        "field_of_study": "Data Science",
        "target_intake": "Fall 2026",
        "preferred_countries": ["USA", "Canada"],
    },
    "budget": {"budget_range": "$20,000 - $30,000", "funding_source": "Education Loan"},
    "exam_readiness": {"ielts_toefl_score": "7.5", "gre_gmat_score": "N/A", "sop_status": "draft"},
}

UNIVERSITIES = [
    {
        "university_id": "stanford",
        "name": "Stanford University",
        "country": "United States",
        "city": "Stanford",
        "avg_annual_tuition_usd": 60000,
        "total_annual_cost_usd": 80000,
        "visa_risk_level": "Low",
        "why_students_choose_it": "Silicon Valley access",
        "known_risks": "Very competitive",
        "requirement_profile_code": "US_MS",
        "embedding": [1.0, 0.0, 0.0],
    },
    {
        "university_id": "asu",
        "name": "Arizona State University",
        "country": "United States",
        "city": "Tempe",
        "avg_annual_tuition_usd": 12000,
        "total_annual_cost_usd": 15000,
        "visa_risk_level": "High",
        "requirement_profile_code": "US_MS",
        "embedding": [0.9, 0.1, 0.0],
    },
    {
        "university_id": "toronto",
        "name": "University of Toronto",
        "country": "Canada",
        "city": "Toronto",
        "avg_annual_tuition_usd": 25000,
        "total_annual_cost_usd": 30000,
        "visa_risk_level": "Medium",
        "requirement_profile_code": "CA_MS",
        "embedding": [0.0, 1.0, 0.0],
    },
    {
        "university_id": "nowhere",
        "name": "Nowhere Institute",
        "country": "United States",
        "requirement_profile_code": "MISSING",
        "embedding": None,
    },
]

REQUIREMENT_PROFILES = [
    {"code": "US_MS", "doc_codes": ["sop", "lor", "transcript"], "test_codes": ["ielts", "gre"]},
    {"code": "CA_MS", "doc_codes": ["sop", "cv"], "test_codes": ["ielts"]},
]


class FakeLLM:
    """
    Stand-in for GeminiClient.

    extract_structured answers by the exact user input embedded in the prompt;
    complete returns canned text after running the requested tool calls.
    """

    def __init__(self, extractions=None, text="Here is my advice.", tool_calls=None, error=None):
        self.extractions = extractions or {}
        self.text = text
        self.tool_calls = tool_calls or []
        self.error = error
        self.system_prompts = []

    def extract_structured(self, prompt):
        if self.error:
            raise self.error
        user_input = prompt.rsplit('User Input: "', 1)[1].rsplit('"', 1)[0]
        return dict(self.extractions.get(user_input, {}))

    def embed(self, text, task_type="retrieval_query"):
        if self.error:
            raise self.error
        return [1.0, 0.0, 0.0]

    def complete(self, system_prompt, messages, tools):
        self.system_prompts.append(system_prompt)
        if self.error:
            raise self.error
        tools_by_name = {tool.name: tool for tool in tools}
        completion = Completion(text=self.text)
        for name, args in self.tool_calls:
            invocation = ToolInvocation(tool_name=name, input=args)
            try:
                invocation.output = tools_by_name[name].execute(args)
            except Exception as e:
                invocation.output = {"error": str(e)}
            completion.tool_invocations.append(invocation)
        return completion


class FakeSearch:
    """Returns preset ranked results; records every call."""

    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []

    def search(self, query_text, k, filters=None):
        self.calls.append({"query_text": query_text, "k": k, "filters": filters})
        if self.error:
            raise self.error
        return [dict(result) for result in self.results[:k]]


def ranked_results(distances):
    """Search-shaped results for the seeded universities at the given distances."""
    by_id = {u["university_id"]: u for u in UNIVERSITIES}
    results = []
    for university_id, distance in distances.items():
        row = {key: value for key, value in by_id[university_id].items() if key != "embedding"}
        row["distance"] = distance
        results.append(row)
    return results


def seed_corpus(factory):
    with db_session(factory) as db:
        for university in UNIVERSITIES:
            db.add(University(**university))
        for requirement in REQUIREMENT_PROFILES:
            db.add(RequirementProfile(**requirement))
    return factory


def profile_maker(factory):
    """Insert a profile; completed profiles get every section filled in."""

    def _make(user_id=USER_ID, completed=True, **sections):
        values = dict(COMPLETE_SECTIONS) if completed else {}
        values.update(sections)
        with db_session(factory) as db:
            db.add(Profile(
                id=user_id,
                onboarding_completed=completed,
                current_stage=(StageEnum.DISCOVERING if completed else StageEnum.BUILDING_PROFILE).value,
                **values,
            ))
        return user_id

    return _make


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return seed_corpus(get_session_factory(engine))


@pytest.fixture
def make_profile(session_factory):
    return profile_maker(session_factory)


@pytest.fixture
def file_engine(tmp_path):
    """
    File-backed SQLite engine with one connection per session, for threaded tests.

    pysqlite's implicit transactions are switched off and every transaction
    opens with BEGIN IMMEDIATE, so writers queue on the database lock the way
    FOR UPDATE serializes them on PostgreSQL, and SAVEPOINTs nest properly.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'counsellor.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_session_factory(file_engine):
    return seed_corpus(get_session_factory(file_engine))


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_search():
    return FakeSearch(ranked_results({"asu": 0.10, "toronto": 0.20, "stanford": 0.30}))


@pytest.fixture
def client(session_factory, fake_llm, fake_search):
    main.app.dependency_overrides[main.get_session_factory] = lambda: session_factory
    main.app.dependency_overrides[main.get_llm_client] = lambda: fake_llm
    main.app.dependency_overrides[main.get_recommender] = lambda: RecommendationEngine(fake_search)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": USER_ID}


def university_row(university_id):
    """Detached University row loaded from the seeded corpus."""
    return University(**next(u for u in UNIVERSITIES if u["university_id"] == university_id))
