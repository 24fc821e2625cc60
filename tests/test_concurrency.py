"""Threaded tests against a file-backed SQLite database."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

import crud
from database import db_session
from extractor import Extractor
from lock_manager import LockManager
from models import LockStatus, Task
from onboarding import OnboardingEngine
from task_generator import TaskGenerator
from tests.conftest import COMPLETE_SECTIONS, FakeLLM, USER_ID, profile_maker


class BarrierLLM(FakeLLM):
    """Holds every extraction until both turns have read the profile."""

    def __init__(self, extractions, parties=2):
        super().__init__(extractions)
        self.barrier = threading.Barrier(parties, timeout=10)

    def extract_structured(self, prompt):
        self.barrier.wait()
        return super().extract_structured(prompt)


def run_together(*calls):
    """Start every call at the same moment; return results in call order."""
    start = threading.Barrier(len(calls), timeout=10)

    def _run(call):
        start.wait()
        return call()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(_run, call) for call in calls]
        return [future.result(timeout=60) for future in futures]


@pytest.fixture
def manager(file_session_factory):
    profile_maker(file_session_factory)()
    return LockManager(file_session_factory, TaskGenerator())


def locked_ids(session_factory):
    with db_session(session_factory) as db:
        return [lock.university_id for lock in crud.get_user_locks(db, USER_ID, LockStatus.LOCKED)]


class TestConcurrentOnboarding:

    def test_simultaneous_answers_last_write_wins(self, file_session_factory):
        profile_maker(file_session_factory)(completed=False, study_goal=COMPLETE_SECTIONS["study_goal"])
        llm = BarrierLLM({
            "Bachelors": {"education_level": "Bachelors"},
            "Masters": {"education_level": "Masters"},
        })
        onboarding = OnboardingEngine(file_session_factory, Extractor(llm))

        responses = run_together(
            lambda: onboarding.turn(USER_ID, "Bachelors"),
            lambda: onboarding.turn(USER_ID, "Masters"),
        )

        assert [r.error for r in responses] == [False, False]
        assert [r.next_field for r in responses] == ["degree_major", "degree_major"]
        with db_session(file_session_factory) as db:
            profile = crud.get_profile(db, USER_ID)
            assert profile.academic_background["education_level"] in {"Bachelors", "Masters"}
            assert profile.study_goal == COMPLETE_SECTIONS["study_goal"]
            assert not profile.onboarding_completed


class TestConcurrentLocks:

    def test_two_universities_leave_one_lock(self, manager, file_session_factory):
        responses = run_together(
            lambda: manager.lock(USER_ID, "stanford"),
            lambda: manager.lock(USER_ID, "asu"),
        )

        assert all(r.locked for r in responses)
        locked = locked_ids(file_session_factory)
        assert len(locked) == 1
        assert locked[0] in {"stanford", "asu"}
        with db_session(file_session_factory) as db:
            shortlisted = crud.get_user_locks(db, USER_ID, LockStatus.SHORTLISTED)
            assert [lock.university_id for lock in shortlisted] == [u for u in ("stanford", "asu") if u not in locked]

    def test_same_university_generates_one_checklist(self, manager, file_session_factory):
        responses = run_together(
            lambda: manager.lock(USER_ID, "stanford"),
            lambda: manager.lock(USER_ID, "stanford"),
        )

        assert sorted(len(r.created_tasks) for r in responses) == [0, 4]
        assert locked_ids(file_session_factory) == ["stanford"]
        with db_session(file_session_factory) as db:
            titles = [t.title for t in db.query(Task).filter(Task.user_id == USER_ID, Task.ai_generated.is_(True))]
        assert len(titles) == 4
        assert len(set(titles)) == 4
