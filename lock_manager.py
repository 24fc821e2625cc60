"""
Shortlist / lock lifecycle per (user, university).

States: absent -> shortlisted <-> locked, and back to absent on remove.
A user holds at most one locked university: locking one demotes every other
locked row to shortlisted inside the same transaction, after taking a row
lock on the user's profile so concurrent lock requests for the same user
are serialized.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

import crud
from database import db_session
from errors import InvalidRequestError, NotFoundError, TransientServiceError
from models import LockStatus, StageEnum
from schemas import LockOut, LockResponse, ShortlistResponse, TaskResponse

logger = logging.getLogger(__name__)

LOCK_ACTIONS = ("lock", "unlock")


def _require_university_id(university_id: Optional[str]) -> str:
    if not university_id or not str(university_id).strip():
        raise InvalidRequestError("missing university_id")
    return str(university_id).strip()


def _sync_stage(db, profile, user_id: str):
    """Completed profiles sit in 'strategizing' while a lock is held, 'discovering' otherwise."""
    if not profile.onboarding_completed:
        return
    has_locked = bool(crud.get_user_locks(db, user_id, LockStatus.LOCKED))
    if has_locked and profile.current_stage == StageEnum.DISCOVERING.value:
        crud.update_user_stage(db, profile, StageEnum.STRATEGIZING)
    elif not has_locked and profile.current_stage == StageEnum.STRATEGIZING.value:
        crud.update_user_stage(db, profile, StageEnum.DISCOVERING)


class LockManager:
    """
    Args:
        session_factory: SQLAlchemy sessionmaker
        task_generator: TaskGenerator run inside the lock transaction when no AI tasks exist yet
        recommender: RecommendationEngine, only needed for shortlist_recommended
    """

    def __init__(self, session_factory, task_generator, recommender=None):
        self.session_factory = session_factory
        self.task_generator = task_generator
        self.recommender = recommender

    def apply(self, user_id: str, university_id: Optional[str], action: str = "lock") -> LockResponse:
        """Dispatch a lock-route action."""
        if action not in LOCK_ACTIONS:
            raise InvalidRequestError(f"invalid action '{action}'")
        if action == "lock":
            return self.lock(user_id, university_id)
        return self.unlock(user_id, university_id)

    def lock(self, user_id: str, university_id: Optional[str]) -> LockResponse:
        university_id = _require_university_id(university_id)
        try:
            with db_session(self.session_factory) as db:
                profile = crud.require_profile(db, user_id, for_update=True)
                university = crud.get_university(db, university_id)
                if not university:
                    raise NotFoundError(f"University {university_id} not found")

                demoted = crud.demote_locked(db, user_id, except_university_id=university_id)
                lock = crud.upsert_lock(db, user_id, university_id, LockStatus.LOCKED)
                _sync_stage(db, profile, user_id)
                if crud.has_ai_tasks(db, user_id, university_id):
                    logger.info(f"[LOCK] AI tasks already exist for {university_id}, skipping generation")
                    created = []
                else:
                    created = self.task_generator.generate(db, user_id, university, profile)
                lock_view = LockOut.model_validate(lock)
                created_tasks = [TaskResponse.model_validate(t) for t in created]
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Lock failed for user {user_id}, university {university_id}: {e}")
            raise TransientServiceError("Could not lock the university. Please try again.") from e

        logger.info(f"[LOCK] User {user_id} locked {university_id} (demoted {demoted})")

        return LockResponse(
            locked=True,
            status=LockStatus.LOCKED,
            lock=lock_view,
            created_tasks=created_tasks,
        )

    def unlock(self, user_id: str, university_id: Optional[str]) -> LockResponse:
        """Move a university back to shortlisted and drop its AI-generated tasks."""
        university_id = _require_university_id(university_id)
        try:
            with db_session(self.session_factory) as db:
                profile = crud.require_profile(db, user_id, for_update=True)
                if not crud.get_lock(db, user_id, university_id):
                    raise NotFoundError(f"University {university_id} is not shortlisted or locked")

                lock = crud.upsert_lock(db, user_id, university_id, LockStatus.SHORTLISTED)
                removed = crud.delete_ai_tasks(db, user_id, university_id)
                _sync_stage(db, profile, user_id)
                lock_view = LockOut.model_validate(lock)
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Unlock failed for user {user_id}, university {university_id}: {e}")
            raise TransientServiceError("Could not unlock the university. Please try again.") from e

        logger.info(f"[LOCK] User {user_id} unlocked {university_id}, removed {removed} AI tasks")
        return LockResponse(
            locked=False,
            status=LockStatus.SHORTLISTED,
            lock=lock_view,
            removed_tasks_count=removed,
        )

    def shortlist(self, user_id: str, university_id: Optional[str]) -> LockOut:
        """Upsert a shortlisted row (a locked row is demoted; its tasks stay)."""
        university_id = _require_university_id(university_id)
        try:
            with db_session(self.session_factory) as db:
                profile = crud.require_profile(db, user_id, for_update=True)
                if not crud.get_university(db, university_id):
                    raise NotFoundError(f"University {university_id} not found")
                lock = crud.upsert_lock(db, user_id, university_id, LockStatus.SHORTLISTED)
                _sync_stage(db, profile, user_id)
                return LockOut.model_validate(lock)
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Shortlist failed for user {user_id}, university {university_id}: {e}")
            raise TransientServiceError("Could not shortlist the university. Please try again.") from e

    def remove(self, user_id: str, university_id: Optional[str]) -> bool:
        """Hard-delete the lock row. Tasks are left untouched."""
        university_id = _require_university_id(university_id)
        try:
            with db_session(self.session_factory) as db:
                profile = crud.require_profile(db, user_id, for_update=True)
                removed = crud.delete_lock(db, user_id, university_id)
                _sync_stage(db, profile, user_id)
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Remove failed for user {user_id}, university {university_id}: {e}")
            raise TransientServiceError("Could not remove the university. Please try again.") from e
        logger.info(f"[LOCK] User {user_id} removed {university_id}: {removed}")
        return removed

    def list_locks(self, user_id: str) -> List[LockOut]:
        try:
            with db_session(self.session_factory) as db:
                return [LockOut.model_validate(lock) for lock in crud.get_user_locks(db, user_id)]
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Listing locks failed for user {user_id}: {e}")
            raise TransientServiceError("Could not load your universities. Please try again.") from e

    def shortlist_recommended(self, user_id: str, limit: int = 12) -> ShortlistResponse:
        """
        Shortlist every recommended university.

        Existing rows keep their status, so a held lock is never demoted here.
        """
        if self.recommender is None:
            raise InvalidRequestError("Recommendations are not available")

        with db_session(self.session_factory) as db:
            profile = crud.require_profile(db, user_id)

        result = self.recommender.recommend(profile, limit)
        if result.error:
            raise TransientServiceError(result.error)
        if not result.universities:
            return ShortlistResponse(success=True, created=0, message="No recommendations")

        created = 0
        try:
            with db_session(self.session_factory) as db:
                crud.require_profile(db, user_id, for_update=True)
                for university in result.universities:
                    if crud.get_lock(db, user_id, university.university_id):
                        continue
                    crud.upsert_lock(db, user_id, university.university_id, LockStatus.SHORTLISTED)
                    created += 1
                locks = [LockOut.model_validate(lock) for lock in crud.get_user_locks(db, user_id)]
        except SQLAlchemyError as e:
            logger.error(f"[LOCK] Shortlist upsert error for user {user_id}: {e}")
            raise TransientServiceError("Could not save your shortlist. Please try again.") from e

        return ShortlistResponse(success=True, created=created, locks=locks)
