"""
CRUD operations for database models.

Functions flush but never commit: the caller owns the transaction
(see database.db_session), so multi-step operations commit or roll back
as a unit.
"""

from datetime import datetime, timezone
from sqlalchemy.orm import Session
from sqlalchemy import and_
from models import Profile, University, RequirementProfile, UniversityLock, Task, LockStatus, StageEnum, TaskStatus
from profile_fields import FIELD_SECTIONS
from errors import NotFoundError
from typing import Dict, Iterable, List, Optional

SECTIONS = ("academic_background", "study_goal", "budget", "exam_readiness")


def _now() -> datetime:
    return datetime.now(timezone.utc)

# Profile operations
def get_profile(db: Session, user_id: str, for_update: bool = False) -> Optional[Profile]:
    """Get profile by user id, optionally taking a row lock for the transaction."""
    query = db.query(Profile).filter(Profile.id == user_id)
    if for_update:
        query = query.with_for_update()
    return query.first()

def get_or_create_profile(db: Session, user_id: str, email: Optional[str] = None) -> Profile:
    """
    Get or create profile (UPSERT pattern).
    Profiles start empty at signup and are filled in by onboarding.
    """
    profile = get_profile(db, user_id)
    if profile:
        return profile

    profile = Profile(
        id=user_id,
        email=email,
        onboarding_completed=False,
        current_stage=StageEnum.BUILDING_PROFILE.value,
    )
    db.add(profile)
    db.flush()
    return profile

def require_profile(db: Session, user_id: str, for_update: bool = False) -> Profile:
    profile = get_profile(db, user_id, for_update=for_update)
    if not profile:
        raise NotFoundError("Profile not found")
    return profile

def update_profile_fields(db: Session, user_id: str, values: Dict) -> Profile:
    """
    Merge field values into their owning sections.

    Sibling keys already stored in a section are preserved. The row is read
    under a lock so the merge applies to the latest stored section.
    """
    profile = require_profile(db, user_id, for_update=True)

    sections = {section: dict(getattr(profile, section) or {}) for section in SECTIONS}
    for field, value in values.items():
        sections[FIELD_SECTIONS[field]][field] = value

    for section, data in sections.items():
        if data != (getattr(profile, section) or {}):
            setattr(profile, section, data)
    db.flush()
    return profile

def replace_profile_section(db: Session, user_id: str, section: str, data: Dict) -> Profile:
    """Overwrite one section wholesale (direct edit after onboarding)."""
    profile = require_profile(db, user_id, for_update=True)
    setattr(profile, section, dict(data))
    db.flush()
    return profile

def mark_onboarding_complete(db: Session, profile: Profile) -> bool:
    """Flag the profile complete. Returns False when it already was."""
    if profile.onboarding_completed:
        return False
    profile.onboarding_completed = True
    profile.current_stage = StageEnum.DISCOVERING.value
    db.flush()
    return True

def update_user_stage(db: Session, profile: Profile, stage: StageEnum):
    if profile.current_stage != stage.value:
        profile.current_stage = stage.value
        db.flush()

# University operations
def get_university(db: Session, university_id: str) -> Optional[University]:
    return db.query(University).filter(University.university_id == university_id).first()

def get_universities(db: Session, university_ids: Iterable[str]) -> List[University]:
    ids = list(university_ids)
    if not ids:
        return []
    return db.query(University).filter(University.university_id.in_(ids)).all()

def get_requirement_profile(db: Session, code: Optional[str]) -> Optional[RequirementProfile]:
    if not code:
        return None
    return db.query(RequirementProfile).filter(RequirementProfile.code == code).first()

# Lock operations
def get_lock(db: Session, user_id: str, university_id: str) -> Optional[UniversityLock]:
    return db.query(UniversityLock).filter(
        and_(
            UniversityLock.user_id == user_id,
            UniversityLock.university_id == university_id
        )
    ).first()

def get_user_locks(db: Session, user_id: str, status: Optional[LockStatus] = None) -> List[UniversityLock]:
    query = db.query(UniversityLock).filter(UniversityLock.user_id == user_id)
    if status is not None:
        query = query.filter(UniversityLock.status == status.value)
    return query.order_by(UniversityLock.id).all()

def upsert_lock(db: Session, user_id: str, university_id: str, status: LockStatus) -> UniversityLock:
    """Insert or update the (user, university) lock row."""
    lock = get_lock(db, user_id, university_id)
    if lock:
        if lock.status != status.value:
            lock.status = status.value
            lock.status_changed_at = _now()
    else:
        lock = UniversityLock(
            user_id=user_id,
            university_id=university_id,
            status=status.value,
            status_changed_at=_now(),
        )
        db.add(lock)
    db.flush()
    return lock

def demote_locked(db: Session, user_id: str, except_university_id: Optional[str] = None) -> int:
    """Move every locked row of the user (but one) back to shortlisted."""
    query = db.query(UniversityLock).filter(
        and_(
            UniversityLock.user_id == user_id,
            UniversityLock.status == LockStatus.LOCKED.value
        )
    )
    if except_university_id is not None:
        query = query.filter(UniversityLock.university_id != except_university_id)
    count = query.update(
        {"status": LockStatus.SHORTLISTED.value, "status_changed_at": _now()},
        synchronize_session="fetch",
    )
    db.flush()
    return count

def delete_lock(db: Session, user_id: str, university_id: str) -> bool:
    count = db.query(UniversityLock).filter(
        and_(
            UniversityLock.user_id == user_id,
            UniversityLock.university_id == university_id
        )
    ).delete(synchronize_session="fetch")
    db.flush()
    return count > 0

# Task operations
def create_task(
    db: Session,
    user_id: str,
    title: str,
    category: str,
    description: Optional[str] = None,
    university_id: Optional[str] = None,
    ai_generated: bool = False,
    ai_meta: Optional[Dict] = None,
    priority: Optional[int] = None,
    est_hours: Optional[int] = None,
    due_date: Optional[datetime] = None,
) -> Task:
    """Create a new pending task."""
    task = Task(
        user_id=user_id,
        title=title,
        description=description,
        category=category,
        status=TaskStatus.PENDING.value,
        university_id=university_id,
        ai_generated=ai_generated,
        ai_meta=ai_meta,
        priority=priority,
        est_hours=est_hours,
        due_date=due_date,
    )
    db.add(task)
    db.flush()
    return task

def get_task(db: Session, user_id: str, task_id: int) -> Optional[Task]:
    return db.query(Task).filter(and_(Task.id == task_id, Task.user_id == user_id)).first()

def list_tasks(
    db: Session,
    user_id: str,
    category: Optional[str] = None,
    status: Optional[str] = None,
    university_id: Optional[str] = None,
) -> List[Task]:
    """Tasks for a user, filtered by category/status/university."""
    query = db.query(Task).filter(Task.user_id == user_id)
    if category:
        query = query.filter(Task.category == category)
    if status:
        query = query.filter(Task.status == status)
    if university_id:
        query = query.filter(Task.university_id == university_id)
    return query.order_by(Task.priority.is_(None), Task.priority, Task.id).all()

def has_ai_tasks(db: Session, user_id: str, university_id: str) -> bool:
    return db.query(Task.id).filter(
        and_(
            Task.user_id == user_id,
            Task.university_id == university_id,
            Task.ai_generated == True
        )
    ).first() is not None

def delete_ai_tasks(db: Session, user_id: str, university_id: str) -> int:
    """Delete AI-generated tasks for a university; user-created tasks stay."""
    count = db.query(Task).filter(
        and_(
            Task.user_id == user_id,
            Task.university_id == university_id,
            Task.ai_generated == True
        )
    ).delete(synchronize_session="fetch")
    db.flush()
    return count
