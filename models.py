from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, DateTime, Text, JSON, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector
from sqlalchemy.sql import func
import enum

Base = declarative_base()

# Enums
class StageEnum(str, enum.Enum):
    BUILDING_PROFILE = "building_profile"
    DISCOVERING = "discovering"
    STRATEGIZING = "strategizing"
    APPLYING = "applying"

class LockStatus(str, enum.Enum):
    SHORTLISTED = "shortlisted"
    LOCKED = "locked"

class TaskCategory(str, enum.Enum):
    DOCUMENTATION = "documentation"
    APPLICATION = "application"
    TEST_PREP = "test_prep"
    RESEARCH = "research"

class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"

class Bucket(str, enum.Enum):
    DREAM = "Dream"
    TARGET = "Target"
    SAFE = "Safe"

class Level(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

class SopStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    DRAFT = "draft"
    READY = "ready"

class EducationLevel(str, enum.Enum):
    HIGH_SCHOOL = "High School"
    BACHELORS = "Bachelors"
    MASTERS = "Masters"
    PHD = "PhD"

class IntendedDegree(str, enum.Enum):
    BACHELORS = "Bachelors"
    MASTERS = "Masters"
    PHD = "PhD"
    MBA = "MBA"

class FundingSource(str, enum.Enum):
    SELF_FUNDED = "Self-funded"
    SCHOLARSHIP = "Scholarship"
    EDUCATION_LOAN = "Education Loan"
    SPONSORSHIP = "Sponsorship"

# Models
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), index=True)
    academic_background = Column(JSON(none_as_null=True))
    study_goal = Column(JSON(none_as_null=True))
    budget = Column(JSON(none_as_null=True))
    exam_readiness = Column(JSON(none_as_null=True))
    onboarding_completed = Column(Boolean, nullable=False, default=False)
    current_stage = Column(String(50), nullable=False, default=StageEnum.BUILDING_PROFILE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

class University(Base):
    __tablename__ = "universities"

    university_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    country = Column(String(100), index=True)
    city = Column(String(100))
    global_ranking_band = Column(String(50))
    program_strengths = Column(Text)
    avg_annual_tuition_usd = Column(Integer)
    cost_of_living_usd = Column(Integer)
    total_annual_cost_usd = Column(Integer)
    competition_level = Column(String(50))
    intl_acceptance_estimate = Column(String(50))
    visa_risk_level = Column(String(20))
    budget_category = Column(String(50))
    why_students_choose_it = Column(Text)
    known_risks = Column(Text)
    confidence_note = Column(Text)
    req_gpa_range = Column(String(50))
    req_ielts_min = Column(Float)
    req_gre_requirement = Column(String(100))
    image_url = Column(Text)
    requirement_profile_code = Column(String(50))
    embedding = Column(Vector())

class RequirementProfile(Base):
    __tablename__ = "requirement_profiles"

    code = Column(String(50), primary_key=True)
    doc_codes = Column(JSON(none_as_null=True), default=list)
    test_codes = Column(JSON(none_as_null=True), default=list)

class UniversityLock(Base):
    __tablename__ = "user_university_locks"
    __table_args__ = (
        UniqueConstraint("user_id", "university_id", name="uq_user_university_lock"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    university_id = Column(String(64), ForeignKey("universities.university_id"), nullable=False)
    status = Column(String(20), nullable=False, default=LockStatus.SHORTLISTED.value)
    status_changed_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_user_university", "user_id", "university_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    university_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    ai_generated = Column(Boolean, nullable=False, default=False)
    ai_meta = Column(JSON(none_as_null=True))
    priority = Column(Integer)
    est_hours = Column(Integer)
    due_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
