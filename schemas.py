"""
Pydantic schemas for API requests and responses.
"""

from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional, Dict
from models import (
    StageEnum, LockStatus, TaskCategory, TaskStatus, Bucket, Level,
    SopStatus, EducationLevel, IntendedDegree, FundingSource,
)


def _match_enum(enum_cls, value):
    """Case-insensitive enum lookup; unknown values become None."""
    if value is None or isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    for member in enum_cls:
        if member.value.lower() == text or member.name.lower() == text:
            return member
    return None


# Legacy onboarding vocabulary -> canonical SopStatus.
# "Not Started|Draft|Complete" (and "Done") were written by an older chat flow.
SOP_STATUS_ALIASES = {
    "not_started": SopStatus.NOT_STARTED,
    "not started": SopStatus.NOT_STARTED,
    "not-started": SopStatus.NOT_STARTED,
    "none": SopStatus.NOT_STARTED,
    "draft": SopStatus.DRAFT,
    "drafting": SopStatus.DRAFT,
    "in progress": SopStatus.DRAFT,
    "in_progress": SopStatus.DRAFT,
    "ready": SopStatus.READY,
    "complete": SopStatus.READY,
    "completed": SopStatus.READY,
    "done": SopStatus.READY,
}


def normalize_sop_status(status) -> Optional[str]:
    """Map any known SOP status spelling to the canonical value."""
    if status is None:
        return None
    if isinstance(status, SopStatus):
        return status.value
    mapped = SOP_STATUS_ALIASES.get(str(status).strip().lower())
    return mapped.value if mapped else None


# Profile Sections
class AcademicBackground(BaseModel):
    education_level: Optional[EducationLevel] = None
    degree_major: Optional[str] = None
    graduation_year: Optional[int] = None
    gpa_percentage: Optional[str] = None  # "3.5", "85%", "8.5/10"

class StudyGoal(BaseModel):
    intended_degree: Optional[IntendedDegree] = None
    field_of_study: Optional[str] = None
    target_intake: Optional[str] = None
    preferred_countries: List[str] = []

class BudgetSection(BaseModel):
    budget_range: Optional[str] = None
    funding_source: Optional[FundingSource] = None

class ExamReadiness(BaseModel):
    ielts_toefl_score: Optional[str] = None
    gre_gmat_score: Optional[str] = None
    sop_status: Optional[SopStatus] = None

    @field_validator("sop_status", mode="before")
    @classmethod
    def _canonical_sop(cls, value):
        if value is None:
            return None
        canonical = normalize_sop_status(value)
        if canonical is None:
            raise ValueError(f"Unknown sop_status '{value}'")
        return canonical

class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    academic_background: Dict[str, Any] = {}
    study_goal: Dict[str, Any] = {}
    budget: Dict[str, Any] = {}
    exam_readiness: Dict[str, Any] = {}
    onboarding_completed: bool = False
    current_stage: StageEnum = StageEnum.BUILDING_PROFILE

    class Config:
        from_attributes = True

    @field_validator("academic_background", "study_goal", "budget", "exam_readiness", mode="before")
    @classmethod
    def _section_default(cls, value):
        return value or {}


# Structured extraction schema (every onboarding field, all optional)
class ExtractedProfile(BaseModel):
    education_level: Optional[EducationLevel] = None
    degree_major: Optional[str] = None
    graduation_year: Optional[int] = None
    gpa_percentage: Optional[str] = None
    intended_degree: Optional[IntendedDegree] = None
    field_of_study: Optional[str] = None
    target_intake: Optional[str] = None
    preferred_countries: Optional[List[str]] = None
    budget_range: Optional[str] = None
    funding_source: Optional[FundingSource] = None
    ielts_toefl_score: Optional[str] = None
    gre_gmat_score: Optional[str] = None
    sop_status: Optional[SopStatus] = None

    class Config:
        extra = "ignore"

    @field_validator("education_level", mode="before")
    @classmethod
    def _education(cls, value):
        return _match_enum(EducationLevel, value)

    @field_validator("intended_degree", mode="before")
    @classmethod
    def _degree(cls, value):
        return _match_enum(IntendedDegree, value)

    @field_validator("funding_source", mode="before")
    @classmethod
    def _funding(cls, value):
        return _match_enum(FundingSource, value)

    @field_validator("sop_status", mode="before")
    @classmethod
    def _sop(cls, value):
        return normalize_sop_status(value)

    @field_validator("graduation_year", mode="before")
    @classmethod
    def _year(cls, value):
        try:
            return int(value) if value not in (None, "") else None
        except (TypeError, ValueError):
            return None

    @field_validator("gpa_percentage", "ielts_toefl_score", "gre_gmat_score", mode="before")
    @classmethod
    def _stringify(cls, value):
        return None if value is None else str(value)


# Onboarding Schemas
class OnboardingChatRequest(BaseModel):
    message: str = ""

class OnboardingTurnResponse(BaseModel):
    assistant_text: str
    next_field: str
    completed: bool = False
    error: bool = False
    profile: Optional[ProfileResponse] = None


# University Schemas
class RecommendedUniversity(BaseModel):
    university_id: str
    name: str
    country: Optional[str] = None
    city: Optional[str] = None
    global_ranking_band: Optional[str] = None
    program_strengths: Optional[str] = None
    avg_annual_tuition_usd: Optional[int] = None
    cost_of_living_usd: Optional[int] = None
    total_annual_cost_usd: Optional[int] = None
    competition_level: Optional[str] = None
    visa_risk_level: Optional[str] = None
    why_students_choose_it: Optional[str] = None
    known_risks: Optional[str] = None
    image_url: Optional[str] = None
    distance: float
    bucket: Bucket
    acceptance_chance: Level
    cost_level: Level

class RecommendRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1, le=50)

class RecommendResponse(BaseModel):
    universities: List[RecommendedUniversity] = []
    count: int = 0
    error: Optional[str] = None

class FitRequest(BaseModel):
    university_ids: List[str]

class UniversityFit(BaseModel):
    bucket: Bucket
    acceptance_chance: Level
    cost_level: Level

class FitResponse(BaseModel):
    fit_data: Dict[str, UniversityFit] = {}


# Lock Schemas
class LockRequest(BaseModel):
    university_id: Optional[str] = None
    action: str = "lock"  # lock | unlock

class ShortlistRequest(BaseModel):
    university_id: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1, le=50)

class LockOut(BaseModel):
    user_id: str
    university_id: str
    status: LockStatus
    status_changed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    category: TaskCategory
    status: TaskStatus
    university_id: Optional[str] = None
    ai_generated: bool = False
    priority: Optional[int] = None
    est_hours: Optional[int] = None
    due_date: Optional[datetime] = None

    class Config:
        from_attributes = True

class LockResponse(BaseModel):
    locked: bool
    status: Optional[LockStatus] = None
    lock: Optional[LockOut] = None
    created_tasks: List[TaskResponse] = []
    removed_tasks_count: int = 0

class LocksResponse(BaseModel):
    locks: List[LockOut] = []
    locked_university_ids: List[str] = []

class ShortlistResponse(BaseModel):
    success: bool = True
    created: int = 0
    locks: List[LockOut] = []
    message: Optional[str] = None


# Task Schemas
class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: TaskCategory
    university_id: Optional[str] = None
    priority: Optional[int] = None
    est_hours: Optional[int] = None
    due_date: Optional[datetime] = None

class TaskUpdate(BaseModel):
    status: Optional[TaskStatus] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None


# Profile Strength Schemas
class SectionStrength(BaseModel):
    status: str = "missing"
    percent: int = 0

class ProfileStrengthResponse(BaseModel):
    academics: SectionStrength = Field(default_factory=SectionStrength)
    exams: SectionStrength = Field(default_factory=SectionStrength)
    sop: SectionStrength = Field(default_factory=SectionStrength)


# AI Counsel Schemas
class ChatMessage(BaseModel):
    role: str  # user | assistant
    content: str

class CounselRequest(BaseModel):
    messages: List[ChatMessage]

class ToolInvocationOut(BaseModel):
    tool_name: str
    input: Dict[str, Any] = {}
    output: Any = None

class CounselResponse(BaseModel):
    assistant_text: Optional[str] = None
    tool_invocations: List[ToolInvocationOut] = []
    error: bool = False
