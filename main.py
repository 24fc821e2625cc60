from functools import lru_cache
from typing import Dict, List, Optional
import logging

from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from config import settings
from models import TaskCategory, TaskStatus
import crud
import database
import schemas
from counsellor import CounsellorAgent
from errors import CounsellorError, InvalidRequestError, NotFoundError, TransientServiceError
from extractor import Extractor
from gemini_client import GeminiClient
from lock_manager import LockManager
from onboarding import OnboardingEngine
from profile_fields import SECTION_ALIASES
from recommender import RecommendationEngine
from scoring import calculate_profile_strength
from search import UniversitySearch
from task_generator import TaskGenerator

# Configure logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SECTION_SCHEMAS = {
    "academic_background": schemas.AcademicBackground,
    "study_goal": schemas.StudyGoal,
    "budget": schemas.BudgetSection,
    "exam_readiness": schemas.ExamReadiness,
}

ERROR_STATUS = {
    InvalidRequestError: 400,
    NotFoundError: 404,
    TransientServiceError: 503,
}

# Create FastAPI app
app = FastAPI(title="AI Counsellor Backend")

# Ensure database tables exist on startup
@app.on_event("startup")
def startup_event():
    if settings.DATABASE_URL:
        database.verify_tables_exist(database.get_engine(settings.DATABASE_URL))
    else:
        logger.warning("DATABASE_URL not set. Database features will be disabled.")

# Global Custom Error Handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert 422 to 400 for frontend compatibility."""
    return JSONResponse(
        status_code=400,
        content={"error": "VALIDATION_ERROR", "message": f"Invalid data format: {str(exc)}"},
    )

@app.exception_handler(CounsellorError)
async def counsellor_exception_handler(request: Request, exc: CounsellorError):
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "message": str(exc)})

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions."""
    logger.exception(f"Global Error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred. Please try again."},
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# DEPENDENCIES
# ============================================

def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Authenticated user id, forwarded by the auth layer in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()

@lru_cache
def get_session_factory() -> sessionmaker:
    """Dependency to get the database session factory."""
    return database.get_session_factory(database.get_engine(settings.DATABASE_URL))

@lru_cache
def get_llm_client() -> GeminiClient:
    return GeminiClient.from_settings(settings)

def get_recommender(
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: GeminiClient = Depends(get_llm_client),
) -> RecommendationEngine:
    return RecommendationEngine(UniversitySearch(session_factory, llm))

def get_onboarding_engine(
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: GeminiClient = Depends(get_llm_client),
) -> OnboardingEngine:
    return OnboardingEngine(session_factory, Extractor(llm))

def get_lock_manager(
    session_factory: sessionmaker = Depends(get_session_factory),
    recommender: RecommendationEngine = Depends(get_recommender),
) -> LockManager:
    return LockManager(session_factory, TaskGenerator(), recommender)

def get_counsellor(
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: GeminiClient = Depends(get_llm_client),
    recommender: RecommendationEngine = Depends(get_recommender),
) -> CounsellorAgent:
    return CounsellorAgent(session_factory, llm, recommender, settings.RECOMMENDATION_LIMIT)

def _completed_profile(session_factory: sessionmaker, user_id: str):
    with database.db_session(session_factory) as db:
        profile = crud.require_profile(db, user_id)
    if not profile.onboarding_completed:
        raise InvalidRequestError("Profile incomplete. Please complete onboarding.")
    return profile

# ============================================
# ENDPOINTS
# ============================================

@app.get("/")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "ai-counsellor-backend"}

# Profile
@app.get("/profile", response_model=schemas.ProfileResponse)
def get_profile(
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    with database.db_session(session_factory) as db:
        return schemas.ProfileResponse.model_validate(crud.get_or_create_profile(db, user_id))

@app.put("/profile/{section}", response_model=schemas.ProfileResponse)
def update_profile_section(
    section: str,
    data: Dict,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Replace one profile section (direct edit from the profile page)."""
    column = SECTION_ALIASES.get(section)
    if not column:
        raise InvalidRequestError("Invalid section")
    try:
        validated = SECTION_SCHEMAS[column].model_validate(data)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid {section} data: {e}") from e

    with database.db_session(session_factory) as db:
        profile = crud.replace_profile_section(db, user_id, column, validated.model_dump(mode="json"))
        logger.info(f"[PROFILE] {user_id} updated {column}")
        return schemas.ProfileResponse.model_validate(profile)

@app.get("/profile/strength", response_model=schemas.ProfileStrengthResponse)
def get_profile_strength(
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    with database.db_session(session_factory) as db:
        profile = crud.require_profile(db, user_id)
        return schemas.ProfileStrengthResponse(**calculate_profile_strength(profile))

# Onboarding
@app.get("/onboarding/next", response_model=schemas.OnboardingTurnResponse)
def onboarding_next(
    user_id: str = Depends(get_current_user_id),
    engine: OnboardingEngine = Depends(get_onboarding_engine),
):
    return engine.start(user_id)

@app.post("/onboarding/chat", response_model=schemas.OnboardingTurnResponse)
def onboarding_chat(
    request: schemas.OnboardingChatRequest,
    user_id: str = Depends(get_current_user_id),
    engine: OnboardingEngine = Depends(get_onboarding_engine),
):
    """One onboarding turn: parse the answer, save it, ask the next question."""
    logger.info(f"[ENDPOINT] /onboarding/chat called for {user_id}")
    return engine.turn(user_id, request.message)

# Universities
@app.post("/universities/recommend", response_model=schemas.RecommendResponse)
def recommend_universities(
    request: Optional[schemas.RecommendRequest] = None,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
    recommender: RecommendationEngine = Depends(get_recommender),
):
    """
    Ranked, bucketed recommendations.
    Returns 400 if the profile is incomplete and 503 (with an empty list) if search fails.
    """
    profile = _completed_profile(session_factory, user_id)
    limit = (request.limit if request and request.limit else None) or settings.RECOMMENDATION_LIMIT
    result = recommender.recommend(profile, limit)
    if result.error:
        return JSONResponse(status_code=503, content=result.model_dump(mode="json"))
    return result

@app.post("/universities/fit", response_model=schemas.FitResponse)
def university_fit(
    request: schemas.FitRequest,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
    recommender: RecommendationEngine = Depends(get_recommender),
):
    with database.db_session(session_factory) as db:
        profile = crud.require_profile(db, user_id)
    return schemas.FitResponse(
        fit_data=recommender.fit_for(profile, request.university_ids, settings.FIT_SEARCH_LIMIT)
    )

@app.post("/universities/lock", response_model=schemas.LockResponse)
def lock_university(
    request: schemas.LockRequest,
    user_id: str = Depends(get_current_user_id),
    manager: LockManager = Depends(get_lock_manager),
):
    logger.info(f"[LOCK ROUTE] Received request: user={user_id}, university={request.university_id}, action={request.action}")
    return manager.apply(user_id, request.university_id, request.action)

@app.get("/universities/locks", response_model=schemas.LocksResponse)
def list_locks(
    user_id: str = Depends(get_current_user_id),
    manager: LockManager = Depends(get_lock_manager),
):
    locks = manager.list_locks(user_id)
    return schemas.LocksResponse(
        locks=locks,
        locked_university_ids=[lock.university_id for lock in locks if lock.status.value == "locked"],
    )

@app.post("/universities/shortlist", response_model=schemas.ShortlistResponse)
def shortlist_universities(
    request: schemas.ShortlistRequest,
    user_id: str = Depends(get_current_user_id),
    manager: LockManager = Depends(get_lock_manager),
):
    """Shortlist one university, or every recommended one when no id is given."""
    if request.university_id:
        lock = manager.shortlist(user_id, request.university_id)
        return schemas.ShortlistResponse(success=True, created=1, locks=[lock])
    return manager.shortlist_recommended(user_id, request.limit or settings.RECOMMENDATION_LIMIT)

@app.delete("/universities/locks/{university_id}")
def remove_university(
    university_id: str,
    user_id: str = Depends(get_current_user_id),
    manager: LockManager = Depends(get_lock_manager),
):
    return {"removed": manager.remove(user_id, university_id)}

# Tasks
@app.get("/tasks", response_model=List[schemas.TaskResponse])
def list_tasks(
    category: Optional[TaskCategory] = None,
    status: Optional[TaskStatus] = None,
    university_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    with database.db_session(session_factory) as db:
        tasks = crud.list_tasks(
            db,
            user_id,
            category=category.value if category else None,
            status=status.value if status else None,
            university_id=university_id,
        )
        return [schemas.TaskResponse.model_validate(task) for task in tasks]

@app.post("/tasks", response_model=schemas.TaskResponse, status_code=201)
def create_task(
    request: schemas.TaskCreate,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Create a user task."""
    with database.db_session(session_factory) as db:
        crud.require_profile(db, user_id)
        task = crud.create_task(
            db,
            user_id=user_id,
            title=request.title,
            description=request.description,
            category=request.category.value,
            university_id=request.university_id,
            priority=request.priority,
            est_hours=request.est_hours,
            due_date=request.due_date,
        )
        return schemas.TaskResponse.model_validate(task)

@app.patch("/tasks/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: int,
    request: schemas.TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Toggle status on any task; edit title, description and due date on user tasks only."""
    changes = request.model_dump(exclude_unset=True)
    with database.db_session(session_factory) as db:
        task = crud.get_task(db, user_id, task_id)
        if not task:
            raise NotFoundError("Task not found")
        edits = {key: value for key, value in changes.items() if key != "status"}
        if edits and task.ai_generated:
            raise InvalidRequestError("AI-generated tasks can only change status")
        if changes.get("status") is not None:
            task.status = changes["status"].value
        for key, value in edits.items():
            setattr(task, key, value)
        db.flush()
        return schemas.TaskResponse.model_validate(task)

# Counsellor
@app.post("/counsellor/chat", response_model=schemas.CounselResponse)
def counsel(
    request: schemas.CounselRequest,
    user_id: str = Depends(get_current_user_id),
    agent: CounsellorAgent = Depends(get_counsellor),
):
    """AI counsellor turn with tool calling."""
    logger.info(f"[ENDPOINT] /counsellor/chat called for {user_id}")
    return agent.respond(user_id, [m.model_dump() for m in request.messages])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
