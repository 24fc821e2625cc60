"""
AI counsellor chat.

One request/response turn: the student's profile and "My Universities" list
are embedded in the system prompt, and the chat model may call two tools,
recommend_universities and add_task. Which tool (if any) gets called is the
model's decision; the tool contracts themselves are fixed here.
"""

import re
import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy.exc import SQLAlchemyError

import crud
from ai_context import build_universities_context, profile_snapshot
from database import db_session
from errors import InvalidRequestError, TransientServiceError
from gemini_client import CompletionTool
from models import TaskCategory
from prompts import get_system_prompt, COUNSELLOR_RETRY_MESSAGE
from schemas import CounselResponse, ToolInvocationOut

logger = logging.getLogger(__name__)

TASK_CATEGORIES = [category.value for category in TaskCategory]

ADD_TASK_PARAMETERS = {
    "type": "OBJECT",
    "properties": {
        "university_name": {"type": "STRING", "description": "University the task is for"},
        "task_title": {"type": "STRING", "description": "Short imperative task title"},
        "task_category": {"type": "STRING", "enum": TASK_CATEGORIES},
    },
    "required": ["university_name", "task_title", "task_category"],
}

_INTENT_PATTERNS = {
    "wants_universities": re.compile(r"(find|recommend|suggest|shortlist|universities|options)"),
    "wants_tasks": re.compile(r"(task|todo|what should i do|steps|documents|apply|application|guidance)"),
    "wants_profile_analysis": re.compile(r"(profile|strength|weakness|gap|analysis)"),
    "wants_university_fit": re.compile(r"(why|fit|risk|chance|suitable|good for me)"),
}


def detect_intent(text: str) -> Dict[str, bool]:
    """Keyword intent flags, logged for diagnostics only."""
    lowered = (text or "").lower()
    return {name: bool(pattern.search(lowered)) for name, pattern in _INTENT_PATTERNS.items()}


def last_user_message(messages: Sequence[Dict[str, str]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return message.get("content") or ""
    return ""


class CounsellorAgent:
    """
    Args:
        session_factory: SQLAlchemy sessionmaker
        llm: Collaborator exposing complete(system_prompt, messages, tools) -> Completion
        recommender: RecommendationEngine backing recommend_universities
        recommendation_limit: k used by recommend_universities
    """

    def __init__(self, session_factory, llm, recommender, recommendation_limit: int = 12):
        self.session_factory = session_factory
        self.llm = llm
        self.recommender = recommender
        self.recommendation_limit = recommendation_limit

    # ============================================
    # TOOLS
    # ============================================

    def recommend_universities(self, profile) -> Any:
        result = self.recommender.recommend(profile, self.recommendation_limit)
        if result.error:
            return {"error": result.error}
        return [
            {
                "university_id": u.university_id,
                "name": u.name,
                "country": u.country,
                "city": u.city,
                "image_url": u.image_url,
                "bucket": u.bucket.value,
                "acceptanceChance": u.acceptance_chance.value,
                "costLevel": u.cost_level.value,
                "why": u.why_students_choose_it,
                "risks": u.known_risks,
            }
            for u in result.universities
        ]

    def add_task(self, user_id: str, args: Dict[str, Any]) -> str:
        """Validate add_task arguments and insert one pending task."""
        university_name = str(args.get("university_name") or "").strip()
        task_title = str(args.get("task_title") or "").strip()
        category = str(args.get("task_category") or "").strip()
        if not university_name or not task_title:
            raise InvalidRequestError("add_task requires university_name and task_title")
        if category not in TASK_CATEGORIES:
            raise InvalidRequestError(
                f"Invalid task_category '{category}'. Use one of: {', '.join(TASK_CATEGORIES)}"
            )

        title = f"{university_name} - {task_title}"
        with db_session(self.session_factory) as db:
            # Attach the task to the matching university on the user's list, if any
            locks = crud.get_user_locks(db, user_id)
            universities = crud.get_universities(db, [lock.university_id for lock in locks])
            university_id = next(
                (u.university_id for u in universities if u.name.lower() == university_name.lower()),
                None,
            )
            crud.create_task(
                db,
                user_id=user_id,
                title=title,
                category=category,
                university_id=university_id,
                ai_meta={"source": "counsellor"},
            )
        logger.info(f"[COUNSELLOR] Task created for {user_id}: {title}")
        return f"Task created: {title}"

    def build_tools(self, user_id: str, profile) -> List[CompletionTool]:
        return [
            CompletionTool(
                name="recommend_universities",
                description=(
                    'Recommend universities. Use ONLY for explicit requests like "find universities" '
                    'or "suggest options". DO NOT USE for "Analyze profile".'
                ),
                parameters={"type": "OBJECT", "properties": {}},
                execute=lambda args: self.recommend_universities(profile),
            ),
            CompletionTool(
                name="add_task",
                description="Create a concrete application task for a LOCKED university.",
                parameters=ADD_TASK_PARAMETERS,
                execute=lambda args: self.add_task(user_id, args),
            ),
        ]

    # ============================================
    # CHAT
    # ============================================

    def respond(self, user_id: str, messages: Sequence[Dict[str, str]]) -> CounselResponse:
        """
        Args:
            user_id: Authenticated user id
            messages: Conversation history, [{"role", "content"}, ...]

        Returns:
            CounselResponse with the model's text and tool invocations
        """
        try:
            with db_session(self.session_factory) as db:
                profile = crud.require_profile(db, user_id)
                locks = crud.get_user_locks(db, user_id)
                universities = crud.get_universities(db, [lock.university_id for lock in locks])
        except SQLAlchemyError as e:
            logger.error(f"[COUNSELLOR] Failed to load context for {user_id}: {e}")
            return CounselResponse(assistant_text=COUNSELLOR_RETRY_MESSAGE, error=True)

        statuses = {lock.university_id: lock.status for lock in locks}
        system_prompt = get_system_prompt(
            profile_snapshot(profile),
            build_universities_context(universities, statuses),
        )

        logger.info(
            f"[COUNSELLOR] user={user_id} intent={detect_intent(last_user_message(messages))} "
            f"universities={len(universities)}"
        )

        try:
            completion = self.llm.complete(system_prompt, list(messages), self.build_tools(user_id, profile))
        except TransientServiceError as e:
            logger.error(f"[COUNSELLOR] Completion failed: {e}")
            return CounselResponse(assistant_text=COUNSELLOR_RETRY_MESSAGE, error=True)

        logger.info(
            f"[COUNSELLOR] Assistant text length: {len(completion.text)}, "
            f"tool invocations: {[t.tool_name for t in completion.tool_invocations]}"
        )
        return CounselResponse(
            assistant_text=completion.text or None,
            tool_invocations=[
                ToolInvocationOut(tool_name=t.tool_name, input=t.input, output=t.output)
                for t in completion.tool_invocations
            ],
        )
