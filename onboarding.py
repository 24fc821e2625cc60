"""
Conversational onboarding.

Each user message is one turn of a small state machine whose state is the
next unanswered profile field (or "complete"):

1. resolve the next missing field; if none, confirm completion and stop
2. extract a value for it from the message
3. merge the value into its section and persist
4. resolve again and ask the next question (or announce completion)
5. if nothing was extracted, ask the same question again
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

import crud
from database import db_session
from errors import TransientServiceError
from extractor import Extractor
from profile_fields import COMPLETE, next_missing_field
from prompts import (
    get_question, COMPLETION_MESSAGE, ALREADY_COMPLETE_MESSAGE, SAVE_FAILED_MESSAGE,
)
from schemas import OnboardingTurnResponse, ProfileResponse

logger = logging.getLogger(__name__)


class OnboardingEngine:
    """
    Args:
        session_factory: SQLAlchemy sessionmaker for the profile store
        extractor: Extractor used to read answers
    """

    def __init__(self, session_factory, extractor: Extractor):
        self.session_factory = session_factory
        self.extractor = extractor

    def start(self, user_id: str) -> OnboardingTurnResponse:
        """Opening prompt for the user's current onboarding state."""
        try:
            with db_session(self.session_factory) as db:
                profile = crud.get_or_create_profile(db, user_id)
                field = next_missing_field(profile)
                view = ProfileResponse.model_validate(profile)
        except SQLAlchemyError as e:
            logger.error(f"[ONBOARDING] Failed to load profile for {user_id}: {e}")
            raise TransientServiceError("Could not load your profile. Please try again.") from e

        if field == COMPLETE:
            return OnboardingTurnResponse(
                assistant_text=ALREADY_COMPLETE_MESSAGE, next_field=COMPLETE, completed=True, profile=view
            )
        return OnboardingTurnResponse(assistant_text=get_question(field), next_field=field, profile=view)

    def turn(self, user_id: str, message: str) -> OnboardingTurnResponse:
        """
        Process one user answer.

        Args:
            user_id: Authenticated user id
            message: Latest user message

        Returns:
            Next prompt, resolved field and updated profile snapshot
        """
        try:
            with db_session(self.session_factory) as db:
                profile = crud.get_or_create_profile(db, user_id)
                field = next_missing_field(profile)
                if field == COMPLETE:
                    # Repeated calls after completion only re-confirm it
                    if crud.mark_onboarding_complete(db, profile):
                        logger.info(f"[ONBOARDING] Profile {user_id} marked complete")
                    view = ProfileResponse.model_validate(profile)
                    return OnboardingTurnResponse(
                        assistant_text=ALREADY_COMPLETE_MESSAGE, next_field=COMPLETE, completed=True, profile=view
                    )
                before = ProfileResponse.model_validate(profile)
        except SQLAlchemyError as e:
            logger.error(f"[ONBOARDING] Failed to load profile for {user_id}: {e}")
            raise TransientServiceError("Could not load your profile. Please try again.") from e

        result = self.extractor.extract(field, message or "", before.model_dump())
        updates = result.updates()
        if not updates:
            logger.info(f"[ONBOARDING] Nothing extracted for '{field}', asking again")
            return OnboardingTurnResponse(assistant_text=get_question(field), next_field=field, profile=before)

        try:
            with db_session(self.session_factory) as db:
                profile = crud.update_profile_fields(db, user_id, updates)
                # Reads the state flushed above, inside the same transaction
                new_field = next_missing_field(profile)
                if new_field == COMPLETE:
                    crud.mark_onboarding_complete(db, profile)
                view = ProfileResponse.model_validate(profile)
        except (SQLAlchemyError, TransientServiceError) as e:
            logger.error(f"[ONBOARDING] DB update error for {user_id}: {e}")
            return OnboardingTurnResponse(
                assistant_text=f"{SAVE_FAILED_MESSAGE}\n\n{get_question(field)}",
                next_field=field,
                error=True,
                profile=before,
            )

        logger.info(f"[ONBOARDING] Saved {sorted(updates)} for {user_id}; next field: {new_field}")
        if new_field == COMPLETE:
            return OnboardingTurnResponse(
                assistant_text=COMPLETION_MESSAGE, next_field=COMPLETE, completed=True, profile=view
            )
        return OnboardingTurnResponse(assistant_text=get_question(new_field), next_field=new_field, profile=view)
