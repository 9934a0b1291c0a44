"""Survey engine for orchestrating survey flow.

This module coordinates loading, persistence, answer capture and progression
for the webhook routes: it starts survey instances, records answers, works
out the next question, and keeps the SMS session context up to date.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.repository import SurveyRepository
from app.models.session import SurveySession
from app.models.survey import Question, Survey
from app.schemas.survey import Channel, DEFAULT_GOODBYE_MESSAGE, DEFAULT_WELCOME_MESSAGE
from app.services.progression import SessionContext, SurveyProgressionService
from app.services.survey_loader import (
    get_survey_loader,
    SurveyNotFoundError,
    SurveyValidationError,
)
from app.services.template_renderer import get_template_renderer, TemplateRenderError
from app.logging_config import get_logger

logger = get_logger(__name__)


class SurveyEngineError(Exception):
    """Raised when survey engine encounters an error."""
    pass


class SurveyInstanceNotFoundError(SurveyEngineError):
    """Raised when a webhook references a survey instance that does not exist."""
    pass


class QuestionNotAnsweredError(SurveyEngineError):
    """Raised when a webhook carries no usable answer for the referenced question."""
    pass


@dataclass
class AnswerOutcome:
    """Result of recording one answer.

    Attributes:
        survey: Survey the answer was recorded on
        answered: Question that was answered
        next_question: Question to present next (None when the survey is done)
    """
    survey: Survey
    answered: Question
    next_question: Optional[Question]

    @property
    def is_completed(self) -> bool:
        return self.next_question is None


class SurveyEngine:
    """Main survey orchestration service."""

    def __init__(self, db: Session):
        """Initialize survey engine.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db
        self.repository = SurveyRepository(db)
        self.loader = get_survey_loader()
        self.renderer = get_template_renderer()

    def start_survey(self, survey_key: str) -> Survey:
        """Create and persist a new survey instance from a definition.

        Args:
            survey_key: Definition identifier (file name without extension)

        Returns:
            Persisted Survey with its id assigned

        Raises:
            SurveyEngineError: If the definition cannot be loaded or saved
        """
        try:
            survey = self.loader.load(survey_key)
            return self.repository.add(survey)
        except (SurveyNotFoundError, SurveyValidationError) as e:
            logger.error(f"Cannot start survey '{survey_key}': {e}")
            raise SurveyEngineError(f"Cannot start survey '{survey_key}': {e}")
        except SQLAlchemyError as e:
            logger.error(f"Database error starting survey '{survey_key}': {e}")
            self.db.rollback()
            raise SurveyEngineError(f"Database error: {e}")

    def find_survey(self, survey_id: int) -> Survey:
        """Return a persisted survey instance.

        Raises:
            SurveyInstanceNotFoundError: If no survey has this id
            SurveyEngineError: If the database cannot be read
        """
        try:
            survey = self.repository.find(survey_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error loading survey {survey_id}: {e}")
            self.db.rollback()
            raise SurveyEngineError(f"Database error: {e}")
        if survey is None:
            logger.warning(f"Survey {survey_id} not found", extra={"survey_id": survey_id})
            raise SurveyInstanceNotFoundError(f"Survey {survey_id} was not found")
        return survey

    def process_answer(
        self,
        survey_id: int,
        fields: Mapping[str, str],
        channel: Channel,
        question_id: Optional[int] = None
    ) -> AnswerOutcome:
        """Record an answer from webhook fields and work out what comes next.

        Args:
            survey_id: Survey instance being answered
            fields: Inbound webhook fields (query and form parameters)
            channel: Transport the answer arrived on
            question_id: Question being answered (falls back to the
                ``question`` field)

        Returns:
            AnswerOutcome with the answered question and the next one

        Raises:
            SurveyInstanceNotFoundError: If the survey does not exist
            QuestionNotAnsweredError: If the question is unknown or the
                answer field is missing
            SurveyEngineError: If the answer cannot be saved

        Example:
            >>> outcome = engine.process_answer(1, {"Digits": "42"}, Channel.VOICE, 1)
            >>> outcome.answered.answer, outcome.next_question.id
            ('42', 2)
        """
        survey = self.find_survey(survey_id)

        if channel == Channel.SMS:
            answered = survey.answer_sms(fields, question_id)
        else:
            answered = survey.answer_call(fields, question_id)

        if answered is None:
            logger.warning(
                f"No answer recorded for question {question_id} of survey {survey_id}",
                extra={"survey_id": survey_id, "question_id": question_id, "channel": channel.value},
            )
            raise QuestionNotAnsweredError(
                f"Question {question_id} of survey {survey_id} could not be answered"
            )

        try:
            self.repository.update(survey)
        except SQLAlchemyError as e:
            logger.error(f"Database error saving answer: {e}")
            self.db.rollback()
            raise SurveyEngineError(f"Database error: {e}")

        context = SessionContext(survey_id=survey.id, last_question_id=answered.id)
        next_question = SurveyProgressionService.next_question(survey, context)

        logger.info(
            f"Recorded answer to question {answered.id}; "
            f"next={next_question.id if next_question else 'none'}",
            extra={"survey_id": survey.id, "question_id": answered.id, "channel": channel.value},
        )
        return AnswerOutcome(survey=survey, answered=answered, next_question=next_question)

    def resume(self, phone_hash: str) -> Optional[SurveySession]:
        """Return the texter's active session, if any."""
        try:
            return SurveySession.find_active(self.db, phone_hash)
        except SQLAlchemyError as e:
            logger.error(f"Database error looking up session: {e}")
            self.db.rollback()
            raise SurveyEngineError(f"Database error: {e}")

    def present_question(self, phone_hash: str, survey: Survey, question: Question) -> SurveySession:
        """Remember the question just texted so the reply can be matched to it."""
        session = self.resume(phone_hash)
        if session is None or session.survey_id != survey.id:
            try:
                session = SurveySession.start(self.db, phone_hash, survey.id)
            except SQLAlchemyError as e:
                logger.error(f"Database error starting session: {e}")
                self.db.rollback()
                raise SurveyEngineError(f"Database error: {e}")

        session.present(question.id)
        self._commit()
        return session

    def complete_session(self, phone_hash: str) -> None:
        """Close the texter's active session once the survey is finished."""
        session = self.resume(phone_hash)
        if session is None:
            return
        session.mark_completed()
        self._commit()
        logger.info(f"Completed session {session.id}", extra={"session_id": session.id})

    def welcome_message(self, survey: Survey) -> str:
        return self._render(survey.welcome_message or DEFAULT_WELCOME_MESSAGE, survey)

    def goodbye_message(self, survey: Survey) -> str:
        return self._render(survey.goodbye_message or DEFAULT_GOODBYE_MESSAGE, survey)

    def _render(self, template_text: str, survey: Survey) -> str:
        try:
            return self.renderer.render(template_text, {"title": survey.title})
        except TemplateRenderError as e:
            raise SurveyEngineError(f"Cannot render message for survey {survey.id}: {e}")

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error saving session: {e}")
            self.db.rollback()
            raise SurveyEngineError(f"Database error: {e}")
