"""Survey progression for linear phone/SMS surveys.

Progression is strictly linear: NotStarted -> Q1 -> Q2 -> ... -> Qn -> Completed.
A survey never records where a respondent is; callers carry that in a
SessionContext and pass it in.
"""

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional

from app.logging_config import get_logger

if TYPE_CHECKING:
    from app.models.survey import Question, Survey

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionContext:
    """Where a respondent is in a survey.

    Attributes:
        survey_id: Survey instance being taken
        last_question_id: Question most recently answered or presented
            (None before the first question)
    """
    survey_id: int
    last_question_id: Optional[int] = None

    def advanced_to(self, question_id: int) -> "SessionContext":
        return replace(self, last_question_id=question_id)


class SurveyProgressionService:
    """Computes the next question of a survey from an explicit context."""

    @staticmethod
    def first_question(survey: "Survey") -> Optional["Question"]:
        return survey.get_first_question()

    @staticmethod
    def next_question(survey: "Survey", context: SessionContext) -> Optional["Question"]:
        """Return the question to present next, or None when the survey is done.

        Args:
            survey: Survey being taken
            context: Respondent context; ``last_question_id`` None means the
                survey has not started

        Returns:
            Next Question, or None on completion or if the context points at a
            question the survey does not have

        Example:
            >>> ctx = SessionContext(survey_id=1)
            >>> SurveyProgressionService.next_question(survey, ctx).id
            1
            >>> SurveyProgressionService.next_question(survey, ctx.advanced_to(1)).id
            2
        """
        if context.last_question_id is None:
            return survey.get_first_question()

        current = survey.get_question_by_number(context.last_question_id)
        if current is None:
            logger.warning(
                f"Question {context.last_question_id} not found in survey {context.survey_id}",
                extra={"survey_id": context.survey_id},
            )
            return None

        return survey.get_next_question(current)

    @staticmethod
    def is_complete(survey: "Survey", context: SessionContext) -> bool:
        """True once the last question has been reached, or for an empty survey."""
        if not survey.questions:
            return True
        if context.last_question_id is None:
            return False
        return SurveyProgressionService.next_question(survey, context) is None
