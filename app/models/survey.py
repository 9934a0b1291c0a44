"""Survey and Question models.

A Survey owns an ordered list of Questions and answers every progression
query the webhooks need: which question comes first, which comes after a
given one, and which inbound field carries the answer to a question. Where
the respondent currently is lives outside the survey (see
``app.services.progression.SessionContext``).

Lookups that can fail return None rather than raising.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.models.database import Base
from app.schemas.survey import Channel, QuestionType, answer_key_for


class DuplicateQuestionError(ValueError):
    """Raised when a question id is already taken within its survey."""
    pass


class Question(Base):
    """A single prompt within a survey.

    Identifiers are unique within a survey only; the primary key is
    ``(survey_id, id)``.

    Attributes:
        survey_id: Owning survey
        id: Question number within the survey (1-based)
        position: Presentation index, maintained by the owning survey
        body: Prompt spoken or texted to the respondent
        type: Question type (voice/yesno/numeric)
        answer: Most recent answer (None until answered)
        answered_at: When the answer was recorded
    """

    __tablename__ = "questions"

    survey_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("surveys.id", ondelete="CASCADE"),
        primary_key=True,
    )
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Question number within its survey"
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Presentation order within the survey"
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[QuestionType] = mapped_column(
        Enum(
            QuestionType,
            native_enum=False,
            length=20,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    answer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    answered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    survey: Mapped["Survey"] = relationship("Survey", back_populates="questions")

    @validates("type")
    def _coerce_type(self, key: str, value: Any) -> QuestionType:
        return QuestionType(value)

    def record_answer(self, value: str) -> "Question":
        """Store an answer, replacing any previous one.

        Args:
            value: Raw answer text (digits, recording URL, SMS body)

        Returns:
            This question
        """
        self.answer = value
        self.answered_at = datetime.now(timezone.utc)
        return self

    @property
    def is_answered(self) -> bool:
        return self.answer is not None

    def __repr__(self) -> str:
        return (
            f"<Question(survey_id={self.survey_id}, id={self.id}, "
            f"type={self.type.value if self.type else None}, "
            f"answered={self.is_answered})>"
        )


class Survey(Base):
    """An ordered collection of questions presented to one respondent.

    Questions are kept in presentation order by ``position``. Ordering only
    changes by appending through ``add_question``.

    Attributes:
        id: Primary key, assigned when the survey is persisted
        title: Survey title
        welcome_message: Greeting template (None uses the default)
        goodbye_message: Completion template (None uses the default)
        created_at: When this survey instance was created
        questions: Questions in presentation order
    """

    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    welcome_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    goodbye_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    questions: Mapped[list[Question]] = relationship(
        "Question",
        back_populates="survey",
        order_by=Question.position,
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    def _positions(self) -> dict[int, int]:
        """Map each question id to its presentation index."""
        return {question.id: index for index, question in enumerate(self.questions)}

    def add_question(self, question: Question) -> Question:
        """Append a question, numbering it when it has no id.

        Unnumbered questions get one more than the highest id in the survey,
        so under normal loading ids match presentation order starting at 1.

        Raises:
            DuplicateQuestionError: If an explicit id is already in use
        """
        existing_ids = self._positions()
        if question.id is None:
            question.id = max(existing_ids, default=0) + 1
        elif question.id in existing_ids:
            raise DuplicateQuestionError(
                f"Question {question.id} already exists in survey '{self.title}'"
            )
        self.questions.append(question)
        return question

    def get_question_by_number(self, number: int) -> Optional[Question]:
        """Return the question whose id equals ``number``."""
        position = self._positions().get(number)
        if position is None:
            return None
        return self.questions[position]

    def get_first_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[0]

    def get_next_question(self, current: Question) -> Optional[Question]:
        """Return the question presented after ``current``.

        None means ``current`` was the last question and the survey is
        complete (or ``current`` does not belong to this survey).
        """
        position = self._positions().get(current.id)
        if position is None or position + 1 >= len(self.questions):
            return None
        return self.questions[position + 1]

    def answer(self, question_id: int, value: str) -> Optional[Question]:
        """Record ``value`` as the answer to question ``question_id``."""
        question = self.get_question_by_number(question_id)
        if question is None:
            return None
        return question.record_answer(value)

    def get_questions_answer_key(
        self,
        question_id: int,
        channel: Channel = Channel.VOICE
    ) -> Optional[str]:
        """Return the inbound field name that carries this question's answer.

        Voice: "Digits" for numeric and yes/no questions, "RecordingUrl" for
        recorded ones. SMS answers always arrive in "Body".
        """
        question = self.get_question_by_number(question_id)
        if question is None:
            return None
        return answer_key_for(question.type, channel)

    def answer_call(
        self,
        fields: Mapping[str, Any],
        question_id: Optional[int] = None
    ) -> Optional[Question]:
        """Answer a question from a voice webhook's fields."""
        return self._answer_from_fields(fields, Channel.VOICE, question_id)

    def answer_sms(
        self,
        fields: Mapping[str, Any],
        question_id: Optional[int] = None
    ) -> Optional[Question]:
        """Answer a question from a messaging webhook's fields."""
        return self._answer_from_fields(fields, Channel.SMS, question_id)

    def _answer_from_fields(
        self,
        fields: Mapping[str, Any],
        channel: Channel,
        question_id: Optional[int]
    ) -> Optional[Question]:
        if question_id is None:
            question_id = _parse_question_id(_first(fields.get("question")))
            if question_id is None:
                return None

        answer_key = self.get_questions_answer_key(question_id, channel)
        if answer_key is None:
            return None

        value = _first(fields.get(answer_key))
        if value is None:
            return None
        return self.answer(question_id, str(value))

    def __repr__(self) -> str:
        return (
            f"<Survey(id={self.id}, title={self.title!r}, "
            f"questions={len(self.questions)})>"
        )


def _first(value: Any) -> Any:
    # Multi-valued form fields arrive as lists
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _parse_question_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
