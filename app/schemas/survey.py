"""Pydantic schemas for survey definition files.

This module defines the question and channel enumerations shared by the
survey model and the structure of survey definition files. All definitions
must conform to these schemas to be loaded by the system.
"""

from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field, model_validator


class QuestionType(str, Enum):
    """Valid question types in survey definitions."""
    VOICE = "voice"
    YESNO = "yesno"
    NUMERIC = "numeric"


class Channel(str, Enum):
    """Transport an inbound webhook arrived on."""
    VOICE = "voice"
    SMS = "sms"

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> "Channel":
        """Twilio only includes MessageSid on messaging webhooks."""
        return cls.SMS if fields.get("MessageSid") else cls.VOICE


# Field Twilio posts the respondent's input under, per question type.
VOICE_ANSWER_KEYS: dict[QuestionType, str] = {
    QuestionType.NUMERIC: "Digits",
    QuestionType.YESNO: "Digits",
    QuestionType.VOICE: "RecordingUrl",
}

SMS_ANSWER_KEY = "Body"

DEFAULT_WELCOME_MESSAGE = "Welcome to the {{ title }} survey"
DEFAULT_GOODBYE_MESSAGE = "Thank you for taking the {{ title }} survey. Good bye."


def answer_key_for(question_type: QuestionType, channel: Channel = Channel.VOICE) -> str:
    """Return the inbound field name carrying the answer for a question type.

    Args:
        question_type: Type of the question being answered
        channel: Transport the answer arrives on

    Returns:
        Field name, e.g. "Digits" or "RecordingUrl"

    Example:
        >>> answer_key_for(QuestionType.YESNO)
        'Digits'
        >>> answer_key_for(QuestionType.VOICE, Channel.SMS)
        'Body'
    """
    if channel == Channel.SMS:
        return SMS_ANSWER_KEY
    return VOICE_ANSWER_KEYS[QuestionType(question_type)]


class QuestionDefinition(BaseModel):
    """A single question in a survey definition file.

    Attributes:
        id: Optional explicit identifier (assigned in file order when omitted)
        body: Prompt spoken or texted to the respondent
        type: Question type (voice/yesno/numeric)
    """
    id: Optional[int] = Field(None, ge=1, description="Question number within the survey")
    body: str = Field(..., min_length=1, description="Question prompt")
    type: QuestionType = Field(..., description="Question type")


class SurveyDefinition(BaseModel):
    """Complete survey definition.

    Root schema for survey definition files. Welcome and goodbye messages
    are Jinja2 templates rendered with the survey ``title``.

    Attributes:
        title: Survey title
        welcome_message: Message played or sent when a survey starts
        goodbye_message: Message played or sent after the last answer
        questions: Questions in presentation order
    """
    title: str = Field(..., min_length=1, description="Survey title")
    welcome_message: str = Field(
        default=DEFAULT_WELCOME_MESSAGE,
        min_length=1,
        description="Greeting template"
    )
    goodbye_message: str = Field(
        default=DEFAULT_GOODBYE_MESSAGE,
        min_length=1,
        description="Completion template"
    )
    questions: list[QuestionDefinition] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_question_ids(self):
        """Reject question ids that appear more than once.

        Unnumbered questions get one more than the highest id before them,
        so an explicit id can also collide with an assigned one.
        """
        seen: set[int] = set()
        duplicates: set[int] = set()
        for question in self.questions:
            question_id = question.id
            if question_id is None:
                question_id = max(seen, default=0) + 1
            if question_id in seen:
                duplicates.add(question_id)
            seen.add(question_id)
        if duplicates:
            raise ValueError(f"Duplicate question IDs found: {sorted(duplicates)}")
        return self
