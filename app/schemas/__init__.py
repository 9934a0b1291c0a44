"""Pydantic schemas for data validation.

This package contains the survey definition schemas, the question/channel
enumerations and the Twilio webhook request schema.
"""

from app.schemas.survey import (
    QuestionType,
    Channel,
    VOICE_ANSWER_KEYS,
    SMS_ANSWER_KEY,
    answer_key_for,
    QuestionDefinition,
    SurveyDefinition,
)
from app.schemas.twilio import TwilioWebhookRequest

__all__ = [
    "QuestionType",
    "Channel",
    "VOICE_ANSWER_KEYS",
    "SMS_ANSWER_KEY",
    "answer_key_for",
    "QuestionDefinition",
    "SurveyDefinition",
    "TwilioWebhookRequest",
]
