"""Database models and session management.

This package contains all SQLAlchemy ORM models and database utilities.
"""

from app.models.database import Base, engine, SessionLocal, get_db, init_db
from app.models.survey import Survey, Question, DuplicateQuestionError
from app.models.session import SurveySession
from app.models.repository import SurveyRepository

__all__ = [
    "Base",
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "Survey",
    "Question",
    "DuplicateQuestionError",
    "SurveySession",
    "SurveyRepository",
]
