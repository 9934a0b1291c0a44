"""Repository for survey persistence.

Wraps the SQLAlchemy session behind the three calls the webhooks need:
find a survey instance, add a new one, and save answers on an existing one.
"""

from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models.survey import Survey
from app.logging_config import get_logger

logger = get_logger(__name__)


class SurveyRepository:
    """Repository for Survey database operations."""

    def __init__(self, db: Session):
        """Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def find(self, survey_id: int) -> Optional[Survey]:
        """Get a survey instance by id, or None if it does not exist."""
        return self.db.get(Survey, survey_id)

    def add(self, survey: Survey) -> Survey:
        """Persist a new survey instance and return it with its id assigned."""
        self.db.add(survey)
        self.db.commit()
        logger.info(
            f"Created survey instance {survey.id} ({survey.title})",
            extra={"survey_id": survey.id},
        )
        return survey

    def update(self, survey: Survey) -> Survey:
        """Save changes (recorded answers) on an existing survey instance."""
        self.db.add(survey)
        self.db.commit()
        logger.debug(f"Updated survey instance {survey.id}", extra={"survey_id": survey.id})
        return survey

    def list_surveys(self) -> Sequence[Survey]:
        """Return every survey instance with its questions, newest first."""
        return self.db.execute(
            select(Survey)
            .options(selectinload(Survey.questions))
            .order_by(Survey.id.desc())
        ).scalars().all()
