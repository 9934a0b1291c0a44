"""SurveySession model for carrying respondent context between requests.

Every SMS reply arrives as an independent webhook. This model remembers which
survey a texter is taking and which question they were last shown, keyed by
a salted hash of their phone number.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from app.models.database import Base
from app.services.progression import SessionContext


class SurveySession(Base):
    """Model for tracking where a respondent is in a survey.

    A respondent can take the survey more than once, so no uniqueness
    constraint is enforced on phone_hash; only one session per phone hash
    is active (completed_at IS NULL) at a time.

    Attributes:
        id: Primary key
        phone_hash: SHA-256 hash of phone number (64 hex chars)
        survey_id: Survey instance being taken
        last_question_id: Question most recently presented (None before the first)
        started_at: When the session started
        updated_at: Last update timestamp
        completed_at: When the survey was completed (NULL for active sessions)
    """

    __tablename__ = "survey_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Phone Hash (never store plaintext phone numbers)
    phone_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="SHA-256 hash of phone number for privacy"
    )

    survey_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("surveys.id", ondelete="CASCADE"),
        nullable=False,
        comment="Survey instance being taken"
    )
    last_question_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Question most recently presented"
    )

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When survey was completed (NULL for active sessions)"
    )

    survey = relationship("Survey")

    __table_args__ = (
        Index("idx_phone_hash_completed", "phone_hash", "completed_at"),
    )

    @classmethod
    def find_active(cls, db: Session, phone_hash: str) -> Optional["SurveySession"]:
        """Return the active session for a phone hash, locking it for update.

        Args:
            db: Database session
            phone_hash: SHA-256 hash of the respondent's phone number

        Returns:
            SurveySession if one is active, None otherwise
        """
        return db.execute(
            select(cls)
            .where(cls.phone_hash == phone_hash, cls.completed_at.is_(None))
            .order_by(cls.id.desc())
            .with_for_update()
        ).scalars().first()

    @classmethod
    def start(cls, db: Session, phone_hash: str, survey_id: int) -> "SurveySession":
        """Open a new session, completing any session still active.

        Caller commits.
        """
        for stale in db.execute(
            select(cls).where(cls.phone_hash == phone_hash, cls.completed_at.is_(None))
        ).scalars():
            stale.mark_completed()

        session = cls(phone_hash=phone_hash, survey_id=survey_id)
        db.add(session)
        return session

    def present(self, question_id: int) -> None:
        """Remember that ``question_id`` was the last question shown."""
        self.last_question_id = question_id

    def mark_completed(self) -> None:
        self.completed_at = datetime.now(timezone.utc)

    @property
    def is_active(self) -> bool:
        return self.completed_at is None

    def to_context(self) -> SessionContext:
        return SessionContext(
            survey_id=self.survey_id,
            last_question_id=self.last_question_id,
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<SurveySession(id={self.id}, "
            f"phone_hash={self.phone_hash[:12]}..., "
            f"survey_id={self.survey_id}, "
            f"last_question_id={self.last_question_id}, "
            f"completed={self.completed_at is not None})>"
        )
