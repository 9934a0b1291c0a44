"""Survey results endpoint.

Lists every survey instance with its questions and recorded answers.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.models.database import get_db
from app.models.repository import SurveyRepository

router = APIRouter()


@router.get("/results")
async def list_results(db: Session = Depends(get_db)) -> list[dict]:
    """Return surveys newest first, each with its answered and unanswered questions.

    Example response:
        [
            {
                "id": 2,
                "title": "Automated Survey",
                "created_at": "2024-05-01T12:00:00+00:00",
                "questions": [
                    {"id": 1, "body": "Please tell us your age.", "type": "numeric", "answer": "42"}
                ]
            }
        ]
    """
    surveys = SurveyRepository(db).list_surveys()
    return [
        {
            "id": survey.id,
            "title": survey.title,
            "created_at": survey.created_at.isoformat() if survey.created_at else None,
            "questions": [
                {
                    "id": question.id,
                    "body": question.body,
                    "type": question.type.value,
                    "answer": question.answer,
                }
                for question in survey.questions
            ],
        }
        for survey in surveys
    ]
