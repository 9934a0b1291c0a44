"""Twilio webhook endpoints that walk a caller or texter through a survey.

Flow for a phone call:
    GET  /survey                      -> welcome, redirect to the first question
    GET  /question?survey=1           -> prompt + <Record>/<Gather>
    POST /survey?survey=1&question=1  -> answer saved, redirect to question 2
    ...
    POST /survey?survey=1&question=n  -> goodbye

SMS follows the same path, except that each reply arrives as a fresh
GET /survey. The texter's session remembers the last question sent so the
reply can be redirected to the answer endpoint.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.middleware.twilio_auth import verify_twilio_signature
from app.models.database import get_db
from app.schemas.twilio import TwilioWebhookRequest
from app.services.phone_hasher import PhoneHasher
from app.services.progression import SurveyProgressionService
from app.services.survey_engine import (
    SurveyEngine,
    SurveyEngineError,
    SurveyInstanceNotFoundError,
)
from app.services.twilio_client import TwilioClient, answer_url, question_url
from app.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_twilio_signature)])

UNAVAILABLE_MESSAGE = "Sorry, the survey is temporarily unavailable. Please try again later."
NOT_FOUND_MESSAGE = "Sorry, we could not find that survey."
ERROR_MESSAGE = "Sorry, there was an error processing your response. Please try again."


async def parse_twilio_webhook(request: Request) -> TwilioWebhookRequest:
    """Collect query and form parameters into a TwilioWebhookRequest.

    Raises:
        HTTPException(400): If the parameters fail validation
    """
    params = dict(request.query_params)
    if request.method == "POST":
        form_data = await request.form()
        params.update({key: str(value) for key, value in form_data.items()})

    try:
        return TwilioWebhookRequest.model_validate(params)
    except ValidationError as e:
        logger.warning(f"Rejected malformed webhook request: {e.error_count()} errors")
        raise HTTPException(status_code=400, detail="Invalid Twilio webhook request")


def twiml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


def _phone_hash(webhook: TwilioWebhookRequest) -> Optional[str]:
    if not webhook.is_sms or not webhook.From:
        return None
    return PhoneHasher.hash_phone(webhook.From)


@router.get("/survey")
async def start_survey(
    webhook: Annotated[TwilioWebhookRequest, Depends(parse_twilio_webhook)],
    db: Session = Depends(get_db)
) -> Response:
    """Entry point for an incoming call or text.

    A text from someone with an active session is an answer, so it is
    redirected to the answer endpoint for the question they were last sent.
    Anything else starts a new survey instance.
    """
    channel = webhook.channel
    engine = SurveyEngine(db)

    try:
        phone_hash = _phone_hash(webhook)
        if phone_hash is not None:
            session = engine.resume(phone_hash)
            if session is not None and session.last_question_id is not None:
                logger.info(
                    f"Reply from {PhoneHasher.truncate_for_logging(phone_hash)} "
                    f"answers question {session.last_question_id}",
                    extra={"survey_id": session.survey_id, "session_id": session.id},
                )
                return twiml_response(TwilioClient.create_redirect(
                    answer_url(session.survey_id, session.last_question_id),
                    channel,
                    method="POST",
                ))

        survey = engine.start_survey(get_settings().default_survey_id)
        logger.info(
            f"Started survey {survey.id} over {channel.value}",
            extra={"survey_id": survey.id, "channel": channel.value},
        )
        return twiml_response(TwilioClient.create_message_with_redirect(
            engine.welcome_message(survey),
            f"question?survey={survey.id}",
            channel,
        ))

    except SurveyEngineError as e:
        logger.error(f"Could not start survey: {e}")
        return twiml_response(TwilioClient.create_response(UNAVAILABLE_MESSAGE, channel))


@router.get("/question")
async def show_question(
    webhook: Annotated[TwilioWebhookRequest, Depends(parse_twilio_webhook)],
    survey: Annotated[int, Query()],
    question: Annotated[Optional[int], Query()] = None,
    db: Session = Depends(get_db)
) -> Response:
    """Present a question; the first one when ``question`` is omitted."""
    channel = webhook.channel
    engine = SurveyEngine(db)

    try:
        instance = engine.find_survey(survey)

        if question is None:
            current = SurveyProgressionService.first_question(instance)
        else:
            current = instance.get_question_by_number(question)

        if current is None:
            if question is not None:
                logger.warning(
                    f"Question {question} not found",
                    extra={"survey_id": survey, "question_id": question},
                )
                return twiml_response(TwilioClient.create_response(NOT_FOUND_MESSAGE, channel))
            # A survey without questions is complete as soon as it starts
            return twiml_response(
                TwilioClient.create_response(engine.goodbye_message(instance), channel)
            )

        phone_hash = _phone_hash(webhook)
        if phone_hash is not None:
            engine.present_question(phone_hash, instance, current)

        return twiml_response(TwilioClient.create_question(instance.id, current, channel))

    except SurveyInstanceNotFoundError:
        return twiml_response(TwilioClient.create_response(NOT_FOUND_MESSAGE, channel))
    except SurveyEngineError as e:
        logger.error(f"Could not present question: {e}")
        return twiml_response(TwilioClient.create_response(ERROR_MESSAGE, channel))


@router.post("/survey")
async def answer_question(
    webhook: Annotated[TwilioWebhookRequest, Depends(parse_twilio_webhook)],
    survey: Annotated[int, Query()],
    question: Annotated[int, Query()],
    db: Session = Depends(get_db)
) -> Response:
    """Record an answer, then redirect to the next question or say goodbye."""
    channel = webhook.channel
    engine = SurveyEngine(db)

    try:
        outcome = engine.process_answer(survey, webhook.as_fields(), channel, question)

        if outcome.is_completed:
            phone_hash = _phone_hash(webhook)
            if phone_hash is not None:
                engine.complete_session(phone_hash)
            return twiml_response(TwilioClient.create_response(
                engine.goodbye_message(outcome.survey), channel
            ))

        return twiml_response(TwilioClient.create_redirect(
            question_url(survey, outcome.next_question.id),
            channel,
            method="GET",
        ))

    except SurveyInstanceNotFoundError:
        return twiml_response(TwilioClient.create_response(NOT_FOUND_MESSAGE, channel))
    except SurveyEngineError as e:
        logger.error(f"Could not record answer: {e}", extra={"survey_id": survey})
        return twiml_response(TwilioClient.create_response(ERROR_MESSAGE, channel))
