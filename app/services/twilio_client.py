"""Twilio client service for TwiML response generation.

This module renders the TwiML (Twilio Markup Language) documents the survey
webhooks return: spoken or texted messages, redirects between the survey
endpoints, and the per-type question prompts.
"""

from typing import Union

from twilio.twiml.messaging_response import MessagingResponse
from twilio.twiml.voice_response import VoiceResponse

from app.models.survey import Question
from app.schemas.survey import Channel, QuestionType
from app.logging_config import get_logger


logger = get_logger(__name__)

# Twilio's maximum message length
MAX_MESSAGE_LENGTH = 1600

VOICE_INSTRUCTIONS = {
    QuestionType.VOICE: (
        "Record your answer after the beep and press the pound key when you are done."
    ),
    QuestionType.YESNO: (
        "For the next question, press 1 for yes, and 0 for no. Then press the pound key."
    ),
    QuestionType.NUMERIC: (
        "For the next question, press a number with the dial pad "
        "and then press the pound key."
    ),
}

SMS_INSTRUCTIONS = {
    QuestionType.VOICE: "Reply with your answer.",
    QuestionType.YESNO: "Reply 1 for yes and 0 for no.",
    QuestionType.NUMERIC: "Reply with a number.",
}


def question_url(survey_id: int, question_id: int) -> str:
    """Relative URL that renders a question."""
    return f"question?survey={survey_id}&question={question_id}"


def answer_url(survey_id: int, question_id: int) -> str:
    """Relative URL an answer to a question is posted to."""
    return f"survey?survey={survey_id}&question={question_id}"


class TwilioClient:
    """Service for generating Twilio TwiML responses.

    All methods are static since TwiML generation is stateless. Methods that
    take a ``channel`` return a VoiceResponse document for calls and a
    MessagingResponse document for SMS.

    Usage:
        from app.services.twilio_client import TwilioClient

        twiml = TwilioClient.create_response("Thanks!", Channel.VOICE)
        twiml = TwilioClient.create_question(survey.id, question, Channel.SMS)
    """

    @staticmethod
    def _new_response(channel: Channel) -> Union[VoiceResponse, MessagingResponse]:
        if channel == Channel.SMS:
            return MessagingResponse()
        return VoiceResponse()

    @staticmethod
    def _add_text(
        response: Union[VoiceResponse, MessagingResponse],
        message: str
    ) -> None:
        if isinstance(response, MessagingResponse):
            response.message(message)
        else:
            response.say(message)

    @staticmethod
    def _clean_message(message: str) -> str:
        if not message or not message.strip():
            raise ValueError("Message cannot be empty")

        if len(message) > MAX_MESSAGE_LENGTH:
            logger.warning(
                f"Message length ({len(message)}) exceeds Twilio limit ({MAX_MESSAGE_LENGTH}). "
                "Message will be truncated."
            )
            message = message[:MAX_MESSAGE_LENGTH]
        return message

    @staticmethod
    def create_response(message: str, channel: Channel = Channel.SMS) -> str:
        """Generate TwiML that says or texts a single message.

        Args:
            message: Text to speak or send (max 1600 characters)
            channel: Voice produces <Say>, SMS produces <Message>

        Returns:
            TwiML XML string

        Raises:
            ValueError: If message is empty

        Example:
            >>> print(TwilioClient.create_response("Good bye."))
            <?xml version="1.0" encoding="UTF-8"?><Response><Message>Good bye.</Message></Response>
        """
        message = TwilioClient._clean_message(message)

        response = TwilioClient._new_response(channel)
        TwilioClient._add_text(response, message)

        logger.debug(f"Generated {channel.value} TwiML response with message: {message[:50]}...")

        return str(response)

    @staticmethod
    def create_redirect(url: str, channel: Channel, method: str = "GET") -> str:
        """Generate TwiML that sends Twilio on to another survey endpoint.

        Args:
            url: Relative or absolute URL to fetch next
            channel: Transport of the current request
            method: HTTP method Twilio should use

        Returns:
            TwiML XML string
        """
        response = TwilioClient._new_response(channel)
        response.redirect(url, method=method)
        return str(response)

    @staticmethod
    def create_message_with_redirect(
        message: str,
        url: str,
        channel: Channel,
        method: str = "GET"
    ) -> str:
        """Generate TwiML that says or texts a message, then redirects."""
        message = TwilioClient._clean_message(message)

        response = TwilioClient._new_response(channel)
        TwilioClient._add_text(response, message)
        response.redirect(url, method=method)
        return str(response)

    @staticmethod
    def create_question(survey_id: int, question: Question, channel: Channel) -> str:
        """Generate the TwiML prompt for a question.

        Voice: an instruction <Say>, the question <Say>, a <Pause>, then
        <Record> for recorded answers or <Gather> for keypad answers; both
        post to the answer endpoint.

        SMS: a single <Message> with the question and a short instruction.
        The reply comes back as a new inbound message.

        Args:
            survey_id: Survey instance the question belongs to
            question: Question to present
            channel: Transport of the current request

        Returns:
            TwiML XML string
        """
        question_type = QuestionType(question.type)

        if channel == Channel.SMS:
            response = MessagingResponse()
            response.message(
                TwilioClient._clean_message(
                    f"{question.body}\n\n{SMS_INSTRUCTIONS[question_type]}"
                )
            )
            return str(response)

        action = answer_url(survey_id, question.id)
        response = VoiceResponse()
        response.say(VOICE_INSTRUCTIONS[question_type])
        response.say(question.body)
        response.pause()

        if question_type == QuestionType.VOICE:
            response.record(action=action, method="POST", finish_on_key="#")
        else:
            response.gather(action=action, method="POST", finish_on_key="#")

        logger.debug(
            f"Generated voice prompt for question {question.id}",
            extra={"survey_id": survey_id, "question_id": question.id},
        )
        return str(response)
