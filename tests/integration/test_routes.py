"""Integration tests for the webhook, results and health endpoints.

Each test drives the FastAPI app through TestClient the way Twilio would:
query parameters on GETs, form bodies on POSTs, following the relative
redirects the TwiML documents return.
"""

import xml.etree.ElementTree as ET
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import OperationalError
from twilio.request_validator import RequestValidator

from app.main import app
from app.models import get_db
from app.routes.survey import ERROR_MESSAGE, NOT_FOUND_MESSAGE, UNAVAILABLE_MESSAGE


def twiml(response) -> ET.Element:
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/xml")
    return ET.fromstring(response.content)


def redirect_of(root: ET.Element) -> ET.Element:
    redirect = root.find("Redirect")
    assert redirect is not None
    return redirect


class TestVoiceFlow:
    """A caller walking through the whole survey."""

    def test_welcome_redirects_to_first_question(self, client, call_params):
        root = twiml(client.get("/survey", params=call_params))

        assert root.find("Say").text == "Welcome to the Test Survey survey"
        redirect = redirect_of(root)
        assert redirect.text == "question?survey=1"
        assert redirect.get("method") == "GET"

    def test_first_question_prompt(self, client, call_params):
        client.get("/survey", params=call_params)

        root = twiml(client.get("/question", params={**call_params, "survey": 1}))

        says = [say.text for say in root.findall("Say")]
        assert says[1] == "How old are you?"
        gather = root.find("Gather")
        assert gather.get("action") == "survey?survey=1&question=1"
        assert gather.get("method") == "POST"

    def test_complete_call(self, client, call_params):
        client.get("/survey", params=call_params)

        root = twiml(client.post(
            "/survey?survey=1&question=1", data={**call_params, "Digits": "42"}
        ))
        assert redirect_of(root).text == "question?survey=1&question=2"
        assert redirect_of(root).get("method") == "GET"

        root = twiml(client.get("/question", params={**call_params, "survey": 1, "question": 2}))
        assert root.find("Gather").get("action") == "survey?survey=1&question=2"

        root = twiml(client.post(
            "/survey?survey=1&question=2", data={**call_params, "Digits": "1"}
        ))
        assert redirect_of(root).text == "question?survey=1&question=3"

        root = twiml(client.get("/question", params={**call_params, "survey": 1, "question": 3}))
        assert root.find("Record").get("action") == "survey?survey=1&question=3"

        root = twiml(client.post(
            "/survey?survey=1&question=3",
            data={**call_params, "RecordingUrl": "https://api.twilio.com/recordings/RE1"},
        ))
        assert root.find("Say").text == "Thank you for taking the Test Survey survey. Good bye."
        assert root.find("Redirect") is None

        results = client.get("/results").json()
        assert [q["answer"] for q in results[0]["questions"]] == [
            "42", "1", "https://api.twilio.com/recordings/RE1"
        ]

    def test_each_call_gets_its_own_survey(self, client, call_params):
        first = twiml(client.get("/survey", params=call_params))
        second = twiml(client.get("/survey", params=call_params))

        assert redirect_of(first).text == "question?survey=1"
        assert redirect_of(second).text == "question?survey=2"


class TestSmsFlow:
    """A texter answering one question per message."""

    def text(self, client, sms_params, body):
        return twiml(client.get("/survey", params={**sms_params, "Body": body}))

    def follow(self, client, sms_params, redirect, body=None):
        params = dict(sms_params)
        if body is not None:
            params["Body"] = body
        path = "/" + redirect.text
        if redirect.get("method") == "POST":
            return twiml(client.post(path, data=params))
        return twiml(client.get(path, params=params))

    def test_first_text_starts_survey(self, client, sms_params):
        root = self.text(client, sms_params, "hi")

        assert root.find("Message").text == "Welcome to the Test Survey survey"
        assert redirect_of(root).text == "question?survey=1"

    def test_question_sent_as_single_message(self, client, sms_params):
        root = self.text(client, sms_params, "hi")
        root = self.follow(client, sms_params, redirect_of(root))

        messages = root.findall("Message")
        assert len(messages) == 1
        assert messages[0].text == "How old are you?\n\nReply with a number."

    def test_reply_is_routed_to_answer(self, client, sms_params):
        root = self.text(client, sms_params, "hi")
        self.follow(client, sms_params, redirect_of(root))

        root = self.text(client, sms_params, "30")

        redirect = redirect_of(root)
        assert redirect.text == "survey?survey=1&question=1"
        assert redirect.get("method") == "POST"

    def test_complete_survey_by_text(self, client, sms_params):
        root = self.text(client, sms_params, "hi")
        root = self.follow(client, sms_params, redirect_of(root))

        for reply in ["30", "1", "A good day"]:
            root = self.text(client, sms_params, reply)
            root = self.follow(client, sms_params, redirect_of(root), body=reply)
            if root.find("Redirect") is not None:
                root = self.follow(client, sms_params, redirect_of(root))

        assert root.find("Message").text == "Thank you for taking the Test Survey survey. Good bye."

        results = client.get("/results").json()
        assert [q["answer"] for q in results[0]["questions"]] == ["30", "1", "A good day"]

        # The session is closed, so the next text starts over
        root = self.text(client, sms_params, "again")
        assert redirect_of(root).text == "question?survey=2"

    def test_texters_are_tracked_separately(self, client, sms_params):
        other = {**sms_params, "From": "+15550001111"}

        root = self.text(client, sms_params, "hi")
        self.follow(client, sms_params, redirect_of(root))

        root = self.text(client, other, "hello")
        assert root.find("Message").text == "Welcome to the Test Survey survey"
        assert redirect_of(root).text == "question?survey=2"


class TestErrorResponses:
    """Failure paths still answer with TwiML."""

    def test_missing_definition(self, client, call_params, surveys_dir, survey_loader):
        (surveys_dir / "automated_survey.yaml").unlink()
        survey_loader.clear_cache()

        root = twiml(client.get("/survey", params=call_params))

        assert root.find("Say").text == UNAVAILABLE_MESSAGE

    def test_colliding_question_ids(self, client, call_params, surveys_dir, survey_loader):
        (surveys_dir / "automated_survey.yaml").write_text(
            "title: Mixed\nquestions:\n"
            "  - body: First?\n    type: voice\n"
            "  - id: 1\n    body: Second?\n    type: voice\n"
        )
        survey_loader.clear_cache()

        root = twiml(client.get("/survey", params=call_params))

        assert root.find("Say").text == UNAVAILABLE_MESSAGE
        assert root.find("Redirect") is None

    def test_answer_while_database_down(self, client, call_params):
        client.get("/survey", params=call_params)
        failure = OperationalError("SELECT", {}, Exception("down"))

        with patch("app.services.survey_engine.SurveyRepository.find", side_effect=failure):
            root = twiml(client.post(
                "/survey?survey=1&question=1", data={**call_params, "Digits": "1"}
            ))

        assert root.find("Say").text == ERROR_MESSAGE

    def test_question_while_database_down(self, client, sms_params):
        failure = OperationalError("SELECT", {}, Exception("down"))

        with patch("app.services.survey_engine.SurveyRepository.find", side_effect=failure):
            root = twiml(client.get("/question", params={**sms_params, "survey": 1}))

        assert root.find("Message").text == ERROR_MESSAGE

    def test_text_while_database_down(self, client, sms_params):
        failure = OperationalError("SELECT", {}, Exception("down"))

        with patch(
            "app.services.survey_engine.SurveySession.find_active", side_effect=failure
        ):
            root = twiml(client.get("/survey", params={**sms_params, "Body": "hi"}))

        assert root.find("Message").text == UNAVAILABLE_MESSAGE

    def test_unknown_survey(self, client, call_params):
        root = twiml(client.get("/question", params={**call_params, "survey": 99}))

        assert root.find("Say").text == NOT_FOUND_MESSAGE

    def test_unknown_question(self, client, call_params):
        client.get("/survey", params=call_params)

        root = twiml(client.get("/question", params={**call_params, "survey": 1, "question": 9}))

        assert root.find("Say").text == NOT_FOUND_MESSAGE

    def test_answer_for_unknown_survey(self, client, call_params):
        root = twiml(client.post("/survey?survey=99&question=1", data={**call_params, "Digits": "1"}))

        assert root.find("Say").text == NOT_FOUND_MESSAGE

    def test_answer_without_input(self, client, call_params):
        client.get("/survey", params=call_params)

        root = twiml(client.post("/survey?survey=1&question=1", data=call_params))

        assert root.find("Say").text == ERROR_MESSAGE

    def test_sms_errors_are_messages(self, client, sms_params):
        root = twiml(client.get("/question", params={**sms_params, "survey": 99}))

        assert root.find("Message").text == NOT_FOUND_MESSAGE

    def test_empty_survey_says_goodbye(self, client, call_params, surveys_dir, survey_loader):
        (surveys_dir / "automated_survey.yaml").write_text("title: Empty\n")
        survey_loader.clear_cache()
        client.get("/survey", params=call_params)

        root = twiml(client.get("/question", params={**call_params, "survey": 1}))

        assert root.find("Say").text == "Thank you for taking the Empty survey. Good bye."

    def test_missing_survey_parameter(self, client, call_params):
        response = client.get("/question", params=call_params)

        assert response.status_code == 422

    def test_malformed_phone_number(self, client, call_params):
        response = client.get("/survey", params={**call_params, "From": "not-a-number"})

        assert response.status_code == 400


class TestSignatureVerification:
    """Webhooks are rejected unless Twilio signed them."""

    @pytest.fixture
    def enabled_settings(self):
        with patch("app.middleware.twilio_auth.get_settings") as mock:
            mock.return_value.verify_twilio_signature = True
            mock.return_value.twilio_auth_token = "route_test_token"
            yield mock.return_value

    def test_unsigned_request_rejected(self, client, enabled_settings):
        response = client.get("/survey")

        assert response.status_code == 403

    def test_bad_signature_rejected(self, client, enabled_settings):
        response = client.get("/survey", headers={"X-Twilio-Signature": "bogus"})

        assert response.status_code == 403

    def test_signed_request_accepted(self, client, enabled_settings):
        signature = RequestValidator("route_test_token").compute_signature(
            "http://testserver/survey", {}
        )

        response = client.get("/survey", headers={"X-Twilio-Signature": signature})

        root = twiml(response)
        assert redirect_of(root).text == "question?survey=1"

    def test_results_not_signed(self, client, enabled_settings):
        assert client.get("/results").status_code == 200


class TestResultsEndpoint:
    """Tests for GET /results."""

    def test_no_results(self, client):
        response = client.get("/results")

        assert response.status_code == 200
        assert response.json() == []

    def test_lists_unanswered_questions(self, client, call_params):
        client.get("/survey", params=call_params)

        results = client.get("/results").json()

        assert len(results) == 1
        assert results[0]["title"] == "Test Survey"
        assert results[0]["questions"][0] == {
            "id": 1,
            "body": "How old are you?",
            "type": "numeric",
            "answer": None,
        }


class TestHealthEndpoint:
    """Tests for GET /health and GET /."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    def test_database_down(self, client):
        broken = Mock()
        broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        def override_get_db():
            yield broken

        app.dependency_overrides[get_db] = override_get_db

        response = client.get("/health")

        assert response.status_code == 503

    def test_root(self, client):
        body = client.get("/").json()

        assert body["service"] == "Automated Survey"
        assert body["status"] == "operational"
        assert body["survey"] == "automated_survey"
