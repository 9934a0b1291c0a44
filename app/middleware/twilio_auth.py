"""Twilio signature verification for the survey webhooks.

Twilio signs every webhook with an HMAC-SHA1 over the full request URL and,
for POST requests, the form parameters, keyed with the account auth token.
Requests whose X-Twilio-Signature does not verify are rejected with 403
before any survey state is touched.

Reference:
    https://www.twilio.com/docs/usage/security#validating-requests
"""

from typing import Dict, Optional

from fastapi import HTTPException, Request
from twilio.request_validator import RequestValidator

from app.config import get_settings
from app.logging_config import get_logger


logger = get_logger(__name__)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class TwilioSignatureValidator:
    """Checks X-Twilio-Signature values with the configured auth token.

    Signature values and the auth token are never logged.
    """

    def __init__(self, auth_token: Optional[str] = None):
        if auth_token is None:
            auth_token = get_settings().twilio_auth_token
        self.validator = RequestValidator(auth_token)

    def verify_request(
        self,
        request: Request,
        signature: str,
        url: str,
        params: Dict[str, str]
    ) -> bool:
        """Return True when ``signature`` matches ``url`` and ``params``.

        Args:
            request: Incoming request (used for logging the client IP)
            signature: X-Twilio-Signature header value
            url: Full webhook URL including the query string
            params: POST form parameters (empty for GET requests)
        """
        try:
            is_valid = self.validator.validate(url, params, signature)
        except Exception as e:
            # RequestValidator raises on malformed input instead of returning False
            logger.error(
                f"Error validating Twilio signature: {e}",
                extra={"error_type": type(e).__name__}
            )
            return False

        if not is_valid:
            client_ip = _client_ip(request)
            logger.warning(
                f"Invalid Twilio signature from IP: {client_ip}",
                extra={"client_ip": client_ip, "url": url}
            )
            return False

        logger.debug(f"Valid Twilio signature verified for: {url}")
        return True


async def verify_twilio_signature(request: Request) -> None:
    """FastAPI dependency rejecting webhooks that Twilio did not sign.

    Skipped entirely when VERIFY_TWILIO_SIGNATURE is false (local
    development behind a tunnel that rewrites URLs).

    Raises:
        HTTPException(403): If the signature is missing or invalid

    Usage:
        @router.post("/survey", dependencies=[Depends(verify_twilio_signature)])
    """
    if not get_settings().verify_twilio_signature:
        return

    signature = request.headers.get("X-Twilio-Signature")
    if not signature:
        client_ip = _client_ip(request)
        logger.warning(
            f"Missing X-Twilio-Signature header from IP: {client_ip}",
            extra={"client_ip": client_ip}
        )
        raise HTTPException(status_code=403, detail="Missing Twilio signature")

    params: Dict[str, str] = {}
    if request.method == "POST":
        form_data = await request.form()
        params = {key: str(value) for key, value in form_data.items()}

    validator = TwilioSignatureValidator()
    if not validator.verify_request(
        request=request,
        signature=signature,
        url=str(request.url),
        params=params
    ):
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")

    logger.debug("Twilio signature verification passed")
