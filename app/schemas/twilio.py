"""Pydantic schemas for Twilio webhook requests.

This module defines validation rules for incoming Twilio voice and messaging
webhooks. Twilio sends the same request shape for both; which identifiers are
present tells the channel apart.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.schemas.survey import Channel


class TwilioWebhookRequest(BaseModel):
    """Twilio voice/SMS webhook request schema.

    Only the fields the survey reads are declared; any other parameter Twilio
    sends (and the ``survey``/``question`` query parameters) is kept as an
    extra field so the full mapping can be handed to the survey model.

    Attributes:
        AccountSid: Twilio account identifier (34 characters)
        CallSid: Call identifier, present on voice webhooks
        MessageSid: Message identifier, present on messaging webhooks
        From: Sender's phone number in E.164 format (e.g., +15551234567)
        To: Recipient's phone number in E.164 format
        Body: Text content of an SMS
        Digits: Keys pressed during a <Gather>
        RecordingUrl: Location of a <Record> result

    Example:
        {
            "CallSid": "CA1234567890abcdef1234567890abcdef",
            "AccountSid": "AC1234567890abcdef1234567890abcdef",
            "From": "+15551234567",
            "To": "+15559876543",
            "Digits": "1"
        }
    """

    AccountSid: Optional[str] = Field(
        None,
        min_length=34,
        max_length=34,
        description="Twilio account identifier"
    )
    CallSid: Optional[str] = Field(
        None,
        min_length=34,
        max_length=34,
        description="Unique call identifier from Twilio"
    )
    MessageSid: Optional[str] = Field(
        None,
        min_length=34,
        max_length=34,
        description="Unique message identifier from Twilio"
    )
    From: Optional[str] = Field(None, description="Sender phone number in E.164 format")
    To: Optional[str] = Field(None, description="Recipient phone number in E.164 format")
    Body: Optional[str] = Field(None, description="SMS message text content")
    Digits: Optional[str] = Field(None, description="Keypad input")
    RecordingUrl: Optional[str] = Field(None, description="Recorded answer URL")

    model_config = {
        "populate_by_name": True,
        "str_strip_whitespace": True,
        "extra": "allow",
    }

    @field_validator("From", "To")
    @classmethod
    def validate_e164_format(cls, v: Optional[str], info) -> Optional[str]:
        """Validate phone numbers are in E.164 format.

        Raises:
            ValueError: If phone number is not in valid E.164 format

        Example:
            Valid: +15551234567, +442071234567
            Invalid: 5551234567, +1-555-123-4567
        """
        if v is None:
            return v
        field_name = info.field_name

        if not v.startswith("+"):
            raise ValueError(
                f"{field_name} must be in E.164 format (starting with '+'). "
                f"Got: {v}"
            )

        digits = v[1:]
        if not digits.isdigit():
            raise ValueError(
                f"{field_name} must contain only digits after '+'. "
                f"Got: {v}"
            )

        if len(digits) < 7 or len(digits) > 15:
            raise ValueError(
                f"{field_name} must have 7-15 digits after '+'. "
                f"Got {len(digits)} digits: {v}"
            )

        return v

    @field_validator("AccountSid", "CallSid", "MessageSid")
    @classmethod
    def validate_sid_format(cls, v: Optional[str], info) -> Optional[str]:
        """Validate SID prefixes: AC for accounts, CA for calls, SM/MM for messages."""
        if v is None:
            return v
        prefixes = {
            "AccountSid": ("AC",),
            "CallSid": ("CA",),
            "MessageSid": ("SM", "MM"),
        }[info.field_name]
        if not v.startswith(prefixes):
            raise ValueError(
                f"{info.field_name} must start with {' or '.join(prefixes)}. Got: {v[:2]}"
            )
        return v

    @property
    def channel(self) -> Channel:
        """Channel this webhook arrived on."""
        return Channel.from_fields(self.as_fields())

    @property
    def is_sms(self) -> bool:
        return self.channel == Channel.SMS

    def as_fields(self) -> dict[str, str]:
        """Return the request as a flat field-name to value mapping."""
        return {
            key: str(value)
            for key, value in self.model_dump(exclude_none=True).items()
        }
