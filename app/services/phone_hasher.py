"""Phone number hashing for respondent sessions.

SMS sessions are keyed by a salted SHA-256 of the sender's number, so the
database never holds plaintext phone numbers. The hash is deterministic,
which is all a session lookup needs.
"""

import hashlib

from app.config import get_settings


class PhoneHasher:
    """One-way hashing of phone numbers.

    Changing PHONE_HASH_SALT orphans every open session.
    """

    @staticmethod
    def normalize_e164(phone: str) -> str:
        """Twilio already sends E.164, so only whitespace needs removing."""
        return phone.strip()

    @staticmethod
    def hash_phone(phone: str) -> str:
        """Return the 64-character hex digest of the salted phone number.

        Example:
            >>> PhoneHasher.hash_phone("+15551234567") == PhoneHasher.hash_phone(" +15551234567")
            True
        """
        salt = get_settings().phone_hash_salt
        salted = f"{PhoneHasher.normalize_e164(phone)}:{salt}"
        return hashlib.sha256(salted.encode("utf-8")).hexdigest()

    @staticmethod
    def truncate_for_logging(phone_hash: str) -> str:
        """First 12 characters of a hash, safe to put in logs."""
        return f"{phone_hash[:12]}..."
