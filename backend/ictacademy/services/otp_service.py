"""
OTP Issuance and Verification

Verification is a small state machine per challenge:

    PENDING -> VERIFIED | EXPIRED | LOCKED | REJECTED (retryable)

Every terminal outcome deletes the challenge; only a wrong code that
leaves attempts in the budget keeps it.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from ..config import settings
from ..exceptions import (
    AccountAlreadyRegistered,
    ChallengeNotFound,
    CollaboratorFailure,
    InputValidationError,
    InvalidCode,
    OtpExpired,
    TooManyAttempts,
)
from ..models.otp import OTP_PURPOSES
from ..utils.phone import normalize_phone, mask_phone
from ..utils.security import generate_otp, hash_otp, otp_hash_matches
from .otp_store import OtpChallenge

logger = logging.getLogger(__name__)

# Fixed policy: the attempt that brings the count to 3 locks the challenge
MAX_ATTEMPTS = 3

PURPOSE_ALIASES = {"RESET_PASSWORD": "RECOVERY"}

OTP_MESSAGE = "Your ICT Academy verification code is: {code}. Valid for {minutes} minutes."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_purpose(purpose: Optional[str]) -> str:
    purpose = PURPOSE_ALIASES.get(purpose, purpose)
    if purpose not in OTP_PURPOSES:
        raise InputValidationError(f"Purpose must be one of: {', '.join(OTP_PURPOSES)}")
    return purpose


def _canonical_or_error(phone: str) -> str:
    canonical = normalize_phone(phone)
    if not canonical:
        raise InputValidationError("Valid phone number is required")
    return canonical


class OtpVerifier:
    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def verify(self, phone: str, code: str, purpose: str) -> str:
        """
        Check ``code`` against the live challenge for (phone, purpose).

        ``phone`` must be the same string the client sent when the OTP was
        issued: it is part of the hash input as received, not normalized.
        Returns the canonical phone on success, raises an AuthError otherwise.
        """
        if not phone or not code or not purpose:
            raise InputValidationError("Phone, OTP, and purpose are required")
        purpose = normalize_purpose(purpose)
        canonical = _canonical_or_error(phone)
        masked = mask_phone(canonical)

        challenge = self.store.get(canonical, purpose)
        if challenge is None:
            raise ChallengeNotFound()

        if self.clock() >= challenge.expires_at:
            self.store.delete(challenge.id)
            logger.info(f"OTP expired: {purpose} {masked}")
            raise OtpExpired()

        if challenge.attempts >= MAX_ATTEMPTS:
            self.store.delete(challenge.id)
            logger.warning(f"OTP locked: {purpose} {masked}")
            raise TooManyAttempts()

        if not otp_hash_matches(code, phone, challenge.otp_hash):
            attempts = self.store.increment_attempts(challenge.id, MAX_ATTEMPTS)
            if attempts is None:
                # Budget used up, or the challenge was replaced or consumed meanwhile
                if not self.store.delete(challenge.id):
                    raise ChallengeNotFound()
                logger.warning(f"OTP locked by concurrent attempts: {purpose} {masked}")
                raise TooManyAttempts()
            if attempts >= MAX_ATTEMPTS:
                self.store.delete(challenge.id)
                logger.warning(f"OTP locked after failed attempt: {purpose} {masked}")
                raise TooManyAttempts()
            logger.info(f"Invalid OTP: {purpose} {masked} ({attempts}/{MAX_ATTEMPTS})")
            raise InvalidCode(remaining=MAX_ATTEMPTS - attempts)

        if not self.store.delete(challenge.id):
            # Consumed by a concurrent request
            raise ChallengeNotFound()

        logger.info(f"OTP verified: {purpose} {masked}")
        return canonical


class OtpIssuer:
    def __init__(
        self,
        store,
        sms,
        resolver,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: int = None
    ):
        self.store = store
        self.sms = sms
        self.resolver = resolver
        self.clock = clock
        self.ttl_seconds = ttl_seconds or settings.OTP_TTL_SECONDS

    def issue(self, phone: str, purpose: str) -> dict:
        """Create (or replace) the challenge for (phone, purpose) and text the code"""
        if not phone or not purpose:
            raise InputValidationError("Phone and purpose are required")
        purpose = normalize_purpose(purpose)
        canonical = _canonical_or_error(phone)

        if purpose == "REGISTER" and self.resolver.find_by_phone(phone) is not None:
            raise AccountAlreadyRegistered()

        code = generate_otp()
        challenge = self.store.put(OtpChallenge(
            phone=canonical,
            purpose=purpose,
            # Raw input, see hash_otp
            otp_hash=hash_otp(code, phone),
            expires_at=self.clock() + timedelta(seconds=self.ttl_seconds),
        ))

        message = OTP_MESSAGE.format(code=code, minutes=max(self.ttl_seconds // 60, 1))
        result = self.sms.send([canonical], message)
        if not result.success:
            # Nobody can receive this code; do not leave it live
            self.store.delete(challenge.id)
            raise CollaboratorFailure(f"OTP SMS dispatch failed: {result.message}")

        logger.info(f"OTP issued: {purpose} {mask_phone(canonical)}")
        return {
            "success": True,
            "message": "OTP sent successfully",
            "phone": canonical[-4:],
            "expires_in": self.ttl_seconds,
        }
