"""
OTP Challenge Store

Holds at most one live challenge per (phone, purpose). The store is a
mapping, not a log: issuing a new OTP replaces the previous challenge with
a new record (and a new id), so an in-flight verification of the old
challenge can never touch the new one.

Attempt increments and deletes are conditional, so two concurrent
verifications of the same challenge cannot exceed the attempt budget or
consume it twice.
"""

import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import CollaboratorFailure
from ..models.otp import OTPRequest
from ..utils.helpers import db_errors
from ..utils.phone import mask_phone

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored timestamps are always UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OtpChallenge:
    phone: str
    purpose: str
    otp_hash: str
    expires_at: datetime
    attempts: int = 0
    id: Any = None


class SqlOtpStore:
    """Challenges in the ``otp_requests`` table"""

    def __init__(self, db: Session):
        self.db = db

    def _errors(self, action: str):
        return db_errors(f"OTP store {action}", self.db)

    @staticmethod
    def _to_challenge(row: OTPRequest) -> OtpChallenge:
        return OtpChallenge(
            id=row.id,
            phone=row.phone,
            purpose=row.purpose,
            otp_hash=row.otp_hash,
            expires_at=as_utc(row.expires_at),
            attempts=row.attempts or 0,
        )

    def get(self, phone: str, purpose: str) -> Optional[OtpChallenge]:
        with self._errors("get"):
            row = self.db.query(OTPRequest).filter(
                OTPRequest.phone == phone,
                OTPRequest.purpose == purpose
            ).first()
            return self._to_challenge(row) if row else None

    def put(self, challenge: OtpChallenge) -> OtpChallenge:
        """Replace any challenge for the same (phone, purpose)"""
        with self._errors("put"):
            for attempt in range(2):
                self.db.query(OTPRequest).filter(
                    OTPRequest.phone == challenge.phone,
                    OTPRequest.purpose == challenge.purpose
                ).delete(synchronize_session=False)

                row = OTPRequest(
                    phone=challenge.phone,
                    purpose=challenge.purpose,
                    otp_hash=challenge.otp_hash,
                    expires_at=challenge.expires_at,
                    attempts=0
                )
                self.db.add(row)
                try:
                    self.db.commit()
                except IntegrityError:
                    # A concurrent issuance inserted first; replace it
                    self.db.rollback()
                    if attempt:
                        raise
                    continue

                self.db.refresh(row)
                logger.info(f"OTP challenge stored: {challenge.purpose} {mask_phone(challenge.phone)}")
                return self._to_challenge(row)

    def increment_attempts(self, challenge_id: int, ceiling: int) -> Optional[int]:
        """
        Add one failed attempt while the count is below ``ceiling``.

        Returns the new count, or None when the challenge is gone or its
        budget was already used up by another request.
        """
        with self._errors("increment"):
            updated = self.db.query(OTPRequest).filter(
                OTPRequest.id == challenge_id,
                OTPRequest.attempts < ceiling
            ).update(
                {OTPRequest.attempts: OTPRequest.attempts + 1},
                synchronize_session=False
            )
            self.db.commit()
            if not updated:
                return None

            row = self.db.query(OTPRequest.attempts).filter(OTPRequest.id == challenge_id).first()
            return row.attempts if row else None

    def delete(self, challenge_id: int) -> bool:
        """Delete a challenge; True only for the call that removed it"""
        with self._errors("delete"):
            deleted = self.db.query(OTPRequest).filter(
                OTPRequest.id == challenge_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0


class RedisOtpStore:
    """
    Challenges as Redis hashes under ``otp:<purpose>:<phone>``.

    The challenge id is ``<key>|<nonce>``; the nonce changes on every
    issuance so ids of superseded challenges stop matching. Keys expire a
    little after ``expires_at`` so the verifier can still report expiry.
    """

    KEY_PREFIX = "otp"
    EXPIRY_GRACE_SECONDS = 60

    INCREMENT_SCRIPT = """
if redis.call('HGET', KEYS[1], 'nonce') ~= ARGV[1] then return -1 end
local attempts = tonumber(redis.call('HGET', KEYS[1], 'attempts') or '0')
if attempts >= tonumber(ARGV[2]) then return -1 end
return redis.call('HINCRBY', KEYS[1], 'attempts', 1)
"""

    DELETE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'nonce') ~= ARGV[1] then return 0 end
return redis.call('DEL', KEYS[1])
"""

    def __init__(self, redis_client):
        self.redis = redis_client
        self._increment = redis_client.register_script(self.INCREMENT_SCRIPT)
        self._delete = redis_client.register_script(self.DELETE_SCRIPT)

    def _key(self, phone: str, purpose: str) -> str:
        return f"{self.KEY_PREFIX}:{purpose}:{phone}"

    @staticmethod
    def _split_id(challenge_id: str):
        key, _, nonce = challenge_id.rpartition("|")
        return key, nonce

    @contextmanager
    def _errors(self, action: str):
        from redis.exceptions import RedisError

        try:
            yield
        except RedisError as e:
            logger.exception(f"Redis OTP store {action} failed")
            raise CollaboratorFailure(f"Redis OTP store {action} failed: {e}") from e

    def get(self, phone: str, purpose: str) -> Optional[OtpChallenge]:
        key = self._key(phone, purpose)
        with self._errors("get"):
            record = self.redis.hgetall(key)
        if not record:
            return None
        return OtpChallenge(
            id=f"{key}|{record['nonce']}",
            phone=phone,
            purpose=purpose,
            otp_hash=record["otp_hash"],
            expires_at=datetime.fromtimestamp(float(record["expires_at"]), tz=timezone.utc),
            attempts=int(record.get("attempts") or 0),
        )

    def put(self, challenge: OtpChallenge) -> OtpChallenge:
        key = self._key(challenge.phone, challenge.purpose)
        nonce = secrets.token_hex(8)
        expires_ts = as_utc(challenge.expires_at).timestamp()
        with self._errors("put"):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping={
                "nonce": nonce,
                "otp_hash": challenge.otp_hash,
                "expires_at": str(expires_ts),
                "attempts": 0,
            })
            pipe.expireat(key, int(expires_ts) + self.EXPIRY_GRACE_SECONDS)
            pipe.execute()
        logger.info(f"OTP challenge stored in redis: {challenge.purpose} {mask_phone(challenge.phone)}")
        return replace(challenge, id=f"{key}|{nonce}", attempts=0)

    def increment_attempts(self, challenge_id: str, ceiling: int) -> Optional[int]:
        key, nonce = self._split_id(challenge_id)
        with self._errors("increment"):
            result = int(self._increment(keys=[key], args=[nonce, ceiling]))
        return None if result < 0 else result

    def delete(self, challenge_id: str) -> bool:
        key, nonce = self._split_id(challenge_id)
        with self._errors("delete"):
            return int(self._delete(keys=[key], args=[nonce])) > 0


def get_otp_store(db: Session):
    """Store for the configured backend"""
    from ..config import settings

    if settings.OTP_STORE_BACKEND == "redis":
        from ..database import get_redis
        return RedisOtpStore(get_redis())
    return SqlOtpStore(db)
