import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..exceptions import AccountNotFound, InputValidationError, InvalidCredentials
from ..models.profile import Profile
from ..utils.helpers import db_errors
from ..utils.phone import mask_phone
from ..utils.security import get_password_hash, verify_password
from .credential_resolver import CredentialResolver

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class PasswordService:
    def __init__(self, db: Session, resolver: CredentialResolver = None):
        self.db = db
        self.resolver = resolver or CredentialResolver(db)

    @staticmethod
    def check_reset_request(
        explicit_id: Optional[str],
        phone: Optional[str],
        new_password: Optional[str]
    ) -> None:
        """Input checks; runs before any database access"""
        if not new_password:
            raise InputValidationError("New password is required")
        if not explicit_id and not (phone or "").strip():
            raise InputValidationError("User ID or phone number is required")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise InputValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    def reset_password(
        self,
        new_password: str,
        explicit_id: Optional[str] = None,
        phone: Optional[str] = None
    ) -> str:
        """Set a new password for the resolved account and return its id"""
        self.check_reset_request(explicit_id, phone, new_password)
        user_id = self.resolver.resolve(explicit_id=explicit_id, raw_phone=phone)

        with db_errors("password reset", self.db):
            profile = self.db.query(Profile).filter(Profile.id == user_id).first()
            if profile is None:
                raise AccountNotFound()

            profile.password_hash = get_password_hash(new_password)
            self.db.commit()

        logger.info(f"Password reset for user {user_id}")
        return user_id

    def authenticate(self, phone: str, password: str) -> Profile:
        """Phone + password login; every failure looks the same to the caller"""
        if not phone or not password:
            raise InputValidationError("Phone and password are required")

        try:
            profile = self.resolver.find_by_phone(phone)
        except InputValidationError:
            raise InvalidCredentials()

        if profile is None or not verify_password(password, profile.password_hash):
            logger.info(f"Failed login for {mask_phone(phone)}")
            raise InvalidCredentials()

        return profile
