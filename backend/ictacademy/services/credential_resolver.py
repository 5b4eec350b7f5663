"""
Credential Resolution

Finds the account a phone number belongs to. Stored phones may use any of
the historical conventions (raw digits, 0-prefixed local format, or a
"<digits>@<domain>" login identifier), so the lookup matches every
alternate form exactly and as an identifier prefix.
"""

import logging
from typing import List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..exceptions import AccountNotFound, IdentityIntegrityError, InputValidationError
from ..models.profile import Profile
from ..utils.helpers import db_errors
from ..utils.phone import alternate_forms, local_format, mask_phone

logger = logging.getLogger(__name__)


class CredentialResolver:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def lookup_forms(raw_phone: str) -> Set[str]:
        """
        Alternate forms of the input and of its local format.

        All forms denote the same number, so the union only widens the
        search across storage conventions.
        """
        forms = alternate_forms(raw_phone)
        local = local_format(raw_phone)
        if local:
            forms |= alternate_forms(local)
        return forms

    def _match(self, raw_phone: str) -> List[Profile]:
        forms = self.lookup_forms(raw_phone)
        if not forms:
            raise InputValidationError("Valid phone number is required")

        conditions = []
        for form in sorted(forms):
            conditions.append(Profile.phone == form)
            conditions.append(Profile.phone.startswith(f"{form}@", autoescape=True))

        with db_errors("account lookup", self.db):
            # Two rows are enough to detect a duplicate
            return self.db.query(Profile).filter(or_(*conditions)).limit(2).all()

    def find_by_phone(self, raw_phone: str) -> Optional[Profile]:
        profiles = self._match(raw_phone)
        if len(profiles) > 1:
            logger.error(
                f"Phone {mask_phone(raw_phone)} matches more than one account: "
                f"{', '.join(p.id for p in profiles)}"
            )
            raise IdentityIntegrityError("Phone number matches more than one account")
        return profiles[0] if profiles else None

    def resolve(self, explicit_id: Optional[str] = None, raw_phone: Optional[str] = None) -> str:
        """
        Account id for a password reset target.

        An explicit id wins and is returned without any lookup.
        """
        if explicit_id:
            return explicit_id

        raw_phone = (raw_phone or "").strip()
        if not raw_phone:
            raise InputValidationError("User ID or phone number is required")

        profile = self.find_by_phone(raw_phone)
        if profile is None:
            raise AccountNotFound()
        return profile.id
