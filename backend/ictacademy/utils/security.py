from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib
import hmac
import secrets

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.profile import Profile
from ..services.role_service import SessionRoleResolver, SessionRoles
from ..config import settings
from .helpers import db_errors

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# OAuth2 scheme
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

RESET_TOKEN_SCOPE = "password_reset"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against hashed password"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def generate_otp(length: int = None) -> str:
    """Generate a random numeric OTP code"""
    length = length or settings.OTP_LENGTH
    return ''.join(str(secrets.randbelow(10)) for _ in range(length))


def hash_otp(code: str, phone: str) -> str:
    """
    SHA-256 hex digest of ``code + phone``.

    ``phone`` is the string exactly as the client sent it, NOT the
    normalized form. Issuance and verification must both pass the raw
    input, so "0771234567" at issuance and "+94771234567" at verification
    never match even though both normalize to the same number.
    """
    return hashlib.sha256(f"{code}{phone}".encode()).hexdigest()


def otp_hash_matches(code: str, phone: str, expected_hash: str) -> bool:
    return hmac.compare_digest(hash_otp(code, phone), expected_hash or "")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_reset_token(canonical_phone: str) -> str:
    """Short-lived token proving a RECOVERY OTP was verified for this phone"""
    return create_access_token(
        data={"sub": canonical_phone, "scope": RESET_TOKEN_SCOPE},
        expires_delta=timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
    )


def decode_reset_token(token: str) -> Optional[str]:
    """Return the canonical phone of a valid reset token, else None"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("scope") != RESET_TOKEN_SCOPE:
        return None
    return payload.get("sub")


@dataclass(frozen=True)
class CurrentSession:
    """Authenticated account and the roles resolved for this request"""
    profile: Profile
    roles: SessionRoles


def session_from_token(token: str, db: Session) -> CurrentSession:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None or payload.get("scope") == RESET_TOKEN_SCOPE:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    # A broken store is reported as an internal error, not as bad credentials
    with db_errors("session profile load", db):
        profile = db.query(Profile).filter(Profile.id == user_id).first()
    if profile is None:
        raise credentials_exception

    # Roles are re-read on every request so grants and revocations apply
    # without signing in again
    roles = SessionRoleResolver(db).resolve(profile.id)
    return CurrentSession(profile=profile, roles=roles)


async def get_current_session(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> CurrentSession:
    """Get current authenticated account from JWT token"""
    return session_from_token(token, db)


def require_admin(current: CurrentSession = Depends(get_current_session)) -> CurrentSession:
    if not current.roles.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Administrator role required"
        )
    return current


def require_moderator(current: CurrentSession = Depends(get_current_session)) -> CurrentSession:
    if not current.roles.is_moderator_or_above:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Moderator role required"
        )
    return current
