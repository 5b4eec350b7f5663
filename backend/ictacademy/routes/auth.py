from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..exceptions import InputValidationError, InvalidCredentials, ResetNotAuthorized
from ..schemas.auth import (
    OTPSendRequest, OTPSendResponse, OTPVerifyRequest, OTPVerifyResponse,
    ProfileSummary, PasswordResetRequest, PasswordResetResponse,
    LoginRequest, TokenResponse, SessionRolesResponse
)
from ..services.credential_resolver import CredentialResolver
from ..services.otp_service import OtpIssuer, OtpVerifier, normalize_purpose
from ..services.otp_store import get_otp_store
from ..services.password_service import PasswordService
from ..services.role_service import SessionRoleResolver, SessionRoles, SessionSnapshot
from ..services.sms_service import get_sms_dispatcher
from ..utils.phone import normalize_phone
from ..utils.security import (
    CurrentSession, create_access_token, create_reset_token, decode_reset_token,
    get_current_session, optional_oauth2_scheme, session_from_token
)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_store(db: Session = Depends(get_db)):
    return get_otp_store(db)


def _session_response(user_id: str, roles: SessionRoles) -> SessionRolesResponse:
    return SessionRolesResponse(user_id=user_id, **roles.to_dict())


# Request OTP
@router.post("/send-otp", response_model=OTPSendResponse)
async def send_otp(
    request: OTPSendRequest,
    db: Session = Depends(get_db),
    store=Depends(get_store),
    sms=Depends(get_sms_dispatcher)
):
    issuer = OtpIssuer(store, sms, CredentialResolver(db))
    # SMS provider call blocks; keep it off the event loop
    return await run_in_threadpool(issuer.issue, request.phone, request.purpose)


# Verify OTP
@router.post("/verify-otp", response_model=OTPVerifyResponse)
async def verify_otp(
    request: OTPVerifyRequest,
    db: Session = Depends(get_db),
    store=Depends(get_store)
):
    canonical = OtpVerifier(store).verify(request.phone, request.otp, request.purpose)

    # New account or existing account continuation
    profile = CredentialResolver(db).find_by_phone(canonical)

    reset_token = None
    if normalize_purpose(request.purpose) == "RECOVERY":
        reset_token = create_reset_token(canonical)

    return OTPVerifyResponse(
        account_exists=profile is not None,
        profile=ProfileSummary(
            id=profile.id,
            first_name=profile.first_name,
            last_name=profile.last_name
        ) if profile else None,
        reset_token=reset_token
    )


# Reset password (after RECOVERY OTP, or by an administrator)
@router.post("/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    request: PasswordResetRequest,
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
):
    # Reject malformed input before touching the database
    PasswordService.check_reset_request(request.user_id, request.phone, request.new_password)

    user_id = request.user_id
    phone = request.phone

    if request.reset_token:
        token_phone = decode_reset_token(request.reset_token)
        if not token_phone:
            raise InvalidCredentials("Reset session expired. Please verify your phone number again.")
        if user_id:
            raise InputValidationError("A reset token cannot be used with a user ID")
        if phone and normalize_phone(phone) != token_phone:
            raise InvalidCredentials("Reset token does not match this phone number")
        phone = phone or token_phone
    else:
        current = None
        if token:
            try:
                current = session_from_token(token, db)
            except HTTPException:
                # Expired or forged bearer: same answer as no bearer at all
                current = None
        if current is None or not current.roles.is_admin:
            raise ResetNotAuthorized()

    PasswordService(db).reset_password(request.new_password, explicit_id=user_id, phone=phone)
    return {"success": True}


# Phone + password login
@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    profile = PasswordService(db).authenticate(request.phone, request.password)
    # Role loading runs off the event loop; a failure degrades to a student session
    snapshot = SessionSnapshot(profile.id, SessionRoleResolver(db).resolve)
    roles = await snapshot.refresh()

    access_token = create_access_token(data={"sub": profile.id})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "session": _session_response(profile.id, roles)
    }


# Session roles for route authorization
@router.get("/session", response_model=SessionRolesResponse)
async def get_session(current: CurrentSession = Depends(get_current_session)):
    return _session_response(current.profile.id, current.roles)
