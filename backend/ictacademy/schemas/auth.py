from pydantic import BaseModel, validator
from typing import List, Optional

# Fields are optional here: missing values are reported by the services
# with the same error format as every other auth failure.

# OTP Request
class OTPSendRequest(BaseModel):
    phone: Optional[str] = None
    purpose: Optional[str] = None

    @validator('purpose')
    def upper_purpose(cls, v):
        return v.strip().upper() if v else v

class OTPSendResponse(BaseModel):
    success: bool
    message: str
    phone: str  # last 4 digits only
    expires_in: int

# OTP Verify
class OTPVerifyRequest(BaseModel):
    phone: Optional[str] = None
    otp: Optional[str] = None
    purpose: Optional[str] = None

    @validator('purpose')
    def upper_purpose(cls, v):
        return v.strip().upper() if v else v

class ProfileSummary(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    class Config:
        from_attributes = True

class OTPVerifyResponse(BaseModel):
    success: bool = True
    verified: bool = True
    account_exists: bool
    profile: Optional[ProfileSummary] = None
    reset_token: Optional[str] = None

# Password reset
class PasswordResetRequest(BaseModel):
    user_id: Optional[str] = None
    phone: Optional[str] = None
    new_password: Optional[str] = None
    reset_token: Optional[str] = None

class PasswordResetResponse(BaseModel):
    success: bool
    error: Optional[str] = None

# Login
class LoginRequest(BaseModel):
    phone: str
    password: str

class SessionRolesResponse(BaseModel):
    user_id: str
    roles: List[str]
    is_admin: bool
    is_moderator_or_above: bool

class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    session: SessionRolesResponse
