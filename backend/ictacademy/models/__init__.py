"""
Models package - Import all SQLAlchemy models here
"""

from .otp import OTPRequest, OTP_PURPOSES
from .profile import Profile
from .user_role import UserRole, ROLES

__all__ = [
    "OTPRequest",
    "OTP_PURPOSES",
    "Profile",
    "UserRole",
    "ROLES",
]
