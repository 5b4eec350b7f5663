"""
Authentication errors

Every error carries a stable machine-readable ``code``, the HTTP status the
API answers with, and a message that is safe to show to the end user.
"""
from fastapi import status


class AuthError(Exception):
    """Base exception for OTP, credential and session operations."""

    code = "auth_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request could not be completed"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ChallengeNotFound(AuthError):
    code = "challenge_not_found"
    message = "No OTP request found. Please request a new OTP."


class OtpExpired(AuthError):
    code = "expired"
    message = "OTP has expired. Please request a new one."


class TooManyAttempts(AuthError):
    code = "too_many_attempts"
    message = "Too many failed attempts. Please request a new OTP."


class InvalidCode(AuthError):
    code = "invalid_code"

    def __init__(self, remaining: int):
        self.remaining = remaining
        noun = "attempt" if remaining == 1 else "attempts"
        super().__init__(f"Invalid OTP. {remaining} {noun} remaining.")


class AccountNotFound(AuthError):
    code = "account_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"


class AccountAlreadyRegistered(AuthError):
    code = "already_registered"
    message = "This phone number is already registered. Please sign in instead."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Incorrect phone number or password"


class InputValidationError(AuthError):
    code = "validation_error"
    message = "Invalid request"


class CollaboratorFailure(AuthError):
    """Store, hashing or messaging failure. Details stay in the logs."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: str = None):
        # The public message is fixed; the argument is kept for logging only
        super().__init__()
        self.detail = message


class IdentityIntegrityError(CollaboratorFailure):
    """More than one account matched a phone number after normalization."""


class ResetNotAuthorized(AuthError):
    """Password reset without a verified phone or an administrator session."""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Verify your phone number or sign in as an administrator"
