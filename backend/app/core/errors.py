# app/core/errors.py
"""
Domain errors raised by the identity services.

Services raise these; routes translate them into HTTPException with a stable
``details.code`` so clients can branch without parsing messages. Messages are
safe to show to end users.
"""
from __future__ import annotations


class AuthError(Exception):
    code = "AUTH_ERROR"
    message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class ConflictError(AuthError):
    code = "EMAIL_TAKEN"
    message = "Email already registered"


class InvalidCredentialsError(AuthError):
    # Same message for unknown email and wrong password.
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class OtpExpiredError(AuthError):
    code = "OTP_EXPIRED"
    message = "Verification code has expired. Please request a new one."


class OtpMismatchError(AuthError):
    code = "OTP_INVALID"
    message = "Invalid verification code"


class AlreadyVerifiedError(AuthError):
    code = "ALREADY_VERIFIED"
    message = "Email already verified. Please log in."


class ResetTokenExpiredError(AuthError):
    code = "RESET_TOKEN_EXPIRED"
    message = "This reset link has expired. Please request a new password reset."


class ResetTokenInvalidError(AuthError):
    code = "RESET_TOKEN_INVALID"
    message = "Invalid or expired reset link"


class InvalidTokenError(AuthError):
    code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class TokenExpiredError(InvalidTokenError):
    code = "TOKEN_EXPIRED"


class RegistrationRoleError(AuthError):
    code = "ROLE_NOT_ALLOWED"
    message = "role must be job_seeker or employer"


class WeakPasswordError(AuthError):
    code = "WEAK_PASSWORD"
    message = "Password does not meet requirements."

    def __init__(self, violations: list[str]) -> None:
        super().__init__()
        self.violations = violations
