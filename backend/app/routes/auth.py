# app/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials

from app.auth.handoff import HandoffRouter
from app.auth.principal import Principal
from app.core.errors import (
    AlreadyVerifiedError,
    AuthError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    WeakPasswordError,
)
from app.dependencies.auth import bearer_scheme, get_current_principal, get_optional_principal
from app.dependencies.services import get_handoff_router, get_identity_lifecycle
from app.schemas.auth import (
    ForgotPasswordIn,
    HandoffOut,
    IdentityOut,
    LoginIn,
    MessageOut,
    PrincipalOut,
    RefreshIn,
    RegisterIn,
    RegisterOut,
    ResendOtpIn,
    ResendOtpOut,
    ResetPasswordIn,
    TokenOut,
    VerifyEmailIn,
)
from app.services.identity_lifecycle import IdentityLifecycle, LoginResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

GENERIC_RESEND_MESSAGE = "If that email is registered, a new verification code was sent."
GENERIC_FORGOT_MESSAGE = "If that email is registered, a password reset link was sent."


# -----------------------------
# Error translation
# -----------------------------
_STATUS_BY_ERROR: dict[type[AuthError], int] = {
    ConflictError: status.HTTP_409_CONFLICT,
    AlreadyVerifiedError: status.HTTP_409_CONFLICT,
    InvalidCredentialsError: status.HTTP_401_UNAUTHORIZED,
    InvalidTokenError: status.HTTP_401_UNAUTHORIZED,
}


def _http_error(exc: AuthError) -> HTTPException:
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        status.HTTP_400_BAD_REQUEST,
    )
    details: dict = {"code": exc.code}
    if isinstance(exc, WeakPasswordError):
        details["violations"] = exc.violations
    if isinstance(exc, InvalidTokenError):
        # Token problems are never described beyond this.
        return HTTPException(
            status_code=status_code,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return HTTPException(status_code=status_code, detail={"message": exc.detail, "details": details})


def _token_out(result: LoginResult) -> dict:
    return {
        "access_token": result.access_token,
        "refresh_token": result.refresh_token,
        "token_type": "bearer",
        "user": result.user,
        "redirect_url": result.redirect_url,
    }


# -----------------------------
# Registration + verification
# -----------------------------
@router.post("/register", response_model=RegisterOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        result = lifecycle.register(
            payload.email,
            payload.password,
            payload.role,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except AuthError as e:
        raise _http_error(e)

    if result.email_sent is False:
        message = "Account created, but we could not send the verification email. Please request a new code."
    else:
        message = "Account created successfully! Please check your email for the verification code."

    return {
        "message": message,
        "user": result.user,
        "needs_verification": True,
        "email_sent": result.email_sent,
        "email_delivery": result.email_delivery,
    }


@router.post("/verify-email", response_model=MessageOut)
def verify_email(payload: VerifyEmailIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        lifecycle.verify_email(payload.email, payload.otp)
    except AuthError as e:
        raise _http_error(e)
    return {"message": "Email verified"}


@router.post("/resend-otp", response_model=ResendOtpOut)
def resend_otp(payload: ResendOtpIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        lifecycle.resend_otp(payload.email)
    except AlreadyVerifiedError as e:
        raise _http_error(e)

    # Same body for known and unknown addresses; delivery status would reveal which.
    return {"message": GENERIC_RESEND_MESSAGE}


# -----------------------------
# Sessions
# -----------------------------
@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        result = lifecycle.login(payload.email, payload.password)
    except InvalidCredentialsError as e:
        raise _http_error(e)
    return _token_out(result)


@router.post("/refresh", response_model=TokenOut)
def refresh(payload: RefreshIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        result = lifecycle.refresh(payload.refresh_token)
    except InvalidTokenError as e:
        raise _http_error(e)
    return _token_out(result)


@router.get("/me", response_model=PrincipalOut)
def me(principal: Principal = Depends(get_current_principal)):
    return principal.to_public_dict()


@router.get("/session", response_model=PrincipalOut)
def session(principal: Principal = Depends(get_optional_principal)):
    return principal.to_public_dict()


@router.get("/handoff", response_model=HandoffOut)
def handoff(
    principal: Principal = Depends(get_current_principal),
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    router_: HandoffRouter = Depends(get_handoff_router),
):
    """
    Hand-off URL for the caller's own app, carrying the presented access token.
    """
    token = creds.credentials if creds else ""
    return {"redirect_url": router_.build_handoff_url(principal.role, token)}


# -----------------------------
# Password reset
# -----------------------------
@router.post("/forgot-password", response_model=MessageOut)
def forgot_password(payload: ForgotPasswordIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    # Same answer whether or not the email exists, and whether or not the mail went out.
    lifecycle.forgot_password(payload.email)
    return {"message": GENERIC_FORGOT_MESSAGE}


@router.get("/reset-password", response_model=MessageOut)
def check_reset_token(token: str = "", lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        lifecycle.check_reset_token(token)
    except AuthError as e:
        raise _http_error(e)
    return {"message": "Reset link is valid"}


@router.post("/reset-password", response_model=MessageOut)
def reset_password(payload: ResetPasswordIn, lifecycle: IdentityLifecycle = Depends(get_identity_lifecycle)):
    try:
        lifecycle.reset_password(payload.token, payload.password)
    except AuthError as e:
        raise _http_error(e)
    return {"message": "Password reset successful"}
