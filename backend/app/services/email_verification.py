from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import AlreadyVerifiedError, OtpExpiredError, OtpMismatchError
from app.core.security import generate_salt, hash_secret_with_salt, verify_salted_secret
from app.core.timeutil import as_utc, utcnow
from app.models.user import User
from app.services.email_templates import render_otp_email
from app.services.mail_delivery import DispatchResult, MailDispatcher, OutboundEmail, RetryPolicy
from app.services.users import compare_and_update, update_user_fields

logger = logging.getLogger(__name__)


def generate_otp(length: int = 6) -> str:
    """Numeric code of exactly ``length`` digits (leading zeros allowed)."""
    if length < 4:
        raise ValueError("OTP length must be at least 4")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def prepare_otp(settings: Settings, *, now: datetime | None = None) -> tuple[str, dict]:
    """
    Returns (raw code, column values for the pending OTP). Lets registration
    create the identity with its pending code in the same INSERT.
    """
    issued_at = now or utcnow()
    code = generate_otp(settings.OTP_LENGTH)
    fields = {
        "email_otp_hash": hash_secret_with_salt(code, generate_salt()),
        "email_otp_expires_at": issued_at + timedelta(minutes=settings.OTP_EXPIRE_MINUTES),
    }
    return code, fields


def issue_otp(db: Session, user: User, *, settings: Settings, now: datetime | None = None) -> str:
    """
    Generates a fresh code, stores its hash + expiry as the user's pending OTP
    (replacing any earlier one), and returns the raw code for delivery.
    """
    code, fields = prepare_otp(settings, now=now)
    update_user_fields(db, user, **fields)
    logger.info("Issued email verification code: user_id=%s", user.id)
    return code


def send_otp(dispatcher: MailDispatcher, user: User, code: str, *, settings: Settings) -> DispatchResult:
    subject, html_body = render_otp_email(
        app_name=settings.APP_NAME,
        first_name=user.display_name,
        code=code,
        expires_minutes=settings.OTP_EXPIRE_MINUTES,
    )
    user_id = user.id
    return dispatcher.dispatch(
        OutboundEmail(to=user.email, subject=subject, html_body=html_body, kind="otp"),
        RetryPolicy.from_settings(settings),
        on_done=lambda outcome: logger.info(
            "Verification email delivery finished: user_id=%s sent=%s attempts=%s",
            user_id,
            outcome.sent,
            outcome.attempts,
        ),
    )


def verify_otp(db: Session, user: User, code: str, *, now: datetime | None = None) -> None:
    """
    Accepts the code iff it matches the current pending code and has not expired.
    On success the user becomes verified and the pending code is cleared.

    Raises:
        AlreadyVerifiedError: the user is already verified.
        OtpExpiredError: no pending code, or it expired.
        OtpMismatchError: the code does not match (state unchanged).
    """
    if user.is_verified:
        raise AlreadyVerifiedError()

    checked_at = now or utcnow()
    stored_hash = user.email_otp_hash
    expires_at = as_utc(user.email_otp_expires_at)
    if stored_hash is None or expires_at is None or checked_at > expires_at:
        raise OtpExpiredError()

    if not verify_salted_secret((code or "").strip(), stored_hash):
        raise OtpMismatchError()

    # Only consume the code we checked; a concurrent resend replaces the hash and wins.
    consumed = compare_and_update(
        db,
        user,
        {"email_otp_hash": stored_hash},
        is_verified=True,
        verified_at=checked_at,
        email_otp_hash=None,
        email_otp_expires_at=None,
    )
    if not consumed:
        raise OtpMismatchError()
    logger.info("Email verified: user_id=%s", user.id)


def resend_otp(db: Session, dispatcher: MailDispatcher, user: User, *, settings: Settings) -> DispatchResult:
    """Issues and sends a new code; the previous code stops working immediately."""
    if user.is_verified:
        raise AlreadyVerifiedError()
    code = issue_otp(db, user, settings=settings)
    return send_otp(dispatcher, user, code, settings=settings)
