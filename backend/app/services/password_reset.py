from __future__ import annotations

import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode

from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import ResetTokenExpiredError, ResetTokenInvalidError
from app.core.security import generate_reset_token, hash_password, hash_token
from app.core.timeutil import as_utc, utcnow
from app.models.user import User
from app.services.email_templates import render_password_reset_email
from app.services.mail_delivery import DispatchResult, MailDispatcher, OutboundEmail, RetryPolicy
from app.services.users import compare_and_update, get_user_by_reset_token_hash, update_user_fields

logger = logging.getLogger(__name__)


def build_reset_url(settings: Settings, token: str) -> str:
    base = settings.PASSWORD_RESET_URL
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({'token': token})}"


def issue_reset_token(db: Session, user: User, *, settings: Settings, now: datetime | None = None) -> str:
    """
    Stores a new pending reset (hash + expiry), superseding any earlier one,
    and returns the raw token.
    """
    issued_at = now or utcnow()
    token = generate_reset_token()
    update_user_fields(
        db,
        user,
        reset_token_hash=hash_token(token),
        reset_token_expires_at=issued_at + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    )
    logger.info("Issued password reset token: user_id=%s", user.id)
    return token


def send_reset_email(dispatcher: MailDispatcher, user: User, token: str, *, settings: Settings) -> DispatchResult:
    subject, html_body = render_password_reset_email(
        app_name=settings.APP_NAME,
        first_name=user.display_name,
        reset_url=build_reset_url(settings, token),
        expires_minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES,
    )
    return dispatcher.dispatch(
        OutboundEmail(to=user.email, subject=subject, html_body=html_body, kind="password_reset"),
        RetryPolicy.for_password_reset(settings),
    )


def find_pending_reset(db: Session, token: str, *, now: datetime | None = None) -> User:
    """
    Resolves a presented reset token to its user.

    Raises:
        ResetTokenInvalidError: unknown token.
        ResetTokenExpiredError: known token past its expiry (left pending).
    """
    if not token or not token.strip():
        raise ResetTokenInvalidError()

    user = get_user_by_reset_token_hash(db, hash_token(token.strip()))
    if user is None:
        raise ResetTokenInvalidError()

    expires_at = as_utc(user.reset_token_expires_at)
    if expires_at is None or (now or utcnow()) > expires_at:
        raise ResetTokenExpiredError()
    return user


def consume_reset_token(db: Session, token: str, new_password: str, *, now: datetime | None = None) -> User:
    """
    Rewrites the password hash and clears the pending reset in one conditional
    update, so the same token can never be used twice.
    """
    user = find_pending_reset(db, token, now=now)
    token_hash = user.reset_token_hash

    consumed = compare_and_update(
        db,
        user,
        {"reset_token_hash": token_hash},
        password_hash=hash_password(new_password),
        reset_token_hash=None,
        reset_token_expires_at=None,
    )
    if not consumed:
        raise ResetTokenInvalidError()

    logger.info("Password reset completed: user_id=%s", user.id)
    return user
