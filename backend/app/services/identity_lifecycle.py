# app/services/identity_lifecycle.py
"""
Identity lifecycle: registration -> email verification -> login, and the
independent forgot/reset password track.

Two rules shape every method here:
- login and forgot-password never reveal whether an email is registered
  (the duplicate check on registration is the one exception);
- mail delivery problems never fail the operation. They surface as an
  ``email_sent`` flag and the user falls back to the resend path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.auth.handoff import HandoffRouter
from app.auth.roles import SELF_REGISTRATION_ROLES, Role
from app.auth.tokens import PURPOSE_REFRESH, TokenIssuer
from app.core.config import Settings
from app.core.errors import InvalidCredentialsError, InvalidTokenError, OtpMismatchError, RegistrationRoleError
from app.core.password_policy import ensure_strong_password
from app.core.security import burn_password_check, hash_password, verify_password
from app.models.user import User
from app.services import email_verification, password_reset
from app.services.mail_delivery import DispatchResult, MailDispatcher
from app.services.users import create_user, get_user, get_user_by_email, normalize_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    user: User
    delivery: DispatchResult

    @property
    def email_sent(self) -> bool | None:
        return self.delivery.email_sent

    @property
    def email_delivery(self) -> str:
        return self.delivery.status


@dataclass(frozen=True)
class LoginResult:
    user: User
    access_token: str
    refresh_token: str
    redirect_url: str | None


class IdentityLifecycle:
    def __init__(
        self,
        db: Session,
        *,
        settings: Settings,
        tokens: TokenIssuer,
        dispatcher: MailDispatcher,
        handoff: HandoffRouter,
    ) -> None:
        self.db = db
        self.settings = settings
        self.tokens = tokens
        self.dispatcher = dispatcher
        self.handoff = handoff

    # -----------------------------
    # Verification track
    # -----------------------------
    def register(
        self,
        email: str,
        password: str,
        role: Role | str,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> RegistrationResult:
        parsed_role = role if isinstance(role, Role) else Role.parse(role)
        if parsed_role not in SELF_REGISTRATION_ROLES:
            raise RegistrationRoleError()

        normalized_email = normalize_email(email)
        ensure_strong_password(password, min_length=self.settings.PASSWORD_MIN_LENGTH, email=normalized_email)

        code, otp_fields = email_verification.prepare_otp(self.settings)
        user = create_user(
            self.db,
            email=normalized_email,
            password_hash=hash_password(password),
            role=parsed_role,
            first_name=first_name,
            last_name=last_name,
            **otp_fields,
        )

        delivery = email_verification.send_otp(self.dispatcher, user, code, settings=self.settings)
        if delivery.email_sent is False:
            logger.warning("Registered user_id=%s but the verification email was not delivered", user.id)
        return RegistrationResult(user=user, delivery=delivery)

    def verify_email(self, email: str, code: str) -> User:
        user = get_user_by_email(self.db, email)
        if user is None:
            raise OtpMismatchError()
        email_verification.verify_otp(self.db, user, code)
        return user

    def resend_otp(self, email: str) -> DispatchResult | None:
        """None for unknown emails; the caller answers generically either way."""
        user = get_user_by_email(self.db, email)
        if user is None:
            return None
        return email_verification.resend_otp(self.db, self.dispatcher, user, settings=self.settings)

    # -----------------------------
    # Sessions
    # -----------------------------
    def login(self, email: str, password: str) -> LoginResult:
        user = get_user_by_email(self.db, email)
        if user is None:
            burn_password_check(password)
            raise InvalidCredentialsError()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        logger.info("Login succeeded: user_id=%s role=%s verified=%s", user.id, user.role, user.is_verified)
        return self._session_for(user)

    def refresh(self, refresh_token: str) -> LoginResult:
        claims = self.tokens.verify(refresh_token, purpose=PURPOSE_REFRESH)
        user = get_user(self.db, claims.subject_id)
        if user is None:
            raise InvalidTokenError()
        return self._session_for(user)

    def _session_for(self, user: User) -> LoginResult:
        access_token = self.tokens.issue_access_token(user)
        return LoginResult(
            user=user,
            access_token=access_token,
            refresh_token=self.tokens.issue_refresh_token(user),
            redirect_url=self.handoff.build_handoff_url(user.role, access_token),
        )

    # -----------------------------
    # Reset track
    # -----------------------------
    def forgot_password(self, email: str) -> DispatchResult | None:
        user = get_user_by_email(self.db, email)
        if user is None:
            logger.info("Password reset requested for an unknown email")
            return None
        token = password_reset.issue_reset_token(self.db, user, settings=self.settings)
        return password_reset.send_reset_email(self.dispatcher, user, token, settings=self.settings)

    def check_reset_token(self, token: str) -> None:
        password_reset.find_pending_reset(self.db, token)

    def reset_password(self, token: str, new_password: str) -> User:
        user = password_reset.find_pending_reset(self.db, token)
        ensure_strong_password(new_password, min_length=self.settings.PASSWORD_MIN_LENGTH, email=user.email)
        return password_reset.consume_reset_token(self.db, token, new_password)
