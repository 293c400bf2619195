# app/auth/tokens.py
"""
Signed, self-contained bearer credentials.

Access and refresh tokens are HS256 JWTs carrying the subject id, role,
email and verification flag. Any service holding the signing secret can
verify them without a database round trip. There is no revocation list:
expiry is the only way a token stops working.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.auth.roles import Role
from app.core.config import Settings
from app.core.errors import InvalidTokenError, TokenExpiredError
from app.models.user import User

PURPOSE_ACCESS = "access"
PURPOSE_REFRESH = "refresh"


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(hours=1)
    refresh_ttl: timedelta = timedelta(days=7)
    issuer: str = "hirehub-identity"

    def __post_init__(self) -> None:
        if not self.secret or not self.secret.strip():
            raise RuntimeError("JWT_SECRET must be set (auth is required).")

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(
            secret=settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            issuer=settings.JWT_ISSUER,
        )


@dataclass(frozen=True)
class TokenClaims:
    subject_id: str
    role: Role
    email: str | None
    is_verified: bool
    purpose: str
    expires_at: datetime
    token_id: str | None = None


class TokenIssuer:
    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    # -------------------------
    # Issuing
    # -------------------------
    def issue_access_token(self, user: User, *, now: datetime | None = None) -> str:
        """
        Access token used for API auth: Authorization: Bearer <token>
        """
        return self._encode(user, PURPOSE_ACCESS, self.config.access_ttl, now)

    def issue_refresh_token(self, user: User, *, now: datetime | None = None) -> str:
        return self._encode(user, PURPOSE_REFRESH, self.config.refresh_ttl, now)

    def _encode(self, user: User, purpose: str, ttl: timedelta, now: datetime | None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "role": Role(user.role).value,
            "email": user.email,
            "verified": bool(user.is_verified),
            "purpose": purpose,
            "iss": self.config.issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + ttl).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)

    # -------------------------
    # Verifying
    # -------------------------
    def verify(self, token: str | None, *, purpose: str = PURPOSE_ACCESS) -> TokenClaims:
        """
        Signature first, then expiry, then claim shape.

        Raises:
            TokenExpiredError: well-formed token past ``exp``.
            InvalidTokenError: anything else (missing, malformed, foreign
                               signature, wrong purpose, unknown role).
        """
        if not token or not token.strip():
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token.strip(),
                self.config.secret,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise InvalidTokenError() from e

        if payload.get("purpose") != purpose:
            raise InvalidTokenError()

        role = Role.parse(payload.get("role"))
        subject = str(payload.get("sub") or "").strip()
        if role is None or not subject:
            raise InvalidTokenError()

        return TokenClaims(
            subject_id=subject,
            role=role,
            email=payload.get("email"),
            is_verified=bool(payload.get("verified", False)),
            purpose=purpose,
            expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            token_id=payload.get("jti"),
        )

    def verify_optional(self, token: str | None, *, purpose: str = PURPOSE_ACCESS) -> TokenClaims | None:
        """Soft mode: None instead of an error, so the caller continues anonymously."""
        try:
            return self.verify(token, purpose=purpose)
        except InvalidTokenError:
            return None
