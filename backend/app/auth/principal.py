# app/auth/principal.py
"""
Canonical caller model for authorization decisions.

A Principal is built purely from verified token claims, so downstream code can
reason about "who is calling and in which role?" without touching the
database or inspecting raw JWTs.

The Principal is INTERNAL ONLY and should not be returned directly to
clients; use ``to_public_dict`` for responses.
"""
from __future__ import annotations

from dataclasses import dataclass

from app.auth.roles import Role
from app.auth.tokens import TokenClaims


@dataclass(frozen=True)
class Principal:
    """
    Attributes:
        subject_id: Identity id from the token ``sub`` claim (None when anonymous).
        role: Role from the token (None when anonymous).
        email: Email claim, if present.
        is_verified: Whether the identity had verified its email when the token was issued.
        is_authenticated: True if a valid token was presented.
    """

    subject_id: str | None = None
    role: Role | None = None
    email: str | None = None
    is_verified: bool = False
    is_authenticated: bool = False

    @classmethod
    def anonymous(cls) -> Principal:
        """Create a principal representing an unauthenticated request."""
        return cls()

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> Principal:
        return cls(
            subject_id=claims.subject_id,
            role=claims.role,
            email=claims.email.strip().lower() if claims.email else None,
            is_verified=claims.is_verified,
            is_authenticated=True,
        )

    def has_role(self, *roles: Role) -> bool:
        return self.is_authenticated and self.role in roles

    def to_public_dict(self) -> dict:
        return {
            "user_id": self.subject_id,
            "role": self.role.value if self.role else None,
            "email": self.email,
            "is_verified": self.is_verified,
            "is_authenticated": self.is_authenticated,
        }
