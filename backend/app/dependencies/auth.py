# app/dependencies/auth.py
"""
Authorization gate.

Every check here is stateless: the bearer token is verified and its claims
are trusted as-is. No database access happens on this path.
"""
from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.principal import Principal
from app.auth.roles import Role
from app.auth.tokens import TokenIssuer
from app.core.errors import InvalidTokenError
from app.dependencies.services import get_token_issuer

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(detail: str = "Forbidden") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def get_current_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp + purpose
    Returns:
      - Principal built from the token claims
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise _unauthorized("Missing Authorization header")

    try:
        claims = tokens.verify(creds.credentials)
    except InvalidTokenError:
        # Expired, foreign-signed and malformed tokens all look the same to the caller.
        raise _unauthorized("Invalid or expired token")

    return Principal.from_claims(claims)


def get_optional_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenIssuer = Depends(get_token_issuer),
) -> Principal:
    """
    Soft mode for endpoints with mixed public/authenticated behavior: a missing
    or bad token yields an anonymous principal instead of a 401.
    """
    if not creds or creds.scheme.lower() != "bearer":
        return Principal.anonymous()
    claims = tokens.verify_optional(creds.credentials)
    if claims is None:
        return Principal.anonymous()
    return Principal.from_claims(claims)


def require_roles(*allowed: Role) -> Callable[..., Principal]:
    """
    Dependency factory enforcing a role allow-list.

        @router.get("/x", dependencies=[Depends(require_roles(Role.EMPLOYER))])

    No token -> 401; authenticated with another role -> 403.
    """
    if not allowed:
        raise ValueError("require_roles needs at least one role")
    allowed_set = frozenset(Role(r) for r in allowed)

    def _require(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_set:
            logger.info(
                "Forbidden: user_id=%s role=%s allowed=%s",
                principal.subject_id,
                principal.role.value if principal.role else None,
                sorted(r.value for r in allowed_set),
            )
            raise _forbidden()
        return principal

    return _require


def require_verified(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    For actions that need a verified email. Uses the ``verified`` claim, so a
    user who just verified needs a fresh token (login or refresh).
    """
    if not principal.is_verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Email not verified", "details": {"code": "EMAIL_NOT_VERIFIED"}},
        )
    return principal
