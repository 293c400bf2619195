# app/services/users.py
"""
Credential store.

Responsibilities:
- Lookup by id or normalized email
- Creating identities (one per email)
- Persisting lifecycle mutations as single-row UPDATE statements so a pending
  code/expiry pair is never half-written, and consuming codes/tokens with a
  compare-and-set so each is single use
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.roles import Role
from app.core.errors import ConflictError
from app.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(db: Session, user_id: str) -> Optional[User]:
    """Look up a user by id."""
    if not user_id:
        return None
    return db.query(User).filter(User.id == str(user_id)).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    normalized = normalize_email(email)
    if not normalized:
        return None
    return db.query(User).filter(User.email == normalized).first()


def get_user_by_reset_token_hash(db: Session, token_hash: str) -> Optional[User]:
    return db.query(User).filter(User.reset_token_hash == token_hash).first()


def create_user(
    db: Session,
    *,
    email: str,
    password_hash: str,
    role: Role,
    first_name: str | None = None,
    last_name: str | None = None,
    is_verified: bool = False,
    **initial_fields: Any,
) -> User:
    """
    Create a new identity. ``initial_fields`` (e.g. a pending OTP) are written
    in the same INSERT.

    Raises:
        ConflictError: if the email is already registered (including a concurrent
                       insert that trips the unique index).
    """
    normalized_email = normalize_email(email)
    if not normalized_email:
        raise ValueError("email is required")

    if get_user_by_email(db, normalized_email) is not None:
        raise ConflictError()

    user = User(
        email=normalized_email,
        password_hash=password_hash,
        role=Role(role).value,
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        is_verified=is_verified,
        **initial_fields,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError() from exc
    db.refresh(user)

    logger.info("Created identity: id=%s role=%s", user.id, user.role)
    return user


def update_user_fields(db: Session, user: User, **fields: Any) -> None:
    """
    Persist lifecycle fields for one identity in a single UPDATE statement.
    Concurrent writers to the same fields: last writer wins, never a mix.
    """
    if not fields:
        return
    db.query(User).filter(User.id == user.id).update(fields, synchronize_session=False)
    db.commit()
    db.refresh(user)


def compare_and_update(db: Session, user: User, expected: dict[str, Any], **fields: Any) -> bool:
    """
    Conditional single-row update: applies ``fields`` only if every column in
    ``expected`` still holds the given value. Returns True if the row changed.
    """
    query = db.query(User).filter(User.id == user.id)
    for name, value in expected.items():
        column = getattr(User, name)
        query = query.filter(column.is_(None) if value is None else column == value)

    changed = query.update(fields, synchronize_session=False)
    db.commit()
    db.refresh(user)
    return bool(changed)
