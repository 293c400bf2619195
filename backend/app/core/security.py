# app/core/security.py
from __future__ import annotations

import hmac
import secrets
from hashlib import sha256

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# Verified against for unknown emails so login timing doesn't reveal whether an account exists.
_DUMMY_PASSWORD_HASH = pwd_context.hash(secrets.token_urlsafe(16))


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognized/corrupt hash: treat as a mismatch, never as a server error.
        return False


def burn_password_check(password: str) -> None:
    pwd_context.verify(password, _DUMMY_PASSWORD_HASH)


# -------------------------
# OTP / reset token material
# -------------------------
def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def generate_salt() -> str:
    return secrets.token_hex(16)


def hash_secret_with_salt(secret: str, salt: str) -> str:
    """
    Stored form for short secrets (OTP codes): ``<salt>$<sha256(salt + secret)>``.
    """
    digest = sha256(f"{salt}{secret}".encode("utf-8")).hexdigest()
    return f"{salt}${digest}"


def verify_salted_secret(secret: str, stored: str | None) -> bool:
    if not stored or "$" not in stored:
        return False
    salt, _ = stored.split("$", 1)
    return constant_time_equals(hash_secret_with_salt(secret, salt), stored)


def generate_reset_token() -> str:
    """
    Raw reset token. Returned to the user once (inside the emailed link);
    the backend stores ONLY a hash.
    """
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """
    Unsalted sha256 so a presented token can be looked up by its hash.
    """
    return sha256(token.encode("utf-8")).hexdigest()
