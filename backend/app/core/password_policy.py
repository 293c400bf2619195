from __future__ import annotations

from typing import List

from app.core.errors import WeakPasswordError

MAX_PASSWORD_LENGTH = 128

COMMON_WEAK_PASSWORDS = {
    "password",
    "password1",
    "password123",
    "123456",
    "1234567",
    "123456789",
    "12345678",
    "qwerty",
    "abc123",
    "letmein",
    "111111",
    "iloveyou",
    "admin",
    "welcome",
    "monkey",
    "dragon",
    "football",
    "123123",
    "qwerty123",
    "passw0rd",
    "sunshine",
    "princess",
    "whatever",
}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def evaluate_password(password: str, *, min_length: int, email: str | None = None) -> List[str]:
    """
    Returns a list of violation codes if the password does not meet policy.
    """
    pw = password or ""
    violations: list[str] = []

    if len(pw) < max(int(min_length or 0), 1):
        violations.append("min_length")
    if len(pw) > MAX_PASSWORD_LENGTH:
        violations.append("max_length")

    normalized_pw = pw.lower()
    email_norm = _normalize(email)
    if email_norm and email_norm in normalized_pw:
        violations.append("contains_email")

    if normalized_pw in COMMON_WEAK_PASSWORDS:
        violations.append("denylist_common")

    return violations


def ensure_strong_password(password: str, *, min_length: int, email: str | None = None) -> None:
    violations = evaluate_password(password, min_length=min_length, email=email)
    if violations:
        raise WeakPasswordError(violations)
