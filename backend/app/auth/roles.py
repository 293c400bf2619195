# app/auth/roles.py
from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    JOB_SEEKER = "job_seeker"
    EMPLOYER = "employer"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        """Return the matching role, or None for anything outside the closed set."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


# Roles a person may pick on the public sign-up form. Admins are provisioned out-of-band.
SELF_REGISTRATION_ROLES = frozenset({Role.JOB_SEEKER, Role.EMPLOYER})
