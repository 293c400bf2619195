"""
Provision an admin identity.

Admins cannot self-register (the public sign-up form only accepts job_seeker
and employer), so this is the out-of-band path. The account is created
already verified.

Usage:
    python scripts/create_admin.py --email admin@example.com --first-name Ada --last-name Admin
    (password is prompted for unless --password is given)
"""

from __future__ import annotations

import argparse
import getpass
from pathlib import Path
import sys


# Allow `import app.*` from backend/
REPO_ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


from app.auth.roles import Role  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.database import SessionLocal  # noqa: E402
from app.core.errors import ConflictError, WeakPasswordError  # noqa: E402
from app.core.password_policy import ensure_strong_password  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.core.timeutil import utcnow  # noqa: E402
from app.services.users import create_user  # noqa: E402


def provision_admin(db, *, email: str, password: str, first_name: str, last_name: str):
    ensure_strong_password(password, min_length=max(settings.PASSWORD_MIN_LENGTH, 12), email=email)
    return create_user(
        db,
        email=email,
        password_hash=hash_password(password),
        role=Role.ADMIN,
        first_name=first_name,
        last_name=last_name,
        is_verified=True,
        verified_at=utcnow(),
    )


def main() -> int:
    p = argparse.ArgumentParser(description="Create a verified admin identity.")
    p.add_argument("--email", required=True)
    p.add_argument("--first-name", default="Admin")
    p.add_argument("--last-name", default="User")
    p.add_argument("--password", help="Omit to be prompted (keeps it out of shell history).")
    args = p.parse_args()

    password = args.password or getpass.getpass("Admin password: ")

    db = SessionLocal()
    try:
        user = provision_admin(
            db,
            email=args.email,
            password=password,
            first_name=args.first_name,
            last_name=args.last_name,
        )
    except ConflictError:
        print(f"An identity with email {args.email} already exists.", file=sys.stderr)
        return 1
    except WeakPasswordError as e:
        print(f"Password rejected: {', '.join(e.violations)}", file=sys.stderr)
        return 2
    finally:
        db.close()

    print(f"Created admin id={user.id} email={user.email}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
