# app/models/user.py
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, String, false, func

from app.core.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint("role IN ('job_seeker', 'employer', 'admin')", name="ck_users_role"),)

    id = Column(String(36), primary_key=True, default=_new_id)

    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    # job_seeker | employer | admin (see app.auth.roles.Role). Fixed at creation.
    role = Column(String(20), nullable=False, index=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    is_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    verified_at = Column(DateTime(timezone=True), nullable=True)

    # Pending email verification: salted hash of the code, never the code itself.
    email_otp_hash = Column(String(128), nullable=True)
    email_otp_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Pending password reset: sha256 of the emailed token.
    reset_token_hash = Column(String(64), unique=True, index=True, nullable=True)
    reset_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def has_pending_otp(self) -> bool:
        return self.email_otp_hash is not None

    @property
    def has_pending_reset(self) -> bool:
        return self.reset_token_hash is not None

    @property
    def display_name(self) -> str:
        if self.first_name and self.first_name.strip():
            return self.first_name.strip()
        return (self.email or "").split("@", 1)[0] or "there"
