import os
import re

# Settings are read at import time (app.main calls require_jwt_secret()), so set env first.
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("EMAIL_ENABLED", "false")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.handoff import HandoffRouter
from app.auth.roles import Role
from app.auth.tokens import TokenConfig, TokenIssuer
from app.core import config as app_config
from app.core.base import Base
from app.core.database import get_db
from app.core.security import hash_password
from app.dependencies.services import get_mail_dispatcher
from app.models.user import User
from app.services.email import MailResult
from app.services.identity_lifecycle import IdentityLifecycle
from app.services.mail_delivery import MailDispatcher

TEST_PASSWORD = "secret1"


class FakeMailSender:
    """
    Records every send attempt. ``failures`` makes the first N attempts fail;
    ``always_fail`` makes every attempt fail.
    """

    def __init__(self) -> None:
        self.attempts: list[dict] = []
        self.delivered: list[dict] = []
        self.failures = 0
        self.always_fail = False

    def send(self, to_email: str, subject: str, html_body: str) -> MailResult:
        message = {"to": to_email, "subject": subject, "html": html_body}
        self.attempts.append(message)
        if self.always_fail or self.failures > 0:
            self.failures = max(self.failures - 1, 0)
            return MailResult.failure("smtp timeout")
        self.delivered.append(message)
        return MailResult.success(message_id=f"msg_{len(self.delivered)}")

    def last_to(self, email: str) -> dict:
        matches = [m for m in self.attempts if m["to"] == email]
        assert matches, f"no email sent to {email}"
        return matches[-1]

    def last_code(self, email: str) -> str:
        match = re.search(r">(\d{4,12})</h1>", self.last_to(email)["html"])
        assert match, "no verification code in email"
        return match.group(1)

    def last_reset_token(self, email: str) -> str:
        match = re.search(r"[?&]token=([A-Za-z0-9_\-]+)", self.last_to(email)["html"])
        assert match, "no reset link in email"
        return match.group(1)


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # The in-memory DB persists across tests (StaticPool); reset schema per test.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests tweak the process-global settings object; restore it after each test.
    """
    keys = [
        "PASSWORD_MIN_LENGTH",
        "OTP_EXPIRE_MINUTES",
        "PASSWORD_RESET_EXPIRE_MINUTES",
        "ACCESS_TOKEN_EXPIRE_MINUTES",
        "MAIL_MAX_ATTEMPTS",
        "MAIL_DELIVERY_MODE",
        "RESET_MAIL_MAX_ATTEMPTS",
        "USER_APP_URL",
        "EMPLOYER_APP_URL",
        "ADMIN_APP_URL",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)


@pytest.fixture()
def settings():
    return app_config.settings


@pytest.fixture()
def mail():
    return FakeMailSender()


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def dispatcher(mail, sleeps):
    return MailDispatcher(mail, mode="sync", sleep=sleeps.append)


@pytest.fixture()
def tokens(settings):
    return TokenIssuer(TokenConfig.from_settings(settings))


@pytest.fixture()
def lifecycle(db_session, settings, tokens, dispatcher):
    return IdentityLifecycle(
        db_session,
        settings=settings,
        tokens=tokens,
        dispatcher=dispatcher,
        handoff=HandoffRouter.from_settings(settings),
    )


@pytest.fixture()
def make_user(db_session):
    def _make_user(
        email: str = "user@example.com",
        *,
        role: Role = Role.JOB_SEEKER,
        password: str = TEST_PASSWORD,
        is_verified: bool = True,
    ) -> User:
        user = User(
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            first_name="Test",
            last_name="User",
            is_verified=is_verified,
            verified_at=datetime.now(timezone.utc) if is_verified else None,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def app(db_session, dispatcher):
    import app.main as main

    fastapi_app = main.app

    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_mail_dispatcher] = lambda: dispatcher
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c