from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from app.core.errors import AlreadyVerifiedError, OtpExpiredError, OtpMismatchError
from app.core.timeutil import as_utc, utcnow
from app.models.user import User
from app.services import email_verification
from app.services.email_verification import generate_otp, issue_otp, verify_otp


def test_generate_otp_is_numeric_with_requested_length():
    for length in (4, 6, 8):
        code = generate_otp(length)
        assert code.isdigit()
        assert len(code) == length


def test_generate_otp_rejects_tiny_codes():
    with pytest.raises(ValueError):
        generate_otp(3)


def test_pending_code_is_stored_hashed(db_session, make_user, settings):
    user = make_user("u@example.com", is_verified=False)

    code = issue_otp(db_session, user, settings=settings)

    assert user.email_otp_hash
    assert code not in user.email_otp_hash
    expires_at = as_utc(user.email_otp_expires_at)
    assert timedelta(minutes=29) < expires_at - utcnow() <= timedelta(minutes=settings.OTP_EXPIRE_MINUTES)


def test_verify_otp_marks_verified_and_clears_code(db_session, make_user, settings):
    user = make_user("u@example.com", is_verified=False)
    code = issue_otp(db_session, user, settings=settings)

    verify_otp(db_session, user, code)

    assert user.is_verified is True
    assert user.verified_at is not None
    assert user.email_otp_hash is None
    assert user.email_otp_expires_at is None


def test_verify_otp_mismatch_leaves_state_unchanged(db_session, make_user, settings):
    user = make_user("u@example.com", is_verified=False)
    code = issue_otp(db_session, user, settings=settings)
    stored = user.email_otp_hash
    wrong = "0" * len(code) if code != "0" * len(code) else "1" * len(code)

    with pytest.raises(OtpMismatchError):
        verify_otp(db_session, user, wrong)

    assert user.is_verified is False
    assert user.email_otp_hash == stored

    # The correct code still works after a wrong guess.
    verify_otp(db_session, user, code)
    assert user.is_verified is True


def test_verify_otp_expired(db_session, make_user, settings):
    user = make_user("u@example.com", is_verified=False)
    code = issue_otp(db_session, user, settings=settings)

    later = utcnow() + timedelta(minutes=settings.OTP_EXPIRE_MINUTES, seconds=1)
    with pytest.raises(OtpExpiredError):
        verify_otp(db_session, user, code, now=later)
    assert user.is_verified is False


def test_verify_otp_accepts_code_right_at_expiry(db_session, make_user, settings):
    user = make_user("u@example.com", is_verified=False)
    issued = utcnow()
    code = issue_otp(db_session, user, settings=settings, now=issued)

    verify_otp(db_session, user, code, now=issued + timedelta(minutes=settings.OTP_EXPIRE_MINUTES))
    assert user.is_verified is True


def test_verify_otp_without_pending_code_is_expired(db_session, make_user):
    user = make_user("u@example.com", is_verified=False)

    with pytest.raises(OtpExpiredError):
        verify_otp(db_session, user, "123456")


def test_verify_otp_already_verified(db_session, make_user):
    user = make_user("u@example.com", is_verified=True)

    with pytest.raises(AlreadyVerifiedError):
        verify_otp(db_session, user, "123456")


def test_reissued_code_invalidates_previous(db_session, make_user, settings, monkeypatch):
    user = make_user("u@example.com", is_verified=False)
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(email_verification, "generate_otp", lambda length=6: next(codes))

    first = issue_otp(db_session, user, settings=settings)
    second = issue_otp(db_session, user, settings=settings)

    with pytest.raises(OtpMismatchError):
        verify_otp(db_session, user, first)
    verify_otp(db_session, user, second)
    assert user.is_verified is True


def test_stale_reader_cannot_consume_replaced_code(db_engine, db_session, make_user, settings, monkeypatch):
    """
    A verifier that read the row before a resend must not verify with the old
    code: the conditional update only consumes the hash it checked.
    """
    user = make_user("u@example.com", is_verified=False)
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(email_verification, "generate_otp", lambda length=6: next(codes))
    first = issue_otp(db_session, user, settings=settings)

    other = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        stale_user = other.query(User).filter(User.id == user.id).one()
        issue_otp(db_session, user, settings=settings)

        with pytest.raises(OtpMismatchError):
            verify_otp(other, stale_user, first)
    finally:
        other.close()


def test_resend_otp_refuses_verified_user(db_session, make_user, dispatcher, settings, mail):
    user = make_user("u@example.com", is_verified=True)

    with pytest.raises(AlreadyVerifiedError):
        email_verification.resend_otp(db_session, dispatcher, user, settings=settings)
    assert mail.attempts == []


def test_otp_email_contains_code_and_expiry(db_session, make_user, dispatcher, settings, mail):
    user = make_user("u@example.com", is_verified=False)

    result = email_verification.resend_otp(db_session, dispatcher, user, settings=settings)

    assert result.status == "sent"
    message = mail.last_to("u@example.com")
    assert "Email Verification Code" in message["subject"]
    assert "30 minutes" in message["html"]
    assert len(mail.last_code("u@example.com")) == settings.OTP_LENGTH
