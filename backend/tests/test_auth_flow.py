from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

from app.auth.roles import Role
from app.models.user import User


def _register(client, email="alice@x.com", password="secret1", role="job_seeker"):
    return client.post(
        "/auth/register",
        json={"email": email, "password": password, "role": role, "first_name": "Alice", "last_name": "Smith"},
    )


def test_register_verify_login_hands_off_to_role_app(client, db_session, mail, settings):
    res = _register(client)
    assert res.status_code == 201
    body = res.json()
    assert body["needs_verification"] is True
    assert body["email_sent"] is True
    assert body["email_delivery"] == "sent"
    assert body["user"]["role"] == "job_seeker"
    assert body["user"]["is_verified"] is False

    # Exactly one verification email, carrying a 6-digit code.
    assert len(mail.delivered) == 1
    code = mail.last_code("alice@x.com")
    assert len(code) == settings.OTP_LENGTH

    res2 = client.post("/auth/verify-email", json={"email": "alice@x.com", "otp": code})
    assert res2.status_code == 200
    assert res2.json()["message"] == "Email verified"

    u = db_session.query(User).filter(User.email == "alice@x.com").first()
    assert u.is_verified is True
    assert u.verified_at is not None
    assert u.email_otp_hash is None

    res3 = client.post("/auth/login", json={"email": "alice@x.com", "password": "secret1"})
    assert res3.status_code == 200
    tokens = res3.json()
    assert tokens["token_type"] == "bearer"
    assert tokens["user"]["is_verified"] is True

    parts = urlsplit(tokens["redirect_url"])
    assert f"{parts.scheme}://{parts.netloc}" == settings.USER_APP_URL
    query = parse_qs(parts.query)
    assert query["from"] == ["auth"]
    assert query["token"] == [tokens["access_token"]]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "job_seeker"
    assert me.json()["is_verified"] is True


def test_employer_login_redirects_to_employer_app(client, make_user, settings):
    make_user("boss@corp.com", role=Role.EMPLOYER)

    res = client.post("/auth/login", json={"email": "boss@corp.com", "password": "secret1"})
    assert res.status_code == 200
    assert res.json()["redirect_url"].startswith(settings.EMPLOYER_APP_URL)


def test_register_duplicate_email_is_409(client):
    assert _register(client).status_code == 201

    res = _register(client, email="ALICE@x.com")
    assert res.status_code == 409
    assert res.json()["details"]["code"] == "EMAIL_TAKEN"


def test_register_admin_role_is_rejected(client, db_session):
    res = _register(client, email="root@x.com", role="admin")
    assert res.status_code == 400
    assert res.json()["details"]["code"] == "ROLE_NOT_ALLOWED"
    assert db_session.query(User).count() == 0


def test_register_unknown_role_is_rejected(client):
    res = _register(client, role="recruiter")
    assert res.status_code == 400
    assert res.json()["details"]["code"] == "ROLE_NOT_ALLOWED"


def test_register_still_succeeds_when_mail_is_down(client, db_session, mail, sleeps):
    mail.always_fail = True

    res = _register(client)
    assert res.status_code == 201
    body = res.json()
    assert body["email_sent"] is False
    assert body["email_delivery"] == "failed"
    assert "could not send" in body["message"]

    # 3 attempts with 1s then 2s backoff between them.
    assert len(mail.attempts) == 3
    assert sleeps == [1.0, 2.0]

    u = db_session.query(User).filter(User.email == "alice@x.com").first()
    assert u is not None
    assert u.is_verified is False
    assert u.has_pending_otp is True


def test_login_unknown_email_and_wrong_password_look_the_same(client, make_user):
    make_user("bob@x.com")

    unknown = client.post("/auth/login", json={"email": "nobody@x.com", "password": "secret1"})
    wrong = client.post("/auth/login", json={"email": "bob@x.com", "password": "not-it"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()
    assert unknown.json()["details"]["code"] == "INVALID_CREDENTIALS"


def test_unverified_user_can_log_in_with_unverified_claim(client, make_user):
    make_user("pending@x.com", is_verified=False)

    res = client.post("/auth/login", json={"email": "pending@x.com", "password": "secret1"})
    assert res.status_code == 200
    session = client.get("/auth/session", headers={"Authorization": f"Bearer {res.json()['access_token']}"})
    assert session.json()["is_verified"] is False
    assert session.json()["is_authenticated"] is True


def test_refresh_issues_new_session(client, make_user):
    make_user("carol@x.com")
    login = client.post("/auth/login", json={"email": "carol@x.com", "password": "secret1"}).json()

    res = client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert res.status_code == 200
    assert res.json()["access_token"]
    assert res.json()["user"]["email"] == "carol@x.com"


def test_refresh_rejects_access_token(client, make_user):
    make_user("carol@x.com")
    login = client.post("/auth/login", json={"email": "carol@x.com", "password": "secret1"}).json()

    res = client.post("/auth/refresh", json={"refresh_token": login["access_token"]})
    assert res.status_code == 401
    assert res.headers.get("www-authenticate") == "Bearer"


def test_resend_otp_unknown_email_is_generic(client, mail, make_user):
    make_user("pending@x.com", is_verified=False)

    unknown = client.post("/auth/resend-otp", json={"email": "ghost@x.com"})
    known = client.post("/auth/resend-otp", json={"email": "pending@x.com"})

    assert unknown.status_code == known.status_code == 200
    assert known.json() == unknown.json()
    assert [m["to"] for m in mail.attempts] == ["pending@x.com"]


def test_resend_otp_failed_mail_is_still_generic(client, mail, make_user):
    make_user("pending@x.com", is_verified=False)
    unknown = client.post("/auth/resend-otp", json={"email": "ghost@x.com"})

    mail.always_fail = True
    known = client.post("/auth/resend-otp", json={"email": "pending@x.com"})

    assert known.status_code == 200
    assert known.json() == unknown.json()


def test_resend_otp_replaces_code(client, mail, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr("app.services.email_verification.generate_otp", lambda length=6: next(codes))
    _register(client)
    first = mail.last_code("alice@x.com")

    res = client.post("/auth/resend-otp", json={"email": "alice@x.com"})
    assert res.status_code == 200
    second = mail.last_code("alice@x.com")
    assert (first, second) == ("111111", "222222")

    stale = client.post("/auth/verify-email", json={"email": "alice@x.com", "otp": first})
    assert stale.status_code == 400
    assert stale.json()["details"]["code"] == "OTP_INVALID"

    ok = client.post("/auth/verify-email", json={"email": "alice@x.com", "otp": second})
    assert ok.status_code == 200


def test_resend_after_verification_is_409(client, mail):
    _register(client)
    client.post("/auth/verify-email", json={"email": "alice@x.com", "otp": mail.last_code("alice@x.com")})

    res = client.post("/auth/resend-otp", json={"email": "alice@x.com"})
    assert res.status_code == 409
    assert res.json()["details"]["code"] == "ALREADY_VERIFIED"


def test_forgot_password_unknown_email_is_generic(client, mail, make_user):
    make_user("known@x.com")

    unknown = client.post("/auth/forgot-password", json={"email": "nobody@x.com"})
    known = client.post("/auth/forgot-password", json={"email": "known@x.com"})

    assert unknown.status_code == known.status_code == 200
    assert unknown.json() == known.json()
    assert [m["to"] for m in mail.attempts] == ["known@x.com"]


def test_forgot_password_failed_mail_is_still_generic(client, mail, make_user):
    make_user("known@x.com")
    mail.always_fail = True

    res = client.post("/auth/forgot-password", json={"email": "known@x.com"})
    assert res.status_code == 200
    # Reset mail is a single attempt.
    assert len(mail.attempts) == 1


def test_full_password_reset(client, mail, make_user):
    make_user("dave@x.com", password="old-secret")

    client.post("/auth/forgot-password", json={"email": "dave@x.com"})
    token = mail.last_reset_token("dave@x.com")

    check = client.get("/auth/reset-password", params={"token": token})
    assert check.status_code == 200
    assert check.json()["message"] == "Reset link is valid"

    res = client.post("/auth/reset-password", json={"token": token, "password": "new-secret"})
    assert res.status_code == 200
    assert res.json()["message"] == "Password reset successful"

    old = client.post("/auth/login", json={"email": "dave@x.com", "password": "old-secret"})
    assert old.status_code == 401
    new = client.post("/auth/login", json={"email": "dave@x.com", "password": "new-secret"})
    assert new.status_code == 200

    again = client.post("/auth/reset-password", json={"token": token, "password": "another-secret"})
    assert again.status_code == 400
    assert again.json()["details"]["code"] == "RESET_TOKEN_INVALID"


def test_reset_password_rejects_weak_password(client, mail, make_user):
    make_user("erin@x.com")
    client.post("/auth/forgot-password", json={"email": "erin@x.com"})
    token = mail.last_reset_token("erin@x.com")

    res = client.post("/auth/reset-password", json={"token": token, "password": "123456"})
    assert res.status_code == 400
    assert res.json()["details"]["code"] == "WEAK_PASSWORD"

    # Token survives a rejected attempt.
    assert client.get("/auth/reset-password", params={"token": token}).status_code == 200


def test_handoff_endpoint_uses_presented_token(client, make_user, settings):
    make_user("ops@x.com", role=Role.ADMIN)
    token = client.post("/auth/login", json={"email": "ops@x.com", "password": "secret1"}).json()["access_token"]

    res = client.get("/auth/handoff", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 200
    url = res.json()["redirect_url"]
    assert url.startswith(settings.ADMIN_APP_URL)
    assert parse_qs(urlsplit(url).query)["token"] == [token]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
