"""Tests for the forgotten-password flow."""
import secrets
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from werkzeug.security import check_password_hash, generate_password_hash

from app.kmp import create_app
from app.kmp.db import session_scope
from app.kmp.models import AuditLog, Base, User
from app.kmp.modules.password_reset.models import PasswordReset
from app.kmp.modules.password_reset.service import (
    complete_reset,
    find_usable_reset,
    hash_reset_token,
    request_reset,
)

CSRF = "test-csrf"
PASSWORD = "Passw0rd!"


class FakeMailer:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send_password_reset(self, to, name, reset_url):
        self.sent.append((to, name, reset_url))
        return (True, "sent") if self.ok else (False, "SMTP error: boom")


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("VAR_DIR", str(tmp_path / "var"))
    for k in ("SMTP_HOST", "FORCE_HTTPS", "APP_URL", "CACHE_DIR", "RATE_LIMIT_DIR", "LOG_DIR"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(
                    uid=secrets.token_hex(16),
                    first_name="Pat",
                    last_name="Jones",
                    email="patient@example.com",
                    password_hash=generate_password_hash(PASSWORD),
                    role="patient",
                    is_active=True,
                ),
                User(
                    uid=secrets.token_hex(16),
                    first_name="Sam",
                    last_name="Held",
                    email="suspended@example.com",
                    password_hash=generate_password_hash(PASSWORD),
                    role="patient",
                    is_active=False,
                ),
            ]
        )

    return app.test_client()


def _post(client, url, data=None, **kwargs):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    return client.post(url, data={**(data or {}), "csrf_token": CSRF}, **kwargs)


def _user_id(s, email="patient@example.com"):
    return s.query(User).filter(User.email == email).one().id


def _add_reset(app, token, *, expires_in=timedelta(hours=1), used=False):
    with session_scope(app) as s:
        now = datetime.utcnow()
        s.add(
            PasswordReset(
                user_id=_user_id(s),
                email="patient@example.com",
                token=hash_reset_token(token),
                expires_at=now + expires_in,
                used_at=now if used else None,
                created_at=now,
            )
        )


def test_request_reset_emails_single_use_link(client):
    mailer = FakeMailer()
    with session_scope(client.application) as s:
        outcome = request_reset(s, " Patient@Example.com ", mailer=mailer, app_url="https://kmp.example/")
        assert outcome == "sent"

    assert len(mailer.sent) == 1
    to, name, url = mailer.sent[0]
    assert (to, name) == ("patient@example.com", "Pat")
    assert url.startswith("https://kmp.example/reset-password?token=")
    token = parse_qs(urlparse(url).query)["token"][0]
    assert len(token) == 64

    with session_scope(client.application) as s:
        row = s.query(PasswordReset).one()
        assert row.token == hash_reset_token(token)  # only the hash is stored
        assert row.expires_at - row.created_at == timedelta(hours=1)
        assert find_usable_reset(s, token) is not None
        assert s.query(AuditLog).filter(AuditLog.activity_type == "PASSWORD_RESET_EMAIL_SENT").count() == 1


def test_request_reset_records_mail_failure(client):
    with session_scope(client.application) as s:
        assert request_reset(s, "patient@example.com", mailer=FakeMailer(ok=False), app_url="http://x") == "email_failed"
        event = s.query(AuditLog).filter(AuditLog.activity_type == "PASSWORD_RESET_EMAIL_FAILED").one()
        assert "boom" in event.description


def test_request_reset_unknown_and_suspended(client):
    mailer = FakeMailer()
    with session_scope(client.application) as s:
        assert request_reset(s, "nobody@example.com", mailer=mailer, app_url="http://x") == "unknown_email"
        assert request_reset(s, "suspended@example.com", mailer=mailer, app_url="http://x") == "suspended"
        assert s.query(PasswordReset).count() == 0
    assert mailer.sent == []


def test_request_reset_rate_limited_after_three(client):
    mailer = FakeMailer()
    with session_scope(client.application) as s:
        outcomes = [request_reset(s, "patient@example.com", mailer=mailer, app_url="http://x") for _ in range(4)]
        assert outcomes == ["sent", "sent", "sent", "rate_limited"]
        assert s.query(PasswordReset).count() == 3


def test_complete_reset_burns_every_open_token(client):
    _add_reset(client.application, "first-token")
    _add_reset(client.application, "second-token")
    with session_scope(client.application) as s:
        reset = find_usable_reset(s, "first-token")
        user = complete_reset(s, reset, "N3w-password")
        assert check_password_hash(user.password_hash, "N3w-password")
    with session_scope(client.application) as s:
        assert find_usable_reset(s, "first-token") is None
        assert find_usable_reset(s, "second-token") is None


def test_expired_and_used_tokens_unusable(client):
    _add_reset(client.application, "old-token", expires_in=timedelta(minutes=-1))
    _add_reset(client.application, "used-token", used=True)
    with session_scope(client.application) as s:
        assert find_usable_reset(s, "old-token") is None
        assert find_usable_reset(s, "used-token") is None
        assert find_usable_reset(s, "") is None


def test_forgot_password_same_response_for_any_email(client):
    r1 = _post(client, "/forgot-password", {"email": "patient@example.com"})
    r2 = _post(client, "/forgot-password", {"email": "nobody@example.com"})
    assert r1.status_code == r2.status_code == 302
    assert r1.headers["Location"] == r2.headers["Location"]

    with session_scope(client.application) as s:
        # SMTP is not configured in tests so the mail fails, but the token was issued
        assert s.query(PasswordReset).count() == 1


def test_forgot_password_invalid_email(client):
    r = _post(client, "/forgot-password", {"email": "not-an-email"})
    assert r.status_code == 400


def test_reset_password_page_flow(client):
    _add_reset(client.application, "good-token")

    assert client.get("/reset-password?token=good-token").status_code == 200

    r = _post(client, "/reset-password", {"token": "good-token", "password": "N3w-password", "confirm_password": "nope"})
    assert r.status_code == 400

    r = _post(client, "/reset-password", {"token": "good-token", "password": "N3w-password", "confirm_password": "N3w-password"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")

    r = _post(client, "/login", {"email": "patient@example.com", "password": "N3w-password"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    r = client.get("/reset-password?token=good-token")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/forgot-password")


def test_reset_password_bad_token_redirects(client):
    r = client.get("/reset-password?token=does-not-exist")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/forgot-password")

    r = _post(client, "/reset-password", {"token": "does-not-exist", "password": PASSWORD, "confirm_password": PASSWORD})
    assert r.status_code == 302
