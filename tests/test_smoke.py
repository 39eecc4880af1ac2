from types import SimpleNamespace

import pytest

from app.kmp import create_app
from app.kmp.models import Base

CSRF = "test-csrf"


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("VAR_DIR", str(tmp_path / "var"))
    monkeypatch.setenv("UPLOAD_ROOT", str(tmp_path / "uploads"))
    for k in (
        "S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY",
        "SMTP_HOST", "FORCE_HTTPS", "APP_URL", "APP_VERSION", "CACHE_DIR", "RATE_LIMIT_DIR", "LOG_DIR",
    ):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app.test_client()


def _set_csrf(client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _plenty_of_disk(monkeypatch):
    monkeypatch.setattr("app.kmp.routes.shutil.disk_usage", lambda _path: SimpleNamespace(total=100 * 1024**3, used=20 * 1024**3, free=80 * 1024**3))


def test_health_ok(client, monkeypatch):
    _plenty_of_disk(monkeypatch)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "healthy"
    assert r.json["checks"]["database"]["status"] == "ok"
    assert r.json["checks"]["logs"]["writable"] is True
    assert r.json["checks"]["cache"]["writable"] is True
    assert r.json["version"] == "1.0.0"
    assert "response_time_ms" in r.json
    assert "no-store" in r.headers["Cache-Control"]


def test_healthz_is_plain_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_home_and_privacy_render(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Know My Patient" in r.data

    assert client.get("/home").status_code == 200
    assert client.get("/privacy-policy").status_code == 200


def test_security_headers(client):
    r = client.get("/")
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "frame-ancestors 'none'" in r.headers["Content-Security-Policy"]
    assert "camera=(self)" in r.headers["Permissions-Policy"]
    assert "Strict-Transport-Security" not in r.headers


def test_hsts_only_over_https(client):
    r = client.get("/", headers={"X-Forwarded-Proto": "https"})
    assert r.headers["Strict-Transport-Security"].startswith("max-age=31536000")


def test_not_found_html_and_json(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
    assert r.mimetype == "text/html"

    r = client.get("/api/no-such-endpoint")
    assert r.status_code == 404
    assert r.json == {"error": "Not found"}


def test_post_without_csrf_token_rejected(client):
    r = client.post("/support", data={"name": "Ann", "email": "ann@example.com", "subject": "Hi", "message": "x" * 20})
    assert r.status_code == 400
    assert b"CSRF" in r.data


def test_cookie_consent_records_choice(client):
    _set_csrf(client)
    r = client.post("/api/cookie-consent", json={"consent_type": "essential"}, headers={"X-CSRF-Token": CSRF})
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["consent_type"] == "essential"
    cookie = client.get_cookie("cookie_consent_status")
    assert cookie is not None
    assert cookie.value == "essential"


def test_cookie_consent_rejects_bad_input(client):
    _set_csrf(client)
    r = client.post("/api/cookie-consent", json={}, headers={"X-CSRF-Token": CSRF})
    assert r.status_code == 400
    assert r.json["message"] == "Consent type is required"

    r = client.post("/api/cookie-consent", json={"consent_type": "everything"}, headers={"X-CSRF-Token": CSRF})
    assert r.status_code == 400
    assert r.json["message"] == "Invalid consent type"


def test_cookie_consent_requires_csrf_header(client):
    r = client.post("/api/cookie-consent", json={"consent_type": "all"})
    assert r.status_code == 400
    assert r.json["success"] is False


def test_health_unhealthy_when_database_fails(client, monkeypatch):
    _plenty_of_disk(monkeypatch)

    class BrokenSession:
        def execute(self, *_args, **_kwargs):
            raise RuntimeError("connection refused")

    monkeypatch.setattr("app.kmp.routes.db_session", lambda: BrokenSession())
    r = client.get("/health")
    assert r.status_code == 503
    assert r.json["status"] == "unhealthy"
    assert r.json["checks"]["database"] == {"status": "error", "message": "Database connection failed"}


def test_health_degraded_when_cache_dir_not_writable(client, monkeypatch, tmp_path):
    _plenty_of_disk(monkeypatch)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    client.application.config["CACHE_DIR"] = str(blocker / "cache")

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "degraded"
    assert r.json["checks"]["cache"] == {"status": "error", "writable": False}
    assert r.json["checks"]["logs"]["writable"] is True


def test_health_degraded_when_log_dir_not_writable(client, monkeypatch, tmp_path):
    _plenty_of_disk(monkeypatch)
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    client.application.config["LOG_DIR"] = str(blocker / "logs")

    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["status"] == "degraded"
    assert r.json["checks"]["logs"]["writable"] is False


def test_force_https_redirects_plain_http(client, monkeypatch):
    _plenty_of_disk(monkeypatch)
    client.application.config["FORCE_HTTPS"] = True

    r = client.get("/privacy-policy?x=1")
    assert r.status_code == 301
    assert r.headers["Location"] == "https://localhost/privacy-policy?x=1"

    r = client.get("/privacy-policy", headers={"X-Forwarded-Proto": "https"})
    assert r.status_code == 200

    assert client.get("/health").status_code == 200
    assert client.get("/healthz").status_code == 200


def test_non_ascii_csrf_token_rejected(client):
    _set_csrf(client)
    r = client.post("/support", data={"csrf_token": "é", "name": "Ann", "email": "ann@example.com", "subject": "Hi", "message": "x" * 20})
    assert r.status_code == 400

    r = client.post("/api/cookie-consent", json={"consent_type": "all", "csrf_token": "jeton-é"})
    assert r.status_code == 400
    assert r.json["success"] is False
