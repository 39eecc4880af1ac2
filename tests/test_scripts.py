"""Tests for the release / start helpers."""
import pytest
from werkzeug.security import check_password_hash

from app.kmp import create_app
from app.kmp.db import session_scope
from app.kmp.models import Base, Testimonial, User
from scripts import init_db
from scripts.release import run_release
from scripts.start import gunicorn_argv, validated_port


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("VAR_DIR", str(tmp_path / "var"))
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "S3cure-admin!")
    for k in ("SMTP_HOST", "FORCE_HTTPS", "CACHE_DIR", "RATE_LIMIT_DIR", "LOG_DIR"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


def test_seed_is_idempotent(app):
    db_url = app.config["DATABASE_URL"]
    init_db.seed_only(database_url=db_url)
    init_db.seed_only(database_url=db_url)

    with session_scope(app) as s:
        [admin] = s.query(User).all()
        assert admin.email == "root@example.com"
        assert admin.role == "admin"
        assert check_password_hash(admin.password_hash, "S3cure-admin!")
        assert s.query(Testimonial).count() == len(init_db.SAMPLE_TESTIMONIALS)


def test_seed_keeps_existing_admin_password(app, monkeypatch):
    db_url = app.config["DATABASE_URL"]
    init_db.seed_only(database_url=db_url)
    monkeypatch.setenv("ADMIN_PASSWORD", "Different-pass!")
    init_db.seed_only(database_url=db_url)

    with session_scope(app) as s:
        admin = s.query(User).one()
        assert check_password_hash(admin.password_hash, "S3cure-admin!")


def test_release_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        run_release()


def test_release_refuses_sqlite_in_production(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError, match="sqlite"):
        run_release()


def test_validated_port():
    assert validated_port(None) == "8080"
    assert validated_port(" 5000 ") == "5000"
    for bad in ("http", "0", "70000"):
        with pytest.raises(ValueError):
            validated_port(bad)


def test_gunicorn_argv():
    argv = gunicorn_argv("9000", workers=4)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:9000"
    assert argv[argv.index("--workers") + 1] == "4"


def test_production_app_refuses_sqlite(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("VAR_DIR", str(tmp_path / "var"))
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


def test_release_migrates_and_seeds_fresh_database(tmp_path, monkeypatch):
    db_url = f"sqlite:///{tmp_path/'release.db'}"
    monkeypatch.setenv("DATABASE_URL", db_url)
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "admin@example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "S3cure-admin!")

    run_release()
    run_release()  # second run is a no-op

    from sqlalchemy import inspect

    from scripts._db_utils import create_script_engine

    engine = create_script_engine(db_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {
        "users", "patient_profiles", "card_requests", "onboarding_enquiries",
        "support_messages", "password_resets", "audit_log", "testimonials", "alembic_version",
    } <= tables
