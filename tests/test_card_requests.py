"""Tests for patient card requests and the admin fulfilment screens."""
import secrets
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.kmp import create_app
from app.kmp.db import session_scope
from app.kmp.models import AuditLog, Base, User
from app.kmp.modules.card_requests.models import CardRequest
from app.kmp.modules.card_requests.service import active_card_request, filter_card_requests
from app.kmp.modules.patients.models import PatientProfile

CSRF = "test-csrf"
PASSWORD = "Passw0rd!"


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("VAR_DIR", str(tmp_path / "var"))
    for k in ("SMTP_HOST", "FORCE_HTTPS", "CACHE_DIR", "RATE_LIMIT_DIR", "LOG_DIR"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        for email, role in (
            ("admin@example.com", "admin"),
            ("patient@example.com", "patient"),
            ("nurse@example.com", "healthcare_worker"),
        ):
            s.add(
                User(
                    uid=secrets.token_hex(16),
                    first_name="Test",
                    last_name="User",
                    email=email,
                    password_hash=generate_password_hash(PASSWORD),
                    role=role,
                    is_active=True,
                )
            )

    return app.test_client()


def _post(client, url, data=None, **kwargs):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    return client.post(url, data={**(data or {}), "csrf_token": CSRF}, **kwargs)


def _login(client, email):
    return _post(client, "/login", {"email": email, "password": PASSWORD})


def _add_profile(app, email="patient@example.com", *, address="1 High Street", postcode="SW1A 1AA"):
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == email).one()
        s.add(
            PatientProfile(
                patient_uid=u.uid,
                user_id=u.id,
                created_by=u.id,
                patient_name="Pat Jones",
                address=address,
                postcode=postcode,
                phone_number="07123456789",
            )
        )
        return u.uid


def _add_request(app, status="pending", **kwargs):
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "patient@example.com").one()
        req = CardRequest(user_id=u.id, patient_uid=u.uid, status=status, contact_email=u.email, **kwargs)
        s.add(req)
        s.flush()
        return req.id


def _requests(app):
    with session_scope(app) as s:
        return s.query(CardRequest).order_by(CardRequest.id).all()


def test_request_without_profile_goes_to_profile_form(client):
    _login(client, "patient@example.com")
    r = _post(client, "/card-requests/request")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/add-patient")
    assert _requests(client.application) == []


def test_request_with_incomplete_address_refused(client):
    _add_profile(client.application, postcode=None)
    _login(client, "patient@example.com")
    r = _post(client, "/card-requests/request")
    assert r.headers["Location"].endswith("/add-patient")
    assert _requests(client.application) == []


def test_request_card_snapshots_profile(client):
    uid = _add_profile(client.application)
    _login(client, "patient@example.com")
    r = _post(client, "/card-requests/request")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard")

    [req] = _requests(client.application)
    assert req.status == "pending"
    assert req.card_type == "standard"
    assert req.patient_uid == uid
    assert req.delivery_address == "1 High Street"
    assert req.delivery_postcode == "SW1A 1AA"
    assert req.contact_phone == "07123456789"
    assert req.contact_email == "patient@example.com"

    r = client.get("/dashboard")
    assert f"Card request #{req.id}".encode() in r.data


def test_only_one_open_request(client):
    _add_profile(client.application)
    _login(client, "patient@example.com")
    _post(client, "/card-requests/request")
    r = _post(client, "/card-requests/request", follow_redirects=True)
    assert b"already have a card request in progress" in r.data
    assert len(_requests(client.application)) == 1


def test_closed_request_allows_new_one(client):
    _add_profile(client.application)
    _add_request(client.application, status="delivered")
    _login(client, "patient@example.com")
    _post(client, "/card-requests/request")
    statuses = [r.status for r in _requests(client.application)]
    assert statuses == ["delivered", "pending"]


def test_only_patients_can_request(client):
    _login(client, "nurse@example.com")
    assert _post(client, "/card-requests/request").status_code == 403


def test_active_card_request_ignores_closed(client):
    _add_request(client.application, status="cancelled")
    newest = _add_request(client.application, status="printing")
    with session_scope(client.application) as s:
        u = s.query(User).filter(User.email == "patient@example.com").one()
        assert active_card_request(s, u.id).id == newest


def test_admin_list_and_filters(client):
    _add_request(client.application, status="pending", request_date=datetime(2024, 1, 10))
    _add_request(client.application, status="posted", tracking_number="TRK123", request_date=datetime(2024, 3, 1))
    _login(client, "admin@example.com")

    r = client.get("/admin/card-requests")
    assert r.status_code == 200
    assert b"TRK123" in r.data

    with session_scope(client.application) as s:
        rows, filters = filter_card_requests(s, {"status": "posted"})
        assert [row.tracking_number for row in rows] == ["TRK123"]

        rows, _ = filter_card_requests(s, {"from_date": "01/02/2024", "to_date": "31/03/2024"})
        assert [row.status for row in rows] == ["posted"]

        rows, filters = filter_card_requests(s, {"sort_by": "DROP TABLE", "order": "sideways", "from_date": "garbage"})
        assert len(rows) == 2
        assert filters["sort_by"] == "request_date"
        assert filters["order"] == "desc"

        rows, _ = filter_card_requests(s, {"search": "trk1"})
        assert len(rows) == 1


def test_admin_status_update_keeps_tracking_only_when_shipped(client):
    req_id = _add_request(client.application)
    _login(client, "admin@example.com")

    r = _post(client, f"/admin/card-requests/{req_id}/status", {"status": "printing", "tracking_number": "EARLY"})
    assert r.status_code == 302
    [req] = _requests(client.application)
    assert req.status == "printing"
    assert req.tracking_number is None

    _post(client, f"/admin/card-requests/{req_id}/status", {"status": "posted", "tracking_number": "RM123GB", "admin_notes": "1st class"})
    [req] = _requests(client.application)
    assert req.status == "posted"
    assert req.tracking_number == "RM123GB"
    assert req.admin_notes == "1st class"

    with session_scope(client.application) as s:
        events = s.query(AuditLog).filter(AuditLog.activity_type == "CARD_REQUEST_STATUS_UPDATED").all()
        assert len(events) == 2
        assert '"new_status": "posted"' in events[-1].metadata_json


def test_admin_status_update_rejects_unknown_status(client):
    req_id = _add_request(client.application)
    _login(client, "admin@example.com")
    r = _post(client, f"/admin/card-requests/{req_id}/status", {"status": "lost"}, follow_redirects=True)
    assert b"Invalid status" in r.data
    assert _requests(client.application)[0].status == "pending"


def test_admin_delete_request(client):
    req_id = _add_request(client.application)
    _login(client, "admin@example.com")
    r = _post(client, f"/admin/card-requests/{req_id}/delete")
    assert r.status_code == 302
    assert _requests(client.application) == []
    assert _post(client, f"/admin/card-requests/{req_id}/delete").status_code == 404

    with session_scope(client.application) as s:
        assert s.query(AuditLog).filter(AuditLog.activity_type == "CARD_REQUEST_DELETED").count() == 1


def test_admin_screens_forbidden_to_others(client):
    _login(client, "patient@example.com")
    assert client.get("/admin/card-requests").status_code == 403


def test_request_date_sorting(client):
    _add_request(client.application, status="cancelled", request_date=datetime.utcnow() - timedelta(days=5))
    _add_request(client.application, status="pending", request_date=datetime.utcnow())
    with session_scope(client.application) as s:
        rows, _ = filter_card_requests(s, {"order": "asc"})
        assert [r.status for r in rows] == ["cancelled", "pending"]
