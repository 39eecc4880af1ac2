"""Tests for the small shared helpers: IP resolution, validators, error text, mailer, storage."""
from datetime import date

import pytest
from flask import Flask

from app.kmp.errors import GENERIC_MESSAGES, ErrorMessages, error_messages_from_config
from app.kmp.ip import client_ip, normalize_ip
from app.kmp.mailer import Mailer, mailer_from_config
from app.kmp.security import is_clinical_path, patient_uid_from_path
from app.kmp.storage import LocalStorage, S3Storage, StorageError, storage_from_config
from app.kmp.validators import (
    is_alpha_name,
    is_valid_email,
    is_valid_nhs_number,
    is_valid_postcode,
    is_valid_uk_phone,
    parse_iso_date,
    parse_uk_date,
    password_problems,
)


def test_normalize_ip():
    assert normalize_ip("127.0.0.1") == "localhost"
    assert normalize_ip("::1") == "localhost"
    assert normalize_ip(" 203.0.113.9:8080 ") == "203.0.113.9"
    assert normalize_ip("[2001:db8::1]") == "2001:db8::1"
    assert normalize_ip("2001:db8::1") == "2001:db8::1"
    assert normalize_ip("not-an-ip") is None
    assert normalize_ip("") is None
    assert normalize_ip(None) is None


def test_client_ip_header_precedence():
    app = Flask(__name__)
    headers = {
        "CF-Connecting-IP": "198.51.100.1",
        "X-Real-IP": "198.51.100.2",
        "X-Forwarded-For": "198.51.100.3, 10.0.0.1",
    }
    with app.test_request_context("/", headers=headers):
        from flask import request

        assert client_ip(request) == "198.51.100.1"

    with app.test_request_context("/", headers={"CF-Connecting-IP": "garbage", "X-Forwarded-For": "198.51.100.3, 10.0.0.1"}):
        from flask import request

        assert client_ip(request) == "198.51.100.3"

    with app.test_request_context("/", environ_base={"REMOTE_ADDR": "127.0.0.1"}):
        from flask import request

        assert client_ip(request) == "localhost"


def test_password_rules():
    assert password_problems("Passw0rd!", "Passw0rd!") == []
    assert len(password_problems("short", "other")) == 3
    assert password_problems("longenough1", None) == ["Password must contain at least one special character."]


def test_simple_validators():
    assert is_valid_email("a.b+c@example.co.uk")
    assert not is_valid_email("a@b")
    assert not is_valid_email(None)
    assert is_alpha_name("Mary-Jane O'Brien")
    assert not is_alpha_name("R2D2")
    assert is_valid_postcode("EC1A 1BB")
    assert is_valid_postcode("m11ae")
    assert not is_valid_postcode("12345")
    assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
    assert parse_iso_date("2023-02-29") is None
    assert parse_uk_date("29/02/2024") == date(2024, 2, 29)
    assert parse_uk_date("2024-02-29") is None


def test_validators_reject_trailing_newline():
    assert is_valid_nhs_number("9434765919")
    assert not is_valid_nhs_number("9434765919\n")
    assert is_valid_uk_phone("07700900123")
    assert not is_valid_uk_phone("07700900123\n")
    assert not is_valid_postcode("EC1A 1BB\n\n1")
    assert not is_valid_email("a@example.com\nBcc: x@example.com")


def test_error_messages_hide_details_in_production():
    prod = ErrorMessages(is_production=True)
    err = RuntimeError("SELECT * FROM users failed in /srv/app/db.py")
    assert prod.user_message(err, "database") == GENERIC_MESSAGES["database"]
    assert prod.user_message(err, "database", custom="Could not save.") == "Could not save."
    assert prod.user_message(err, "no-such-category") == GENERIC_MESSAGES["server_error"]

    # custom text is cleaned before it is shown; unsafe leftovers fall back to the generic message
    assert prod.user_message(err, "database", custom="Could not save table 'users'.") == "Could not save table [redacted]."
    assert prod.user_message(err, "database", custom="Query failed, try again.") == GENERIC_MESSAGES["database"]

    dev = ErrorMessages(is_production=False)
    assert "SELECT" in dev.user_message(err, "database")


def test_error_sanitize_and_is_safe():
    prod = ErrorMessages(is_production=True)
    cleaned = prod.sanitize("Failed SELECT on table 'users' in /srv/app/models.py")
    assert "SELECT" not in cleaned
    assert "/srv/app/models.py" not in cleaned
    assert "'users'" not in cleaned

    assert ErrorMessages.is_safe("Please try again later.")
    assert not ErrorMessages.is_safe("sqlalchemy.exc.OperationalError")
    assert not ErrorMessages.is_safe("DROP TABLE users")

    assert ErrorMessages(is_production=False).sanitize("SELECT 1") == "SELECT 1"


def test_json_error_shape():
    body = error_messages_from_config({"ENV": "production"}).json_error(ValueError("boom"), "validation")
    assert body["success"] is False
    assert body["error"] is True
    assert body["message"] == GENERIC_MESSAGES["validation"]
    assert len(body["timestamp"]) == 19


def test_unconfigured_mailer_reports_failure():
    mailer = mailer_from_config({})
    assert not mailer.configured
    assert mailer.send("a@example.com", "Hi", "<p>Hi</p>") == (False, "SMTP server not configured")
    assert mailer.test_connection() == (False, "SMTP server not configured")


def test_mailer_builds_multipart_message():
    mailer = Mailer(host="smtp.example.com", from_name="Know My Patient", reply_to="help@example.com")
    msg = mailer.build_message("to@example.com", "Subject", "<p>Hello</p>", "Hello")
    assert msg["To"] == "to@example.com"
    assert msg["Reply-To"] == "help@example.com"
    assert "Know My Patient" in msg["From"]
    assert [part.get_content_type() for part in msg.get_payload()] == ["text/plain", "text/html"]


def test_clinical_path_helpers():
    assert is_clinical_path("/patient/profile/abc-123")
    assert is_clinical_path("/patient/dashboard")
    assert not is_clinical_path("/patient-passport")
    assert patient_uid_from_path("/patient/profile/abc-123") == "abc-123"
    assert patient_uid_from_path("/dashboard") is None


def test_local_storage_round_trip_and_escape(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("patient_documents/u1/u1_respect.pdf", b"data")
    assert storage.exists("patient_documents/u1/u1_respect.pdf")
    with storage.open("patient_documents/u1/u1_respect.pdf") as f:
        assert f.read() == b"data"
    storage.delete("patient_documents/u1/u1_respect.pdf")
    assert not storage.exists("patient_documents/u1/u1_respect.pdf")

    with pytest.raises(StorageError):
        storage.put_bytes("../outside.txt", b"x")


def test_storage_from_config_picks_backend(tmp_path):
    assert isinstance(storage_from_config({"UPLOAD_ROOT": str(tmp_path)}), LocalStorage)
    s3 = storage_from_config({"STORAGE_BACKEND": "s3", "S3_BUCKET": "kmp-docs"})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "kmp-docs"
    assert s3.region == "eu-west-2"
