"""
Form field checks shared by the feature modules.
"""
from __future__ import annotations

import re
from datetime import date, datetime

_EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$")
_SPECIAL_CHAR_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>\-_=+\[\]\\/;~`]")
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z '\-]*$")
_NHS_NUMBER_RE = re.compile(r"^[0-9]{10}$")
_UK_PHONE_RE = re.compile(r"^(\+44|0)[0-9]{9,14}$")
_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}[0-9]{1,2}[A-Z]?\s?[0-9][A-Z]{2}$", re.IGNORECASE)

MIN_PASSWORD_LENGTH = 8


def is_valid_email(value: str | None) -> bool:
    value = (value or "").strip()
    return len(value) <= 320 and bool(_EMAIL_RE.fullmatch(value))


def password_problems(password: str | None, confirm: str | None = None) -> list[str]:
    """Rules for new passwords (register / reset). Returns list of errors."""
    errors = []
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if not _SPECIAL_CHAR_RE.search(password):
        errors.append("Password must contain at least one special character.")
    if confirm is not None and password != confirm:
        errors.append("Passwords do not match.")
    return errors


def is_alpha_name(value: str | None) -> bool:
    return bool(_NAME_RE.fullmatch((value or "").strip()))


def is_valid_nhs_number(value: str | None) -> bool:
    return bool(_NHS_NUMBER_RE.fullmatch(value or ""))


def is_valid_uk_phone(value: str | None) -> bool:
    return bool(_UK_PHONE_RE.fullmatch(value or ""))


def is_valid_postcode(value: str | None) -> bool:
    return bool(_POSTCODE_RE.fullmatch((value or "").strip()))


def parse_iso_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD; None for blank or malformed input."""
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def parse_uk_date(s: str | None) -> date | None:
    """Parse dd/mm/yyyy as used by the admin filters."""
    s = (s or "").strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, "%d/%m/%Y").date()
    except ValueError:
        return None
