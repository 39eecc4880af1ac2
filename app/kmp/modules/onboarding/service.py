from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from app.kmp.validators import is_valid_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.kmp.modules.onboarding.models import OnboardingEnquiry


TEXT_FIELDS = (
    "company_name", "company_website", "organization_type", "organization_size",
    "contact_person", "job_title", "email", "phone",
    "current_systems", "integration_timeline", "specific_requirements", "additional_info",
    "utm_source", "utm_medium", "utm_campaign",
)
VALID_STATUSES = ("new", "contacted", "qualified", "converted", "closed")

_PHONE_STRIP_RE = re.compile(r"[\s\-()+]")


def normalize_website(raw: str | None) -> str | None:
    value = (raw or "").strip()
    if not value:
        return None
    if not re.match(r"^[a-z][a-z0-9+.\-]*://", value, re.IGNORECASE):
        value = "https://" + value
    return value


def _is_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and "." in (parsed.hostname or "")


def enquiry_payload(form) -> dict:
    payload = {name: (form.get(name) or "").strip() for name in TEXT_FIELDS}
    payload["email"] = payload["email"].lower()
    payload["company_website"] = normalize_website(payload["company_website"]) or ""
    payload["gdpr_consent"] = bool(form.get("gdpr_consent"))
    payload["marketing_consent"] = bool(form.get("marketing_consent"))
    return payload


def validate_enquiry_payload(payload: dict) -> dict[str, str]:
    """Validate onboarding enquiry. Returns field -> error (empty when valid)."""
    errors: dict[str, str] = {}
    if len(payload.get("company_name") or "") < 2:
        errors["company_name"] = "Company name must be at least 2 characters."
    website = payload.get("company_website")
    if website and not _is_url(website):
        errors["company_website"] = "Please enter a valid website address."
    if not payload.get("organization_type"):
        errors["organization_type"] = "Please select your organisation type."
    if len(payload.get("contact_person") or "") < 2:
        errors["contact_person"] = "Contact person must be at least 2 characters."
    if not is_valid_email(payload.get("email")):
        errors["email"] = "Please enter a valid email address."
    phone = payload.get("phone")
    if phone:
        digits = _PHONE_STRIP_RE.sub("", phone)
        if not digits.isdigit() or not 10 <= len(digits) <= 15:
            errors["phone"] = "Phone number must contain between 10 and 15 digits."
    if not payload.get("gdpr_consent"):
        errors["gdpr_consent"] = "You must consent to us processing your data to continue."
    return errors


def create_enquiry(
    s: "Session",
    payload: dict,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> "OnboardingEnquiry":
    from app.kmp.modules.onboarding.models import OnboardingEnquiry

    def opt(name: str) -> str | None:
        return payload.get(name) or None

    now = datetime.utcnow()
    enquiry = OnboardingEnquiry(
        company_name=payload["company_name"],
        company_website=opt("company_website"),
        organization_type=payload["organization_type"],
        organization_size=opt("organization_size"),
        contact_person=payload["contact_person"],
        job_title=opt("job_title"),
        email=payload["email"],
        phone=opt("phone"),
        current_systems=opt("current_systems"),
        integration_timeline=opt("integration_timeline"),
        specific_requirements=opt("specific_requirements"),
        additional_info=opt("additional_info"),
        gdpr_consent=bool(payload.get("gdpr_consent")),
        marketing_consent=bool(payload.get("marketing_consent")),
        status="new",
        priority="medium",
        lead_source=opt("utm_source") or "website",
        utm_source=opt("utm_source"),
        utm_medium=opt("utm_medium"),
        utm_campaign=opt("utm_campaign"),
        created_by="system",
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        created_at=now,
        updated_at=now,
    )
    s.add(enquiry)
    s.flush()
    return enquiry
