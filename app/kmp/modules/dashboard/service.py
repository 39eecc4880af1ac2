from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

import segno
from werkzeug.security import check_password_hash, generate_password_hash

from app.kmp.audit import record_event
from app.kmp.constants import ACCOUNT_DELETION_PHRASE, ROLE_ADMIN, ROLE_NHS_USER
from app.kmp.models import User
from app.kmp.validators import MIN_PASSWORD_LENGTH, is_valid_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


DASHBOARD_HEADINGS = {
    ROLE_ADMIN: ("Admin Dashboard", "Manage the system and user accounts."),
    ROLE_NHS_USER: ("NHS Staff Dashboard", "Access patient records and NHS tools."),
}
DEFAULT_HEADING = ("User Dashboard", "Manage your account, privacy, and records all in one place.")

logger = logging.getLogger(__name__)


def dashboard_heading(role: str) -> tuple[str, str]:
    return DASHBOARD_HEADINGS.get(role, DEFAULT_HEADING)


def qr_data_uri(content: str) -> str:
    """PNG QR code of `content` as a data: URI, or "" if it cannot be encoded."""
    try:
        return segno.make_qr(content, error="m").png_data_uri(scale=6, border=2)
    except ValueError:
        logger.warning("QR code generation failed for %r", content, exc_info=True)
        return ""


def change_password(s: "Session", user: User, payload: dict) -> list[str]:
    """Returns list of errors; on success the new hash is set and audited (caller commits)."""
    current = payload.get("current_password") or ""
    new = payload.get("new_password") or ""
    confirm = payload.get("confirm_password") or ""

    if not current or not new or not confirm:
        return ["All password fields are required."]
    if len(new) < MIN_PASSWORD_LENGTH:
        return [f"New password must be at least {MIN_PASSWORD_LENGTH} characters long."]
    if new != confirm:
        return ["New passwords do not match."]
    if not check_password_hash(user.password_hash, current):
        return ["Current password is incorrect."]

    user.password_hash = generate_password_hash(new)
    user.remember_token = None
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="PASSWORD_CHANGED", entity_type="User", entity_id=str(user.id))
    return []


def update_account(s: "Session", user: User, payload: dict) -> list[str]:
    first_name = (payload.get("first_name") or "").strip()
    surname = (payload.get("surname") or "").strip()
    email = (payload.get("email") or "").strip().lower()

    if not first_name or not surname or not email:
        return ["First name, surname and email are required."]
    if not is_valid_email(email):
        return ["Please enter a valid email address."]
    taken = s.query(User.id).filter(User.email == email).filter(User.id != user.id).first()
    if taken:
        return ["That email address is already in use by another account."]

    changes = {}
    for attr, value in (("first_name", first_name), ("last_name", surname), ("email", email)):
        old = getattr(user, attr)
        if old != value:
            changes[attr] = {"old": old, "new": value}
            setattr(user, attr, value)
    if "email" in changes:
        # a new address has not been proven to be NHS
        user.nhs_verified = False
        user.is_verified = False
    user.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="PROFILE_UPDATED",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"changes": changes},
    )
    return []


def deletion_phrase_matches(typed: str | None) -> bool:
    return (typed or "").strip().upper() == ACCOUNT_DELETION_PHRASE


def delete_account(s: "Session", user: User) -> None:
    """
    Remove the account. Patient profile, card requests and reset tokens go with it (FK cascades);
    the audit row keeps the email so the deletion itself stays traceable.
    """
    from app.kmp.modules.card_requests.models import CardRequest
    from app.kmp.modules.password_reset.models import PasswordReset
    from app.kmp.modules.patients.models import PatientProfile

    record_event(
        s,
        actor=None,
        actor_email=user.email,
        action="ACCOUNT_DELETED",
        entity_type="User",
        entity_id=str(user.id),
        target_user_id=user.id,
        metadata={"role": user.role, "uid": user.uid},
    )
    # explicit deletes so non-cascading backends behave the same
    s.query(CardRequest).filter(CardRequest.user_id == user.id).delete(synchronize_session=False)
    s.query(PasswordReset).filter(PasswordReset.user_id == user.id).delete(synchronize_session=False)
    s.query(PatientProfile).filter(PatientProfile.user_id == user.id).delete(synchronize_session=False)
    s.delete(user)
