from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.kmp.validators import is_valid_email

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.kmp.models import User
    from app.kmp.modules.support.models import SupportMessage


def validate_support_payload(payload: dict) -> list[str]:
    """Validate support form. Returns list of errors."""
    errors = []
    name = (payload.get("name") or "").strip()
    if not 2 <= len(name) <= 100:
        errors.append("Name must be between 2 and 100 characters.")
    if not is_valid_email(payload.get("email")):
        errors.append("Please enter a valid email address.")
    subject = (payload.get("subject") or "").strip()
    if not 2 <= len(subject) <= 150:
        errors.append("Subject must be between 2 and 150 characters.")
    if len((payload.get("message") or "").strip()) < 10:
        errors.append("Message must be at least 10 characters.")
    return errors


def create_support_message(
    s: "Session",
    payload: dict,
    user: "User | None",
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> "SupportMessage":
    from app.kmp.modules.support.models import SupportMessage

    msg = SupportMessage(
        user_id=user.id if user else None,
        name=(payload.get("name") or "").strip(),
        email=(payload.get("email") or "").strip().lower(),
        subject=(payload.get("subject") or "").strip(),
        message=(payload.get("message") or "").strip(),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:512] or None,
        created_at=datetime.utcnow(),
    )
    s.add(msg)
    s.flush()
    return msg
