from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.kmp.audit import record_event
from app.kmp.models import User
from app.kmp.modules.password_reset.models import PasswordReset

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.kmp.mailer import Mailer

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(hours=1)
MAX_REQUESTS_PER_HOUR = 3

GENERIC_REQUEST_MESSAGE = (
    "If an account exists with that email, a password reset link has been sent. Please check your inbox."
)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def recent_request_count(s: "Session", email: str, now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    return (
        s.query(PasswordReset)
        .filter(PasswordReset.email == email)
        .filter(PasswordReset.created_at > now - timedelta(hours=1))
        .count()
    )


def request_reset(
    s: "Session",
    email: str,
    *,
    mailer: "Mailer",
    app_url: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> str:
    """
    Issue a reset token and email it when the account exists and is allowed one.
    Returns an outcome tag (sent / email_failed / rate_limited / suspended / unknown_email) for logging only;
    the caller must show the same message whatever happened.
    """
    email = email.strip().lower()
    now = datetime.utcnow()

    if recent_request_count(s, email, now) >= MAX_REQUESTS_PER_HOUR:
        record_event(
            s,
            actor=None,
            actor_email=email,
            action="PASSWORD_RESET_RATE_LIMITED",
            description="Too many password reset requests in the last hour",
        )
        s.commit()
        return "rate_limited"

    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        return "unknown_email"

    if not user.is_active:
        record_event(
            s,
            actor=None,
            actor_email=email,
            action="PASSWORD_RESET_SUSPENDED_ACCOUNT",
            target_user_id=user.id,
        )
        s.commit()
        return "suspended"

    token = secrets.token_hex(32)
    s.add(
        PasswordReset(
            user_id=user.id,
            email=email,
            token=hash_reset_token(token),
            expires_at=now + TOKEN_TTL,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:512] or None,
            created_at=now,
        )
    )
    record_event(s, actor=None, actor_email=email, action="PASSWORD_RESET_REQUESTED", target_user_id=user.id)
    s.commit()

    reset_url = f"{app_url.rstrip('/')}/reset-password?token={token}"
    ok, err = mailer.send_password_reset(email, user.first_name, reset_url)
    if ok:
        record_event(s, actor=None, actor_email=email, action="PASSWORD_RESET_EMAIL_SENT", target_user_id=user.id)
    else:
        logger.error("Password reset email failed for user_id=%s: %s", user.id, err)
        record_event(
            s,
            actor=None,
            actor_email=email,
            action="PASSWORD_RESET_EMAIL_FAILED",
            target_user_id=user.id,
            description=(err or "")[:500],
        )
    s.commit()
    return "sent" if ok else "email_failed"


def find_usable_reset(s: "Session", token: str) -> PasswordReset | None:
    if not token:
        return None
    reset = s.query(PasswordReset).filter(PasswordReset.token == hash_reset_token(token)).one_or_none()
    if not reset or not reset.is_usable():
        return None
    return reset


def complete_reset(s: "Session", reset: PasswordReset, new_password: str) -> User:
    """Set the new password, burn this token and every other open token for the user."""
    now = datetime.utcnow()
    user = s.get(User, reset.user_id)
    if user is None:
        raise LookupError("Password reset points at a missing user")
    user.password_hash = generate_password_hash(new_password)
    user.remember_token = None
    user.updated_at = now

    reset.used_at = now
    (
        s.query(PasswordReset)
        .filter(PasswordReset.user_id == user.id)
        .filter(PasswordReset.id != reset.id)
        .filter(PasswordReset.used_at.is_(None))
        .update({PasswordReset.used_at: now}, synchronize_session=False)
    )
    record_event(s, actor=user, action="PASSWORD_RESET_COMPLETED", entity_type="User", entity_id=str(user.id))
    return user
