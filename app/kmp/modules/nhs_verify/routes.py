from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.kmp.audit import record_event
from app.kmp.db import db_session
from app.kmp.mailer import mailer_from_config
from app.kmp.models import User
from app.kmp.rbac import login_required

bp = Blueprint("nhs_verify", __name__)

_NHS_EMAIL_RE = re.compile(r"@nhs\.(net|uk)$", re.IGNORECASE)


def is_nhs_email(email: str | None) -> bool:
    return bool(email and _NHS_EMAIL_RE.search(email.strip()))


def needs_nhs_verification(user: User | None) -> bool:
    return bool(user and is_nhs_email(user.email) and not user.nhs_verified)


def _nhs_unverified_only(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not needs_nhs_verification(getattr(g, "current_user", None)):
            return redirect(url_for("dashboard.dashboard"))
        return fn(*args, **kwargs)

    return wrapped


@bp.get("/nhsverify")
@login_required
@_nhs_unverified_only
def nhsverify_get():
    return render_template("nhsverify.html", resent=request.args.get("resent") == "1", email=g.current_user.email)


@bp.post("/nhsverify/send")
@login_required
@_nhs_unverified_only
def nhsverify_send():
    s = db_session()
    u: User = g.current_user
    token = secrets.token_hex(16)
    u.nhs_verification_token = token
    record_event(s, actor=u, action="NHS_VERIFICATION_SENT", entity_type="User", entity_id=str(u.id))
    s.commit()

    app_url = (current_app.config.get("APP_URL") or request.host_url).rstrip("/")
    verify_url = f"{app_url}{url_for('nhs_verify.nhsverify_confirm', token=token)}"
    ok, err = mailer_from_config(current_app.config).send_nhs_verification(u.email, verify_url)
    if not ok:
        current_app.logger.warning("NHS verification email not sent to user_id=%s: %s", u.id, err)
        flash("We could not send the verification email right now. Please try again later.", "danger")
        return redirect(url_for("nhs_verify.nhsverify_get"))
    return redirect(url_for("nhs_verify.nhsverify_get", resent=1))


@bp.get("/nhsverify/confirm")
@login_required
@_nhs_unverified_only
def nhsverify_confirm():
    s = db_session()
    u: User = g.current_user
    token = (request.args.get("token") or "").strip()
    expected = u.nhs_verification_token or ""
    if not token or not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        flash("That verification link is invalid or has already been used.", "danger")
        return redirect(url_for("nhs_verify.nhsverify_get"))

    u.nhs_verified = True
    u.is_verified = True
    u.nhs_verification_token = None
    record_event(s, actor=u, action="NHS_VERIFIED", entity_type="User", entity_id=str(u.id))
    s.commit()
    flash("Your NHS email address has been verified.", "success")
    return redirect(url_for("dashboard.dashboard"))
