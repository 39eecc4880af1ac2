from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for

from app.kmp.auth import end_user_session
from app.kmp.constants import (
    ACCOUNT_DELETION_PHRASE,
    REMEMBER_COOKIE_NAME,
    ROLE_FAMILY,
    ROLE_NHS_USER,
    ROLE_PATIENT,
)
from app.kmp.db import db_session
from app.kmp.models import User
from app.kmp.modules.card_requests.service import active_card_request
from app.kmp.modules.dashboard.service import (
    change_password,
    dashboard_heading,
    delete_account,
    deletion_phrase_matches,
    qr_data_uri,
    update_account,
)
from app.kmp.modules.patients.service import get_own_profile
from app.kmp.rbac import login_required, role_required

bp = Blueprint("dashboard", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/dashboard")
@login_required
def dashboard():
    s = db_session()
    u = _current_user()
    title, subtitle = dashboard_heading(u.role)
    pending = active_card_request(s, u.id) if u.role == ROLE_PATIENT else None
    return render_template(
        "dashboard/index.html",
        role=u.role,
        dashboard_title=title,
        dashboard_subtitle=subtitle,
        pending_card_request=pending,
        profile=get_own_profile(s, u) if u.role == ROLE_PATIENT else None,
    )


@bp.get("/nhs/dashboard")
@role_required(ROLE_NHS_USER)
def dashboard_nhs_user():
    return render_template("dashboard/nhs_user.html")


@bp.get("/patient/dashboard")
@role_required(ROLE_PATIENT)
def dashboard_patient():
    s = db_session()
    u = _current_user()
    return render_template(
        "dashboard/patient.html",
        pending_card_request=active_card_request(s, u.id),
        profile=get_own_profile(s, u),
    )


@bp.get("/family/dashboard")
@role_required(ROLE_FAMILY)
def dashboard_family():
    return render_template("dashboard/family.html")


@bp.get("/display")
@login_required
def display():
    u = _current_user()
    app_url = (current_app.config.get("APP_URL") or request.host_url).rstrip("/")
    public_url = f"{app_url}/{u.uid}"
    return render_template(
        "dashboard/display.html", unique_code=u.uid, public_url=public_url, qr_data_uri=qr_data_uri(public_url)
    )


# ---------- My profile ----------

@bp.get("/my-profile")
@login_required
def my_profile_get():
    return render_template("dashboard/my_profile.html", user=_current_user())


@bp.post("/my-profile")
@login_required
def my_profile_post():
    s = db_session()
    u = _current_user()

    if "delete_account" in request.form:
        return redirect(url_for("dashboard.confirm_deletion_get"))

    if "change_password" in request.form:
        errors = change_password(s, u, request.form)
        success = "Password changed successfully."
    else:
        errors = update_account(s, u, request.form)
        success = "Profile updated successfully."

    if errors:
        s.rollback()
        for e in errors:
            flash(e, "danger")
        return render_template("dashboard/my_profile.html", user=u), 400

    s.commit()
    session["user_name"] = u.first_name
    session["user_email"] = u.email
    flash(success, "success")
    return redirect(url_for("dashboard.my_profile_get"))


# ---------- Account deletion ----------

@bp.get("/delete-account")
@login_required
def delete_account_get():
    return render_template("dashboard/delete_account.html")


@bp.post("/delete-account")
@login_required
def delete_account_post():
    return redirect(url_for("dashboard.confirm_deletion_get"))


@bp.get("/confirm-deletion")
@login_required
def confirm_deletion_get():
    return render_template("dashboard/confirm_deletion.html", phrase=ACCOUNT_DELETION_PHRASE)


@bp.post("/confirm-deletion")
@login_required
def confirm_deletion_post():
    if not deletion_phrase_matches(request.form.get("confirmation")):
        flash(f'Please type "{ACCOUNT_DELETION_PHRASE}" exactly to confirm.', "danger")
        return render_template("dashboard/confirm_deletion.html", phrase=ACCOUNT_DELETION_PHRASE), 400

    s = db_session()
    u = _current_user()
    user_id = u.id
    delete_account(s, u)
    s.commit()
    current_app.logger.info("Account deleted user_id=%s", user_id)

    end_user_session()
    session.clear()
    g.current_user = None
    resp = redirect(url_for("auth.login", deleted=1))
    resp.delete_cookie(REMEMBER_COOKIE_NAME)
    return resp
