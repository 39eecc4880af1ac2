from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from app.kmp.db import db_session
from app.kmp.ip import client_ip
from app.kmp.mailer import mailer_from_config
from app.kmp.modules.password_reset.service import (
    GENERIC_REQUEST_MESSAGE,
    complete_reset,
    find_usable_reset,
    request_reset,
)
from app.kmp.validators import is_valid_email, password_problems

bp = Blueprint("password_reset", __name__)


@bp.get("/forgot-password")
def forgot_password_get():
    return render_template("auth/forgot_password.html")


@bp.post("/forgot-password")
def forgot_password_post():
    email = (request.form.get("email") or "").strip().lower()
    if not is_valid_email(email):
        flash("Please enter a valid email address.", "danger")
        return render_template("auth/forgot_password.html", email=email), 400

    s = db_session()
    outcome = request_reset(
        s,
        email,
        mailer=mailer_from_config(current_app.config),
        app_url=current_app.config.get("APP_URL") or request.host_url,
        ip_address=client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    current_app.logger.info("Password reset request outcome=%s", outcome)
    flash(GENERIC_REQUEST_MESSAGE, "success")
    return redirect(url_for("auth.login"))


@bp.get("/reset-password")
def reset_password_get():
    token = (request.args.get("token") or "").strip()
    if not find_usable_reset(db_session(), token):
        flash("This password reset link is invalid or has expired. Please request a new one.", "danger")
        return redirect(url_for("password_reset.forgot_password_get"))
    return render_template("auth/reset_password.html", token=token)


@bp.post("/reset-password")
def reset_password_post():
    token = (request.form.get("token") or "").strip()
    s = db_session()
    reset = find_usable_reset(s, token)
    if not reset:
        flash("This password reset link is invalid or has expired. Please request a new one.", "danger")
        return redirect(url_for("password_reset.forgot_password_get"))

    errors = password_problems(request.form.get("password"), request.form.get("confirm_password") or "")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/reset_password.html", token=token), 400

    complete_reset(s, reset, request.form.get("password") or "")
    s.commit()
    flash("Your password has been reset. You can now log in.", "success")
    return redirect(url_for("auth.login"))
