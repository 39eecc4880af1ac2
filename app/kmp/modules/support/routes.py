from __future__ import annotations

from flask import Blueprint, current_app, flash, g, render_template, request

from app.kmp.db import db_session
from app.kmp.ip import client_ip
from app.kmp.modules.support.service import create_support_message, validate_support_payload

bp = Blueprint("support", __name__)


@bp.get("/support")
def support_get():
    user = getattr(g, "current_user", None)
    form = {"name": user.full_name, "email": user.email} if user else {}
    return render_template("public/support.html", form=form)


@bp.post("/support")
def support_post():
    payload = {k: request.form.get(k) or "" for k in ("name", "email", "subject", "message")}
    errors = validate_support_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("public/support.html", form=payload), 400

    s = db_session()
    try:
        create_support_message(
            s,
            payload,
            getattr(g, "current_user", None),
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        s.commit()
    except Exception:
        s.rollback()
        current_app.logger.exception("Support message could not be saved (request_id=%s)", getattr(g, "request_id", None))
        flash("Sorry, something went wrong sending your message. Please try again later.", "danger")
        return render_template("public/support.html", form=payload), 500

    flash("Thank you for contacting us. We'll get back to you as soon as possible.", "success")
    return render_template("public/support.html", form={})
