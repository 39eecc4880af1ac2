from __future__ import annotations

from flask import Blueprint, current_app, render_template, request

from app.kmp.db import db_session
from app.kmp.errors import error_messages_from_config
from app.kmp.ip import client_ip
from app.kmp.modules.onboarding.service import create_enquiry, enquiry_payload, validate_enquiry_payload

bp = Blueprint("onboarding", __name__)


@bp.get("/onboarding")
def onboarding_get():
    form = {k: request.args.get(k, "") for k in ("utm_source", "utm_medium", "utm_campaign")}
    return render_template("public/onboarding.html", form=form, errors={}, success=False)


@bp.post("/onboarding")
def onboarding_post():
    payload = enquiry_payload(request.form)
    errors = validate_enquiry_payload(payload)
    if errors:
        return render_template("public/onboarding.html", form=payload, errors=errors, success=False), 400

    s = db_session()
    try:
        enquiry = create_enquiry(
            s,
            payload,
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
        s.commit()
    except Exception as e:
        s.rollback()
        msg = error_messages_from_config(current_app.config).user_message(
            e, "database", custom="Sorry, we could not save your enquiry. Please try again later."
        )
        return render_template("public/onboarding.html", form=payload, errors={"general": msg}, success=False), 500

    current_app.logger.info("Onboarding enquiry id=%s from %s", enquiry.id, enquiry.company_name)
    return render_template("public/onboarding.html", form={}, errors={}, success=True)
