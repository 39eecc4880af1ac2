from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.kmp.constants import ROLE_ADMIN
from app.kmp.db import db_session
from app.kmp.modules.card_requests.models import CardRequest
from app.kmp.modules.card_requests.service import (
    VALID_STATUSES,
    card_request_stats,
    delete_card_request,
    filter_card_requests,
    update_card_request_status,
    validate_status_payload,
)
from app.kmp.rbac import role_required

bp = Blueprint("card_requests_admin", __name__)


@bp.get("/card-requests")
@role_required(ROLE_ADMIN)
def card_requests_list():
    s = db_session()
    rows, filters = filter_card_requests(s, request.args)
    return render_template(
        "admin/card_requests.html",
        card_requests=rows,
        filters=filters,
        stats=card_request_stats(s),
        statuses=VALID_STATUSES,
    )


@bp.post("/card-requests/<int:request_id>/status")
@role_required(ROLE_ADMIN)
def card_request_update_status(request_id: int):
    s = db_session()
    req = s.get(CardRequest, request_id)
    if not req:
        abort(404)

    payload = {
        "status": request.form.get("status"),
        "tracking_number": request.form.get("tracking_number"),
        "admin_notes": request.form.get("admin_notes"),
    }
    errors = validate_status_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("card_requests_admin.card_requests_list"))

    update_card_request_status(s, req, payload, g.current_user)
    s.commit()
    flash(f"Card request #{req.id} updated to {req.status}.", "success")
    return redirect(url_for("card_requests_admin.card_requests_list"))


@bp.post("/card-requests/<int:request_id>/delete")
@role_required(ROLE_ADMIN)
def card_request_delete(request_id: int):
    s = db_session()
    req = s.get(CardRequest, request_id)
    if not req:
        abort(404)
    delete_card_request(s, req, g.current_user)
    s.commit()
    flash(f"Card request #{request_id} deleted.", "success")
    return redirect(url_for("card_requests_admin.card_requests_list"))
