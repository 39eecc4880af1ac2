from __future__ import annotations

from flask import Blueprint, flash, g, redirect, url_for

from app.kmp.constants import ROLE_PATIENT
from app.kmp.db import db_session
from app.kmp.modules.card_requests.service import CardRequestError, ProfileIncompleteError, create_card_request
from app.kmp.modules.patients.service import get_own_profile
from app.kmp.rbac import role_required

bp = Blueprint("card_requests", __name__)


@bp.post("/card-requests/request")
@role_required(ROLE_PATIENT)
def request_card():
    s = db_session()
    u = g.current_user
    profile = get_own_profile(s, u)
    try:
        create_card_request(s, u, profile)
    except ProfileIncompleteError as e:
        flash(str(e), "danger")
        return redirect(url_for("patients.add_patient_get"))
    except CardRequestError as e:
        flash(str(e), "danger")
        return redirect(url_for("dashboard.dashboard"))
    s.commit()
    flash("Your card request has been submitted. We'll let you know when it's on its way.", "success")
    return redirect(url_for("dashboard.dashboard"))
