from __future__ import annotations

from flask import Blueprint, flash, g, jsonify, render_template, request

from app.kmp.audit import record_event
from app.kmp.constants import CLINICAL_ROLES, ROLE_ADMIN, ROLE_NHS_USER
from app.kmp.db import db_session
from app.kmp.modules.healthcare.service import access_history, is_valid_uid
from app.kmp.modules.patients.service import find_profile_by_uid, profile_to_dict
from app.kmp.rbac import role_required

bp = Blueprint("healthcare", __name__)


@bp.get("/patient-passport")
@role_required(ROLE_NHS_USER, ROLE_ADMIN)
def passport_get():
    return render_template("healthcare/passport.html", patient=None, history=[], uid="")


@bp.post("/patient-passport")
@role_required(ROLE_NHS_USER, ROLE_ADMIN)
def passport_post():
    s = db_session()
    uid = (request.form.get("uid") or "").strip()
    if not is_valid_uid(uid):
        flash("Please enter a valid patient code.", "danger")
        return render_template("healthcare/passport.html", patient=None, history=[], uid=uid), 400

    patient = find_profile_by_uid(s, uid)
    record_event(
        s,
        actor=g.current_user,
        action="PATIENT_RECORD_ACCESSED",
        entity_type="PatientProfile",
        entity_id=uid,
        metadata={"found": patient is not None, "via": "patient_passport"},
    )
    s.commit()

    if not patient:
        flash("No patient record found for that code.", "warning")
        return render_template("healthcare/passport.html", patient=None, history=[], uid=uid), 404

    return render_template(
        "healthcare/passport.html",
        patient=patient,
        history=access_history(s, uid),
        uid=uid,
    )


@bp.get("/patient/profile/<uid>")
@role_required(*CLINICAL_ROLES)
def profile_json(uid: str):
    s = db_session()
    valid = is_valid_uid(uid)
    patient = find_profile_by_uid(s, uid) if valid else None
    record_event(
        s,
        actor=g.current_user,
        action="PATIENT_PROFILE_LOOKUP",
        entity_type="PatientProfile",
        entity_id=uid[:128],
        metadata={"valid_uid": valid, "found": patient is not None},
    )
    s.commit()

    if not valid:
        return jsonify({"error": "Invalid UID"}), 400
    if not patient:
        return jsonify({"error": "Profile not found"}), 404
    return jsonify(profile_to_dict(patient))
