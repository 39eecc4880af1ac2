from __future__ import annotations

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.kmp.db import db_session
from app.kmp.errors import error_messages_from_config
from app.kmp.models import User
from app.kmp.modules.patients.service import (
    create_profile,
    extract_fields,
    get_own_profile,
    get_owned_profile,
    save_section,
    store_documents,
    update_profile,
    validate_profile_fields,
)
from app.kmp.rbac import login_required
from app.kmp.storage import storage_from_config

bp = Blueprint("patients", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/add-patient")
@login_required
def add_patient_get():
    s = db_session()
    u = _current_user()
    patient_uid = (request.args.get("patient_uid") or "").strip()

    if patient_uid:
        profile = get_owned_profile(s, u, patient_uid)
        if profile is None:
            flash("Patient not found or you do not have permission to edit this patient.", "danger")
    else:
        profile = get_own_profile(s, u)

    return render_template("patients/add_patient.html", patient=profile, is_edit=profile is not None)


@bp.post("/add-patient")
@login_required
def add_patient_post():
    s = db_session()
    u = _current_user()

    fields = extract_fields(request.form)
    errors = validate_profile_fields(fields)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("patients.add_patient_get"))

    patient_uid = (request.form.get("patient_uid") or "").strip()
    is_edit = bool(request.form.get("is_edit")) and bool(patient_uid)

    try:
        if is_edit:
            profile = get_owned_profile(s, u, patient_uid)
            if profile is None:
                flash("Patient not found or you do not have permission to edit.", "danger")
                return redirect(url_for("patients.add_patient_get"))
            update_profile(s, profile, fields, u)
            message = "Patient profile updated successfully!"
        else:
            existing = get_own_profile(s, u)
            if existing is not None:
                flash("You already have a patient profile. Your existing profile has been loaded for editing.", "info")
                return redirect(url_for("patients.add_patient_get", patient_uid=existing.patient_uid))
            if not fields.get("patient_name"):
                flash("Patient name is required.", "danger")
                return redirect(url_for("patients.add_patient_get"))
            profile = create_profile(s, u, fields)
            message = "Patient profile created successfully!"

        warnings = store_documents(s, profile, request.files, storage_from_config(current_app.config), u)
        s.commit()
    except Exception as e:
        s.rollback()
        msg = error_messages_from_config(current_app.config).user_message(
            e, "database", custom="Error saving patient profile. Please try again.", context={"user_id": u.id}
        )
        flash(msg, "danger")
        return redirect(url_for("patients.add_patient_get"))

    for w in warnings:
        flash(w, "warning")
    flash(message, "success")
    return redirect(url_for("patients.add_patient_get", patient_uid=profile.patient_uid))


@bp.post("/add-patient/save-section")
@login_required
def save_section_post():
    s = db_session()
    u = _current_user()
    data = request.get_json(silent=True) if request.is_json else request.form
    if not isinstance(data, dict) and not hasattr(data, "get"):
        return jsonify({"success": False, "message": "Invalid request body"}), 400

    try:
        payload = save_section(s, u, data)
        if payload["success"]:
            s.commit()
        return jsonify(payload), (200 if payload["success"] else 400)
    except Exception as e:
        s.rollback()
        msg = error_messages_from_config(current_app.config).user_message(e, "database", context={"user_id": u.id})
        return jsonify({"success": False, "message": f"Error saving data: {msg}"}), 500
