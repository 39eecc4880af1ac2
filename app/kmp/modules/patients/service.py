from __future__ import annotations

import os
from datetime import date, datetime
from typing import TYPE_CHECKING

from werkzeug.utils import secure_filename

from app.kmp.audit import record_event
from app.kmp.validators import (
    is_valid_nhs_number,
    is_valid_postcode,
    is_valid_uk_phone,
    parse_iso_date,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import FileStorage
    from app.kmp.models import User
    from app.kmp.modules.patients.models import PatientProfile
    from app.kmp.storage import Storage


ALLOWED_FIELDS = (
    "patient_name", "date_of_birth", "gender", "blood_type", "nhs_number",
    "phone_number", "address", "postcode", "occupation", "workplace",
    "allergies", "medical_conditions", "medications",
    "has_dementia", "has_learning_disability", "previous_stroke",
    "other_cognitive_conditions", "stroke_effects", "communication_needs",
    "gp_name", "gp_practice", "gp_phone",
    "emergency_contact_1_name", "emergency_contact_1_phone", "emergency_contact_1_relationship",
    "lpa_health_attorney_name", "lpa_health_attorney_phone",
    "lpa_finance_attorney_name", "lpa_finance_attorney_phone",
    "lpa_additional_notes",
    "has_respect_form", "resuscitation_status", "advance_directives",
    "diet_type", "fluid_consistency", "special_diet_notes",
    "food_preferences", "food_dislikes",
    "personal_likes", "personal_dislikes", "important_memories",
    "religion", "cultural_needs",
    "funeral_arrangements", "organ_donation", "funeral_details_notes",
    "additional_notes",
)

# upload field -> document type used in column names and file names
DOCUMENT_FIELDS = {
    "lpa_health_document": "lpa_health",
    "lpa_finance_document": "lpa_finance",
    "respect_document": "respect",
}
ALLOWED_DOCUMENT_EXTENSIONS = ("pdf", "jpg", "jpeg", "png", "doc", "docx")
MAX_DOCUMENT_BYTES = 5 * 1024 * 1024

# never exposed through the JSON API
_PRIVATE_COLUMNS = ("lpa_health_document_path", "lpa_finance_document_path", "respect_document_path")


def extract_fields(form) -> dict:
    """Pick the allowed fields present in `form`; blank values become None."""
    fields = {}
    for name in ALLOWED_FIELDS:
        if name in form:
            value = str(form.get(name) or "").strip()
            fields[name] = value or None
    return fields


def validate_profile_fields(fields: dict, *, today: date | None = None) -> list[str]:
    """Validate patient profile fields. Returns list of errors."""
    errors = []
    today = today or date.today()

    if "date_of_birth" in fields and fields["date_of_birth"]:
        dob = parse_iso_date(fields["date_of_birth"])
        if dob is None:
            errors.append("Date of birth must be a valid date (YYYY-MM-DD).")
        elif dob > today:
            errors.append("Date of birth cannot be in the future.")

    nhs_number = (fields.get("nhs_number") or "").replace(" ", "")
    if nhs_number and not is_valid_nhs_number(nhs_number):
        errors.append("NHS number must be exactly 10 digits.")

    for key, label in (("phone_number", "Phone number"), ("emergency_contact_1_phone", "Emergency contact phone")):
        phone = (fields.get(key) or "").replace(" ", "")
        if phone and not is_valid_uk_phone(phone):
            errors.append(f"{label} must be a valid UK number (e.g. 07123456789 or +447123456789).")

    postcode = fields.get("postcode")
    if postcode and not is_valid_postcode(postcode):
        errors.append("Postcode must be a valid UK postcode.")
    return errors


def _apply_fields(profile: "PatientProfile", fields: dict) -> dict:
    changes = {}
    for name, value in fields.items():
        if name == "date_of_birth":
            value = parse_iso_date(value)
        elif name == "nhs_number" and value:
            value = value.replace(" ", "")
        elif name == "postcode" and value:
            value = value.upper()
        if getattr(profile, name) != value:
            changes[name] = True
            setattr(profile, name, value)
    return changes


def get_own_profile(s: "Session", user: "User") -> "PatientProfile | None":
    from app.kmp.modules.patients.models import PatientProfile

    return (
        s.query(PatientProfile)
        .filter((PatientProfile.user_id == user.id) | (PatientProfile.patient_uid == user.uid))
        .order_by(PatientProfile.created_at.desc())
        .first()
    )


def get_owned_profile(s: "Session", user: "User", patient_uid: str) -> "PatientProfile | None":
    """Profile by uid, only if `user` created it or it is theirs."""
    from app.kmp.modules.patients.models import PatientProfile

    return (
        s.query(PatientProfile)
        .filter(PatientProfile.patient_uid == patient_uid)
        .filter((PatientProfile.created_by == user.id) | (PatientProfile.user_id == user.id))
        .one_or_none()
    )


def find_profile_by_uid(s: "Session", patient_uid: str) -> "PatientProfile | None":
    from app.kmp.modules.patients.models import PatientProfile

    return s.query(PatientProfile).filter(PatientProfile.patient_uid == patient_uid).one_or_none()


def create_profile(s: "Session", user: "User", fields: dict) -> "PatientProfile":
    """Create the caller's own profile. patient_uid is the user's uid."""
    from app.kmp.modules.patients.models import PatientProfile

    now = datetime.utcnow()
    profile = PatientProfile(
        patient_uid=user.uid,
        user_id=user.id,
        created_by=user.id,
        updated_by=user.id,
        created_at=now,
        updated_at=now,
    )
    _apply_fields(profile, fields)
    s.add(profile)
    s.flush()

    record_event(
        s,
        actor=user,
        action="PATIENT_PROFILE_CREATED",
        entity_type="PatientProfile",
        entity_id=profile.patient_uid,
        metadata={"fields": len(fields)},
    )
    return profile


def update_profile(s: "Session", profile: "PatientProfile", fields: dict, user: "User", *, step: int | None = None) -> "PatientProfile":
    changes = _apply_fields(profile, fields)
    profile.updated_at = datetime.utcnow()
    profile.updated_by = user.id

    metadata: dict = {"fields_updated": sorted(changes)}
    if step is not None:
        metadata["step"] = step
    record_event(
        s,
        actor=user,
        action="PATIENT_PROFILE_UPDATED",
        entity_type="PatientProfile",
        entity_id=profile.patient_uid,
        metadata=metadata,
    )
    return profile


def document_storage_key(patient_uid: str, document_type: str, extension: str) -> str:
    return f"patient_documents/{patient_uid}/{patient_uid}_{document_type}.{extension}"


def store_documents(
    s: "Session",
    profile: "PatientProfile",
    files: dict[str, "FileStorage"],
    storage: "Storage",
    user: "User",
) -> list[str]:
    """
    Save any uploaded LPA / ReSPECT documents for `profile`.
    Invalid files are skipped; returns one warning per skipped file.
    """
    warnings = []
    for field_name, document_type in DOCUMENT_FIELDS.items():
        f = files.get(field_name)
        if f is None or not f.filename:
            continue
        original = secure_filename(f.filename) or f"{document_type}.bin"
        extension = os.path.splitext(original)[1].lstrip(".").lower()
        if extension not in ALLOWED_DOCUMENT_EXTENSIONS:
            warnings.append(f"{original}: only {', '.join(ALLOWED_DOCUMENT_EXTENSIONS)} files are accepted.")
            continue
        data = f.read()
        if len(data) > MAX_DOCUMENT_BYTES:
            warnings.append(f"{original}: file is larger than 5MB.")
            continue

        key = document_storage_key(profile.patient_uid, document_type, extension)
        storage.put_bytes(key, data, content_type=f.mimetype or None)
        setattr(profile, f"{document_type}_document_name", original)
        setattr(profile, f"{document_type}_document_path", key)

        record_event(
            s,
            actor=user,
            action="PATIENT_DOCUMENT_UPLOADED",
            entity_type="PatientProfile",
            entity_id=profile.patient_uid,
            metadata={"document_type": document_type, "filename": original, "size_bytes": len(data)},
        )
    return warnings


def save_section(s: "Session", user: "User", data: dict) -> dict:
    """
    Autosave one step of the multi-step form. Validation runs before anything is written.
    Returns the JSON payload for the client.
    """
    try:
        step = int(data.get("current_step") or 1)
    except (TypeError, ValueError):
        step = 1

    fields = extract_fields(data)
    if step == 1 and (not fields.get("patient_name") or not fields.get("date_of_birth")):
        return {"success": False, "message": "Patient name and date of birth are required fields"}
    errors = validate_profile_fields(fields)
    if errors:
        return {"success": False, "message": errors[0]}

    profile = get_own_profile(s, user)
    if profile is None:
        profile = create_profile(s, user, fields)
    elif fields:
        update_profile(s, profile, fields, user, step=step)
    return {
        "success": True,
        "message": "Section saved successfully",
        "patientProfileId": profile.id,
        "step": step,
    }


def profile_to_dict(profile: "PatientProfile") -> dict:
    out = {}
    for column in profile.__table__.columns:
        if column.name in _PRIVATE_COLUMNS:
            continue
        value = getattr(profile, column.name)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[column.name] = value
    return out
