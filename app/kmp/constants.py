"""
Central constants for the Know My Patient application.
"""
from __future__ import annotations

ROLE_ADMIN = "admin"
ROLE_NHS_USER = "nhs_user"
ROLE_HEALTHCARE_WORKER = "healthcare_worker"
ROLE_PATIENT = "patient"
ROLE_FAMILY = "family"

ROLES = (ROLE_ADMIN, ROLE_NHS_USER, ROLE_HEALTHCARE_WORKER, ROLE_PATIENT, ROLE_FAMILY)

ROLE_LABELS = {
    ROLE_ADMIN: "Administrator",
    ROLE_NHS_USER: "NHS Staff",
    ROLE_HEALTHCARE_WORKER: "Healthcare Worker",
    ROLE_PATIENT: "Patient",
    ROLE_FAMILY: "Family Member",
}

# Registration form "register_type" -> stored role. Admins are never self-registered.
REGISTER_TYPE_ROLES = {
    "nhs": ROLE_NHS_USER,
    "nhs_user": ROLE_NHS_USER,
    "healthcare_worker": ROLE_HEALTHCARE_WORKER,
    "family": ROLE_FAMILY,
    "patient": ROLE_PATIENT,
}

# Roles that may read patient records by uid.
CLINICAL_ROLES = (ROLE_ADMIN, ROLE_NHS_USER, ROLE_HEALTHCARE_WORKER)

ACCOUNT_DELETION_PHRASE = "I CONFIRM MY ACCOUNT FOR DELETION"

REMEMBER_COOKIE_NAME = "rememberme"
REMEMBER_COOKIE_DAYS = 30
