from __future__ import annotations

import re
from typing import TYPE_CHECKING

from app.kmp.models import AuditLog

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

_UID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")

ACCESS_ACTIVITIES = ("PATIENT_RECORD_ACCESSED", "PATIENT_PROFILE_LOOKUP")
HISTORY_LIMIT = 20


def is_valid_uid(uid: str | None) -> bool:
    return bool(uid and _UID_RE.fullmatch(uid))


def access_history(s: "Session", patient_uid: str, limit: int = HISTORY_LIMIT) -> list[AuditLog]:
    """Most recent clinical accesses to one patient record, newest first."""
    return (
        s.query(AuditLog)
        .filter(AuditLog.activity_type.in_(ACCESS_ACTIVITIES))
        .filter(AuditLog.entity_id == patient_uid)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
