import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.kmp.ip import client_ip
from app.kmp.models import AuditLog, User


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    target_user_id: int | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
    actor_email: str | None = None,
    request_id: str | None = None,
) -> AuditLog:
    """
    Append-only audit event helper. Caller commits.
    `actor_email` records who was involved when there is no user row (failed logins, deleted accounts).
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    user_agent = None
    if in_request:
        user_agent = (request.headers.get("User-Agent") or "")[:512] or None
    ev = AuditLog(
        request_id=rid,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else actor_email,
        target_user_id=target_user_id,
        activity_type=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        metadata_json=json.dumps(metadata, sort_keys=True, default=str) if metadata else None,
        ip_address=client_ip(request) if in_request else None,
        user_agent=user_agent,
    )
    s.add(ev)
    return ev
