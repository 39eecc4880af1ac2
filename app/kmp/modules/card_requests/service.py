from __future__ import annotations

from datetime import datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.kmp.audit import record_event
from app.kmp.modules.card_requests.models import CardRequest
from app.kmp.validators import parse_uk_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.kmp.models import User
    from app.kmp.modules.patients.models import PatientProfile


VALID_STATUSES = ("pending", "printing", "posted", "delivered", "cancelled")
CLOSED_STATUSES = ("delivered", "cancelled")
TRACKED_STATUSES = ("posted", "delivered")
SORT_COLUMNS = {
    "request_date": CardRequest.request_date,
    "status": CardRequest.status,
    "card_type": CardRequest.card_type,
}


class CardRequestError(ValueError):
    """A card request the user is not allowed to place. Message is safe to show."""


class ProfileIncompleteError(CardRequestError):
    pass


def active_card_request(s: "Session", user_id: int) -> CardRequest | None:
    """Latest request still in flight (not delivered or cancelled)."""
    return (
        s.query(CardRequest)
        .filter(CardRequest.user_id == user_id)
        .filter(CardRequest.status.notin_(CLOSED_STATUSES))
        .order_by(CardRequest.request_date.desc(), CardRequest.id.desc())
        .first()
    )


def create_card_request(s: "Session", user: "User", profile: "PatientProfile | None") -> CardRequest:
    if active_card_request(s, user.id) is not None:
        raise CardRequestError("You already have a card request in progress.")
    if profile is None or not profile.address or not profile.postcode:
        raise ProfileIncompleteError("Please complete your patient profile with your address and postcode before requesting a card.")

    now = datetime.utcnow()
    req = CardRequest(
        user_id=user.id,
        patient_uid=profile.patient_uid,
        card_type="standard",
        status="pending",
        delivery_address=profile.address,
        delivery_postcode=profile.postcode,
        contact_phone=profile.phone_number,
        contact_email=user.email,
        request_date=now,
        updated_at=now,
    )
    s.add(req)
    s.flush()

    record_event(
        s,
        actor=user,
        action="CARD_REQUEST_CREATED",
        entity_type="CardRequest",
        entity_id=str(req.id),
        metadata={"patient_uid": req.patient_uid, "card_type": req.card_type},
    )
    return req


def validate_status_payload(payload: dict) -> list[str]:
    errors = []
    status = (payload.get("status") or "").strip()
    if status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return errors


def update_card_request_status(s: "Session", req: CardRequest, payload: dict, user: "User") -> CardRequest:
    old_status = req.status
    new_status = (payload.get("status") or "").strip()
    tracking = (payload.get("tracking_number") or "").strip() or None

    req.status = new_status
    # tracking numbers only mean something once the card has left
    req.tracking_number = tracking if new_status in TRACKED_STATUSES else None
    notes = (payload.get("admin_notes") or "").strip()
    if notes:
        req.admin_notes = notes
    req.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=user,
        action="CARD_REQUEST_STATUS_UPDATED",
        entity_type="CardRequest",
        entity_id=str(req.id),
        target_user_id=req.user_id,
        metadata={"old_status": old_status, "new_status": new_status, "tracking_number": req.tracking_number},
    )
    return req


def delete_card_request(s: "Session", req: CardRequest, user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="CARD_REQUEST_DELETED",
        entity_type="CardRequest",
        entity_id=str(req.id),
        target_user_id=req.user_id,
        metadata={"status": req.status, "patient_uid": req.patient_uid},
    )
    s.delete(req)


def filter_card_requests(s: "Session", args: dict) -> tuple[list[CardRequest], dict]:
    """
    Admin list query. Returns (rows, normalized filters).
    Dates are dd/mm/yyyy; bad dates are ignored.
    """
    search = (args.get("search") or "").strip()
    status = (args.get("status") or "").strip()
    from_date = parse_uk_date(args.get("from_date"))
    to_date = parse_uk_date(args.get("to_date"))
    sort_by = (args.get("sort_by") or "request_date").strip()
    if sort_by not in SORT_COLUMNS:
        sort_by = "request_date"
    order = (args.get("order") or "desc").strip().lower()
    if order not in ("asc", "desc"):
        order = "desc"

    q = s.query(CardRequest)
    if search:
        like = f"%{search}%"
        conditions = [
            CardRequest.patient_uid.ilike(like),
            CardRequest.contact_email.ilike(like),
            CardRequest.tracking_number.ilike(like),
        ]
        if search.isdigit():
            conditions.append(CardRequest.user_id == int(search))
        q = q.filter(or_(*conditions))
    if status in VALID_STATUSES:
        q = q.filter(CardRequest.status == status)
    if from_date:
        q = q.filter(CardRequest.request_date >= datetime.combine(from_date, time.min))
    if to_date:
        q = q.filter(CardRequest.request_date <= datetime.combine(to_date, time.max))

    column = SORT_COLUMNS[sort_by]
    q = q.order_by(column.asc() if order == "asc" else column.desc(), CardRequest.id.desc())

    filters = {
        "search": search,
        "status": status,
        "from_date": (args.get("from_date") or "").strip(),
        "to_date": (args.get("to_date") or "").strip(),
        "sort_by": sort_by,
        "order": order,
    }
    return q.all(), filters


def card_request_stats(s: "Session") -> dict:
    counts = dict(s.query(CardRequest.status, func.count(CardRequest.id)).group_by(CardRequest.status).all())
    return {
        "total": sum(counts.values()),
        "pending": counts.get("pending", 0),
        "printing": counts.get("printing", 0),
        "posted": counts.get("posted", 0),
    }
