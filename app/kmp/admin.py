from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy import func, or_

from app.kmp.audit import record_event
from app.kmp.cache import cache_from_config
from app.kmp.constants import ROLE_ADMIN, ROLE_LABELS, ROLES
from app.kmp.db import db_session
from app.kmp.models import AuditLog, Testimonial, User
from app.kmp.rbac import role_required
from app.kmp.routes import TESTIMONIALS_CACHE_KEY

bp = Blueprint("admin", __name__)

AUDIT_LIMIT = 200


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@role_required(ROLE_ADMIN)
def index():
    from app.kmp.modules.card_requests.service import card_request_stats
    from app.kmp.modules.onboarding.models import OnboardingEnquiry
    from app.kmp.modules.patients.models import PatientProfile
    from app.kmp.modules.support.models import SupportMessage

    s = db_session()
    role_counts = dict(s.query(User.role, func.count(User.id)).group_by(User.role).all())
    counts = {
        "users": sum(role_counts.values()),
        "active_users": s.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0,
        "patient_profiles": s.query(func.count(PatientProfile.id)).scalar() or 0,
        "support_messages": s.query(func.count(SupportMessage.id)).scalar() or 0,
        "new_enquiries": s.query(func.count(OnboardingEnquiry.id)).filter(OnboardingEnquiry.status == "new").scalar() or 0,
    }
    recent = s.query(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(10).all()
    return render_template(
        "admin/index.html",
        counts=counts,
        role_counts=role_counts,
        role_labels=ROLE_LABELS,
        card_stats=card_request_stats(s),
        recent_events=recent,
    )


# ---------- Users ----------

@bp.get("/users")
@role_required(ROLE_ADMIN)
def users_list():
    s = db_session()
    search = (request.args.get("search") or "").strip()
    role = (request.args.get("role") or "").strip()

    q = s.query(User)
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(
            or_(
                func.lower(User.email).like(like),
                func.lower(User.first_name).like(like),
                func.lower(User.last_name).like(like),
                User.uid.like(like),
            )
        )
    if role in ROLES:
        q = q.filter(User.role == role)

    users = q.order_by(User.created_at.desc(), User.id.desc()).all()
    return render_template("admin/users.html", users=users, search=search, role=role, roles=ROLES, role_labels=ROLE_LABELS)


def _target_user(user_id: int) -> User:
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    return user


@bp.post("/users/<int:user_id>/status")
@role_required(ROLE_ADMIN)
def users_update_status(user_id: int):
    s = db_session()
    u = _current_user()
    user = _target_user(user_id)
    if user.id == u.id:
        flash("You cannot suspend your own account.", "danger")
        return redirect(url_for("admin.users_list"))

    before = user.is_active
    user.is_active = request.form.get("is_active") == "1"
    if not user.is_active:
        user.remember_token = None
    record_event(
        s,
        actor=u,
        action="USER_STATUS_CHANGED",
        entity_type="User",
        entity_id=str(user.id),
        target_user_id=user.id,
        metadata={"before": before, "after": user.is_active},
    )
    s.commit()
    flash(f"{user.email} is now {'active' if user.is_active else 'suspended'}.", "success")
    return redirect(url_for("admin.users_list"))


@bp.post("/users/<int:user_id>/role")
@role_required(ROLE_ADMIN)
def users_update_role(user_id: int):
    s = db_session()
    u = _current_user()
    user = _target_user(user_id)
    if user.id == u.id:
        flash("You cannot change your own role.", "danger")
        return redirect(url_for("admin.users_list"))

    new_role = (request.form.get("role") or "").strip()
    if new_role not in ROLES:
        flash("Unknown role.", "danger")
        return redirect(url_for("admin.users_list"))

    before = user.role
    user.role = new_role
    record_event(
        s,
        actor=u,
        action="USER_ROLE_CHANGED",
        entity_type="User",
        entity_id=str(user.id),
        target_user_id=user.id,
        metadata={"before": before, "after": new_role},
    )
    s.commit()
    flash(f"Role for {user.email} set to {ROLE_LABELS[new_role]}.", "success")
    return redirect(url_for("admin.users_list"))


# ---------- Audit ----------

@bp.get("/audit-dashboard")
@role_required(ROLE_ADMIN)
def audit_dashboard():
    """
    Audit trail (last 200 events) with simple filters:
    - activity_type (contains)
    - user_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    activity_type = (request.args.get("activity_type") or "").strip()
    user_email = (request.args.get("user_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = s.query(AuditLog)
    if activity_type:
        q = q.filter(AuditLog.activity_type.like(f"%{activity_type.upper()}%"))
    if user_email:
        q = q.filter(AuditLog.user_email.like(f"%{user_email.lower()}%"))
    if date_from:
        q = q.filter(AuditLog.timestamp >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date
        q = q.filter(AuditLog.timestamp < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(AUDIT_LIMIT).all()
    activity_types = [row[0] for row in s.query(AuditLog.activity_type).distinct().order_by(AuditLog.activity_type).all()]
    return render_template(
        "admin/audit.html",
        events=events,
        activity_types=activity_types,
        activity_type=activity_type,
        user_email=user_email,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )


# ---------- Support / onboarding inboxes ----------

@bp.get("/support-messages")
@role_required(ROLE_ADMIN)
def support_messages():
    from app.kmp.modules.support.models import SupportMessage

    s = db_session()
    messages = s.query(SupportMessage).order_by(SupportMessage.created_at.desc(), SupportMessage.id.desc()).all()
    return render_template("admin/support_messages.html", messages=messages)


@bp.get("/onboarding-enquiries")
@role_required(ROLE_ADMIN)
def onboarding_enquiries():
    from app.kmp.modules.onboarding.models import OnboardingEnquiry
    from app.kmp.modules.onboarding.service import VALID_STATUSES

    s = db_session()
    status = (request.args.get("status") or "").strip()
    q = s.query(OnboardingEnquiry)
    if status in VALID_STATUSES:
        q = q.filter(OnboardingEnquiry.status == status)
    enquiries = q.order_by(OnboardingEnquiry.created_at.desc(), OnboardingEnquiry.id.desc()).all()
    return render_template("admin/onboarding_enquiries.html", enquiries=enquiries, status=status, statuses=VALID_STATUSES)


# ---------- Testimonials ----------

@bp.get("/testimonials")
@role_required(ROLE_ADMIN)
def testimonials_list():
    s = db_session()
    rows = s.query(Testimonial).order_by(Testimonial.created_at.desc(), Testimonial.id.desc()).all()
    return render_template("admin/testimonials.html", testimonials=rows)


@bp.post("/testimonials")
@role_required(ROLE_ADMIN)
def testimonials_create():
    s = db_session()
    body = (request.form.get("testimonial") or "").strip()
    name = (request.form.get("name") or "").strip()
    role = (request.form.get("role") or "").strip() or None
    if not body or not name:
        flash("Testimonial text and name are required.", "danger")
        return redirect(url_for("admin.testimonials_list"))

    t = Testimonial(testimonial=body, name=name[:128], role=role[:128] if role else None)
    s.add(t)
    s.commit()
    cache_from_config(current_app.config).forget(TESTIMONIALS_CACHE_KEY)
    flash("Testimonial added.", "success")
    return redirect(url_for("admin.testimonials_list"))


@bp.post("/testimonials/<int:testimonial_id>/delete")
@role_required(ROLE_ADMIN)
def testimonials_delete(testimonial_id: int):
    s = db_session()
    t = s.get(Testimonial, testimonial_id)
    if not t:
        abort(404)
    s.delete(t)
    s.commit()
    cache_from_config(current_app.config).forget(TESTIMONIALS_CACHE_KEY)
    flash("Testimonial deleted.", "success")
    return redirect(url_for("admin.testimonials_list"))


@bp.get("/resources")
@role_required(ROLE_ADMIN)
def resources():
    return render_template("admin/resources.html")
